"""Cost-accounting providers and the cache-first lookup of today's usage.

Providers are external CLIs (ccusage for Claude Code, @ccusage/codex for
Codex) that print JSON. They are slow, so every lookup goes through the
UsageCache first, and a fetch that fails or runs past its deadline counts as
zero usage. That zero is cached too, so a broken provider is retried once
per TTL instead of on every prompt.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
from typing import Callable, Iterable, Protocol

from hudline.cache import UsageCache
from hudline.errors import ProviderError
from hudline.models import DEGRADED_USAGE, ZERO_USAGE, UsageResult

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 5.0


class UsageProvider(Protocol):
    provider_id: str

    async def fetch(
        self, today: str, *, timezone: str | None = None, silent: bool = True
    ) -> UsageResult: ...


class CommandProvider:
    """A provider backed by a subprocess that prints JSON on stdout.

    Args:
        provider_id: Cache key and log label, e.g. "claude".
        argv: Builds the command line from (today, timezone); None when
            no runner is installed.
        parse: Turns the decoded JSON payload into a UsageResult for today.
    """

    def __init__(
        self,
        provider_id: str,
        argv: Callable[[str, str | None], list[str] | None],
        parse: Callable[[object, str], UsageResult],
    ):
        self.provider_id = provider_id
        self._argv = argv
        self._parse = parse

    async def fetch(
        self, today: str, *, timezone: str | None = None, silent: bool = True
    ) -> UsageResult:
        argv = self._argv(today, timezone)
        if not argv:
            raise ProviderError(f"{self.provider_id}: no command available")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL if silent else None,
            )
        except OSError as exc:
            raise ProviderError(f"{self.provider_id}: cannot run {argv[0]}: {exc}") from exc

        try:
            stdout, _ = await proc.communicate()
        except asyncio.CancelledError:
            await _reap(proc)
            raise

        if proc.returncode != 0:
            raise ProviderError(f"{self.provider_id}: exited with status {proc.returncode}")
        try:
            payload = json.loads(stdout)
        except ValueError as exc:
            raise ProviderError(f"{self.provider_id}: output is not JSON") from exc
        return self._parse(payload, today)


async def _reap(proc: asyncio.subprocess.Process) -> None:
    """Kill a child and wait for it, so no zombie outlives the event loop."""
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    await asyncio.shield(proc.wait())


def package_command(package: str, binary: str) -> list[str] | None:
    """Command prefix for a node package: installed binary, else bunx, else npx."""
    if shutil.which(binary):
        return [binary]
    if shutil.which("bunx"):
        return ["bunx", package]
    if shutil.which("npx"):
        return ["npx", "-y", package]
    return None


# ---------------------------------------------------------------------------
# Built-in providers
# ---------------------------------------------------------------------------


def _claude_argv(today: str, timezone: str | None) -> list[str] | None:
    cmd = package_command("ccusage@latest", "ccusage")
    if cmd is None:
        return None
    args = cmd + ["daily", "--json", "--since", today.replace("-", "")]
    if timezone:
        args += ["--timezone", timezone]
    return args


def parse_claude_daily(payload: object, today: str) -> UsageResult:
    """Pick today's row out of ``ccusage daily --json``. No row means zero."""
    if not isinstance(payload, dict) or not isinstance(payload.get("daily"), list):
        raise ProviderError("claude: unexpected ccusage output")
    for row in payload["daily"]:
        if isinstance(row, dict) and row.get("date") == today:
            return _usage_from(row, cost_key="totalCost", provider_id="claude")
    return ZERO_USAGE


def _codex_argv(today: str, timezone: str | None) -> list[str] | None:
    cmd = package_command("@ccusage/codex@latest", "ccusage-codex")
    if cmd is None:
        return None
    args = cmd + ["daily", "--json", "--since", today]
    if timezone:
        args += ["--timezone", timezone]
    return args


def parse_codex_daily(payload: object, today: str) -> UsageResult:
    """Read the totals of ``@ccusage/codex daily --json --since today``."""
    if not isinstance(payload, dict):
        raise ProviderError("codex: unexpected output")
    totals = payload.get("totals")
    if not isinstance(totals, dict):
        return ZERO_USAGE
    return _usage_from(totals, cost_key="costUSD", provider_id="codex")


def _usage_from(row: dict, cost_key: str, provider_id: str) -> UsageResult:
    try:
        return UsageResult(
            cost=max(0.0, float(row.get(cost_key) or 0)),
            input_tokens=max(0, int(row.get("inputTokens") or 0)),
            output_tokens=max(0, int(row.get("outputTokens") or 0)),
        )
    except (TypeError, ValueError) as exc:
        raise ProviderError(f"{provider_id}: malformed usage row") from exc


PROVIDERS: dict[str, UsageProvider] = {
    "claude": CommandProvider("claude", _claude_argv, parse_claude_daily),
    "codex": CommandProvider("codex", _codex_argv, parse_codex_daily),
}


def get_providers(names: Iterable[str]) -> list[UsageProvider]:
    """Look up built-in providers by name, skipping (and logging) unknown ones."""
    providers = []
    for name in names:
        provider = PROVIDERS.get(name)
        if provider is None:
            logger.warning("unknown usage provider %r ignored", name)
            continue
        providers.append(provider)
    return providers


# ---------------------------------------------------------------------------
# Cache-first resolution
# ---------------------------------------------------------------------------


async def resolve_usage(
    cache: UsageCache,
    provider: UsageProvider,
    today: str,
    ttl_seconds: float,
    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT,
    timezone: str | None = None,
    silent: bool = True,
) -> UsageResult:
    """Today's usage for one provider: cache hit, fresh fetch, or a degraded zero.

    The degraded zero is cached like a real result so a broken provider is
    retried once per TTL, and it keeps its flag so it is never persisted.
    """
    cached = cache.get(provider.provider_id, today, ttl_seconds)
    if cached is not None:
        return cached

    try:
        result = await asyncio.wait_for(
            provider.fetch(today, timezone=timezone, silent=silent),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(
            "%s usage fetch timed out after %.1fs", provider.provider_id, timeout_seconds
        )
        result = DEGRADED_USAGE
    except ProviderError as exc:
        logger.warning("usage fetch failed: %s", exc)
        result = DEGRADED_USAGE

    cache.put(provider.provider_id, today, result)
    return result


async def resolve_total_usage(
    cache: UsageCache,
    providers: Iterable[UsageProvider],
    today: str,
    ttl_seconds: float,
    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT,
    timezone: str | None = None,
) -> UsageResult:
    """Resolve every provider concurrently and sum the results."""
    results = await asyncio.gather(
        *(
            resolve_usage(cache, p, today, ttl_seconds, timeout_seconds, timezone)
            for p in providers
        )
    )
    return sum(results, ZERO_USAGE)


def system_timezone() -> str | None:
    """IANA timezone name from $TZ or the /etc/localtime symlink, if any."""
    tz = os.environ.get("TZ")
    if tz:
        return tz.lstrip(":")
    target = os.path.realpath("/etc/localtime")
    marker = "zoneinfo/"
    if marker in target:
        return target.split(marker, 1)[1]
    return None
