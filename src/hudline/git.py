"""Thin async wrappers around git and gh for the workspace segments.

Every call is time-boxed and returns None (or an empty GitInfo) on any
failure; a missing binary or a non-repo directory is not an error here.
"""

from __future__ import annotations

import asyncio
import json
import logging

from hudline.models import GitInfo

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 2.0
GH_TIMEOUT = 5.0


async def _run(argv: list[str], cwd: str | None, timeout: float) -> str | None:
    """Run a command and return its stdout, or None on failure or timeout."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as exc:
        logger.debug("cannot run %s: %s", argv[0], exc)
        return None

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.CancelledError:
        await _reap(proc)
        raise
    except asyncio.TimeoutError:
        await _reap(proc)
        logger.debug("%s timed out after %.1fs", " ".join(argv), timeout)
        return None

    if proc.returncode != 0:
        return None
    return stdout.decode("utf-8", errors="replace")


async def _reap(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    await asyncio.shield(proc.wait())


async def git_root(cwd: str | None) -> str | None:
    """Top-level directory of the repository containing ``cwd``."""
    out = await _run(["git", "rev-parse", "--show-toplevel"], cwd, GIT_TIMEOUT)
    if not out:
        return None
    return out.strip() or None


async def git_status(cwd: str | None) -> GitInfo:
    """Branch, dirty flag and ahead/behind counts from ``git status``."""
    out = await _run(
        ["git", "status", "--porcelain=v2", "--branch"], cwd, GIT_TIMEOUT
    )
    if out is None:
        return GitInfo()
    return parse_porcelain_v2(out)


def parse_porcelain_v2(output: str) -> GitInfo:
    info = GitInfo()
    for line in output.splitlines():
        if line.startswith("# branch.head "):
            head = line[len("# branch.head "):].strip()
            info.branch = None if head == "(detached)" else head
        elif line.startswith("# branch.ab "):
            for part in line[len("# branch.ab "):].split():
                if part.startswith("+"):
                    info.ahead = int(part[1:])
                elif part.startswith("-"):
                    info.behind = int(part[1:])
        elif line and not line.startswith("#"):
            info.is_dirty = True
    return info


async def pr_number(cwd: str | None) -> int | None:
    """Number of the open pull request for the current branch, via ``gh``."""
    out = await _run(["gh", "pr", "view", "--json", "number"], cwd, GH_TIMEOUT)
    if not out:
        return None
    try:
        number = json.loads(out).get("number")
    except (ValueError, AttributeError):
        return None
    return number if isinstance(number, int) else None
