"""Disk cache for today's usage, one JSON file per provider.

File shape: ``{"date", "cost", "inputTokens", "outputTokens", "degraded",
"timestamp"}`` with ``timestamp`` in milliseconds. ``degraded`` is true for
the zero cached after a failed fetch. Writes go through a temp file and
``os.replace`` so concurrent invocations never see a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path

from hudline.models import UsageResult

logger = logging.getLogger(__name__)


def read_json(path: Path) -> dict | None:
    """Read a JSON object from ``path``; None if missing, unreadable or not an object."""
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def write_json_atomic(path: Path, data: dict) -> bool:
    """Overwrite ``path`` with ``data`` atomically. Returns False on failure."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        logger.warning("could not write cache file %s: %s", path, exc)
        return False
    return True


class UsageCache:
    """TTL- and date-keyed cache of provider results."""

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)

    def path_for(self, provider_id: str) -> Path:
        return self.cache_dir / f"{provider_id}-usage.json"

    def get(
        self,
        provider_id: str,
        today: str,
        ttl_seconds: float,
        now: int | None = None,
    ) -> UsageResult | None:
        """Cached result for ``today`` if younger than the TTL, else None."""
        cached = read_json(self.path_for(provider_id))
        if cached is None:
            return None
        if now is None:
            now = int(time.time() * 1000)
        try:
            if cached["date"] != today or now - cached["timestamp"] >= ttl_seconds * 1000:
                return None
            return UsageResult(
                cost=float(cached["cost"]),
                input_tokens=int(cached["inputTokens"]),
                output_tokens=int(cached["outputTokens"]),
                degraded=bool(cached.get("degraded", False)),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def put(
        self,
        provider_id: str,
        today: str,
        result: UsageResult,
        now: int | None = None,
    ) -> bool:
        if now is None:
            now = int(time.time() * 1000)
        return write_json_atomic(
            self.path_for(provider_id),
            {
                "date": today,
                "cost": result.cost,
                "inputTokens": result.input_tokens,
                "outputTokens": result.output_tokens,
                "degraded": result.degraded,
                "timestamp": now,
            },
        )
