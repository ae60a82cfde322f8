"""Segment base class and the per-invocation context handed to update_cache."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping

from hudline.cache import UsageCache
from hudline.db import SnapshotStore
from hudline.models import SegmentConfig, SegmentData, StatusInput, UsageResult
from hudline.providers import PROVIDERS, UsageProvider, resolve_total_usage


@dataclass
class UpdateContext:
    """Everything a segment may consult while fetching slow data."""

    data: StatusInput
    store: SnapshotStore
    cache: UsageCache
    today: str  # YYYY-MM-DD, local time
    now: datetime
    fetch_timeout: float = 5.0
    timezone: str | None = None
    rng: random.Random = field(default_factory=random.Random)
    providers: Mapping[str, UsageProvider] = field(default_factory=lambda: PROVIDERS)
    _usage_tasks: dict = field(default_factory=dict, repr=False)

    async def total_usage(self, provider_names: Iterable[str], ttl_seconds: float) -> UsageResult:
        """Today's summed usage, resolved once per invocation.

        The usage and pace segments both need it; they share one task so a
        cache miss costs a single round of provider calls. The task is
        shielded so one segment timing out does not cancel it for the other.
        """
        key = (tuple(provider_names), ttl_seconds)
        task = self._usage_tasks.get(key)
        if task is None:
            providers = [self.providers[name] for name in key[0] if name in self.providers]
            task = asyncio.ensure_future(
                resolve_total_usage(
                    self.cache,
                    providers,
                    self.today,
                    ttl_seconds,
                    timeout_seconds=self.fetch_timeout,
                    timezone=self.timezone,
                )
            )
            self._usage_tasks[key] = task
        return await asyncio.shield(task)


class Segment:
    """One labeled, colored fragment of the status line.

    Slow work belongs in ``update_cache``, which the orchestrator runs
    concurrently for every segment with ``needs_update``. ``render`` is
    synchronous and only reads state that update_cache already stored, so
    segments can be rendered in configured order once all fetches settle.
    """

    icon = ""
    needs_update = False

    def __init__(self, config: SegmentConfig):
        self.config = config
        self.display = config.display

    async def update_cache(self, ctx: UpdateContext) -> None:
        """Fetch slow data ahead of render. Most segments have none."""

    def render(self, data: StatusInput, store: SnapshotStore) -> SegmentData:
        raise NotImplementedError

    def _fragment(self, parts: Iterable[str]) -> SegmentData:
        """Join non-empty parts, prefixed by the icon when enabled."""
        parts = [p for p in parts if p]
        if parts and self.display.get("icon") and self.icon:
            parts.insert(0, self.icon)
        return SegmentData(text=" ".join(parts), colors=self.config.colors)
