"""Usage and pace segments — the two that persist what they compute."""

from __future__ import annotations

from hudline.db import SnapshotStore
from hudline.models import SegmentData, StatusInput, UsageResult
from hudline.pace import decayed_pace
from hudline.segments.base import Segment, UpdateContext

# Samples older than a day carry no weight worth reading at any sane half-life.
PACE_WINDOW_DAYS = 1


def format_tokens(tokens: int) -> str:
    """Format token count with K/M suffix: 950, 1.5K, 2.3M."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.1f}K"
    return str(tokens)


class _UsageSource(Segment):
    """A segment that needs today's cumulative cost from the providers.

    ``cached_usage`` is what the orchestrator persists as the daily total
    and the usage snapshot the pace calculation reads back.
    """

    needs_update = True

    def __init__(self, config):
        super().__init__(config)
        self.cached_usage: tuple[str, UsageResult] | None = None

    @property
    def ttl_seconds(self) -> float:
        return float(self.display.get("cache_ttl_minutes", 1)) * 60

    async def _resolve_usage(self, ctx: UpdateContext) -> UsageResult:
        usage = await ctx.total_usage(self.display.get("providers", ()), self.ttl_seconds)
        self.cached_usage = (ctx.today, usage)
        return usage


class UsageSegment(_UsageSource):
    """Today's cost (and optionally tokens) summed over all configured providers."""

    icon = "Σ"

    async def update_cache(self, ctx: UpdateContext) -> None:
        await self._resolve_usage(ctx)

    def render(self, data: StatusInput, store: SnapshotStore) -> SegmentData:
        usage = self.cached_usage[1] if self.cached_usage else UsageResult()
        parts = []
        if self.display.get("cost", True):
            parts.append(f"${usage.cost:.2f}")
        if self.display.get("tokens"):
            parts.append(format_tokens(usage.total_tokens))
        if parts and self.display.get("period"):
            parts.append(str(self.display["period"]))
        return self._fragment(parts)


class PaceSegment(_UsageSource):
    """Decay-weighted spend rate in $/hr from recorded usage snapshots.

    It resolves usage itself so snapshots keep accruing when no usage
    segment is configured.
    """

    icon = "△"

    def __init__(self, config):
        super().__init__(config)
        self.cached_pace: float | None = None

    async def update_cache(self, ctx: UpdateContext) -> None:
        await self._resolve_usage(ctx)
        rows = ctx.store.get_usage_snapshots(PACE_WINDOW_DAYS)
        self.cached_pace = decayed_pace(
            [(r["timestamp"], r["cost"]) for r in rows],
            float(self.display.get("half_life_minutes", 60)),
        )

    def render(self, data: StatusInput, store: SnapshotStore) -> SegmentData:
        pace = self.cached_pace or 0.0
        return self._fragment([f"${pace:.2f}/hr"])
