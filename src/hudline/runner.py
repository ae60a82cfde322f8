"""Per-invocation control flow: parse, fetch, persist, render.

Fetches for every segment run concurrently and each one is time-boxed, so
the whole invocation is bounded by the slowest single fetch. A failing
segment is logged and renders its zero state; it never takes the line down.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import random
from datetime import datetime
from typing import Mapping, Sequence

from hudline.cache import UsageCache
from hudline.config import HudlineConfig
from hudline.db import SnapshotStore
from hudline.models import SegmentData, SegmentType, StatusInput
from hudline.providers import PROVIDERS, UsageProvider, system_timezone
from hudline.renderer import render_powerline
from hudline.segments import Segment, UpdateContext, create_segment

logger = logging.getLogger(__name__)

_USAGE_SOURCES = (SegmentType.USAGE, SegmentType.PACE)


def parse_input(raw: str) -> StatusInput:
    """Decode the stdin payload; anything unparseable becomes an empty input."""
    if not raw or not raw.strip():
        return StatusInput()
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        logger.warning("ignoring malformed input: %s", exc)
        return StatusInput()
    if not isinstance(payload, dict):
        logger.warning("ignoring input that is not a JSON object")
        return StatusInput()
    return StatusInput.from_dict(payload)


async def update_segments(
    segments: Sequence[Segment],
    ctx: UpdateContext,
    max_concurrency: int,
    timeout_seconds: float,
) -> None:
    """Run update_cache on every segment that needs it, concurrently."""
    semaphore = asyncio.Semaphore(max_concurrency)

    async def run(segment: Segment) -> None:
        name = segment.config.type.value
        async with semaphore:
            try:
                await asyncio.wait_for(segment.update_cache(ctx), timeout=timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning("%s segment timed out after %.1fs", name, timeout_seconds)
            except Exception:
                logger.warning("%s segment update failed", name, exc_info=True)

    await asyncio.gather(*(run(s) for s in segments if s.needs_update))


def persist_results(segments: Sequence[Segment], store: SnapshotStore) -> None:
    """Write freshly computed usage and pace into the snapshot store.

    Usage is recorded once per invocation, from the first segment that
    resolved it. A degraded result (some provider failed or timed out) is
    not recorded: its zero would read as a drop in cumulative cost and the
    next good sample as a burst of spend.
    """
    usage_recorded = False
    for segment in segments:
        if segment.config.type in _USAGE_SOURCES and not usage_recorded:
            if segment.cached_usage is not None:
                usage_recorded = True
                day, usage = segment.cached_usage
                if usage.degraded:
                    logger.info("usage incomplete this run; not recording a snapshot")
                else:
                    store.record_daily_usage(
                        day, usage.cost, usage.input_tokens, usage.output_tokens
                    )
                    store.record_usage_snapshot(usage.cost)
        if segment.config.type is SegmentType.PACE and segment.cached_pace is not None:
            store.record_pace_snapshot(segment.cached_pace)


def render_segment(segment: Segment, data: StatusInput, store: SnapshotStore) -> SegmentData:
    try:
        return segment.render(data, store)
    except Exception:
        logger.warning("%s segment failed to render", segment.config.type.value, exc_info=True)
        return SegmentData(text="", colors=segment.config.colors)


async def build_statusline(
    data: StatusInput,
    config: HudlineConfig,
    store: SnapshotStore,
    cache: UsageCache,
    *,
    providers: Mapping[str, UsageProvider] | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
    timezone: str | None = None,
) -> str:
    if rng is None:
        rng = random.Random()
    if now is None:
        now = datetime.now()

    segments = [create_segment(c) for c in config.segments]

    # Maintenance rides along on a small fraction of renders.
    if rng.random() < config.prune_probability:
        deleted = store.prune_older_than(config.retention_days, config.retention_days)
        logger.debug("pruned %s", deleted)

    ctx = UpdateContext(
        data=data,
        store=store,
        cache=cache,
        today=now.date().isoformat(),
        now=now,
        fetch_timeout=config.fetch_timeout_seconds,
        timezone=timezone,
        rng=rng,
        providers=PROVIDERS if providers is None else providers,
    )
    await update_segments(
        segments, ctx, config.max_concurrency, config.segment_timeout_seconds
    )
    persist_results(segments, store)

    fragments = [render_segment(s, data, store) for s in segments]
    return render_powerline(fragments, config.theme)


def render_stdin(
    raw: str,
    config: HudlineConfig,
    *,
    providers: Mapping[str, UsageProvider] | None = None,
    rng: random.Random | None = None,
) -> str:
    """Produce the status line for one stdin payload."""
    data = parse_input(raw)
    if data.cwd is None:
        data.cwd = os.getcwd()

    with SnapshotStore.open(config.db_path) as store:
        return asyncio.run(
            build_statusline(
                data,
                config,
                store,
                UsageCache(config.cache_dir),
                providers=providers,
                rng=rng,
                timezone=system_timezone(),
            )
        )
