"""Context window, clock and thoughts segments."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from datetime import datetime
from pathlib import Path

import requests

from hudline.cache import read_json, write_json_atomic
from hudline.db import SnapshotStore
from hudline.models import SegmentData, StatusInput
from hudline.segments.base import Segment, UpdateContext

logger = logging.getLogger(__name__)

QUOTE_URL = "https://zenquotes.io/api/random"
QUOTE_TTL_SECONDS = 15 * 60

DEFAULT_THOUGHTS = (
    "Read the error message twice",
    "Small diffs, fast reviews",
    "Name things for what they do",
    "Delete more than you add",
    "Tests are documentation that runs",
    "Make it work, then make it clear",
    "Ship it, then sharpen it",
    "One thing at a time",
)


class ContextSegment(Segment):
    """Context window usage as reported by the caller."""

    icon = "◔"

    def render(self, data: StatusInput, store: SnapshotStore) -> SegmentData:
        used = data.context_window.used_percentage
        remaining = data.context_window.remaining_percentage
        if used is None and remaining is not None:
            used = 100.0 - remaining
        if remaining is None:
            remaining = 100.0 - (used or 0.0)
        used = used or 0.0

        mode = self.display.get("mode", "used")
        if mode == "remaining":
            text = f"{remaining:.0f}% left"
        elif mode == "both":
            text = f"{used:.0f}% used · {remaining:.0f}% left"
        else:
            text = f"{used:.0f}%"
        return self._fragment([text])


class TimeSegment(Segment):
    icon = "◷"
    needs_update = True

    def __init__(self, config):
        super().__init__(config)
        self.now: datetime | None = None

    async def update_cache(self, ctx: UpdateContext) -> None:
        self.now = ctx.now

    def render(self, data: StatusInput, store: SnapshotStore) -> SegmentData:
        now = self.now or datetime.now()
        seconds = ":%S" if self.display.get("seconds") else ""
        if self.display.get("format", "12h") == "24h":
            text = now.strftime(f"%H:%M{seconds}")
        else:
            text = now.strftime(f"%I:%M{seconds} %p").lstrip("0")
        return self._fragment([text])


def fetch_quote(timeout: float) -> str | None:
    """One random quote from zenquotes.io, formatted as ``quote ~author``."""
    try:
        resp = requests.get(QUOTE_URL, timeout=timeout)
        resp.raise_for_status()
        payload = resp.json()
    except (requests.RequestException, ValueError) as exc:
        logger.debug("quote fetch failed: %s", exc)
        return None
    if not (isinstance(payload, list) and payload and isinstance(payload[0], dict)):
        return None
    quote = payload[0].get("q")
    author = payload[0].get("a")
    if not quote:
        return None
    return f"{quote} ~{author}" if author else str(quote)


def fetch_quote_in_background(timeout: float) -> asyncio.Future:
    """Run fetch_quote on a daemon thread and return a future for its result.

    A stalled request never holds up interpreter exit. The caller bounds
    the wait; a result that lands after that is dropped.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def deliver(quote: str | None) -> None:
        if not future.done():
            future.set_result(quote)

    def work() -> None:
        quote = fetch_quote(timeout)
        try:
            loop.call_soon_threadsafe(deliver, quote)
        except RuntimeError:
            # Event loop already closed.
            pass

    threading.Thread(target=work, name="hudline-quote", daemon=True).start()
    return future


def load_cached_quote(path: Path, now: float | None = None) -> str | None:
    cached = read_json(path)
    if cached is None:
        return None
    if now is None:
        now = time.time()
    try:
        if now - float(cached["timestamp"]) >= QUOTE_TTL_SECONDS:
            return None
        return str(cached["quote"])
    except (KeyError, TypeError, ValueError):
        return None


class ThoughtsSegment(Segment):
    """A short line of encouragement: an API quote, or one from the local pool."""

    icon = "✦"
    needs_update = True

    def __init__(self, config):
        super().__init__(config)
        self.thought: str | None = None

    async def update_cache(self, ctx: UpdateContext) -> None:
        if self.display.get("use_api_quotes"):
            path = ctx.cache.cache_dir / "quote.json"
            quote = load_cached_quote(path)
            if quote is None:
                try:
                    quote = await asyncio.wait_for(
                        fetch_quote_in_background(ctx.fetch_timeout), ctx.fetch_timeout
                    )
                except asyncio.TimeoutError:
                    logger.debug("quote fetch timed out after %.1fs", ctx.fetch_timeout)
                    quote = None
                if quote is not None:
                    write_json_atomic(path, {"quote": quote, "timestamp": time.time()})
            if quote is not None:
                self.thought = quote
                return

        pool = list(self.display.get("custom_thoughts") or DEFAULT_THOUGHTS)
        self.thought = ctx.rng.choice(pool)

    def render(self, data: StatusInput, store: SnapshotStore) -> SegmentData:
        if not self.thought:
            return self._fragment([])
        text = f'"{self.thought}"' if self.display.get("quotes") else self.thought
        return self._fragment([text])
