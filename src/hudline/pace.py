"""Spend pace — an exponentially decayed average of recent $/hour rates.

Input is a series of cumulative-cost samples (the usage_snapshots rows).
Each consecutive pair implies a rate; rates are averaged with weight
``2 ** (-age / half_life)`` so a burst fades over a few half-lives while
fresh activity dominates. Pure functions, no I/O.
"""

from __future__ import annotations

from typing import Iterable, Iterator

MS_PER_HOUR = 60 * 60 * 1000
MS_PER_MINUTE = 60 * 1000


def interval_rates(samples: Iterable[tuple[int, float]]) -> Iterator[tuple[int, float]]:
    """Yield ``(end_timestamp_ms, dollars_per_hour)`` for each consecutive pair.

    A drop in cumulative cost (day rollover) or no change gives rate 0.
    Pairs with the same timestamp carry no rate and are skipped.
    """
    ordered = sorted(samples, key=lambda s: s[0])
    for (t0, c0), (t1, c1) in zip(ordered, ordered[1:]):
        elapsed = t1 - t0
        if elapsed <= 0:
            continue
        delta = c1 - c0
        yield t1, (delta * MS_PER_HOUR / elapsed) if delta > 0 else 0.0


def decayed_pace(samples: Iterable[tuple[int, float]], half_life_minutes: float) -> float:
    """Decay-weighted $/hour over ``samples`` of ``(timestamp_ms, cumulative_cost)``.

    Ages are measured from the newest sample. Because the weights are
    normalized, shifting every age by the same amount (for example measuring
    from "now" instead) leaves the result unchanged.

    Returns 0.0 when fewer than two samples are given.
    """
    if half_life_minutes <= 0:
        raise ValueError("half_life_minutes must be positive")

    rates = list(interval_rates(samples))
    if not rates:
        return 0.0

    newest = max(t for t, _ in rates)
    weighted = 0.0
    total_weight = 0.0
    for t, rate in rates:
        age_minutes = (newest - t) / MS_PER_MINUTE
        w = 2.0 ** (-age_minutes / half_life_minutes)
        weighted += rate * w
        total_weight += w
    return weighted / total_weight
