"""Segment classes, one per SegmentType."""

from __future__ import annotations

from hudline.models import SegmentConfig, SegmentType
from hudline.segments.base import Segment, UpdateContext
from hudline.segments.info import ContextSegment, ThoughtsSegment, TimeSegment
from hudline.segments.usage import PaceSegment, UsageSegment
from hudline.segments.workspace import DirectorySegment, GitSegment, PrSegment

SEGMENT_CLASSES: dict[SegmentType, type[Segment]] = {
    SegmentType.DIRECTORY: DirectorySegment,
    SegmentType.GIT: GitSegment,
    SegmentType.PR: PrSegment,
    SegmentType.USAGE: UsageSegment,
    SegmentType.PACE: PaceSegment,
    SegmentType.CONTEXT: ContextSegment,
    SegmentType.TIME: TimeSegment,
    SegmentType.THOUGHTS: ThoughtsSegment,
}

_missing = set(SegmentType) - set(SEGMENT_CLASSES)
if _missing:
    raise RuntimeError(f"no segment class for {sorted(t.value for t in _missing)}")


def create_segment(config: SegmentConfig) -> Segment:
    return SEGMENT_CLASSES[config.type](config)


__all__ = [
    "SEGMENT_CLASSES",
    "ContextSegment",
    "DirectorySegment",
    "GitSegment",
    "PaceSegment",
    "PrSegment",
    "Segment",
    "ThoughtsSegment",
    "TimeSegment",
    "UpdateContext",
    "UsageSegment",
    "create_segment",
]
