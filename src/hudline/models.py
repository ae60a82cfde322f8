"""Shared data models — the contract between config, segments, store and renderer.

The orchestrator parses stdin into a StatusInput, segments turn it into
SegmentData fragments, and the renderer composes those into one line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class SegmentType(Enum):
    DIRECTORY = "directory"
    GIT = "git"
    PR = "pr"
    USAGE = "usage"
    PACE = "pace"
    CONTEXT = "context"
    TIME = "time"
    THOUGHTS = "thoughts"


@dataclass(frozen=True)
class SegmentColors:
    fg: str  # hex, e.g. "#ffffff"
    bg: str


@dataclass(frozen=True)
class SegmentConfig:
    """One configured segment. Display options are already merged with defaults."""

    type: SegmentType
    display: Mapping[str, Any]
    colors: SegmentColors


@dataclass(frozen=True)
class ThemeConfig:
    powerline: bool = True
    separator_style: str = "angled"  # angled, thin, rounded, flame, slant, backslant
    color_mode: str = "text"  # background, text
    theme_mode: str = "dark"  # light, dark (auto is resolved at config load)


@dataclass(frozen=True)
class SegmentData:
    """A rendered fragment of the status line."""

    text: str
    colors: SegmentColors


@dataclass(frozen=True)
class UsageResult:
    """Today's usage as reported by one cost-accounting provider.

    ``degraded`` marks a stand-in zero from a failed or timed-out fetch.
    It is displayed like any other result but must never be persisted,
    since it would read as a drop in cumulative cost.
    """

    cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    degraded: bool = field(default=False, compare=False)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: UsageResult) -> UsageResult:
        return UsageResult(
            cost=self.cost + other.cost,
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            degraded=self.degraded or other.degraded,
        )


ZERO_USAGE = UsageResult()
DEGRADED_USAGE = UsageResult(degraded=True)


@dataclass
class GitInfo:
    branch: str | None = None
    is_dirty: bool = False
    ahead: int = 0
    behind: int = 0


@dataclass
class SessionInfo:
    id: str | None = None
    model: str | None = None


@dataclass
class ContextWindow:
    used_percentage: float | None = None
    remaining_percentage: float | None = None


@dataclass
class StatusInput:
    """Session snapshot read from stdin. Every field is optional."""

    cwd: str | None = None
    git: GitInfo | None = None
    session: SessionInfo = field(default_factory=SessionInfo)
    context_window: ContextWindow = field(default_factory=ContextWindow)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StatusInput:
        """Build from the decoded stdin payload, tolerating missing or odd fields.

        Accepts both the nested ``session`` object and Claude Code's flat
        ``session_id`` / ``model`` / ``workspace.current_dir`` keys.
        """
        workspace = _as_dict(data.get("workspace"))
        cwd = data.get("cwd") or workspace.get("current_dir")

        git = None
        raw_git = data.get("git")
        if isinstance(raw_git, dict):
            git = GitInfo(
                branch=raw_git.get("branch") or None,
                is_dirty=bool(raw_git.get("isDirty", False)),
                ahead=_as_int(raw_git.get("ahead")),
                behind=_as_int(raw_git.get("behind")),
            )

        raw_session = _as_dict(data.get("session"))
        model = raw_session.get("model")
        if model is None:
            flat_model = data.get("model")
            if isinstance(flat_model, dict):
                model = flat_model.get("display_name") or flat_model.get("id")
            else:
                model = flat_model
        session = SessionInfo(
            id=raw_session.get("id") or data.get("session_id"),
            model=model if isinstance(model, str) else None,
        )

        raw_ctx = _as_dict(data.get("context_window"))
        context_window = ContextWindow(
            used_percentage=_as_float(raw_ctx.get("used_percentage")),
            remaining_percentage=_as_float(raw_ctx.get("remaining_percentage")),
        )

        return cls(
            cwd=cwd if isinstance(cwd, str) else None,
            git=git,
            session=session,
            context_window=context_window,
        )


def _as_dict(value: object) -> dict:
    return value if isinstance(value, dict) else {}


def _as_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(0, int(value))
    return 0


def _as_float(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)
