"""Directory, git and PR segments."""

from __future__ import annotations

import os
from pathlib import PurePath

from hudline.db import SnapshotStore
from hudline.git import git_root, git_status, pr_number
from hudline.models import GitInfo, SegmentData, StatusInput
from hudline.segments.base import Segment, UpdateContext


def format_path(cwd: str, mode: str, root: str | None = None, home: str | None = None) -> str:
    """Shorten ``cwd`` for display.

    Modes: ``name`` (last component), ``full`` (home as ~), ``project``
    (repo name plus path inside the repo) and ``parent`` (the repo's parent
    directory name in front of ``project``). Outside a repo, ``project``
    falls back to ``name`` and ``parent`` to the last two components.
    """
    if home is None:
        home = os.path.expanduser("~")
    path = PurePath(cwd)

    if mode == "full":
        try:
            rel = path.relative_to(home)
        except ValueError:
            return str(path)
        return "~" if str(rel) == "." else f"~/{rel.as_posix()}"

    if mode == "name":
        return path.name or str(path)

    in_repo = False
    if root:
        try:
            rel = path.relative_to(root)
            in_repo = True
        except ValueError:
            pass

    if not in_repo:
        if mode == "parent" and path.parent.name:
            return f"{path.parent.name}/{path.name}"
        return path.name or str(path)

    repo = PurePath(root)
    project = repo.name if str(rel) == "." else f"{repo.name}/{rel.as_posix()}"
    if mode == "parent" and repo.parent.name:
        return f"{repo.parent.name}/{project}"
    return project


class DirectorySegment(Segment):
    icon = "⌂"

    def __init__(self, config):
        super().__init__(config)
        self.git_root: str | None = None
        self.is_root_at_start: bool | None = None

    @property
    def needs_update(self) -> bool:
        return self.display.get("path_mode") in ("project", "parent") or bool(
            self.display.get("root_warning")
        )

    async def update_cache(self, ctx: UpdateContext) -> None:
        cwd = ctx.data.cwd
        if not cwd:
            return
        self.git_root = await git_root(cwd)
        if not (self.display.get("root_warning") and self.git_root):
            return
        session_id = ctx.data.session.id
        if session_id:
            branch = ctx.data.git.branch if ctx.data.git else None
            self.is_root_at_start = ctx.store.get_or_create_session_root_status(
                session_id, cwd, self.git_root, git_branch=branch
            )
        else:
            self.is_root_at_start = cwd == self.git_root

    def render(self, data: StatusInput, store: SnapshotStore) -> SegmentData:
        if not data.cwd:
            return self._fragment([])
        parts = [format_path(data.cwd, str(self.display.get("path_mode", "name")), self.git_root)]
        if self.display.get("root_warning") and self.is_root_at_start is False:
            parts.append("⚠")
        return self._fragment(parts)


class GitSegment(Segment):
    icon = "⎇"
    needs_update = True

    def __init__(self, config):
        super().__init__(config)
        self.info: GitInfo | None = None

    async def update_cache(self, ctx: UpdateContext) -> None:
        # Prefer what the caller already knows; only shell out when it is silent.
        if ctx.data.git is not None:
            self.info = ctx.data.git
        else:
            self.info = await git_status(ctx.data.cwd)

    def render(self, data: StatusInput, store: SnapshotStore) -> SegmentData:
        info = self.info or data.git
        if info is None or not info.branch:
            return self._fragment([])

        parts = []
        if self.display.get("branch", True):
            dirty = "*" if self.display.get("status", True) and info.is_dirty else ""
            parts.append(f"{info.branch}{dirty}")
        if self.display.get("ahead", True) and info.ahead:
            parts.append(f"↑{info.ahead}")
        if self.display.get("behind", True) and info.behind:
            parts.append(f"↓{info.behind}")
        return self._fragment(parts)


class PrSegment(Segment):
    icon = "⇄"
    needs_update = True

    def __init__(self, config):
        super().__init__(config)
        self.number: int | None = None

    async def update_cache(self, ctx: UpdateContext) -> None:
        self.number = await pr_number(ctx.data.cwd)

    def render(self, data: StatusInput, store: SnapshotStore) -> SegmentData:
        if self.number is None:
            return self._fragment([])
        return self._fragment([f"#{self.number}" if self.display.get("number", True) else "PR"])
