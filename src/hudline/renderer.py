"""Powerline renderer — composes segment fragments into one ANSI-colored line.

render_powerline is pure: the same fragments and theme always give the same
string. Fragments with empty text are dropped; order is never changed.
"""

from __future__ import annotations

import os
from typing import Sequence

from hudline.models import SegmentData, ThemeConfig

RESET = "\033[0m"

SEPARATORS = {
    "angled": "\ue0b0",
    "thin": "\ue0b1",
    "rounded": "\ue0b4",
    "flame": "\ue0c0",
    "slant": "\ue0bc",
    "backslant": "\ue0be",
}

# Separator color in text mode, where segments have no background.
MUTED = {"dark": "#6b7280", "light": "#9ca3af"}


def hex_to_rgb(value: str) -> tuple[int, int, int]:
    """Parse ``#rrggbb`` or ``#rgb``."""
    h = value.lstrip("#")
    if len(h) == 3:
        h = "".join(c * 2 for c in h)
    if len(h) != 6:
        raise ValueError(f"not a hex color: {value!r}")
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def fg(color: str) -> str:
    r, g, b = hex_to_rgb(color)
    return f"\033[38;2;{r};{g};{b}m"


def bg(color: str) -> str:
    r, g, b = hex_to_rgb(color)
    return f"\033[48;2;{r};{g};{b}m"


def render_powerline(fragments: Sequence[SegmentData], theme: ThemeConfig) -> str:
    visible = [f for f in fragments if f.text]
    if not visible:
        return ""
    if theme.color_mode == "background":
        return _render_background(visible, theme)
    return _render_text(visible, theme)


def _render_background(fragments: list[SegmentData], theme: ThemeConfig) -> str:
    sep = SEPARATORS.get(theme.separator_style, SEPARATORS["angled"])
    out = []
    for i, frag in enumerate(fragments):
        out.append(f"{bg(frag.colors.bg)}{fg(frag.colors.fg)} {frag.text} ")
        if not theme.powerline:
            continue
        if i + 1 < len(fragments):
            out.append(f"{fg(frag.colors.bg)}{bg(fragments[i + 1].colors.bg)}{sep}")
        else:
            out.append(f"{RESET}{fg(frag.colors.bg)}{sep}")
    out.append(RESET)
    return "".join(out)


def _render_text(fragments: list[SegmentData], theme: ThemeConfig) -> str:
    if theme.powerline:
        sep = SEPARATORS["thin"]
        muted = MUTED.get(theme.theme_mode, MUTED["dark"])
        joiner = f" {fg(muted)}{sep}{RESET} "
    else:
        joiner = "  "
    return joiner.join(f"{fg(frag.colors.bg)}{frag.text}{RESET}" for frag in fragments)


def resolve_theme_mode(mode: str, environ: dict | None = None) -> str:
    """Turn ``auto`` into ``light`` or ``dark``.

    Uses the COLORFGBG convention (``fg;bg``, where a background of 7 or
    15 is a light terminal); anything else is treated as dark.
    """
    if mode in ("light", "dark"):
        return mode
    if environ is None:
        environ = os.environ
    colorfgbg = environ.get("COLORFGBG", "")
    background = colorfgbg.rsplit(";", 1)[-1]
    if background in ("7", "15"):
        return "light"
    return "dark"
