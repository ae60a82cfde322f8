"""Configuration loader — reads optional YAML config and merges with defaults."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from hudline.errors import ConfigError
from hudline.models import SegmentColors, SegmentConfig, SegmentType, ThemeConfig
from hudline.renderer import SEPARATORS, hex_to_rgb, resolve_theme_mode

logger = logging.getLogger(__name__)

CONFIG_PATH = Path("~/.config/hudline/config.yaml")
CONFIG_ENV_VAR = "HUDLINE_CONFIG"

# Per-type display options and colors. A segment entry in the config file
# only needs to name the keys it changes.
SEGMENT_DEFAULTS: dict[str, dict] = {
    "directory": {
        "display": {"icon": True, "path_mode": "parent", "root_warning": False},
        "colors": {"fg": "#ffffff", "bg": "#ef4444"},
    },
    "git": {
        "display": {"icon": True, "branch": True, "status": True, "ahead": True, "behind": True},
        "colors": {"fg": "#ffffff", "bg": "#f97316"},
    },
    "pr": {
        "display": {"icon": True, "number": True},
        "colors": {"fg": "#ffffff", "bg": "#eab308"},
    },
    "usage": {
        "display": {
            "icon": True,
            "cost": True,
            "tokens": False,
            "period": "today",
            "cache_ttl_minutes": 1,
            "providers": ["claude", "codex"],
        },
        "colors": {"fg": "#ffffff", "bg": "#22c55e"},
    },
    "pace": {
        "display": {
            "icon": True,
            "period": "hourly",
            "half_life_minutes": 60,
            "cache_ttl_minutes": 1,
            "providers": ["claude", "codex"],
        },
        "colors": {"fg": "#ffffff", "bg": "#06b6d4"},
    },
    "context": {
        "display": {"icon": True, "mode": "used"},
        "colors": {"fg": "#ffffff", "bg": "#3b82f6"},
    },
    "time": {
        "display": {"icon": True, "format": "12h", "seconds": False},
        "colors": {"fg": "#ffffff", "bg": "#6366f1"},
    },
    "thoughts": {
        "display": {"icon": True, "quotes": False, "custom_thoughts": [], "use_api_quotes": True},
        "colors": {"fg": "#ffffff", "bg": "#8b5cf6"},
    },
}

DEFAULTS = {
    "db_path": "~/.local/share/hudline/hudline.db",
    "cache_dir": "~/.cache/hudline",
    "fetch_timeout_seconds": 5.0,
    "segment_timeout_seconds": 6.0,
    "max_concurrency": 8,
    "prune_probability": 0.01,
    "retention_days": 7,
    "log_level": "WARNING",
    "theme": {
        "powerline": True,
        "separator_style": "angled",
        "color_mode": "text",
        "theme_mode": "auto",
    },
    "segments": [
        "directory", "git", "pr", "usage", "pace", "context", "time", "thoughts",
    ],
    "dark_theme": {},
    "light_theme": {},
}

_CHOICES = {
    "separator_style": tuple(SEPARATORS),
    "color_mode": ("background", "text"),
    "theme_mode": ("light", "dark", "auto"),
}


@dataclass
class HudlineConfig:
    db_path: Path
    cache_dir: Path
    fetch_timeout_seconds: float
    segment_timeout_seconds: float
    max_concurrency: int
    prune_probability: float
    retention_days: int
    log_level: str
    theme: ThemeConfig
    segments: list[SegmentConfig] = field(default_factory=list)


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV_VAR)
    return Path(env) if env else CONFIG_PATH


def save_config_value(key: str, value: object, config_path: Path | None = None) -> None:
    """Set one key in the config file and keep everything else.

    Dotted keys reach into mappings, so ``theme.color_mode`` changes only
    that theme option. Missing or non-mapping intermediate values are
    replaced by empty mappings.
    """
    path = (config_path or default_config_path()).expanduser()

    document: dict = {}
    if path.is_file():
        loaded = yaml.safe_load(path.read_text())
        if isinstance(loaded, dict):
            document = loaded

    *parents, leaf = key.split(".")
    node = document
    for name in parents:
        if not isinstance(node.get(name), dict):
            node[name] = {}
        node = node[name]
    node[leaf] = value

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(document, default_flow_style=False, sort_keys=False))


def load_config(config_path: Path | None = None, environ: dict | None = None) -> HudlineConfig:
    """Load config from ~/.config/hudline/config.yaml (or $HUDLINE_CONFIG), merged with defaults.

    Paths are expanded and the database directory is created when possible.
    A missing file means all defaults. Invalid segment entries are skipped
    with a warning rather than failing the status line.
    """
    if config_path is None:
        config_path = default_config_path()

    config_path = config_path.expanduser()

    merged = dict(DEFAULTS)

    if config_path.is_file():
        with open(config_path) as f:
            user_config = yaml.safe_load(f)
        if isinstance(user_config, dict):
            for key in DEFAULTS:
                if key in user_config:
                    merged[key] = user_config[key]

    db_path = Path(merged["db_path"]).expanduser()
    cache_dir = Path(merged["cache_dir"]).expanduser()

    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        # The store reports this again when it opens and runs disconnected.
        logger.warning("cannot create %s: %s", db_path.parent, exc)

    theme = _parse_theme(merged["theme"], environ)
    overrides = merged["light_theme"] if theme.theme_mode == "light" else merged["dark_theme"]
    if not isinstance(overrides, dict):
        overrides = {}

    segments = []
    raw_segments = merged["segments"] if isinstance(merged["segments"], list) else []
    for entry in raw_segments:
        try:
            segments.append(_parse_segment(entry, overrides))
        except ConfigError as exc:
            logger.warning("skipping segment %r: %s", entry, exc)

    return HudlineConfig(
        db_path=db_path,
        cache_dir=cache_dir,
        fetch_timeout_seconds=_positive(merged, "fetch_timeout_seconds", float),
        segment_timeout_seconds=_positive(merged, "segment_timeout_seconds", float),
        max_concurrency=_positive(merged, "max_concurrency", int),
        prune_probability=min(1.0, max(0.0, float(merged["prune_probability"]))),
        retention_days=_positive(merged, "retention_days", int),
        log_level=str(merged["log_level"]).upper(),
        theme=theme,
        segments=segments,
    )


def _positive(merged: dict, key: str, cast):
    try:
        value = cast(merged[key])
    except (TypeError, ValueError):
        value = None
    if value is None or value <= 0:
        logger.warning("invalid %s %r, using %r", key, merged[key], DEFAULTS[key])
        return cast(DEFAULTS[key])
    return value


def _parse_theme(raw: object, environ: dict | None) -> ThemeConfig:
    values = dict(DEFAULTS["theme"])
    if isinstance(raw, dict):
        values.update({k: v for k, v in raw.items() if k in values})

    for key, choices in _CHOICES.items():
        if values[key] not in choices:
            logger.warning("invalid theme %s %r, using %r", key, values[key], DEFAULTS["theme"][key])
            values[key] = DEFAULTS["theme"][key]

    return ThemeConfig(
        powerline=bool(values["powerline"]),
        separator_style=values["separator_style"],
        color_mode=values["color_mode"],
        theme_mode=resolve_theme_mode(values["theme_mode"], environ),
    )


def _parse_segment(entry: object, overrides: dict) -> SegmentConfig:
    """Build a SegmentConfig from ``"usage"`` or ``{"type": "usage", ...}``."""
    if isinstance(entry, str):
        entry = {"type": entry}
    if not isinstance(entry, dict):
        raise ConfigError("segment entries must be a type name or a mapping")

    type_name = entry.get("type")
    try:
        seg_type = SegmentType(type_name)
    except ValueError:
        raise ConfigError(f"unknown segment type {type_name!r}") from None

    defaults = SEGMENT_DEFAULTS[seg_type.value]
    display = dict(defaults["display"])
    if isinstance(entry.get("display"), dict):
        display.update(entry["display"])

    colors = dict(defaults["colors"])
    for source in (entry.get("colors"), overrides.get(seg_type.value)):
        if isinstance(source, dict):
            colors.update({k: v for k, v in source.items() if k in ("fg", "bg")})
    for value in colors.values():
        try:
            hex_to_rgb(str(value))
        except ValueError as exc:
            raise ConfigError(str(exc)) from None

    return SegmentConfig(
        type=seg_type,
        display=display,
        colors=SegmentColors(fg=str(colors["fg"]), bg=str(colors["bg"])),
    )
