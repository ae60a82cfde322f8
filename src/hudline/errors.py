"""Exception types. None of these should escape a single segment or store call."""

from __future__ import annotations


class HudlineError(Exception):
    """Base class for hudline errors."""


class ProviderError(HudlineError):
    """A cost-accounting provider failed, exited non-zero or returned garbage."""


class StoreUnavailable(HudlineError):
    """The snapshot database could not be opened or initialized."""


class ConfigError(HudlineError):
    """The config file holds a value hudline cannot use."""
