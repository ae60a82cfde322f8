"""Shared test fixtures for hudline tests."""

import asyncio

import pytest
import yaml

from hudline.cache import UsageCache
from hudline.config import load_config
from hudline.models import UsageResult


class FakeProvider:
    """Stands in for a ccusage subprocess; counts calls."""

    def __init__(self, provider_id="claude", result=None, delay=0.0, error=None):
        self.provider_id = provider_id
        self.result = result if result is not None else UsageResult()
        self.delay = delay
        self.error = error
        self.calls = 0

    async def fetch(self, today, *, timezone=None, silent=True):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def tmp_db(tmp_path):
    """Path to a temporary SQLite database file."""
    return tmp_path / "test-hudline.db"


@pytest.fixture
def cache(tmp_path):
    """UsageCache rooted in a temporary directory."""
    return UsageCache(tmp_path / "cache")


@pytest.fixture
def fake_provider():
    """The FakeProvider class, for building providers inside a test."""
    return FakeProvider


@pytest.fixture
def make_config(tmp_path):
    """Build a HudlineConfig from overrides via a real YAML file."""

    def _make(segments=("usage",), **overrides):
        data = {
            "db_path": str(tmp_path / "data" / "hudline.db"),
            "cache_dir": str(tmp_path / "cache"),
            "prune_probability": 0,
            "segments": list(segments),
            "theme": {"theme_mode": "dark", "color_mode": "text"},
        }
        data.update(overrides)
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump(data))
        return load_config(config_path=config_file)

    return _make
