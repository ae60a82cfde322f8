"""Tests for the hudline command line."""

from datetime import date
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from hudline.cli import cli
from hudline.db import SnapshotStore, now_ms
from hudline.models import UsageResult


@pytest.fixture(autouse=True)
def quiet_logging():
    """Leave logging configuration to pytest."""
    with patch("hudline.cli._configure_logging"):
        yield


@pytest.fixture
def config(make_config):
    return make_config(segments=["usage", "context"])


def _invoke(config, args, **kwargs):
    runner = CliRunner()
    with patch("hudline.cli.load_config", return_value=config):
        return runner.invoke(cli, args, **kwargs)


def test_bare_command_renders_stdin(config, fake_provider):
    provider = fake_provider(result=UsageResult(1.25))
    with patch.dict("hudline.runner.PROVIDERS", {"claude": provider}, clear=True):
        result = _invoke(config, [], input='{"context_window": {"used_percentage": 30}}')

    assert result.exit_code == 0
    assert "Σ $1.25 today" in result.output
    assert "◔ 30%" in result.output
    assert result.output.endswith("\n")


def test_render_failure_prints_empty_line(config):
    with patch("hudline.cli.render_stdin", side_effect=RuntimeError("boom")):
        result = _invoke(config, ["render"], input="{}")

    assert result.exit_code == 1
    assert result.output == "\n"


def test_history_without_database(config):
    result = _invoke(config, ["history"])

    assert result.exit_code == 0
    assert "No data yet" in result.output


def test_history_lists_days_and_pace(config):
    with SnapshotStore.open(config.db_path) as store:
        store.record_daily_usage(date.today().isoformat(), 12.5, 1000, 500)
        store.record_pace_snapshot(3.2)

    result = _invoke(config, ["history", "--days", "7"])

    assert result.exit_code == 0
    assert "$12.50" in result.output
    assert "1.0K in / 500 out" in result.output
    assert "$3.20/hr" in result.output


def test_prune_reports_counts(config):
    SnapshotStore.open(config.db_path).close()

    result = _invoke(config, ["prune", "--days", "3"])

    assert result.exit_code == 0
    assert "Pruned 0 pace and 0 usage snapshots, 0 sessions older than 3 days." in result.output


def test_prune_days_zero_is_not_the_default(config):
    """``--days 0`` prunes everything older than now, not the configured window."""
    with SnapshotStore.open(config.db_path) as store:
        store.record_pace_snapshot(1.5, now=now_ms() - 3_600_000)

    result = _invoke(config, ["prune", "--days", "0"])

    assert result.exit_code == 0
    assert "Pruned 1 pace and 0 usage snapshots, 0 sessions older than 0 days." in result.output


def test_render_with_unusable_db_location(tmp_path):
    """A database path that cannot be created still renders store-free segments."""
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.dump({
        "db_path": str(blocker / "data" / "hudline.db"),
        "cache_dir": str(tmp_path / "cache"),
        "prune_probability": 0,
        "segments": ["context"],
    }))

    result = CliRunner().invoke(
        cli,
        ["render"],
        input='{"context_window": {"used_percentage": 30}}',
        env={"HUDLINE_CONFIG": str(config_file)},
    )

    assert result.exit_code == 0
    assert "◔ 30%" in result.output


def test_sessions_and_status(config):
    with SnapshotStore.open(config.db_path) as store:
        store.get_or_create_session_root_status("sess-1", "/repo/sub", "/repo", git_branch="main")

    result = _invoke(config, ["session-status", "sess-1", "working"])
    assert result.exit_code == 0

    result = _invoke(config, ["sessions"])
    assert result.exit_code == 0
    assert "sess-1" in result.output
    assert "working" in result.output
    assert "[main]" in result.output
    assert "(not at repo root)" in result.output


def test_session_status_unknown_session(config):
    SnapshotStore.open(config.db_path).close()

    result = _invoke(config, ["session-status", "nope", "waiting"])

    assert result.exit_code == 1


def test_session_status_rejects_bad_status(config):
    result = _invoke(config, ["session-status", "sess-1", "sleeping"])
    assert result.exit_code == 2


def test_config_set_parses_yaml_values():
    runner = CliRunner()
    with patch("hudline.cli.save_config_value") as save:
        result = runner.invoke(cli, ["config", "set", "retention_days", "14"])

    assert result.exit_code == 0
    save.assert_called_once_with("retention_days", 14)
