"""CLI entrypoint — hudline (render), hudline history, hudline prune, hudline sessions."""

from __future__ import annotations

import logging
import sys
from datetime import datetime

import click
import yaml

from hudline.config import load_config, save_config_value
from hudline.db import SESSION_STATUSES, SnapshotStore
from hudline.runner import render_stdin
from hudline.segments.usage import format_tokens

logger = logging.getLogger("hudline")


def _configure_logging(level: str, verbose: bool = False) -> None:
    """Send log records to stderr; stdout is reserved for the status line."""
    logging.basicConfig(
        stream=sys.stderr,
        format="[hudline] %(levelname)s %(name)s: %(message)s",
    )
    logger.setLevel(logging.DEBUG if verbose else getattr(logging, level, logging.WARNING))


@click.group(invoke_without_command=True)
@click.option("-v", "--verbose", is_flag=True, help="Log debug detail to stderr.")
@click.pass_context
def cli(ctx, verbose: bool):
    """hudline — a powerline status line for Claude Code.

    Without a subcommand, reads session JSON on stdin and prints the line.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging("WARNING", verbose)
    if ctx.invoked_subcommand is None:
        ctx.invoke(render)


@cli.command()
@click.pass_context
def render(ctx):
    """Read session JSON on stdin and print the status line."""
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    try:
        config = load_config()
        _configure_logging(config.log_level, verbose)
        line = render_stdin(click.get_text_stream("stdin").read(), config)
    except Exception:
        logger.exception("status line failed")
        # Never leave the prompt without a line.
        click.echo("")
        raise SystemExit(1)
    click.echo(line)


@cli.command()
@click.option("--days", default=7, show_default=True, help="How many days back to show.")
def history(days: int):
    """Print recorded daily usage and pace."""
    config = load_config()
    if not config.db_path.exists():
        click.echo("No data yet. Add hudline to your Claude Code statusLine first.")
        return

    with SnapshotStore.open(config.db_path) as store:
        daily = store.get_daily_usage(days)
        paces = store.get_pace_snapshots(days)

    if not daily:
        click.echo(f"No usage recorded in the last {days} days.")
    else:
        total = sum(d["cost"] for d in daily)
        click.echo(f"Usage, last {days} days: ${total:.2f} across {len(daily)} days.")
        for d in daily:
            click.echo(
                f"  {d['date']}: ${d['cost']:.2f}, "
                f"{format_tokens(d['input_tokens'])} in / {format_tokens(d['output_tokens'])} out"
            )

    if paces:
        latest = paces[-1]
        peak = max(p["pace"] for p in paces)
        seen = datetime.fromtimestamp(latest["timestamp"] / 1000).strftime("%Y-%m-%d %H:%M")
        click.echo(f"\nPace: ${latest['pace']:.2f}/hr at {seen}, peak ${peak:.2f}/hr.")


@cli.command()
@click.option("--days", default=None, type=int, help="Retention in days (default: from config).")
def prune(days: int | None):
    """Delete samples and idle sessions past the retention window."""
    config = load_config()
    retention = days if days is not None else config.retention_days
    with SnapshotStore.open(config.db_path) as store:
        deleted = store.prune_older_than(retention, retention)
    if not deleted:
        click.echo("Nothing pruned (database unavailable).")
        return
    click.echo(
        f"Pruned {deleted['pace_snapshots']} pace and {deleted['usage_snapshots']} usage "
        f"snapshots, {deleted['hud_sessions']} sessions older than {retention} days."
    )


@cli.command()
def sessions():
    """List tracked Claude Code sessions."""
    config = load_config()
    with SnapshotStore.open(config.db_path) as store:
        rows = store.get_sessions()
    if not rows:
        click.echo("No sessions tracked.")
        return
    for s in rows:
        seen = datetime.fromtimestamp(s["last_seen_at"] / 1000).strftime("%Y-%m-%d %H:%M")
        root = "" if s["is_root_at_start"] else " (not at repo root)"
        branch = f" [{s['git_branch']}]" if s["git_branch"] else ""
        click.echo(f"  {s['session_id']}  {s['status']:<8} {s['initial_cwd']}{branch}{root}  {seen}")


@cli.command("session-status")
@click.argument("session_id")
@click.argument("status", type=click.Choice(SESSION_STATUSES))
def session_status(session_id: str, status: str):
    """Set a session's status (for Claude Code hooks)."""
    config = load_config()
    with SnapshotStore.open(config.db_path) as store:
        updated = store.set_session_status(session_id, status)
    if not updated:
        click.echo(f"Session '{session_id}' not found.", err=True)
        raise SystemExit(1)


@cli.group("config")
def config_group():
    """Inspect or change the config file."""


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set config KEY to VALUE (parsed as YAML). Use dots for nested keys, e.g. theme.color_mode."""
    save_config_value(key, yaml.safe_load(value))
    click.echo(f"Set {key}.")
