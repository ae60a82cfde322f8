"""Tests for the time-boxed git/gh subprocess wrapper."""

import asyncio
import sys
import time
from unittest.mock import patch

import pytest

from hudline.git import _run

SLEEPER = [sys.executable, "-c", "import time; time.sleep(30)"]


@pytest.fixture
def spawned():
    """Capture every child started through hudline.git."""
    procs = []
    real_exec = asyncio.create_subprocess_exec

    async def spawn(*args, **kwargs):
        proc = await real_exec(*args, **kwargs)
        procs.append(proc)
        return proc

    with patch("hudline.git.asyncio.create_subprocess_exec", side_effect=spawn):
        yield procs


def test_run_returns_stdout(spawned):
    out = asyncio.run(_run([sys.executable, "-c", "print('main')"], None, 5.0))
    assert out == "main\n"


def test_run_nonzero_exit_is_none(spawned):
    assert asyncio.run(_run([sys.executable, "-c", "raise SystemExit(1)"], None, 5.0)) is None


def test_run_missing_binary_is_none():
    assert asyncio.run(_run(["/definitely/not/here"], None, 1.0)) is None


def test_run_timeout_kills_and_waits_for_child(spawned):
    started = time.monotonic()
    assert asyncio.run(_run(SLEEPER, None, 0.2)) is None

    assert time.monotonic() - started < 5
    (proc,) = spawned
    assert proc.returncode is not None


def test_run_cancelled_kills_and_waits_for_child(spawned):
    """An outer deadline that cancels the call still reaps the child."""

    async def cancel_early():
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(_run(SLEEPER, None, 30), timeout=0.2)

    asyncio.run(cancel_early())

    (proc,) = spawned
    assert proc.returncode is not None
