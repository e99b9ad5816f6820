"""Pytest configuration for runbox."""
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import pytest

from runbox.core.models import ProcessOutcome
from runbox.settings import Settings


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        workspace_root=tmp_path / "ws",
        python_bin=sys.executable,
        per_job_timeout_ms=10000,
        sandbox_prefix_enabled=False,
        concurrency_limit=2,
    )


def outcome(
    exit_code: Optional[int] = 0,
    stdout: str = "",
    stderr: str = "",
    timed_out: bool = False,
    signal: Optional[str] = None,
    spawn_error: Optional[str] = None,
) -> ProcessOutcome:
    return ProcessOutcome(
        exit_code=exit_code,
        signal=signal,
        timed_out=timed_out,
        stdout=stdout,
        stderr=stderr if spawn_error is None else spawn_error,
        spawn_error=spawn_error,
    )


class FakeRunner:
    """Stands in for ProcessRunner; replays canned outcomes and records calls."""

    def __init__(self, outcomes: Optional[List[ProcessOutcome]] = None, delay: float = 0.0):
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.calls: List[dict] = []
        self.active = 0
        self.max_active = 0

    async def run(self, command, args, cwd, timeout_s, stdin_data=""):
        self.calls.append(
            {
                "argv": [command, *args],
                "cwd": Path(cwd),
                "timeout_s": timeout_s,
                "stdin": stdin_data,
                "cwd_existed": Path(cwd).is_dir(),
            }
        )
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        if self.outcomes:
            return self.outcomes.pop(0)
        return outcome()


@pytest.fixture
def make_outcome():
    return outcome


@pytest.fixture
def fake_runner_cls():
    return FakeRunner
