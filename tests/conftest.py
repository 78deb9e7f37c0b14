from __future__ import annotations

import os
import stat
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pytest

from cogrun.config import EngineConfig
from cogrun.platforms import EnvironmentDescriptor, LINUX
from cogrun.process import CancelToken, RunOutcome


class RecordingRunner:
    """Stands in for ProcessRunner and replays canned output."""

    def __init__(
        self,
        stdout: Sequence[str] = (),
        stderr: Sequence[str] = (),
        outcome: RunOutcome = RunOutcome("exited", 0),
    ) -> None:
        self.stdout = list(stdout)
        self.stderr = list(stderr)
        self.outcome = outcome
        self.calls: List[dict] = []

    def run(self, command, on_stdout=None, on_stderr=None, cancel_token: Optional[CancelToken] = None, *, preformatted=False, cwd=None):
        self.calls.append({"command": list(command), "preformatted": preformatted, "cwd": cwd})
        for line in self.stdout:
            on_stdout(line)
        for line in self.stderr:
            on_stderr(line)
        return self.outcome


@pytest.fixture
def engine_root(tmp_path: Path) -> Path:
    root = tmp_path / "engines"
    engine_dir = root / "clisp-linux"
    engine_dir.mkdir(parents=True)
    (engine_dir / "lisp.run").write_text("", encoding="utf-8")
    (engine_dir / "actr6.mem").write_text("", encoding="utf-8")
    return root


@pytest.fixture
def engine_config(engine_root: Path) -> EngineConfig:
    return EngineConfig(engine_root=engine_root, poll_interval_seconds=0.02, terminate_grace_seconds=2.0)


@pytest.fixture
def linux_env() -> EnvironmentDescriptor:
    return EnvironmentDescriptor(LINUX, is_intel=True)


@pytest.fixture
def runner_factory() -> Callable[..., RecordingRunner]:
    return RecordingRunner


@pytest.fixture
def python_command() -> Callable[[str], List[str]]:
    def _command(source: str) -> List[str]:
        return [sys.executable, "-u", "-c", source]

    return _command


@pytest.fixture
def fake_engine(engine_root: Path) -> Callable[[str], Path]:
    """Replace the linux engine with a Python script that runs ``body``."""
    if os.name == "nt":
        pytest.skip("fake engine scripts need a POSIX shebang")

    def _install(body: str) -> Path:
        script = engine_root / "clisp-linux" / "lisp.run"
        script.write_text(f"#!{sys.executable} -u\nimport sys\n{body}\n", encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _install
