from __future__ import annotations

from pathlib import Path

import pytest

from ralph_commander.config import RalphSettings
from ralph_commander.context import RalphContext
from ralph_commander.runtime.runner import FakeCommandRunner


@pytest.fixture
def settings(tmp_path: Path) -> RalphSettings:
    return RalphSettings(RALPH_ROOT=tmp_path, RALPH_WATCH_INTERVAL=0.01)


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def context(settings: RalphSettings, fake_runner: FakeCommandRunner) -> RalphContext:
    return RalphContext.from_settings(settings, runner=fake_runner)


@pytest.fixture
def write_status(settings: RalphSettings):
    def _write(body: str) -> None:
        path = settings.status_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")

    return _write
