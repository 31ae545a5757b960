"""Async runner for the external loop script and helper CLIs."""

from __future__ import annotations

import asyncio
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}


class CommandRunnerError(RuntimeError):
    """Base class for external command errors."""


class RunnerNotFoundError(CommandRunnerError):
    """Raised when the loop script or a helper executable cannot be located."""


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return the server environment minus this interpreter's virtualenv settings."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    if additional:
        env.update(additional)
    return env


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of an external command invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Execute the loop script and helper commands from the working root."""

    def __init__(self, runner_script: Path, *, cwd: Path, shell: str = "bash") -> None:
        self._runner_script = Path(runner_script)
        self._cwd = Path(cwd)
        self._shell = shell

    @property
    def runner_script(self) -> Path:
        return self._runner_script

    def _resolve_script(self) -> Path:
        candidate = self._runner_script
        if not candidate.is_absolute():
            candidate = self._cwd / candidate
        if candidate.exists() and candidate.is_file():
            return candidate
        raise RunnerNotFoundError(f"Loop runner script not found at {candidate}")

    async def git_status(self) -> CommandResult:
        return await self._invoke("git", "status", "--porcelain")

    async def list_models(self, command: str, *, agent: str) -> CommandResult:
        args = [part.replace("{agent}", agent) for part in shlex.split(command)]
        return await self._invoke(*args)

    async def launch(self, args: Sequence[str], *, log_path: Path) -> int:
        """Start the loop script detached, appending its output to ``log_path``.

        The child gets its own session so a stop request can signal the whole
        process group. Returns the child's pid.
        """

        script = self._resolve_script()
        cmd = [self._shell, str(script), *args]
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("ab") as log_handle:
            try:
                process = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                    cwd=str(self._cwd),
                    env=sanitize_environment(),
                    start_new_session=True,
                )
            except FileNotFoundError as exc:
                raise RunnerNotFoundError(f"Shell '{self._shell}' not found") from exc
        return process.pid

    async def _invoke(self, *args: str) -> CommandResult:
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._cwd),
                env=sanitize_environment(),
            )
        except FileNotFoundError as exc:
            raise RunnerNotFoundError(f"Executable '{args[0]}' not found on PATH") from exc
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return CommandResult(args=tuple(args), returncode=process.returncode, stdout=stdout, stderr=stderr)


class FakeCommandRunner(CommandRunner):
    """Test double that simulates command responses and loop launches."""

    def __init__(  # type: ignore[override]
        self,
        responses: Iterable[CommandResult] | None = None,
        *,
        pid: int = 4242,
    ) -> None:
        self._responses = list(responses or [])
        self._invocations: list[tuple[str, ...]] = []
        self._launches: list[tuple[str, ...]] = []
        self._pid = pid
        self._runner_script = Path("/tmp/fake-run-loop.sh")
        self._cwd = Path("/tmp")
        self._shell = "bash"

    async def launch(self, args: Sequence[str], *, log_path: Path) -> int:  # type: ignore[override]
        self._launches.append(tuple(args))
        return self._pid

    async def _invoke(self, *args: str) -> CommandResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        if self._responses:
            return self._responses.pop(0)
        return CommandResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations

    @property
    def launches(self) -> list[tuple[str, ...]]:
        return self._launches


__all__ = [
    "CommandResult",
    "CommandRunner",
    "CommandRunnerError",
    "FakeCommandRunner",
    "RunnerNotFoundError",
    "sanitize_environment",
]
