"""Loop process control: external commands and liveness probes."""

from .liveness import clear_pid, is_zombie, process_alive, read_pid, terminate_process_group, write_pid
from .runner import CommandResult, CommandRunner, CommandRunnerError, RunnerNotFoundError

__all__ = [
    "CommandResult",
    "CommandRunner",
    "CommandRunnerError",
    "RunnerNotFoundError",
    "clear_pid",
    "is_zombie",
    "process_alive",
    "read_pid",
    "terminate_process_group",
    "write_pid",
]
