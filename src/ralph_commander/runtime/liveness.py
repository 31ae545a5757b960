"""PID file handling and process liveness probes."""

from __future__ import annotations

import logging
import os
import signal
from pathlib import Path

from ..documents import StatusRecord

logger = logging.getLogger(__name__)


def read_pid(pid_file: Path) -> int | None:
    """Return the pid recorded in ``pid_file``, or ``None`` if absent or unreadable."""

    try:
        text = Path(pid_file).read_text(encoding="utf-8").strip()
    except OSError:
        return None
    if not text:
        return None
    try:
        pid = int(text.splitlines()[0])
    except ValueError:
        return None
    return pid if pid > 0 else None


def write_pid(pid_file: Path, pid: int) -> None:
    path = Path(pid_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{pid}\n", encoding="utf-8")


def clear_pid(pid_file: Path) -> None:
    Path(pid_file).unlink(missing_ok=True)


def process_alive(pid: int) -> bool:
    """Probe ``pid`` with signal 0; any failure counts as not alive."""

    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


def is_zombie(status: StatusRecord, pid_file: Path) -> bool:
    """True when the status claims an active loop that no live process backs."""

    if not status.active:
        return False
    pid = read_pid(pid_file)
    if pid is None:
        return True
    return not process_alive(pid)


def terminate_process_group(pid: int, sig: int = signal.SIGTERM) -> bool:
    """Signal the process group led by ``pid``, falling back to the pid alone.

    Returns ``False`` when no process received the signal.
    """

    # The loop is launched in its own session, so its pgid equals its pid.
    try:
        os.killpg(pid, sig)
        return True
    except OSError as exc:
        logger.debug("Process group signal failed", extra={"pid": pid, "error": str(exc)})

    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        return False
    except OSError as exc:
        logger.warning("Unable to signal loop process", extra={"pid": pid, "error": str(exc)})
        return False
    return True


__all__ = [
    "clear_pid",
    "is_zombie",
    "process_alive",
    "read_pid",
    "terminate_process_group",
    "write_pid",
]
