"""Server-lifetime state shared by tools, the change bridge and viewers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from .config import RalphSettings
from .documents import FormatError, StatusRecord, TaskRecord, load_status, load_tasks
from .runtime import CommandRunner, is_zombie
from .storage import LogTailer, StatsTracker
from .sync.hub import PublishHub

logger = logging.getLogger(__name__)


@dataclass
class RalphContext:
    """Owns the stats cursor, the log offset and the broadcast hub.

    Exactly one instance exists per running server; handlers receive it by
    reference instead of reaching for module globals.
    """

    settings: RalphSettings
    runner: CommandRunner
    tracker: StatsTracker
    tailer: LogTailer
    hub: PublishHub = field(default_factory=PublishHub)

    @classmethod
    def from_settings(
        cls,
        settings: RalphSettings,
        *,
        runner: CommandRunner | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "RalphContext":
        return cls(
            settings=settings,
            runner=runner or CommandRunner(settings.runner_path, cwd=settings.root),
            tracker=StatsTracker(settings.stats_path, clock=clock),
            tailer=LogTailer(settings.log_path),
        )

    def read_status(self) -> StatusRecord:
        """Parse the status file and attach zombie state and session stats.

        Raises :class:`FormatError` when the document is structurally broken.
        """

        status = load_status(self.settings.status_path)
        stats = self.tracker.observe(
            status.iteration,
            status.queries,
            active=status.active,
            started_at=status.started_at,
        )
        return status.model_copy(
            update={
                "is_zombie": is_zombie(status, self.settings.pid_path),
                "stats": stats,
            }
        )

    def status_snapshot(self) -> StatusRecord:
        """Like :meth:`read_status` but degrades to the idle record on format errors."""

        try:
            return self.read_status()
        except FormatError as exc:
            logger.warning(
                "Status file is malformed",
                extra={"path": str(self.settings.status_path), "error": str(exc)},
            )
            return StatusRecord()
        except OSError as exc:
            logger.warning(
                "Status file is unreadable",
                extra={"path": str(self.settings.status_path), "error": str(exc)},
            )
            return StatusRecord()

    def read_tasks(self) -> list[TaskRecord]:
        return load_tasks(self.settings.plan_path)


__all__ = ["RalphContext"]
