"""Turn filesystem changes into hub events."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from watchfiles import Change, awatch

from ..documents import FormatError

if TYPE_CHECKING:
    from ..context import RalphContext

logger = logging.getLogger(__name__)

FileChanges = Iterable[tuple[Change, str]]


@dataclass(slots=True)
class FileChange:
    kind: str
    path: Path


class ChangeBridge:
    """Watch the loop's files and publish a fresh read of whichever one changed.

    ``awatch`` feeds batches into a queue; a single consumer re-reads each
    changed file and publishes to the hub. Several writes inside one debounce
    window arrive as a single change per file.
    """

    def __init__(self, context: "RalphContext", *, interval: float | None = None) -> None:
        self._context = context
        settings = context.settings
        self._interval = interval if interval is not None else settings.watch_interval
        self._targets: dict[Path, str] = {
            settings.status_path.resolve(): "status",
            settings.plan_path.resolve(): "tasks",
            settings.log_path.resolve(): "logs",
        }
        self._queue: asyncio.Queue[FileChange] = asyncio.Queue()
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def queue(self) -> asyncio.Queue[FileChange]:
        return self._queue

    @property
    def directories(self) -> list[Path]:
        """Directories holding the watched files, in a stable order."""

        seen: list[Path] = []
        for path in self._targets:
            if path.parent not in seen:
                seen.append(path.parent)
        return seen

    def classify(self, path: str | Path) -> str | None:
        return self._targets.get(Path(path).resolve())

    def _accepts(self, change: Change, path: str) -> bool:
        return self.classify(path) is not None

    def enqueue(self, changes: FileChanges) -> list[FileChange]:
        """Queue one :class:`FileChange` per watched file touched in ``changes``."""

        queued: list[FileChange] = []
        kinds: set[str] = set()
        for _change, raw_path in changes:
            kind = self.classify(raw_path)
            if kind is None or kind in kinds:
                continue
            kinds.add(kind)
            item = FileChange(kind=kind, path=Path(raw_path))
            self._queue.put_nowait(item)
            queued.append(item)
        return queued

    def dispatch(self, change: FileChange) -> bool:
        """Handle one change; returns whether an event was published."""

        context = self._context
        if change.kind == "status":
            try:
                status = context.read_status()
            except FormatError as exc:
                # Usually a half-written file; the next write triggers a retry.
                logger.info("Skipping unreadable status update", extra={"error": str(exc)})
                return False
            context.hub.publish("status", status)
            return True
        if change.kind == "tasks":
            context.hub.publish("tasks", context.read_tasks())
            return True
        if change.kind == "logs":
            delta = context.tailer.read_new()
            if not delta:
                return False
            context.hub.publish("logs", delta)
            return True
        logger.warning("Unknown change kind", extra={"kind": change.kind})
        return False

    def drain(self) -> int:
        """Dispatch every queued change without waiting; returns the publish count."""

        published = 0
        while not self._queue.empty():
            if self.dispatch(self._queue.get_nowait()):
                published += 1
        return published

    async def watch(self) -> None:
        stop_event = self._stop_event or asyncio.Event()
        debounce_ms = max(1, int(self._interval * 1000))
        async for changes in awatch(
            *self.directories,
            watch_filter=self._accepts,
            debounce=debounce_ms,
            step=min(50, debounce_ms),
            stop_event=stop_event,
            recursive=False,
        ):
            self.enqueue(changes)

    async def consume(self) -> None:
        while True:
            change = await self._queue.get()
            try:
                self.dispatch(change)
            except Exception:
                logger.exception(
                    "Failed to process file change",
                    extra={"kind": change.kind, "path": str(change.path)},
                )

    def start(self) -> None:
        if self._tasks:
            return
        for directory in self.directories:
            directory.mkdir(parents=True, exist_ok=True)
        self._context.tailer.prime()
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self.watch(), name="ralph-file-watcher"),
            asyncio.create_task(self.consume(), name="ralph-change-consumer"),
        ]
        logger.info("Watching loop files", extra={"paths": [str(p) for p in self._targets]})

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


__all__ = ["ChangeBridge", "FileChange"]
