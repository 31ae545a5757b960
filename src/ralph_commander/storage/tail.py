"""Incremental reads of the append-only runner log."""

from __future__ import annotations

import codecs
import threading
from pathlib import Path


class LogTailer:
    """Return only the bytes appended to a log file since the previous read."""

    def __init__(self, path: Path, *, offset: int = 0) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._offset = max(0, offset)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def path(self) -> Path:
        return self._path

    @property
    def offset(self) -> int:
        return self._offset

    def _size(self) -> int:
        try:
            return self._path.stat().st_size
        except FileNotFoundError:
            return 0

    def prime(self) -> None:
        """Skip existing content so only future appends are returned."""

        with self._lock:
            self._offset = self._size()
            self._decoder.reset()

    def reset(self) -> None:
        with self._lock:
            self._offset = 0
            self._decoder.reset()

    def read_new(self) -> str:
        """Return text appended since the last call, or ``""`` when nothing changed.

        A file that shrank below the stored offset was truncated or rotated;
        reading restarts from its first byte.
        """

        with self._lock:
            size = self._size()
            if size < self._offset:
                self._offset = 0
                self._decoder.reset()
            if size <= self._offset:
                return ""
            try:
                with self._path.open("rb") as handle:
                    handle.seek(self._offset)
                    chunk = handle.read(size - self._offset)
            except FileNotFoundError:
                return ""
            self._offset += len(chunk)
            return self._decoder.decode(chunk)

    def read_all(self) -> str:
        try:
            return self._path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return ""

    def clear(self) -> None:
        """Truncate the log file to empty and rewind."""

        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_bytes(b"")
            self._offset = 0
            self._decoder.reset()


__all__ = ["LogTailer"]
