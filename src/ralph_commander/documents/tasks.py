"""Checklist parsing for the loop's planning document."""

from __future__ import annotations

import re
from pathlib import Path

from .models import UNCATEGORIZED, TaskRecord

_PHASE_RE = re.compile(r"\*\*Phase\s+\d+\s*:\s*(?P<title>.+?)\*\*", re.IGNORECASE)
_CHECKBOX_RE = re.compile(r"^\s*[-*]\s+\[(?P<mark>[ xX])\]\s+(?P<description>.*\S)\s*$")
_PHASE_MARKER = "**phase"


def parse_tasks(raw: str) -> list[TaskRecord]:
    """Return the checklist entries of ``raw`` in document order.

    A bolded ``**Phase N: Title**`` marker switches the current phase and is
    not itself a task.
    """

    tasks: list[TaskRecord] = []
    phase = ""
    for line in raw.splitlines():
        heading = _PHASE_RE.search(line)
        if heading:
            phase = heading.group("title").strip()
            continue

        match = _CHECKBOX_RE.match(line)
        if not match:
            continue
        description = match.group("description").strip()
        if _PHASE_MARKER in description.lower():
            continue
        tasks.append(
            TaskRecord(
                description=description,
                completed=match.group("mark").lower() == "x",
                phase=phase or UNCATEGORIZED,
            )
        )
    return tasks


def load_tasks(path: Path) -> list[TaskRecord]:
    try:
        raw = Path(path).read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return []
    return parse_tasks(raw)


__all__ = ["load_tasks", "parse_tasks"]
