"""Status, task and change records parsed from loop files."""

from .frontmatter import FormatError, load_status, parse_status
from .models import (
    AGENTS,
    UNCATEGORIZED,
    ActionResult,
    ChangedFileEntry,
    IterationEntry,
    ModelCatalog,
    SessionStats,
    StatusRecord,
    TaskRecord,
)
from .tasks import load_tasks, parse_tasks

__all__ = [
    "AGENTS",
    "UNCATEGORIZED",
    "ActionResult",
    "ChangedFileEntry",
    "FormatError",
    "IterationEntry",
    "ModelCatalog",
    "SessionStats",
    "StatusRecord",
    "TaskRecord",
    "load_status",
    "load_tasks",
    "parse_status",
    "parse_tasks",
]
