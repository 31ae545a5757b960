"""Parsing of the loop status document (YAML front matter plus prompt body)."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

from .models import StatusRecord

DELIMITER = "---"
_DELIMITER_RE = re.compile(r"^---[ \t]*\r?$", re.MULTILINE)


class FormatError(ValueError):
    """Raised when the status document is structurally broken."""


def split_frontmatter(raw: str) -> tuple[str, str]:
    """Return the metadata block and the trimmed body of ``raw``."""

    parts = _DELIMITER_RE.split(raw)
    if len(parts) < 3:
        raise FormatError("missing delimiters")
    return parts[1], DELIMITER.join(parts[2:]).strip()


def parse_metadata(block: str) -> dict[str, Any]:
    try:
        document = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        raise FormatError("malformed metadata") from exc
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise FormatError("malformed metadata")
    return document


def parse_status(raw: str) -> StatusRecord:
    """Parse a status document into a :class:`StatusRecord`.

    Structure is strict (two delimiter lines, a YAML mapping between them);
    individual keys are lenient and fall back to their defaults.
    """

    block, body = split_frontmatter(raw)
    state = parse_metadata(block)
    fields = {name: state[name] for name in _METADATA_KEYS if state.get(name) is not None}
    return StatusRecord(**fields, prompt=body)


def load_status(path: Path) -> StatusRecord:
    """Read and parse ``path``; a missing file is the idle, never-run state."""

    try:
        raw = Path(path).read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return StatusRecord()
    return parse_status(raw)


_METADATA_KEYS = (
    "active",
    "iteration",
    "max_iterations",
    "completion_promise",
    "started_at",
    "agent",
    "model",
    "queries",
    "phase",
)


__all__ = ["DELIMITER", "FormatError", "load_status", "parse_metadata", "parse_status", "split_frontmatter"]
