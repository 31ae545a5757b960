"""Records derived from the files a Ralph loop writes."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

AGENTS = ("gemini", "claude")
UNCATEGORIZED = "Uncategorized"


def _non_negative_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 0 else default


class IterationEntry(BaseModel):
    """Duration and query count recorded once per completed iteration."""

    iteration: int = Field(..., ge=0)
    duration_ms: int = Field(default=0, ge=0)
    queries: int = Field(default=0, ge=0)


class SessionStats(BaseModel):
    """Aggregates accumulated across the life of one loop run."""

    avg_iteration_ms: float = Field(default=0.0, ge=0)
    iteration_history: list[IterationEntry] = Field(default_factory=list)
    total_duration_ms: int = Field(default=0, ge=0)
    models: dict[str, Any] = Field(
        default_factory=dict,
        description="Per-model token usage as written by the runner.",
    )
    total_tokens: int = Field(default=0, ge=0)
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    estimated_cost_usd: float = Field(default=0.0, ge=0)


class StatusRecord(BaseModel):
    """Snapshot of loop state parsed from the status document.

    Values that cannot be coerced fall back to the field default so a sloppy
    writer never hides the rest of the snapshot.
    """

    model_config = ConfigDict(frozen=True)

    active: bool = False
    iteration: int = 0
    max_iterations: int = 0
    completion_promise: str = ""
    started_at: str = ""
    prompt: str = ""
    agent: Literal["gemini", "claude"] = "gemini"
    model: str = "auto"
    queries: int = 0
    phase: str = "IDLE"
    is_zombie: bool = False
    stats: SessionStats | None = None

    @field_validator("active", mode="before")
    @classmethod
    def _coerce_active(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in {"true", "yes", "on", "1"}
        return bool(value)

    @field_validator("iteration", "max_iterations", "queries", mode="before")
    @classmethod
    def _coerce_counter(cls, value: Any) -> int:
        return _non_negative_int(value)

    @field_validator("completion_promise", "prompt", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    @field_validator("started_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, datetime):
            return value.isoformat().replace("+00:00", "Z")
        if isinstance(value, date):
            return value.isoformat()
        return str(value)

    @field_validator("agent", mode="before")
    @classmethod
    def _coerce_agent(cls, value: Any) -> str:
        normalized = str(value or "").strip().lower()
        return normalized if normalized in AGENTS else "gemini"

    @field_validator("model", mode="before")
    @classmethod
    def _coerce_model(cls, value: Any) -> str:
        text = str(value or "").strip()
        return text or "auto"

    @field_validator("phase", mode="before")
    @classmethod
    def _coerce_phase(cls, value: Any) -> str:
        text = str(value or "").strip()
        return text or "IDLE"


class TaskRecord(BaseModel):
    """One checklist line from the planning document."""

    model_config = ConfigDict(frozen=True)

    description: str
    completed: bool = False
    phase: str = UNCATEGORIZED


class ChangedFileEntry(BaseModel):
    """One line of ``git status --porcelain`` output."""

    status: str
    path: str


class ModelCatalog(BaseModel):
    """Models an agent CLI reports, or the fixed aliases when it cannot."""

    agent: str
    models: list[str] = Field(default_factory=list)
    fallback: bool = False


class ActionResult(BaseModel):
    """Outcome of a start, stop or clear request."""

    success: bool
    error: str | None = None
    pid: int | None = None


__all__ = [
    "AGENTS",
    "UNCATEGORIZED",
    "ActionResult",
    "ChangedFileEntry",
    "IterationEntry",
    "ModelCatalog",
    "SessionStats",
    "StatusRecord",
    "TaskRecord",
]
