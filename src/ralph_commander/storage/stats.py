"""Session statistics persisted beside the loop status file."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from ..documents import IterationEntry, SessionStats

logger = logging.getLogger(__name__)

COST_PER_MILLION_TOKENS = 0.10
_RUN_KEYS = (
    "models",
    "iteration_history",
    "iteration_starts",
    "avg_iteration_ms",
    "total_duration_ms",
)


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _elapsed_ms(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() * 1000))


def _count(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _token_totals(models: dict[str, Any]) -> tuple[int, int, int]:
    total = inputs = outputs = 0
    for usage in models.values():
        tokens = usage.get("tokens") if isinstance(usage, dict) else None
        if not isinstance(tokens, dict):
            continue
        total += _count(tokens.get("total"))
        inputs += _count(tokens.get("input"))
        outputs += _count(tokens.get("candidates"))
    return total, inputs, outputs


class StatsTracker:
    """Record per-iteration durations as the loop's iteration counter advances.

    One instance lives for the whole server lifetime. Every observation runs
    under a single lock so concurrent status reads cannot record a transition
    twice or miss one.
    """

    def __init__(self, path: Path, *, clock: Callable[[], datetime] | None = None) -> None:
        self._path = Path(path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._last_iteration: int | None = None
        self._iteration_started: datetime | None = None
        self._queries_at_last_iteration = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def last_iteration(self) -> int | None:
        return self._last_iteration

    def load(self) -> dict[str, Any]:
        """Return the persisted stats document; absent or corrupt files read as empty."""

        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("Unable to read stats file", extra={"path": str(self._path), "error": str(exc)})
            return {}
        try:
            document = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt stats file", extra={"path": str(self._path)})
            return {}
        return document if isinstance(document, dict) else {}

    def _save(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    def observe(
        self,
        iteration: int,
        queries: int,
        *,
        active: bool = False,
        started_at: str = "",
    ) -> SessionStats:
        """Fold one status reading into the history and return the aggregates."""

        with self._lock:
            document = self.load()
            now = self._clock()
            history = self._history(document)
            starts = document.get("iteration_starts")
            if not isinstance(starts, dict):
                starts = {}
            dirty = False

            if self._last_iteration is not None and iteration < self._last_iteration:
                # The counter went backwards: a new run started without us.
                history = []
                starts = {}
                self._last_iteration = iteration
                self._iteration_started = now
                self._queries_at_last_iteration = queries
                dirty = True
            elif self._last_iteration is None:
                self._last_iteration = iteration
                self._iteration_started = _parse_timestamp(starts.get(str(iteration))) or now
                self._queries_at_last_iteration = queries
            elif iteration > self._last_iteration:
                previous = self._last_iteration
                if not any(entry.iteration == previous for entry in history):
                    history.append(
                        IterationEntry(
                            iteration=previous,
                            duration_ms=_elapsed_ms(self._iteration_started or now, now),
                            queries=max(0, queries - self._queries_at_last_iteration),
                        )
                    )
                    dirty = True
                self._last_iteration = iteration
                self._iteration_started = now
                self._queries_at_last_iteration = queries

            if str(iteration) not in starts:
                starts[str(iteration)] = now.isoformat()
                dirty = True

            avg_iteration_ms = (
                sum(entry.duration_ms for entry in history) / len(history) if history else 0.0
            )
            total_duration_ms = _count(document.get("total_duration_ms"))
            run_started = _parse_timestamp(started_at)
            if active and run_started is not None:
                total_duration_ms = _elapsed_ms(run_started, now)
                dirty = True

            if dirty:
                document["iteration_history"] = [entry.model_dump() for entry in history]
                document["iteration_starts"] = starts
                document["avg_iteration_ms"] = avg_iteration_ms
                document["total_duration_ms"] = total_duration_ms
                try:
                    self._save(document)
                except OSError as exc:
                    logger.warning(
                        "Unable to persist stats file",
                        extra={"path": str(self._path), "error": str(exc)},
                    )

            models = document.get("models")
            models = models if isinstance(models, dict) else {}
            total_tokens, input_tokens, output_tokens = _token_totals(models)
            return SessionStats(
                avg_iteration_ms=avg_iteration_ms,
                iteration_history=history,
                total_duration_ms=total_duration_ms,
                models=models,
                total_tokens=total_tokens,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                estimated_cost_usd=total_tokens / 1_000_000 * COST_PER_MILLION_TOKENS,
            )

    def reset(self) -> None:
        """Forget the previous run's history and cursor."""

        with self._lock:
            document = self.load()
            for key in _RUN_KEYS:
                document.pop(key, None)
            self._save(document)
            self._last_iteration = None
            self._iteration_started = None
            self._queries_at_last_iteration = 0

    @staticmethod
    def _history(document: dict[str, Any]) -> list[IterationEntry]:
        entries: list[IterationEntry] = []
        for item in document.get("iteration_history") or []:
            if not isinstance(item, dict):
                continue
            try:
                entries.append(IterationEntry.model_validate(item))
            except ValueError:
                continue
        return entries


__all__ = ["COST_PER_MILLION_TOKENS", "StatsTracker"]
