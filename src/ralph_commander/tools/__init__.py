"""Tool registration for Ralph Commander."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastmcp import Context, FastMCP

from ..context import RalphContext
from ..documents import AGENTS, ActionResult, ChangedFileEntry, ModelCatalog, TaskRecord
from ..documents.frontmatter import DELIMITER
from ..runtime import CommandRunnerError, clear_pid, read_pid, terminate_process_group, write_pid

FALLBACK_MODELS: dict[str, list[str]] = {
    "gemini": ["auto", "pro", "flash", "flash-lite"],
    "claude": ["sonnet", "opus", "haiku"],
}

_ACTIVE_RE = re.compile(r"^(active:[ \t]*)true[ \t]*$", re.MULTILINE | re.IGNORECASE)


@dataclass(slots=True)
class ToolHandles:
    get_status: Any
    get_tasks: Any
    get_changed_files: Any
    get_logs: Any
    clear_logs: Any
    start_loop: Any
    stop_loop: Any
    list_models: Any


def parse_porcelain(output: str) -> list[ChangedFileEntry]:
    """Parse ``git status --porcelain`` output, keeping git's ordering."""

    entries: list[ChangedFileEntry] = []
    for line in output.splitlines():
        if len(line) < 4:
            continue
        status = line[:2].strip()
        path = line[3:].strip()
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        if status and path:
            entries.append(ChangedFileEntry(status=status, path=path.strip('"')))
    return entries


def parse_model_listing(output: str) -> list[str]:
    """Extract model names from a CLI's JSON listing.

    Raises ``ValueError`` when the output is not a JSON listing.
    """

    text = output.strip()
    if not text or text[0] not in "[{":
        raise ValueError("Model listing is not JSON")
    document = json.loads(text)
    if isinstance(document, dict):
        document = document.get("models", [])
    if not isinstance(document, list):
        raise ValueError("Model listing has no model array")

    names: list[str] = []
    for item in document:
        if isinstance(item, str):
            name = item
        elif isinstance(item, dict):
            name = item.get("id") or item.get("name") or ""
        else:
            continue
        if name and name not in names:
            names.append(str(name))
    if not names:
        raise ValueError("Model listing is empty")
    return names


def deactivate_frontmatter(raw: str) -> str:
    """Flip ``active: true`` to ``false`` inside the metadata block only."""

    lines = raw.split("\n")
    delimiters = [index for index, line in enumerate(lines) if line.strip() == DELIMITER]
    if len(delimiters) < 2:
        return raw
    start, end = delimiters[0], delimiters[1]
    block = "\n".join(lines[start + 1 : end])
    updated = _ACTIVE_RE.sub(r"\1false", block)
    if updated == block:
        return raw
    return "\n".join(lines[: start + 1] + updated.split("\n") + lines[end:])


def register_tools(server: FastMCP, *, context: RalphContext) -> ToolHandles:
    """Register the loop control and monitoring tools on the server."""

    settings = context.settings

    def _get_status(ctx: Context | None = None) -> dict[str, Any]:
        """Return the current loop status with zombie state and session statistics."""

        status = context.status_snapshot()
        _emit_log(
            ctx,
            "debug",
            "Status requested",
            extra={"active": status.active, "iteration": status.iteration},
        )
        return status.model_dump(mode="json")

    def _get_tasks(ctx: Context | None = None) -> list[dict[str, Any]]:
        """Return the planning checklist grouped by phase, in document order."""

        tasks: list[TaskRecord] = context.read_tasks()
        _emit_log(ctx, "debug", "Tasks requested", extra={"count": len(tasks)})
        return [task.model_dump() for task in tasks]

    async def _get_changed_files(ctx: Context | None = None) -> list[dict[str, Any]]:
        """List files git reports as changed in the working root."""

        try:
            result = await context.runner.git_status()
        except CommandRunnerError as exc:
            _emit_log(ctx, "warning", "git status unavailable", extra={"error": str(exc)})
            return []
        if not result.ok:
            _emit_log(
                ctx,
                "warning",
                "git status failed",
                extra={"returncode": result.returncode, "stderr": result.stderr[:400]},
            )
            return []
        return [entry.model_dump() for entry in parse_porcelain(result.stdout)]

    def _get_logs(ctx: Context | None = None) -> str:
        """Return the entire runner log."""

        return context.tailer.read_all()

    def _clear_logs(ctx: Context | None = None) -> dict[str, Any]:
        """Truncate the runner log."""

        try:
            context.tailer.clear()
        except OSError as exc:
            _emit_log(ctx, "error", "Failed to clear log", extra={"error": str(exc)})
            return ActionResult(success=False, error=f"Failed to clear log: {exc}").model_dump()
        _emit_log(ctx, "info", "Cleared runner log", extra={"path": str(settings.log_path)})
        return ActionResult(success=True).model_dump()

    async def _start_loop(
        prompt: str = "",
        max_iterations: int = 0,
        completion_promise: str = "",
        agent: str = "gemini",
        model: str = "auto",
        resume: bool = False,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Launch the loop runner script detached, streaming its output to the log."""

        prompt = (prompt or "").strip()
        if not prompt and not resume:
            return ActionResult(success=False, error="Prompt is required").model_dump()
        if agent not in AGENTS:
            return ActionResult(success=False, error="Invalid agent").model_dump()
        if max_iterations < 0:
            return ActionResult(success=False, error="max_iterations must be >= 0").model_dump()

        current = context.status_snapshot()
        if current.active and not current.is_zombie:
            return ActionResult(success=False, error="Loop is already running").model_dump()

        log_path = settings.log_path
        started = datetime.now(timezone.utc).isoformat()
        banner = f"=== Ralph loop started {started} (agent={agent}, model={model or 'auto'}"
        banner += ", resume)" if resume else ")"
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_path.write_text(banner + "\n", encoding="utf-8")
            context.tailer.reset()
            context.tracker.reset()
        except OSError as exc:
            _emit_log(ctx, "error", "Failed to prepare loop files", extra={"error": str(exc)})
            return ActionResult(success=False, error=f"Failed to start loop: {exc}").model_dump()

        args = [agent, prompt, str(max_iterations), completion_promise or "", model or "auto"]
        if resume:
            args.append("--resume")
        try:
            pid = await context.runner.launch(args, log_path=log_path)
        except (CommandRunnerError, OSError) as exc:
            _emit_log(ctx, "error", "Failed to launch loop runner", extra={"error": str(exc)})
            return ActionResult(success=False, error=f"Failed to start loop: {exc}").model_dump()

        write_pid(settings.pid_path, pid)
        _emit_log(
            ctx,
            "info",
            "Started loop",
            extra={"pid": pid, "agent": agent, "model": model, "resume": resume},
        )
        return ActionResult(success=True, pid=pid).model_dump()

    def _stop_loop(ctx: Context | None = None) -> dict[str, Any]:
        """Mark the loop inactive and terminate its process group."""

        status_path = settings.status_path
        try:
            raw = status_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raw = None
        except OSError as exc:
            return ActionResult(success=False, error=f"Failed to stop loop: {exc}").model_dump()

        if raw is not None:
            updated = deactivate_frontmatter(raw)
            if updated != raw:
                try:
                    status_path.write_text(updated, encoding="utf-8")
                except OSError as exc:
                    return ActionResult(success=False, error=f"Failed to stop loop: {exc}").model_dump()

        pid = read_pid(settings.pid_path)
        signalled = False
        if pid is not None:
            signalled = terminate_process_group(pid)
            clear_pid(settings.pid_path)

        _emit_log(ctx, "info", "Stop requested", extra={"pid": pid, "signalled": signalled})
        return ActionResult(success=True, pid=pid).model_dump()

    async def _list_models(agent: str = "gemini", ctx: Context | None = None) -> dict[str, Any]:
        """List models the agent CLI offers, falling back to well-known aliases."""

        if agent not in AGENTS:
            agent = "gemini"
        fallback = ModelCatalog(agent=agent, models=list(FALLBACK_MODELS[agent]), fallback=True)
        try:
            result = await context.runner.list_models(settings.models_command, agent=agent)
        except CommandRunnerError as exc:
            _emit_log(ctx, "warning", "Model listing unavailable", extra={"error": str(exc)})
            return fallback.model_dump()
        if not result.ok:
            _emit_log(
                ctx,
                "warning",
                "Model listing failed",
                extra={"returncode": result.returncode, "stderr": result.stderr[:400]},
            )
            return fallback.model_dump()
        try:
            models = parse_model_listing(result.stdout)
        except ValueError as exc:
            _emit_log(ctx, "warning", "Model listing unparseable", extra={"error": str(exc)})
            return fallback.model_dump()
        return ModelCatalog(agent=agent, models=models).model_dump()

    tool_status = server.tool(
        name="get_status",
        description="Current Ralph loop status: iteration, activity, zombie flag and session statistics.",
    )(_get_status)

    tool_tasks = server.tool(
        name="get_tasks",
        description="Checklist tasks from the planning document, tagged with their phase.",
    )(_get_tasks)

    tool_files = server.tool(
        name="get_changed_files",
        description="Files with uncommitted changes in the working root (git status).",
    )(_get_changed_files)

    tool_logs = server.tool(
        name="get_logs",
        description="Full text of the loop runner log.",
    )(_get_logs)

    tool_clear = server.tool(
        name="clear_logs",
        description="Truncate the loop runner log.",
    )(_clear_logs)

    tool_start = server.tool(
        name="start_loop",
        description=(
            "Start the autonomous loop with a prompt, iteration limit, completion promise, "
            "agent (gemini or claude) and model. Set resume=true to continue without a prompt."
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Launches an autonomous coding agent in the working root",
            }
        },
    )(_start_loop)

    tool_stop = server.tool(
        name="stop_loop",
        description="Stop the running loop. Safe to call when nothing is running.",
    )(_stop_loop)

    tool_models = server.tool(
        name="list_models",
        description="Models available to an agent CLI; reports fallback=true when using built-in aliases.",
    )(_list_models)

    return ToolHandles(
        get_status=tool_status,
        get_tasks=tool_tasks,
        get_changed_files=tool_files,
        get_logs=tool_logs,
        clear_logs=tool_clear,
        start_loop=tool_start,
        stop_loop=tool_stop,
        list_models=tool_models,
    )


__all__ = [
    "FALLBACK_MODELS",
    "ToolHandles",
    "deactivate_frontmatter",
    "parse_model_listing",
    "parse_porcelain",
    "register_tools",
]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
