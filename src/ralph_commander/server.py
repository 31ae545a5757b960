"""FastMCP server bootstrap for Ralph Commander."""

import json
import logging
from typing import Any, Optional

import uvicorn
from fastmcp import Context, FastMCP

from . import __version__
from .config import RalphSettings, get_settings
from .context import RalphContext
from .runtime import CommandRunner
from .tools import register_tools
from .web import create_app


def configure_logging(level: str) -> None:
    """Configure root logging for the Ralph Commander server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def status_payload(
    context: RalphContext,
    runner_metadata: dict[str, Any],
    *,
    request_id: Optional[str] = None,
) -> dict[str, Any]:
    settings = context.settings
    return {
        "server_version": __version__,
        "root": str(settings.root),
        "runner": runner_metadata,
        "subscribers": context.hub.subscriber_count,
        "status": context.status_snapshot().model_dump(mode="json"),
        "request_id": request_id,
    }


def create_server(
    settings: Optional[RalphSettings] = None,
    runner: CommandRunner | None = None,
    context: RalphContext | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server around a server-lifetime context."""

    if context is None:
        settings = settings or get_settings()
        context = RalphContext.from_settings(settings, runner=runner)
    settings = context.settings

    runner_metadata = {
        "script": str(context.runner.runner_script),
        "available": settings.runner_path.is_file(),
    }

    server = FastMCP(
        name="Ralph Commander",
        version=__version__,
        instructions=(
            "Ralph Commander monitors and controls an autonomous coding-agent loop. "
            "Use the tools to read loop status, tasks, logs and changed files, and to "
            "start or stop the loop."
        ),
    )

    handles = register_tools(server, context=context)

    @server.resource(
        "resource://ralph/status",
        name="ralph_status",
        title="Ralph Loop Status",
        description="Current loop status snapshot with session statistics.",
        mime_type="application/json",
        tags={"status", "loop"},
    )
    def status_resource(ctx: Context) -> str:
        """Return a JSON string with the status snapshot and server metadata."""

        payload = status_payload(context, runner_metadata, request_id=getattr(ctx, "request_id", None))
        return json.dumps(payload)

    setattr(server, "ralph_context", context)
    setattr(server, "runner_metadata", runner_metadata)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the Ralph Commander server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    context: RalphContext = getattr(server, "ralph_context")
    app = create_app(context, mcp_app=server.http_app(path="/mcp"))
    logging.getLogger(__name__).info(
        "Launching Ralph Commander",
        extra={
            "version": __version__,
            "root": str(settings.root),
            "host": settings.host,
            "port": settings.port,
            "runner_available": getattr(server, "runner_metadata", {}).get("available"),
        },
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
