"""ASGI application: live WebSocket channel, health check and the mounted MCP app."""

from __future__ import annotations

import contextlib
import json
import logging
from typing import Any, AsyncIterator

import anyio
from anyio import CancelScope
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from .context import RalphContext
from .sync import ChangeBridge, HubEvent, Subscription

logger = logging.getLogger(__name__)


def _is_ping(message: str) -> bool:
    text = message.strip()
    if text == "ping":
        return True
    try:
        payload = json.loads(text)
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get("type") == "ping"


async def _pump_events(websocket: WebSocket, subscription: Subscription, scope: CancelScope) -> None:
    try:
        while True:
            event = await subscription.next_event()
            await websocket.send_json(event.as_message())
    except WebSocketDisconnect:
        scope.cancel()


async def _read_requests(websocket: WebSocket, subscription: Subscription, scope: CancelScope) -> None:
    try:
        while True:
            message = await websocket.receive_text()
            if _is_ping(message):
                subscription.deliver(HubEvent(type="pong"))
    except WebSocketDisconnect:
        scope.cancel()


def websocket_endpoint(context: RalphContext):
    async def endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        subscription = context.hub.subscribe()
        try:
            snapshot = HubEvent(type="status", data=context.status_snapshot())
            await websocket.send_json(snapshot.as_message())

            # Whichever loop ends first (normally the reader on disconnect) cancels the other.
            async with anyio.create_task_group() as group:
                group.start_soon(_pump_events, websocket, subscription, group.cancel_scope)
                group.start_soon(_read_requests, websocket, subscription, group.cancel_scope)
        except WebSocketDisconnect:
            pass
        finally:
            context.hub.unsubscribe(subscription)

    return endpoint


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def create_app(
    context: RalphContext,
    *,
    mcp_app: Any = None,
    watch: bool = True,
) -> Starlette:
    """Build the ASGI app around ``context``.

    ``mcp_app`` is the FastMCP HTTP app; its lifespan is chained so the MCP
    session manager starts with the server. With ``watch`` the change bridge
    runs for the lifetime of the app.
    """

    routes = [
        Route("/api/health", health, methods=["GET"]),
        WebSocketRoute("/ws", websocket_endpoint(context)),
    ]
    if mcp_app is not None:
        routes.append(Mount("/", app=mcp_app))

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        bridge = ChangeBridge(context) if watch else None
        async with contextlib.AsyncExitStack() as stack:
            if mcp_app is not None:
                await stack.enter_async_context(mcp_app.lifespan(app))
            if bridge is not None:
                bridge.start()
                stack.push_async_callback(bridge.stop)
            app.state.bridge = bridge
            yield

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.context = context
    return app


__all__ = ["create_app", "health", "websocket_endpoint"]
