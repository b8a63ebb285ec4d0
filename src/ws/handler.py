"""WebSocket entry point: connection lifecycle and per-message validation."""

from fastapi import WebSocket, WebSocketDisconnect

from src.app import manager
from src.schemas.ws_messages import SESSION_NOT_FOUND, InboundMessageError, error_event, parse_ws_message
from src.services.message_store import SqlMessageStore
from src.services.sage_client import SageClient
from src.services.workspace import create_sql_workspace, workspaces
from src.tools.dispatcher import build_inscribing_dispatcher
from src.utils.logging_config import get_logger
from src.ws.actions import ActionResult, get_action_dispatch
from src.ws.context import WsSessionContext, load_session_stage
from src.ws.runner import run_turn

_logger = get_logger("sage.ws.handler")


def build_context(websocket: WebSocket, session_id: str, stage: str) -> WsSessionContext:
    """Wire a connection to the session's workspace (shared across reconnects)."""
    workspace = workspaces.get_or_create(session_id, create_sql_workspace)
    return WsSessionContext(
        websocket=websocket,
        session_id=session_id,
        workspace=workspace,
        dispatcher=build_inscribing_dispatcher(workspace),
        sage=SageClient(),
        message_store=SqlMessageStore(),
        stage=stage,
    )


async def handle_message(ctx: WsSessionContext, data: str) -> None:
    """Validate and dispatch one raw WebSocket message."""
    ctx.action = ""  # Reset per-turn state

    try:
        action, payload = parse_ws_message(data)
    except InboundMessageError as e:
        await manager.send_json(e.as_event(), ctx.websocket)
        return

    ctx.action = action
    handler = get_action_dispatch()[action]
    result: ActionResult = await handler(ctx, payload)

    if result.needs_runner:
        await run_turn(ctx)


async def websocket_endpoint(websocket: WebSocket, session_id: str):
    """WebSocket entry point for one Sage session."""
    open_tabs = await manager.connect(websocket, session_id)

    stage = await load_session_stage(session_id)
    if stage is None:
        await manager.send_json(error_event(SESSION_NOT_FOUND, f"Session {session_id} not found"), websocket)
        manager.disconnect(websocket, session_id)
        await websocket.close(code=4404)
        return

    _logger.info(
        "WebSocket connected",
        extra={"session_id": session_id, "metadata": {"stage": stage, "open_tabs": open_tabs}},
    )
    ctx = build_context(websocket, session_id, stage)

    try:
        while True:
            data = await websocket.receive_text()
            await handle_message(ctx, data)
    except WebSocketDisconnect:
        manager.disconnect(websocket, session_id)
        _logger.info(
            "WebSocket disconnected",
            extra={"session_id": session_id, "metadata": {"open_tabs": manager.connection_count(session_id)}},
        )
    except Exception as e:
        _logger.exception("Fatal error in WebSocket loop", extra={"session_id": session_id})
        manager.disconnect(websocket, session_id)
        try:
            await manager.send_json({"type": "error", "message": str(e)}, websocket)
        except (WebSocketDisconnect, RuntimeError):
            _logger.debug("Could not report error; socket already closed", extra={"session_id": session_id})
