"""Handle the ``reset`` WebSocket action: drop the session's cached sections and pending events."""

from __future__ import annotations

from src.app import manager
from src.ws.actions import ActionResult
from src.ws.context import WsSessionContext


async def handle_reset(ctx: WsSessionContext, inner_data: dict) -> ActionResult:
    ctx.workspace.reset()
    await manager.send_json({"type": "status", "status": "reset"}, ctx.websocket)
    return ActionResult(needs_runner=False)
