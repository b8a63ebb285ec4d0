"""Handle the ``restore`` WebSocket action: reload cached sections from the state row."""

from __future__ import annotations

from src.app import manager
from src.ws.actions import ActionResult
from src.ws.context import WsSessionContext


async def handle_restore(ctx: WsSessionContext, inner_data: dict) -> ActionResult:
    state = None
    if ctx.workspace.persistence is not None:
        state = await ctx.workspace.persistence.load(ctx.session_id)

    count = ctx.workspace.restore(state)
    await manager.send_json({"type": "status", "status": "restored", "sections": count}, ctx.websocket)
    return ActionResult(needs_runner=False)
