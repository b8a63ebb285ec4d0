"""Handle the ``chat`` WebSocket action: one user message, one Sage turn."""

from __future__ import annotations

from src.ws.actions import ActionResult
from src.ws.context import WsSessionContext


async def handle_chat(ctx: WsSessionContext, inner_data: dict) -> ActionResult:
    ctx.input_text = inner_data["message"]
    await ctx.refresh_stage()
    return ActionResult(needs_runner=True)
