"""Per-connection shared state for WebSocket action handlers."""

from __future__ import annotations

import dataclasses
from typing import Any, Awaitable, Callable, Optional

from fastapi import WebSocket

from src.services.message_store import MessageStore
from src.services.workspace import InscribingWorkspace
from src.tools.dispatcher import ToolDispatcher


async def load_session_stage(session_id: str) -> Optional[str]:
    """Current stage of a session row, or None if the session does not exist."""
    from src.database import AsyncSessionLocal
    from src.models import SageSession

    async with AsyncSessionLocal() as db:
        row = await db.get(SageSession, session_id)
        return row.stage if row else None


@dataclasses.dataclass
class WsSessionContext:
    """Bundles all per-connection state that action handlers need.

    Created once per WebSocket connection in ``handler.py`` and passed to
    every action handler and the turn runner.
    """
    websocket: WebSocket
    session_id: str
    workspace: InscribingWorkspace
    dispatcher: ToolDispatcher
    sage: Any                       # SageClient
    message_store: MessageStore
    stage: str = "invoking"
    stage_loader: Callable[[str], Awaitable[Optional[str]]] = load_session_stage
    input_text: str = ""            # set by the chat handler
    action: str = ""                # current action name

    async def refresh_stage(self) -> str:
        """Re-read the stage; it can move via the REST API between turns."""
        stage = await self.stage_loader(self.session_id)
        if stage:
            self.stage = stage
        return self.stage
