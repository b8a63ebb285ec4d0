"""FastAPI application factory, CORS, and WebSocket connection manager."""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections import defaultdict
from typing import Dict, Set

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from src.config import get_settings
from src.utils.logging_config import get_logger

logger = get_logger("sage.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Ensure tables exist
    from src.database import engine
    from src.models import Base
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Sage Codex started")
    yield
    await engine.dispose()


settings = get_settings()

app = FastAPI(title=settings.app_name, version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Connection Manager ---
class ConnectionManager:
    """Open sockets grouped by Sage session (a session can be open in several tabs)."""

    def __init__(self):
        self.sessions: Dict[str, Set[WebSocket]] = defaultdict(set)

    async def connect(self, websocket: WebSocket, session_id: str) -> int:
        await websocket.accept()
        self.sessions[session_id].add(websocket)
        return len(self.sessions[session_id])

    def disconnect(self, websocket: WebSocket, session_id: str):
        sockets = self.sessions.get(session_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.sessions[session_id]

    def connection_count(self, session_id: str) -> int:
        return len(self.sessions.get(session_id, ()))

    async def send_json(self, message: dict, websocket: WebSocket):
        await websocket.send_json(message)


manager = ConnectionManager()
