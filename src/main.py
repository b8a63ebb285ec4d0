from dotenv import load_dotenv
load_dotenv()

from fastapi import WebSocket

from src.app import app
from src.routers.sessions import router as sessions_router
from src.ws.handler import websocket_endpoint as _ws_handler

app.include_router(sessions_router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.websocket("/ws/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str):
    await _ws_handler(websocket, session_id)
