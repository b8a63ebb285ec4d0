"""
Inbound WebSocket messages for the Sage panel.

A raw frame goes through ``parse_ws_message``: size limit, JSON decode, the
``WsMessage`` envelope, then the action's payload model. Any failure raises
``InboundMessageError`` carrying the error code sent back to the client.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("sage.schemas.ws_messages")

MAX_MESSAGE_BYTES = 65_536  # 64 KB, checked on the raw text before JSON parsing
MAX_CHAT_CHARS = 32_000

# Error codes sent as {"type": "error", "code": ..., "message": ...}
MESSAGE_TOO_LARGE = "MESSAGE_TOO_LARGE"
INVALID_JSON = "INVALID_JSON"
INVALID_FORMAT = "INVALID_FORMAT"
UNKNOWN_ACTION = "UNKNOWN_ACTION"
INVALID_PAYLOAD = "INVALID_PAYLOAD"
SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
LLM_ERROR = "LLM_ERROR"


class InboundMessageError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def as_event(self) -> dict:
        return error_event(self.code, self.message)


def error_event(code: str, message: str) -> dict:
    return {"type": "error", "code": code, "message": message}


class WsMessage(BaseModel):
    """Top-level envelope: ``{"action": ..., "payload": {...}}``."""
    action: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class ChatPayload(BaseModel):
    message: str = Field(..., min_length=1, max_length=MAX_CHAT_CHARS)


# restore and reset carry no payload
class EmptyPayload(BaseModel):
    pass


ACTION_PAYLOADS: dict[str, type[BaseModel]] = {
    "chat": ChatPayload,
    "restore": EmptyPayload,
    "reset": EmptyPayload,
}

VALID_ACTIONS = frozenset(ACTION_PAYLOADS)


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'message'}: {err['msg']}"
        for err in exc.errors()
    )


def validate_ws_payload(action: str, raw_payload: dict) -> dict:
    """Validate *raw_payload* for *action* and return the normalized dict."""
    schema = ACTION_PAYLOADS.get(action)
    if schema is None:
        raise InboundMessageError(UNKNOWN_ACTION, f"Unknown action: {action}")
    try:
        return schema.model_validate(raw_payload).model_dump()
    except ValidationError as exc:
        errors = _describe(exc)
        logger.info("ws_validation_failed | action=%s | errors=%s", action, errors)
        raise InboundMessageError(INVALID_PAYLOAD, f"Invalid payload for '{action}': {errors}") from exc


def parse_ws_message(data: str) -> tuple[str, dict]:
    """Turn one raw frame into ``(action, validated_payload)``."""
    if len(data.encode("utf-8", errors="replace")) > MAX_MESSAGE_BYTES:
        raise InboundMessageError(MESSAGE_TOO_LARGE, f"Message exceeds {MAX_MESSAGE_BYTES // 1024}KB limit")

    try:
        raw = json.loads(data)
    except ValueError as exc:
        raise InboundMessageError(INVALID_JSON, f"Malformed JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise InboundMessageError(INVALID_FORMAT, "Expected a JSON object")
    if raw.get("payload") is None:
        raw = {**raw, "payload": {}}

    try:
        envelope = WsMessage.model_validate(raw)
    except ValidationError as exc:
        raise InboundMessageError(INVALID_FORMAT, _describe(exc)) from exc

    return envelope.action, validate_ws_payload(envelope.action, envelope.payload)
