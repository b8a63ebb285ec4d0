"""
Tool call dispatcher for the Sage.

Receives the function calls from one LLM response and, for each one:
1. Emits a ``tool:start`` event
2. Decodes the input against the tool's schema (if one was registered) and
   runs the handler, or returns an error result
3. Emits a ``tool:end`` event
4. Builds a ``ToolResult`` to send back to the model on the next round

Validation happens here, before any handler code runs, so a rejected call can
never touch the section cache, the event queues or the state row.
"""

from __future__ import annotations

import dataclasses
import json
import time
import uuid
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from src.schemas import events
from src.schemas.events import SageEvent
from src.schemas.inscribing import decode_tool_input
from src.utils.logging_config import get_logger

logger = get_logger("sage.tools.dispatcher")


@dataclasses.dataclass
class ToolContext:
    session_id: str
    stage: str = "inscribing"
    turn_id: Optional[str] = None


@dataclasses.dataclass
class ToolOutcome:
    result: Any
    is_error: bool = False


@dataclasses.dataclass
class ToolCall:
    name: str
    input: dict
    id: str = dataclasses.field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")


@dataclasses.dataclass
class ToolResult:
    tool_use_id: str
    name: str
    content: str
    is_error: bool = False

    def as_response(self) -> dict:
        """Payload for a Gemini ``function_response`` part."""
        if self.is_error:
            return {"error": self.content}
        return {"output": self.content}


@dataclasses.dataclass
class DispatchResult:
    events: list[SageEvent]
    tool_results: list[ToolResult]


# Handlers get either the decoded pydantic model or the raw dict
ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolOutcome]]


@dataclasses.dataclass
class _Registration:
    handler: ToolHandler
    input_model: Optional[type[BaseModel]] = None


class ToolDispatcher:
    """Registry of named tool handlers plus sequential dispatch."""

    def __init__(self) -> None:
        self._handlers: dict[str, _Registration] = {}

    def register(self, name: str, handler: ToolHandler, input_model: Optional[type[BaseModel]] = None) -> None:
        self._handlers[name] = _Registration(handler, input_model)

    def unregister(self, name: str) -> None:
        self._handlers.pop(name, None)

    def clear(self) -> None:
        self._handlers.clear()

    def names(self) -> list[str]:
        return list(self._handlers)

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    async def dispatch(self, calls: list[ToolCall], context: ToolContext) -> DispatchResult:
        """Run every call in order and collect lifecycle events and results."""
        dispatched: list[SageEvent] = []
        results: list[ToolResult] = []

        for call in calls:
            dispatched.append(events.tool_start(call.id, call.name, call.input))

            outcome = await self.execute(call, context)

            dispatched.append(events.tool_end(call.id, call.name, outcome.result, outcome.is_error))
            results.append(ToolResult(
                tool_use_id=call.id,
                name=call.name,
                content=outcome.result if isinstance(outcome.result, str) else json.dumps(outcome.result, default=str),
                is_error=outcome.is_error,
            ))

        return DispatchResult(events=dispatched, tool_results=results)

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolOutcome:
        """Run a single tool call, converting failures into error outcomes."""
        registration = self._handlers.get(call.name)
        if registration is None:
            return ToolOutcome(
                f'Unknown tool: "{call.name}". This tool is not yet implemented.',
                is_error=True,
            )

        payload: Any = call.input
        if registration.input_model is not None:
            payload, error = decode_tool_input(call.name, call.input, registration.input_model)
            if error is not None:
                return ToolOutcome(error, is_error=True)

        started = time.monotonic()
        try:
            outcome = await registration.handler(payload, context)
        except Exception as e:
            logger.exception(
                "Tool handler raised",
                extra={"session_id": context.session_id, "turn_id": context.turn_id, "tool": call.name},
            )
            return ToolOutcome(f'Tool "{call.name}" failed: {str(e) or type(e).__name__}', is_error=True)

        logger.debug(
            "Tool %s finished", call.name,
            extra={
                "session_id": context.session_id,
                "turn_id": context.turn_id,
                "tool": call.name,
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
            },
        )
        return outcome


def build_inscribing_dispatcher(workspace) -> ToolDispatcher:
    """Dispatcher with every Inscribing and propagation tool bound to *workspace*."""
    from src.tools.inscribing import register_inscribing_tools
    from src.tools.inscribing_propagation import register_propagation_tools

    dispatcher = ToolDispatcher()
    register_inscribing_tools(dispatcher, workspace)
    register_propagation_tools(dispatcher, workspace)
    return dispatcher
