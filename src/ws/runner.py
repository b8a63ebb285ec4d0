"""Turn runner: one conversational turn with the Sage, including tool rounds."""

from __future__ import annotations

import uuid

from google.genai import errors, types

from src.app import manager
from src.config import get_settings
from src.schemas import events
from src.schemas.ws_messages import LLM_ERROR, error_event
from src.services.message_store import StoredMessage
from src.services.sage_client import (
    response_content,
    response_function_calls,
    response_text,
    usage_tokens,
)
from src.services.state_digest import build_state_digest
from src.services.system_prompt import build_system_prompt
from src.tools.definitions import get_tools_for_stage
from src.tools.dispatcher import ToolCall, ToolContext
from src.utils.logging_config import ContextAdapter, get_logger
from src.ws.context import WsSessionContext

_logger = get_logger("sage.ws.runner")


async def run_turn(ctx: WsSessionContext) -> None:
    """Run the Sage on ``ctx.input_text`` and stream everything to the client.

    Called by the WebSocket handler when an action returns
    ``ActionResult(needs_runner=True)``. Each round sends the model's text as
    ``chat:delta``; function calls are dispatched, their ``tool:*`` events and
    the drained panel events are streamed, and the function responses go back
    to the model for the next round.
    """
    settings = get_settings()
    log = ContextAdapter(_logger, session_id=ctx.session_id)

    history = await _load_history(ctx, settings.history_message_limit)
    contents = history + [types.Content(role="user", parts=[types.Part(text=ctx.input_text)])]
    await _store(ctx, StoredMessage("user", ctx.input_text, ctx.stage))

    adventure_state = await _adventure_state(ctx, settings.state_digest_max_characters)
    config = ctx.sage.build_config(
        build_system_prompt(ctx.stage, adventure_state), get_tools_for_stage(ctx.stage)
    )
    tool_context = ToolContext(session_id=ctx.session_id, stage=ctx.stage, turn_id=uuid.uuid4().hex)
    log = log.bind(turn_id=tool_context.turn_id)

    message_id = f"msg_{uuid.uuid4().hex[:12]}"
    await manager.send_json(events.chat_start(message_id), ctx.websocket)

    buffer = ""
    tool_log: list[dict] = []
    input_tokens = output_tokens = 0

    for round_number in range(settings.max_tool_rounds):
        try:
            response = await ctx.sage.generate(contents, config)
        except errors.APIError as e:
            log.exception("Sage generation failed", extra={"metadata": {"round": round_number}})
            await manager.send_json(error_event(LLM_ERROR, str(e)), ctx.websocket)
            break

        used_in, used_out = usage_tokens(response)
        input_tokens += used_in
        output_tokens += used_out

        text = response_text(response)
        if text:
            buffer += text
            await manager.send_json(events.chat_delta(message_id, text), ctx.websocket)

        function_calls = response_function_calls(response)
        if not function_calls:
            break

        model_content = response_content(response)
        if model_content is not None:
            contents.append(model_content)

        calls = [_to_tool_call(fc) for fc in function_calls]
        # Other tabs of this session share the workspace queues
        async with ctx.workspace.turn_lock:
            dispatched = await ctx.dispatcher.dispatch(calls, tool_context)
            panel_events = ctx.workspace.drain_turn_events()

        for event in dispatched.events:
            await manager.send_json(event, ctx.websocket)
        for event in panel_events:
            await manager.send_json(event, ctx.websocket)

        tool_log.extend({"name": c.name, "input": c.input} for c in calls)
        contents.append(types.Content(role="user", parts=[
            types.Part.from_function_response(name=result.name, response=result.as_response())
            for result in dispatched.tool_results
        ]))
    else:
        log.warning(
            "Tool round limit reached",
            extra={"metadata": {"max_tool_rounds": settings.max_tool_rounds}},
        )

    await manager.send_json(events.chat_end(message_id, input_tokens, output_tokens), ctx.websocket)

    if buffer or tool_log:
        await _store(ctx, StoredMessage("model", buffer, ctx.stage, tool_log or None))

    log.info(
        "Turn complete",
        extra={"metadata": {"chars": len(buffer), "tool_calls": len(tool_log),
                            "input_tokens": input_tokens, "output_tokens": output_tokens}},
    )


def _to_tool_call(function_call: types.FunctionCall) -> ToolCall:
    args = dict(function_call.args or {})
    if function_call.id:
        return ToolCall(name=function_call.name, input=args, id=function_call.id)
    return ToolCall(name=function_call.name, input=args)


async def _load_history(ctx: WsSessionContext, limit: int) -> list[types.Content]:
    try:
        stored = await ctx.message_store.history(ctx.session_id, limit)
    except Exception as e:
        _logger.warning("Failed to load chat history: %s", e, extra={"session_id": ctx.session_id})
        return []
    return [
        types.Content(role=m.role, parts=[types.Part(text=m.content)])
        for m in stored
        if m.content
    ]


async def _store(ctx: WsSessionContext, message: StoredMessage) -> None:
    try:
        await ctx.message_store.append(ctx.session_id, message)
    except Exception as e:
        _logger.warning(
            "Failed to store %s message: %s", message.role, e,
            extra={"session_id": ctx.session_id},
        )


async def _adventure_state(ctx: WsSessionContext, max_characters: int) -> str:
    state = None
    if ctx.workspace.persistence is not None:
        state = await ctx.workspace.persistence.load(ctx.session_id)
    return build_state_digest(state, ctx.workspace.sections, max_characters)
