"""Tests for tool registration, dispatch and the decode-before-handler step."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

from src.schemas.inscribing import InvalidateWave3Input
from src.tools.dispatcher import ToolCall, ToolContext, ToolDispatcher, ToolOutcome, build_inscribing_dispatcher
from src.services.workspace import InscribingWorkspace

CONTEXT = ToolContext(session_id="s1")


def run(dispatcher, calls):
    return asyncio.run(dispatcher.dispatch(calls, CONTEXT))


class TestRegistration:

    def test_register_and_unregister(self):
        dispatcher = ToolDispatcher()
        handler = AsyncMock(return_value=ToolOutcome("ok"))
        dispatcher.register("echo", handler)
        assert "echo" in dispatcher
        dispatcher.unregister("echo")
        assert "echo" not in dispatcher

    def test_inscribing_dispatcher_registers_every_tool(self):
        dispatcher = build_inscribing_dispatcher(InscribingWorkspace("s1"))
        assert sorted(dispatcher.names()) == sorted([
            "update_section", "set_wave", "invalidate_wave3", "warn_balance",
            "set_entity_npcs", "set_entity_adversaries", "set_entity_items", "set_entity_portents",
            "propagate_rename", "propagate_semantic", "propagate_entity_change",
        ])


class TestDispatch:

    def test_lifecycle_events_and_results(self):
        dispatcher = ToolDispatcher()
        dispatcher.register("echo", AsyncMock(return_value=ToolOutcome({"status": "ok"})))

        result = run(dispatcher, [ToolCall("echo", {"a": 1}, id="call_1")])

        assert result.events == [
            {"type": "tool:start", "data": {"toolUseId": "call_1", "toolName": "echo", "input": {"a": 1}}},
            {"type": "tool:end", "data": {"toolUseId": "call_1", "toolName": "echo",
                                          "result": {"status": "ok"}, "isError": False}},
        ]
        assert result.tool_results[0].tool_use_id == "call_1"
        assert json.loads(result.tool_results[0].content) == {"status": "ok"}
        assert result.tool_results[0].as_response() == {"output": '{"status": "ok"}'}

    def test_calls_run_in_order(self):
        seen = []

        async def record(payload, context):
            seen.append(payload["n"])
            return ToolOutcome("done")

        dispatcher = ToolDispatcher()
        dispatcher.register("record", record)
        run(dispatcher, [ToolCall("record", {"n": n}) for n in range(3)])
        assert seen == [0, 1, 2]

    def test_unknown_tool(self):
        result = run(ToolDispatcher(), [ToolCall("summon_dragon", {})])
        tool_result = result.tool_results[0]
        assert tool_result.is_error
        assert tool_result.content == 'Unknown tool: "summon_dragon". This tool is not yet implemented.'
        assert tool_result.as_response() == {"error": tool_result.content}

    def test_handler_exception_becomes_error_result(self):
        async def explode(payload, context):
            raise KeyError("boom")

        dispatcher = ToolDispatcher()
        dispatcher.register("explode", explode)
        with patch("src.tools.dispatcher.logger") as logger:
            outcome = asyncio.run(dispatcher.execute(ToolCall("explode", {}), CONTEXT))
        assert outcome.is_error
        assert outcome.result == "Tool \"explode\" failed: 'boom'"
        logger.exception.assert_called_once()

    def test_exception_without_message_uses_type_name(self):
        async def explode(payload, context):
            raise RuntimeError()

        dispatcher = ToolDispatcher()
        dispatcher.register("explode", explode)
        outcome = asyncio.run(dispatcher.execute(ToolCall("explode", {}), CONTEXT))
        assert outcome.result == 'Tool "explode" failed: RuntimeError'

    def test_invalid_input_never_reaches_handler(self):
        handler = AsyncMock(return_value=ToolOutcome("ok"))
        dispatcher = ToolDispatcher()
        dispatcher.register("invalidate_wave3", handler, InvalidateWave3Input)

        outcome = asyncio.run(dispatcher.execute(ToolCall("invalidate_wave3", {"sceneArcId": "arc-1"}), CONTEXT))

        assert outcome.is_error
        assert outcome.result == "reason is required for invalidate_wave3"
        handler.assert_not_awaited()

    def test_handler_receives_decoded_model(self):
        handler = AsyncMock(return_value=ToolOutcome("ok"))
        dispatcher = ToolDispatcher()
        dispatcher.register("invalidate_wave3", handler, InvalidateWave3Input)

        asyncio.run(dispatcher.execute(
            ToolCall("invalidate_wave3", {"sceneArcId": "arc-1", "reason": "Setup changed"}), CONTEXT,
        ))

        payload, context = handler.await_args.args
        assert isinstance(payload, InvalidateWave3Input)
        assert payload.reason == "Setup changed"
        assert context is CONTEXT

    def test_string_results_are_passed_through(self):
        dispatcher = ToolDispatcher()
        dispatcher.register("say", AsyncMock(return_value=ToolOutcome("plain text")))
        result = run(dispatcher, [ToolCall("say", {})])
        assert result.tool_results[0].content == "plain text"

    def test_generated_call_ids_are_unique(self):
        assert ToolCall("a", {}).id != ToolCall("a", {}).id
