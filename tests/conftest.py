"""Shared fixtures: an in-memory state row, a workspace bound to it, and its dispatcher."""

import asyncio

import pytest

from src.services.persistence import StatePersistence
from src.services.workspace import InscribingWorkspace
from src.tools.dispatcher import ToolCall, ToolContext, build_inscribing_dispatcher
from tests.helpers import SESSION_ID, RecordingRepository


@pytest.fixture
def repository():
    return RecordingRepository({SESSION_ID: {"inscribingSections": {}}})


@pytest.fixture
def workspace(repository):
    return InscribingWorkspace(SESSION_ID, StatePersistence(repository, timeout_seconds=1.0))


@pytest.fixture
def dispatcher(workspace):
    return build_inscribing_dispatcher(workspace)


@pytest.fixture
def context():
    return ToolContext(session_id=SESSION_ID)


@pytest.fixture
def run_tool(dispatcher, context):
    """Execute one tool call synchronously and return its ``ToolOutcome``."""
    def _run(name, **tool_input):
        return asyncio.run(dispatcher.execute(ToolCall(name, tool_input), context))
    return _run
