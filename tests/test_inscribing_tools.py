"""Tests for the Inscribing stage tool handlers."""

import asyncio
from unittest.mock import patch

import pytest

from src.services.persistence import SECTIONS_KEY, StatePersistence
from src.services.workspace import InscribingWorkspace
from src.tools.dispatcher import ToolCall, ToolContext, build_inscribing_dispatcher
from tests.helpers import SESSION_ID, FailingRepository

ARC = "arc-1"

WAVE_1 = [
    {"sectionId": "overview", "content": "A storm over the harbor."},
    {"sectionId": "setup", "content": "Aldric stands at the gate."},
    {"sectionId": "developments", "content": "Aldric reveals the secret."},
]

# Valid input for every handler, used to derive the missing-field cases
VALID_INPUTS = {
    "update_section": {"sceneArcId": ARC, "sectionId": "setup", "content": "text"},
    "set_wave": {"sceneArcId": ARC, "wave": 1, "sections": WAVE_1},
    "invalidate_wave3": {"sceneArcId": ARC, "reason": "Setup changed"},
    "warn_balance": {"sceneArcId": ARC, "message": "Too many adversaries"},
    "set_entity_npcs": {"sceneArcId": ARC, "npcs": [{"name": "Aldric"}]},
    "set_entity_adversaries": {"sceneArcId": ARC, "adversaries": [{"name": "Bog Wraith"}]},
    "set_entity_items": {"sceneArcId": ARC, "items": [{"name": "Lantern"}]},
    "set_entity_portents": {"sceneArcId": ARC, "categories": [{"name": "Omens"}]},
    "propagate_rename": {"sceneArcId": ARC, "oldName": "Aldric", "newName": "Theron"},
    "propagate_semantic": {"sceneArcId": ARC, "entityName": "Aldric", "changeType": "role"},
    "propagate_entity_change": {"sceneArcId": ARC, "entityName": "Aldric", "changeType": "role"},
}

MISSING_FIELD_CASES = [
    (tool, field)
    for tool, valid in VALID_INPUTS.items()
    for field in valid
]


def persisted_sections(repository, arc=ARC):
    return repository.rows[SESSION_ID][SECTIONS_KEY].get(arc)


class TestValidationFirst:

    @pytest.mark.parametrize("tool,field", MISSING_FIELD_CASES)
    def test_missing_field_has_no_side_effects(self, tool, field, workspace, repository, run_tool):
        workspace.sections.cache_section(ARC, "setup", "Aldric stands guard.")
        tool_input = {k: v for k, v in VALID_INPUTS[tool].items() if k != field}

        outcome = run_tool(tool, **tool_input)

        assert outcome.is_error
        assert outcome.result.endswith(f"for {tool}")
        assert len(workspace.sections) == 1
        assert workspace.sections.get_content(ARC, "setup") == "Aldric stands guard."
        assert workspace.drain_turn_events() == []
        assert repository.fetches == 0
        assert repository.writes == []


class TestUpdateSection:

    def test_success(self, workspace, run_tool):
        outcome = run_tool("update_section", sceneArcId=ARC, sectionId="setup", content="The gate holds.")

        assert not outcome.is_error
        assert outcome.result == {"status": "section_updated", "sceneArcId": ARC, "sectionId": "setup"}
        assert workspace.sections.get_content(ARC, "setup") == "The gate holds."
        assert workspace.drain_turn_events() == [{
            "type": "panel:section",
            "data": {"sceneArcId": ARC, "sectionId": "setup", "content": "The gate holds.", "streaming": False},
        }]

    def test_repeat_is_idempotent_but_events_are_not_deduplicated(self, workspace, run_tool):
        run_tool("update_section", sceneArcId=ARC, sectionId="setup", content="Same.")
        run_tool("update_section", sceneArcId=ARC, sectionId="setup", content="Same.")

        assert [(s.section_id, s.content) for s in workspace.sections.get_sections_for_arc(ARC)] == [("setup", "Same.")]
        assert len(workspace.drain_turn_events()) == 2

    def test_patch_is_skipped_until_the_wave_exists(self, repository, run_tool):
        with patch("src.tools.inscribing.logger") as logger:
            outcome = run_tool("update_section", sceneArcId=ARC, sectionId="setup", content="x")

        assert not outcome.is_error
        assert repository.writes == []
        logger.debug.assert_called_once()
        logger.warning.assert_not_called()

    def test_patches_persisted_section_after_wave(self, repository, run_tool):
        run_tool("set_wave", sceneArcId=ARC, wave=1, sections=WAVE_1)
        run_tool("update_section", sceneArcId=ARC, sectionId="setup", content="Rewritten.")

        stored = {r["id"]: r["content"] for r in persisted_sections(repository)}
        assert stored == {
            "overview": "A storm over the harbor.",
            "setup": "Rewritten.",
            "developments": "Aldric reveals the secret.",
        }

    def test_empty_content_is_written(self, workspace, run_tool):
        outcome = run_tool("update_section", sceneArcId=ARC, sectionId="gm_notes", content="")
        assert not outcome.is_error
        assert workspace.sections.get_content(ARC, "gm_notes") == ""


class TestSetWave:

    def test_success(self, workspace, repository, run_tool):
        outcome = run_tool("set_wave", sceneArcId=ARC, wave=1, sections=WAVE_1)

        assert outcome.result == {"status": "wave_populated", "sceneArcId": ARC, "wave": 1, "sectionCount": 3}
        assert workspace.sections.get_content(ARC, "developments") == "Aldric reveals the secret."

        [event] = workspace.drain_turn_events()
        assert event["type"] == "panel:sections"
        assert event["data"]["wave"] == 1
        assert [s["hasDetail"] for s in event["data"]["sections"]] == [False, True, True]
        assert [s["label"] for s in event["data"]["sections"]] == ["Overview", "Setup", "Developments"]

        assert persisted_sections(repository) == event["data"]["sections"]

    def test_other_arcs_survive(self, repository, run_tool):
        run_tool("set_wave", sceneArcId="arc-a", wave=1, sections=WAVE_1)
        run_tool("set_wave", sceneArcId="arc-b", wave=2, sections=[
            {"sectionId": "npcs_present", "content": "Mira"},
        ])

        arcs = repository.rows[SESSION_ID][SECTIONS_KEY]
        assert [r["id"] for r in arcs["arc-a"]] == ["overview", "setup", "developments"]
        assert [r["id"] for r in arcs["arc-b"]] == ["npcs_present"]

    def test_section_from_another_wave_is_rejected(self, workspace, run_tool):
        outcome = run_tool("set_wave", sceneArcId=ARC, wave=3, sections=WAVE_1)
        assert outcome.is_error
        assert outcome.result == "section overview does not belong to wave 3 for set_wave"
        assert len(workspace.sections) == 0


class TestSignals:

    def test_invalidate_wave3(self, workspace, repository, run_tool):
        outcome = run_tool("invalidate_wave3", sceneArcId=ARC, reason="Setup changed")

        assert outcome.result == {"status": "wave3_invalidated", "sceneArcId": ARC, "reason": "Setup changed"}
        assert workspace.drain_turn_events() == [
            {"type": "panel:wave3_invalidated", "data": {"sceneArcId": ARC, "reason": "Setup changed"}},
        ]
        assert repository.fetches == 0

    def test_warn_balance_with_section(self, workspace, run_tool):
        outcome = run_tool("warn_balance", sceneArcId=ARC, message="Too deadly", sectionId="adversaries")

        assert outcome.result == {"status": "balance_warning_sent", "sceneArcId": ARC, "message": "Too deadly"}
        assert workspace.drain_turn_events()[0]["data"] == {
            "sceneArcId": ARC, "message": "Too deadly", "sectionId": "adversaries",
        }

    def test_warn_balance_without_section_omits_key(self, workspace, run_tool):
        run_tool("warn_balance", sceneArcId=ARC, message="Too easy")
        assert "sectionId" not in workspace.drain_turn_events()[0]["data"]


class TestEntityTools:

    @pytest.mark.parametrize("tool,field,section_id,record_field,event_type,status", [
        ("set_entity_npcs", "npcs", "npcs_present", "entityNPCs", "panel:entity_npcs", "entity_npcs_set"),
        ("set_entity_adversaries", "adversaries", "adversaries", "entityAdversaries",
         "panel:entity_adversaries", "entity_adversaries_set"),
        ("set_entity_items", "items", "items", "entityItems", "panel:entity_items", "entity_items_set"),
        ("set_entity_portents", "categories", "portents", "entityPortents",
         "panel:entity_portents", "entity_portents_set"),
    ])
    def test_sets_entities(self, tool, field, section_id, record_field, event_type, status,
                           workspace, repository, run_tool):
        wave = 3 if section_id == "portents" else 2
        run_tool("set_wave", sceneArcId=ARC, wave=wave, sections=[{"sectionId": section_id, "content": "prose"}])
        workspace.drain_turn_events()

        entities = [{"name": "one"}, {"name": "two"}]
        outcome = run_tool(tool, sceneArcId=ARC, **{field: entities})

        assert outcome.result == {"status": status, "sceneArcId": ARC, "count": 2}
        assert workspace.drain_turn_events() == [{"type": event_type, "data": {"sceneArcId": ARC, field: entities}}]

        [stored] = persisted_sections(repository)
        assert stored[record_field] == entities
        assert stored["content"] == "prose"

    def test_empty_list_counts_zero(self, run_tool):
        outcome = run_tool("set_entity_items", sceneArcId=ARC, items=[])
        assert outcome.result["count"] == 0

    def test_entities_do_not_touch_cache(self, workspace, run_tool):
        run_tool("set_entity_npcs", sceneArcId=ARC, npcs=[{"name": "Aldric"}])
        assert len(workspace.sections) == 0


class TestPersistenceFailureTolerance:

    @pytest.fixture
    def failing(self):
        repo = FailingRepository()
        workspace = InscribingWorkspace(SESSION_ID, StatePersistence(repo, timeout_seconds=1.0))
        dispatcher = build_inscribing_dispatcher(workspace)

        def run(name, **tool_input):
            return asyncio.run(dispatcher.execute(ToolCall(name, tool_input), ToolContext(SESSION_ID)))

        return workspace, repo, run

    @pytest.mark.parametrize("tool", [
        "update_section", "set_wave",
        "set_entity_npcs", "set_entity_adversaries", "set_entity_items", "set_entity_portents",
    ])
    def test_success_status_despite_fetch_error(self, tool, failing):
        workspace, repo, run = failing
        with patch("src.tools.inscribing.logger") as logger:
            outcome = run(tool, **VALID_INPUTS[tool])

        assert outcome.is_error is False
        assert outcome.result["status"].endswith(("_updated", "_populated", "_set"))
        assert repo.fetches == 1
        assert len(workspace.drain_turn_events()) == 1
        logger.warning.assert_called_once()
        assert "database unreachable" in logger.warning.call_args.args

    def test_cache_is_updated_even_when_persistence_fails(self, failing):
        workspace, _, run = failing
        run("update_section", sceneArcId=ARC, sectionId="setup", content="Still live.")
        assert workspace.sections.get_content(ARC, "setup") == "Still live."


class TestWithoutPersistence:

    def test_handlers_work_with_no_adapter(self):
        workspace = InscribingWorkspace(SESSION_ID)
        dispatcher = build_inscribing_dispatcher(workspace)
        outcome = asyncio.run(dispatcher.execute(
            ToolCall("set_wave", VALID_INPUTS["set_wave"]), ToolContext(SESSION_ID),
        ))
        assert outcome.result["status"] == "wave_populated"
        assert len(workspace.sections) == 3
