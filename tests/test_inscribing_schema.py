"""Tests for the section/wave model, stage order and the tool input decode step."""

import pytest

from src.schemas.inscribing import (
    DETAIL_SECTIONS,
    SECTION_IDS,
    SECTION_WAVE,
    STAGES,
    TOOL_INPUTS,
    WAVE_SECTIONS,
    SectionRecord,
    SetWaveInput,
    UpdateSectionInput,
    decode_tool_input,
    next_stage,
)


# ---------------------------------------------------------------------------
# Waves and sections
# ---------------------------------------------------------------------------

class TestWavePartition:

    def test_union_of_waves_is_all_nine_sections(self):
        union = set()
        for section_ids in WAVE_SECTIONS.values():
            union |= set(section_ids)
        assert union == set(SECTION_IDS)
        assert len(SECTION_IDS) == 9

    def test_waves_do_not_overlap(self):
        total = sum(len(ids) for ids in WAVE_SECTIONS.values())
        assert total == 9
        assert all(len(ids) == 3 for ids in WAVE_SECTIONS.values())

    def test_every_section_maps_back_to_its_wave(self):
        for wave, section_ids in WAVE_SECTIONS.items():
            for section_id in section_ids:
                assert SECTION_WAVE[section_id] == wave

    def test_detail_sections(self):
        assert DETAIL_SECTIONS == {"setup", "developments", "transitions"}


class TestSectionRecord:

    def test_for_section_derives_label_and_detail(self):
        record = SectionRecord.for_section("setup", "The gate creaks.", 1).to_state()
        assert record == {
            "id": "setup",
            "label": "Setup",
            "content": "The gate creaks.",
            "wave": 1,
            "hasDetail": True,
        }

    def test_non_detail_section(self):
        record = SectionRecord.for_section("npcs_present", "", 2).to_state()
        assert record["hasDetail"] is False
        assert record["label"] == "NPCs Present"

    def test_entity_lists_survive_round_trip_through_state(self):
        raw = {
            "id": "items", "label": "Items", "content": "", "wave": 2,
            "hasDetail": False, "entityItems": [{"name": "Lantern"}],
        }
        assert SectionRecord.model_validate(raw).to_state() == raw


class TestStages:

    def test_order(self):
        assert STAGES == ("invoking", "attuning", "binding", "weaving", "inscribing", "delivering")

    def test_next_stage(self):
        assert next_stage("invoking") == "attuning"
        assert next_stage("inscribing") == "delivering"

    def test_last_stage_has_no_successor(self):
        assert next_stage("delivering") is None

    def test_unknown_stage_raises(self):
        with pytest.raises(ValueError):
            next_stage("summoning")


# ---------------------------------------------------------------------------
# Decode step
# ---------------------------------------------------------------------------

class TestDecodeToolInput:

    def test_every_tool_has_a_schema(self):
        assert set(TOOL_INPUTS) == {
            "update_section", "set_wave", "invalidate_wave3", "warn_balance",
            "set_entity_npcs", "set_entity_adversaries", "set_entity_items",
            "set_entity_portents", "propagate_rename", "propagate_semantic",
            "propagate_entity_change",
        }

    def test_valid_update_section(self):
        payload, error = decode_tool_input(
            "update_section", {"sceneArcId": "arc-1", "sectionId": "setup", "content": "text"}
        )
        assert error is None
        assert isinstance(payload, UpdateSectionInput)
        assert payload.scene_arc_id == "arc-1"
        assert payload.section_id == "setup"

    def test_empty_content_is_allowed(self):
        payload, error = decode_tool_input(
            "update_section", {"sceneArcId": "arc-1", "sectionId": "setup", "content": ""}
        )
        assert error is None
        assert payload.content == ""

    @pytest.mark.parametrize("missing", ["sceneArcId", "sectionId", "content"])
    def test_missing_field_message(self, missing):
        raw = {"sceneArcId": "arc-1", "sectionId": "setup", "content": "text"}
        del raw[missing]
        payload, error = decode_tool_input("update_section", raw)
        assert payload is None
        assert error == f"{missing} is required for update_section"

    def test_null_content_is_rejected(self):
        _, error = decode_tool_input(
            "update_section", {"sceneArcId": "arc-1", "sectionId": "setup", "content": None}
        )
        assert error == "content is required for update_section"

    def test_blank_scene_arc_is_rejected(self):
        _, error = decode_tool_input("invalidate_wave3", {"sceneArcId": "", "reason": "x"})
        assert error == "sceneArcId is required for invalidate_wave3"

    def test_unknown_section_id(self):
        _, error = decode_tool_input(
            "update_section", {"sceneArcId": "arc-1", "sectionId": "epilogue", "content": "x"}
        )
        assert error.startswith("sectionId must be one of overview, setup")
        assert error.endswith("for update_section")

    @pytest.mark.parametrize("wave", [None, 0, 4, "three"])
    def test_bad_wave(self, wave):
        raw = {"sceneArcId": "arc-1", "sections": [{"sectionId": "overview", "content": "x"}]}
        if wave is not None:
            raw["wave"] = wave
        _, error = decode_tool_input("set_wave", raw)
        assert error == "wave must be 1, 2, or 3 for set_wave"

    @pytest.mark.parametrize("sections", [[], None, "overview"])
    def test_bad_sections(self, sections):
        raw = {"sceneArcId": "arc-1", "wave": 1}
        if sections is not None:
            raw["sections"] = sections
        _, error = decode_tool_input("set_wave", raw)
        assert error == "sections array must not be empty for set_wave"

    def test_wave_section_entry_without_id(self):
        _, error = decode_tool_input(
            "set_wave", {"sceneArcId": "arc-1", "wave": 1, "sections": [{"content": "x"}]}
        )
        assert error == "sections[0].sectionId is required for set_wave"

    def test_section_outside_its_wave(self):
        _, error = decode_tool_input("set_wave", {
            "sceneArcId": "arc-1",
            "wave": 1,
            "sections": [{"sectionId": "overview", "content": "a"}, {"sectionId": "items", "content": "b"}],
        })
        assert error == "section items does not belong to wave 1 for set_wave"

    def test_valid_wave(self):
        payload, error = decode_tool_input("set_wave", {
            "sceneArcId": "arc-1",
            "wave": 3,
            "sections": [{"sectionId": "gm_notes", "content": "Run it loud."}],
        })
        assert error is None
        assert isinstance(payload, SetWaveInput)
        assert payload.sections[0].section_id == "gm_notes"

    @pytest.mark.parametrize("tool,field", [
        ("set_entity_npcs", "npcs"),
        ("set_entity_adversaries", "adversaries"),
        ("set_entity_items", "items"),
        ("set_entity_portents", "categories"),
    ])
    def test_entity_array_required(self, tool, field):
        _, missing = decode_tool_input(tool, {"sceneArcId": "arc-1"})
        _, not_a_list = decode_tool_input(tool, {"sceneArcId": "arc-1", field: "Aldric"})
        assert missing == f"{field} array is required for {tool}"
        assert not_a_list == missing

    def test_entity_array_is_not_deep_validated(self):
        payload, error = decode_tool_input("set_entity_npcs", {"sceneArcId": "arc-1", "npcs": [1, "two", {}]})
        assert error is None
        assert payload.npcs == [1, "two", {}]

    def test_scene_arc_checked_before_array(self):
        _, error = decode_tool_input("set_entity_items", {"items": []})
        assert error == "sceneArcId is required for set_entity_items"

    def test_warn_balance_blank_section_is_dropped(self):
        payload, error = decode_tool_input(
            "warn_balance", {"sceneArcId": "arc-1", "message": "Too many foes", "sectionId": ""}
        )
        assert error is None
        assert payload.section_id is None

    def test_semantic_values_are_optional(self):
        payload, error = decode_tool_input(
            "propagate_semantic", {"sceneArcId": "arc-1", "entityName": "Aldric", "changeType": "role"}
        )
        assert error is None
        assert payload.old_value == ""
        assert payload.new_value == ""

    @pytest.mark.parametrize("missing", ["sceneArcId", "oldName", "newName"])
    def test_rename_required_fields(self, missing):
        raw = {"sceneArcId": "arc-1", "oldName": "Aldric", "newName": "Theron"}
        del raw[missing]
        _, error = decode_tool_input("propagate_rename", raw)
        assert error == f"{missing} is required for propagate_rename"

    def test_unknown_fields_are_ignored(self):
        payload, error = decode_tool_input(
            "invalidate_wave3", {"sceneArcId": "arc-1", "reason": "Setup changed", "urgency": "high"}
        )
        assert error is None
        assert payload.reason == "Setup changed"

    def test_non_object_input(self):
        payload, error = decode_tool_input("invalidate_wave3", ["arc-1"])
        assert payload is None
        assert error == "input for invalidate_wave3 must be an object"
