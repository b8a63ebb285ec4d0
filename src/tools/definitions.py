"""
Function declarations the Sage sees, grouped by stage.

Only the Inscribing stage carries tools in this service; the other stages are
purely conversational.
"""

from __future__ import annotations

from typing import Any

from google.genai import types

from src.schemas.inscribing import SECTION_IDS, STAGES

_ARC = {"type": "string", "description": "The scene arc id"}
_SECTION = {"type": "string", "enum": list(SECTION_IDS)}
_ENTITY_LIST = {"type": "array", "items": {"type": "object"}}

INSCRIBING_TOOL_SCHEMAS: list[dict[str, Any]] = [
    {
        "name": "update_section",
        "description": (
            "Write the content of one section of a scene. Use this for edits "
            "after a wave has been populated."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "sceneArcId": _ARC,
                "sectionId": {**_SECTION, "description": "Which section to write"},
                "content": {"type": "string", "description": "Full section text (markdown)"},
            },
            "required": ["sceneArcId", "sectionId", "content"],
        },
    },
    {
        "name": "set_wave",
        "description": (
            "Populate every section of one wave at once. Wave 1: overview, setup, "
            "developments. Wave 2: npcs_present, adversaries, items. Wave 3: "
            "transitions, portents, gm_notes. Every section listed must belong to the "
            "given wave; a section from another wave rejects the whole call."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "sceneArcId": _ARC,
                "wave": {"type": "integer", "enum": [1, 2, 3]},
                "sections": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "sectionId": _SECTION,
                            "content": {"type": "string"},
                        },
                        "required": ["sectionId", "content"],
                    },
                },
            },
            "required": ["sceneArcId", "wave", "sections"],
        },
    },
    {
        "name": "invalidate_wave3",
        "description": (
            "Mark Wave 3 (transitions, portents, GM notes) as stale after a Wave 1 "
            "or Wave 2 change. Content is kept until you regenerate it."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "sceneArcId": _ARC,
                "reason": {"type": "string", "description": "What changed upstream"},
            },
            "required": ["sceneArcId", "reason"],
        },
    },
    {
        "name": "warn_balance",
        "description": "Warn the storyteller about an encounter balance concern.",
        "parameters": {
            "type": "object",
            "properties": {
                "sceneArcId": _ARC,
                "message": {"type": "string"},
                "sectionId": {**_SECTION, "description": "Section the warning is about"},
            },
            "required": ["sceneArcId", "message"],
        },
    },
    {
        "name": "set_entity_npcs",
        "description": "Set the structured NPC list shown in the NPCs Present section.",
        "parameters": {
            "type": "object",
            "properties": {"sceneArcId": _ARC, "npcs": _ENTITY_LIST},
            "required": ["sceneArcId", "npcs"],
        },
    },
    {
        "name": "set_entity_adversaries",
        "description": "Set the adversaries (with stat references) for a scene.",
        "parameters": {
            "type": "object",
            "properties": {"sceneArcId": _ARC, "adversaries": _ENTITY_LIST},
            "required": ["sceneArcId", "adversaries"],
        },
    },
    {
        "name": "set_entity_items",
        "description": "Set the rewards and equipment for a scene.",
        "parameters": {
            "type": "object",
            "properties": {"sceneArcId": _ARC, "items": _ENTITY_LIST},
            "required": ["sceneArcId", "items"],
        },
    },
    {
        "name": "set_entity_portents",
        "description": "Set the portent categories for a scene.",
        "parameters": {
            "type": "object",
            "properties": {"sceneArcId": _ARC, "categories": _ENTITY_LIST},
            "required": ["sceneArcId", "categories"],
        },
    },
    {
        "name": "propagate_rename",
        "description": (
            "After renaming an entity, replace the old name with the new one in "
            "every other section of the scene."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "sceneArcId": _ARC,
                "oldName": {"type": "string"},
                "newName": {"type": "string"},
                "originSectionId": {
                    "type": "string",
                    "description": "Section where the rename was made; it is skipped",
                },
            },
            "required": ["sceneArcId", "oldName", "newName"],
        },
    },
    {
        "name": "propagate_semantic",
        "description": (
            "Flag the sections that mention an entity whose motivation, role or "
            "description changed, so they can be revised."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "sceneArcId": _ARC,
                "entityName": {"type": "string"},
                "changeType": {"type": "string", "description": "e.g. motivation, role, description"},
                "oldValue": {"type": "string"},
                "newValue": {"type": "string"},
            },
            "required": ["sceneArcId", "entityName", "changeType"],
        },
    },
    {
        "name": "propagate_entity_change",
        "description": (
            "Propagate any entity change. Renames are applied directly; deeper "
            "changes are flagged; rename_and_role / rename_and_motivation do both."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "sceneArcId": _ARC,
                "entityName": {"type": "string"},
                "changeType": {"type": "string"},
                "oldValue": {"type": "string"},
                "newValue": {"type": "string"},
                "originSectionId": {"type": "string"},
            },
            "required": ["sceneArcId", "entityName", "changeType"],
        },
    },
]

STAGE_TOOLS: dict[str, list[dict[str, Any]]] = {stage: [] for stage in STAGES}
STAGE_TOOLS["inscribing"] = INSCRIBING_TOOL_SCHEMAS


def get_tool_names_for_stage(stage: str) -> list[str]:
    return [schema["name"] for schema in STAGE_TOOLS.get(stage, [])]


def get_tools_for_stage(stage: str) -> list[types.FunctionDeclaration]:
    """Gemini function declarations for *stage* (empty for tool-less stages)."""
    return [
        types.FunctionDeclaration(
            name=schema["name"],
            description=schema["description"],
            parameters_json_schema=schema["parameters"],
        )
        for schema in STAGE_TOOLS.get(stage, [])
    ]
