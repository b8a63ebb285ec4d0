"""
Event payloads streamed to the Sage panel over the WebSocket.

Every event is a plain ``{"type": ..., "data": {...}}`` dict so it can go
straight into ``manager.send_json``. Categories:

  chat:*    streaming Sage text
  tool:*    tool invocation lifecycle
  panel:*   tool-driven UI updates (queued by handlers, drained once per dispatch)
"""
from __future__ import annotations

from typing import Any, Optional

SageEvent = dict[str, Any]

# ---------------------------------------------------------------------------
# Event type names
# ---------------------------------------------------------------------------
CHAT_START = "chat:start"
CHAT_DELTA = "chat:delta"
CHAT_END = "chat:end"

TOOL_START = "tool:start"
TOOL_END = "tool:end"

PANEL_SECTION = "panel:section"
PANEL_SECTIONS = "panel:sections"
PANEL_WAVE3_INVALIDATED = "panel:wave3_invalidated"
PANEL_BALANCE_WARNING = "panel:balance_warning"
PANEL_ENTITY_NPCS = "panel:entity_npcs"
PANEL_ENTITY_ADVERSARIES = "panel:entity_adversaries"
PANEL_ENTITY_ITEMS = "panel:entity_items"
PANEL_ENTITY_PORTENTS = "panel:entity_portents"
PANEL_PROPAGATION_DETERMINISTIC = "panel:propagation_deterministic"
PANEL_PROPAGATION_SEMANTIC = "panel:propagation_semantic"

# tool field -> panel event type for the set_entity_* tools
ENTITY_EVENT_TYPES = {
    "npcs": PANEL_ENTITY_NPCS,
    "adversaries": PANEL_ENTITY_ADVERSARIES,
    "items": PANEL_ENTITY_ITEMS,
    "categories": PANEL_ENTITY_PORTENTS,
}


def make_event(event_type: str, **data: Any) -> SageEvent:
    return {"type": event_type, "data": data}


# ---------------------------------------------------------------------------
# Panel events
# ---------------------------------------------------------------------------

def section_changed(scene_arc_id: str, section_id: str, content: str, streaming: bool = False) -> SageEvent:
    return make_event(
        PANEL_SECTION,
        sceneArcId=scene_arc_id,
        sectionId=section_id,
        content=content,
        streaming=streaming,
    )


def sections_batch_changed(scene_arc_id: str, wave: int, sections: list[dict]) -> SageEvent:
    return make_event(PANEL_SECTIONS, sceneArcId=scene_arc_id, wave=wave, sections=sections)


def wave3_invalidated(scene_arc_id: str, reason: str) -> SageEvent:
    return make_event(PANEL_WAVE3_INVALIDATED, sceneArcId=scene_arc_id, reason=reason)


def balance_warning(scene_arc_id: str, message: str, section_id: Optional[str] = None) -> SageEvent:
    data: dict[str, Any] = {"sceneArcId": scene_arc_id, "message": message}
    if section_id:
        data["sectionId"] = section_id
    return {"type": PANEL_BALANCE_WARNING, "data": data}


def entities_set(field: str, scene_arc_id: str, entities: list) -> SageEvent:
    """Panel event for a ``set_entity_*`` tool; *field* is the tool's array field."""
    return {"type": ENTITY_EVENT_TYPES[field], "data": {"sceneArcId": scene_arc_id, field: entities}}


def propagation_deterministic(
    scene_arc_id: str,
    old_name: str,
    new_name: str,
    updated_sections: list[dict],
    total_replacements: int,
) -> SageEvent:
    return make_event(
        PANEL_PROPAGATION_DETERMINISTIC,
        sceneArcId=scene_arc_id,
        oldName=old_name,
        newName=new_name,
        updatedSections=updated_sections,
        totalReplacements=total_replacements,
    )


def propagation_semantic(
    scene_arc_id: str,
    entity_name: str,
    change_type: str,
    affected_section_ids: list[str],
    suggested_action: str,
    change_description: str,
) -> SageEvent:
    return make_event(
        PANEL_PROPAGATION_SEMANTIC,
        sceneArcId=scene_arc_id,
        entityName=entity_name,
        changeType=change_type,
        affectedSectionIds=affected_section_ids,
        suggestedAction=suggested_action,
        changeDescription=change_description,
    )


# ---------------------------------------------------------------------------
# Tool lifecycle and chat events
# ---------------------------------------------------------------------------

def tool_start(tool_use_id: str, tool_name: str, tool_input: dict) -> SageEvent:
    return make_event(TOOL_START, toolUseId=tool_use_id, toolName=tool_name, input=tool_input)


def tool_end(tool_use_id: str, tool_name: str, result: Any, is_error: bool) -> SageEvent:
    return make_event(TOOL_END, toolUseId=tool_use_id, toolName=tool_name, result=result, isError=is_error)


def chat_start(message_id: str) -> SageEvent:
    return make_event(CHAT_START, messageId=message_id)


def chat_delta(message_id: str, content: str) -> SageEvent:
    return make_event(CHAT_DELTA, messageId=message_id, content=content)


def chat_end(message_id: str, input_tokens: int = 0, output_tokens: int = 0) -> SageEvent:
    return make_event(CHAT_END, messageId=message_id, inputTokens=input_tokens, outputTokens=output_tokens)
