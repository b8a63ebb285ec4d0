"""
Propagation tool handlers for the Inscribing stage.

- propagate_rename: apply a literal rename across an arc's cached sections
- propagate_semantic: flag sections that mention an entity whose character changed
- propagate_entity_change: classify a change and route it to one or both of the above

Both read the workspace's section cache, never the database. Events go to the
workspace's propagation queue so they drain after the core handlers' events.
"""

from __future__ import annotations

from src.schemas import events
from src.schemas.inscribing import (
    PropagateEntityChangeInput,
    PropagateRenameInput,
    PropagateSemanticInput,
)
from src.services.propagation import (
    EntityChange,
    build_deterministic_propagation,
    build_semantic_propagation_hint,
    detect_propagation_type,
)
from src.services.workspace import InscribingWorkspace
from src.tools.dispatcher import ToolContext, ToolDispatcher, ToolOutcome
from src.utils.logging_config import get_logger

logger = get_logger("sage.tools.propagation")


class PropagationTools:
    def __init__(self, workspace: InscribingWorkspace):
        self.workspace = workspace

    def rename(
        self,
        scene_arc_id: str,
        old_name: str,
        new_name: str,
        origin_section_id: str | None,
        context: ToolContext,
    ) -> dict:
        if old_name == new_name:
            return {"status": "no_propagation_needed", "reason": "oldName and newName are identical"}

        sections = self.workspace.sections.get_sections_for_arc(scene_arc_id)
        if not sections:
            return {"status": "no_sections_cached", "sceneArcId": scene_arc_id}

        result = build_deterministic_propagation(sections, old_name, new_name, origin_section_id)

        for updated in result.updated_sections:
            self.workspace.sections.cache_section(scene_arc_id, updated.section_id, updated.updated_content)
            self.workspace.propagation_events.enqueue(
                events.section_changed(scene_arc_id, updated.section_id, updated.updated_content)
            )

        self.workspace.propagation_events.enqueue(events.propagation_deterministic(
            scene_arc_id, old_name, new_name, result.summary(), result.total_replacements,
        ))

        logger.info(
            "Rename propagated: %s -> %s", old_name, new_name,
            extra={
                "session_id": context.session_id,
                "scene_arc_id": scene_arc_id,
                "metadata": {
                    "sectionsUpdated": len(result.updated_sections),
                    "totalReplacements": result.total_replacements,
                },
            },
        )
        return {
            "status": "rename_propagated",
            "sceneArcId": scene_arc_id,
            "oldName": old_name,
            "newName": new_name,
            "sectionsUpdated": len(result.updated_sections),
            "totalReplacements": result.total_replacements,
        }

    def semantic_hint(self, scene_arc_id: str, entity_name: str, change: EntityChange) -> dict:
        sections = self.workspace.sections.get_sections_for_arc(scene_arc_id)
        hint = build_semantic_propagation_hint(change, sections, entity_name)

        self.workspace.propagation_events.enqueue(events.propagation_semantic(
            scene_arc_id,
            entity_name,
            change.change_type,
            hint.affected_section_ids,
            hint.suggested_action,
            hint.change_description,
        ))
        return {
            "status": "semantic_propagation_hint",
            "sceneArcId": scene_arc_id,
            "entityName": entity_name,
            "affectedSections": len(hint.affected_sections),
            "suggestedAction": hint.suggested_action,
        }

    # -- handlers ------------------------------------------------------------

    async def propagate_rename(self, payload: PropagateRenameInput, context: ToolContext) -> ToolOutcome:
        return ToolOutcome(self.rename(
            payload.scene_arc_id, payload.old_name, payload.new_name, payload.origin_section_id, context,
        ))

    async def propagate_semantic(self, payload: PropagateSemanticInput, context: ToolContext) -> ToolOutcome:
        """Flag sections mentioning the entity; cached content is left as is."""
        change = EntityChange(payload.change_type, payload.old_value, payload.new_value)
        return ToolOutcome(self.semantic_hint(payload.scene_arc_id, payload.entity_name, change))

    async def propagate_entity_change(self, payload: PropagateEntityChangeInput, context: ToolContext) -> ToolOutcome:
        """Route one entity change by its type.

        For a rename the old and new values are the names; for combined changes
        the rename runs first and the hint is raised against the new name.
        """
        change = EntityChange(payload.change_type, payload.old_value, payload.new_value)
        kind = detect_propagation_type(change)
        arc = payload.scene_arc_id

        if kind == "none":
            return ToolOutcome({
                "status": "no_propagation_needed",
                "sceneArcId": arc,
                "changeType": payload.change_type,
            })

        if kind == "semantic":
            return ToolOutcome(self.semantic_hint(arc, payload.entity_name, change))

        if not payload.old_value or not payload.new_value:
            return ToolOutcome(
                f"oldValue and newValue are required for a {payload.change_type} change in propagate_entity_change",
                is_error=True,
            )

        rename = self.rename(arc, payload.old_value, payload.new_value, payload.origin_section_id, context)
        if kind == "deterministic":
            return ToolOutcome(rename)

        hint = self.semantic_hint(arc, payload.new_value, change)
        return ToolOutcome({
            "status": "entity_change_propagated",
            "sceneArcId": arc,
            "rename": rename,
            "semantic": hint,
        })


def register_propagation_tools(dispatcher: ToolDispatcher, workspace: InscribingWorkspace) -> PropagationTools:
    tools = PropagationTools(workspace)
    dispatcher.register("propagate_rename", tools.propagate_rename, PropagateRenameInput)
    dispatcher.register("propagate_semantic", tools.propagate_semantic, PropagateSemanticInput)
    dispatcher.register("propagate_entity_change", tools.propagate_entity_change, PropagateEntityChangeInput)
    return tools
