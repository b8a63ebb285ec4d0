"""
Inscribing stage tool handlers.

- update_section: write one section's content
- set_wave: populate a whole wave of sections at once
- invalidate_wave3: signal that Wave 3 is stale after Wave 1/2 edits
- warn_balance: raise a game balance warning
- set_entity_npcs / _adversaries / _items / _portents: structured entity lists

Each handler updates the workspace's section cache (where applicable), queues
panel events for the frontend, then makes a best-effort write to the adventure
state row. Inputs arrive already decoded by the dispatcher.
"""

from __future__ import annotations

from src.schemas import events
from src.schemas.inscribing import (
    ENTITY_SECTIONS,
    InvalidateWave3Input,
    SectionRecord,
    SetEntityAdversariesInput,
    SetEntityItemsInput,
    SetEntityNPCsInput,
    SetEntityPortentsInput,
    SetWaveInput,
    UpdateSectionInput,
    WarnBalanceInput,
)
from src.services.persistence import PersistOutcome
from src.services.workspace import InscribingWorkspace
from src.tools.dispatcher import ToolContext, ToolDispatcher, ToolOutcome
from src.utils.logging_config import get_logger

logger = get_logger("sage.tools.inscribing")


class InscribingTools:
    """Tool handlers bound to one session's workspace."""

    def __init__(self, workspace: InscribingWorkspace):
        self.workspace = workspace

    # -- helpers -------------------------------------------------------------

    def _report(self, outcome: PersistOutcome, tool: str, context: ToolContext, scene_arc_id: str) -> None:
        extra = {"session_id": context.session_id, "tool": tool, "scene_arc_id": scene_arc_id}
        if not outcome.ok:
            logger.warning("State persistence failed for %s: %s", tool, outcome.detail, extra=extra)
        elif outcome.status == "skipped":
            logger.debug("State persistence skipped for %s: %s", tool, outcome.detail, extra=extra)

    # -- handlers ------------------------------------------------------------

    async def update_section(self, payload: UpdateSectionInput, context: ToolContext) -> ToolOutcome:
        """Update one section and mirror it to the accordion via ``panel:section``."""
        arc, section_id = payload.scene_arc_id, payload.section_id

        self.workspace.sections.cache_section(arc, section_id, payload.content)
        self.workspace.events.enqueue(events.section_changed(arc, section_id, payload.content))

        if self.workspace.persistence is not None:
            outcome = await self.workspace.persistence.persist_section_content(
                context.session_id, arc, section_id, payload.content
            )
            self._report(outcome, "update_section", context, arc)

        return ToolOutcome({
            "status": "section_updated",
            "sceneArcId": arc,
            "sectionId": section_id,
        })

    async def set_wave(self, payload: SetWaveInput, context: ToolContext) -> ToolOutcome:
        """Populate every section of one wave; queues a single ``panel:sections`` event."""
        arc = payload.scene_arc_id
        records = [
            SectionRecord.for_section(entry.section_id, entry.content, payload.wave).to_state()
            for entry in payload.sections
        ]

        for record in records:
            self.workspace.sections.cache_section(arc, record["id"], record["content"])
        self.workspace.events.enqueue(events.sections_batch_changed(arc, payload.wave, records))

        if self.workspace.persistence is not None:
            outcome = await self.workspace.persistence.persist_wave(context.session_id, arc, records)
            self._report(outcome, "set_wave", context, arc)

        logger.info(
            "Wave %d populated", payload.wave,
            extra={"session_id": context.session_id, "scene_arc_id": arc,
                   "metadata": {"sections": [r["id"] for r in records]}},
        )
        return ToolOutcome({
            "status": "wave_populated",
            "sceneArcId": arc,
            "wave": payload.wave,
            "sectionCount": len(records),
        })

    async def invalidate_wave3(self, payload: InvalidateWave3Input, context: ToolContext) -> ToolOutcome:
        # Signal only; Wave 3 content stays until it is regenerated.
        self.workspace.events.enqueue(events.wave3_invalidated(payload.scene_arc_id, payload.reason))
        return ToolOutcome({
            "status": "wave3_invalidated",
            "sceneArcId": payload.scene_arc_id,
            "reason": payload.reason,
        })

    async def warn_balance(self, payload: WarnBalanceInput, context: ToolContext) -> ToolOutcome:
        self.workspace.events.enqueue(
            events.balance_warning(payload.scene_arc_id, payload.message, payload.section_id)
        )
        return ToolOutcome({
            "status": "balance_warning_sent",
            "sceneArcId": payload.scene_arc_id,
            "message": payload.message,
        })

    async def _set_entities(self, tool: str, field: str, payload, context: ToolContext) -> ToolOutcome:
        arc = payload.scene_arc_id
        entities = getattr(payload, field)
        section_id, record_field = ENTITY_SECTIONS[field]

        self.workspace.events.enqueue(events.entities_set(field, arc, entities))

        if self.workspace.persistence is not None:
            outcome = await self.workspace.persistence.persist_section_entities(
                context.session_id, arc, section_id, record_field, entities
            )
            self._report(outcome, tool, context, arc)

        status_name = "portents" if field == "categories" else field
        return ToolOutcome({
            "status": f"entity_{status_name}_set",
            "sceneArcId": arc,
            "count": len(entities),
        })

    async def set_entity_npcs(self, payload: SetEntityNPCsInput, context: ToolContext) -> ToolOutcome:
        return await self._set_entities("set_entity_npcs", "npcs", payload, context)

    async def set_entity_adversaries(self, payload: SetEntityAdversariesInput, context: ToolContext) -> ToolOutcome:
        return await self._set_entities("set_entity_adversaries", "adversaries", payload, context)

    async def set_entity_items(self, payload: SetEntityItemsInput, context: ToolContext) -> ToolOutcome:
        return await self._set_entities("set_entity_items", "items", payload, context)

    async def set_entity_portents(self, payload: SetEntityPortentsInput, context: ToolContext) -> ToolOutcome:
        return await self._set_entities("set_entity_portents", "categories", payload, context)


def register_inscribing_tools(dispatcher: ToolDispatcher, workspace: InscribingWorkspace) -> InscribingTools:
    """Register all Inscribing stage tool handlers for *workspace*."""
    tools = InscribingTools(workspace)
    dispatcher.register("update_section", tools.update_section, UpdateSectionInput)
    dispatcher.register("set_wave", tools.set_wave, SetWaveInput)
    dispatcher.register("invalidate_wave3", tools.invalidate_wave3, InvalidateWave3Input)
    dispatcher.register("warn_balance", tools.warn_balance, WarnBalanceInput)
    dispatcher.register("set_entity_npcs", tools.set_entity_npcs, SetEntityNPCsInput)
    dispatcher.register("set_entity_adversaries", tools.set_entity_adversaries, SetEntityAdversariesInput)
    dispatcher.register("set_entity_items", tools.set_entity_items, SetEntityItemsInput)
    dispatcher.register("set_entity_portents", tools.set_entity_portents, SetEntityPortentsInput)
    return tools
