"""
Inscribing-stage data model and tool input schemas.

A scene arc is written as nine fixed sections, generated in three waves of
three. Every tool the Sage can call during the Inscribing stage has a pydantic
input model here; ``decode_tool_input()`` turns a raw tool-call ``args`` dict
into one of those models or into the human-readable error string that is
handed back to the LLM.
"""
from __future__ import annotations

import logging
from typing import Any, ClassVar, Dict, List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger("sage.schemas.inscribing")

# ---------------------------------------------------------------------------
# The Unfolding
# ---------------------------------------------------------------------------
STAGES = ("invoking", "attuning", "binding", "weaving", "inscribing", "delivering")

Stage = Literal["invoking", "attuning", "binding", "weaving", "inscribing", "delivering"]


def next_stage(stage: str) -> Optional[str]:
    """Return the stage after *stage*, or None when *stage* is the last one."""
    if stage not in STAGES:
        raise ValueError(f"Unknown stage: {stage}")
    index = STAGES.index(stage)
    if index == len(STAGES) - 1:
        return None
    return STAGES[index + 1]


# ---------------------------------------------------------------------------
# Sections and waves
# ---------------------------------------------------------------------------
SectionId = Literal[
    "overview", "setup", "developments",
    "npcs_present", "adversaries", "items",
    "transitions", "portents", "gm_notes",
]

SECTION_IDS: tuple[str, ...] = get_args(SectionId)

WAVE_SECTIONS: dict[int, tuple[str, ...]] = {
    1: ("overview", "setup", "developments"),
    2: ("npcs_present", "adversaries", "items"),
    3: ("transitions", "portents", "gm_notes"),
}

SECTION_WAVE: dict[str, int] = {
    section_id: wave
    for wave, section_ids in WAVE_SECTIONS.items()
    for section_id in section_ids
}

SECTION_LABELS: dict[str, str] = {
    "overview": "Overview",
    "setup": "Setup",
    "developments": "Developments",
    "npcs_present": "NPCs Present",
    "adversaries": "Adversaries",
    "items": "Items",
    "transitions": "Transitions",
    "portents": "Portents",
    "gm_notes": "GM Notes",
}

# Sections with a narrative drill-in view in the panel
DETAIL_SECTIONS = frozenset({"setup", "developments", "transitions"})

# Entity lists live on these section records in the persisted document
ENTITY_SECTIONS: dict[str, tuple[str, str]] = {
    # tool field -> (section id, record field)
    "npcs": ("npcs_present", "entityNPCs"),
    "adversaries": ("adversaries", "entityAdversaries"),
    "items": ("items", "entityItems"),
    "categories": ("portents", "entityPortents"),
}


class SectionRecord(BaseModel):
    """One section as stored under ``state.inscribingSections[sceneArcId]``."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: SectionId
    label: str
    content: str = ""
    wave: Literal[1, 2, 3]
    has_detail: bool = Field(default=False, alias="hasDetail")
    entity_npcs: Optional[List[Any]] = Field(default=None, alias="entityNPCs")
    entity_adversaries: Optional[List[Any]] = Field(default=None, alias="entityAdversaries")
    entity_items: Optional[List[Any]] = Field(default=None, alias="entityItems")
    entity_portents: Optional[List[Any]] = Field(default=None, alias="entityPortents")

    @classmethod
    def for_section(cls, section_id: str, content: str, wave: int) -> "SectionRecord":
        return cls(
            id=section_id,
            label=SECTION_LABELS.get(section_id, section_id),
            content=content,
            wave=wave,
            hasDetail=section_id in DETAIL_SECTIONS,
        )

    def to_state(self) -> dict:
        """Serialize with camelCase keys, omitting unset entity lists."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Tool inputs
# ---------------------------------------------------------------------------

class ToolInput(BaseModel):
    """Base for tool-call inputs: camelCase wire names, unknown keys ignored.

    ``field_messages`` overrides the error text for a field when its value is
    present but invalid. ``array_fields`` get "<field> array is required".
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    field_messages: ClassVar[Dict[str, str]] = {}
    array_fields: ClassVar[tuple[str, ...]] = ()


class UpdateSectionInput(ToolInput):
    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    section_id: SectionId = Field(alias="sectionId")
    content: str


class SetWaveSectionEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    section_id: SectionId = Field(alias="sectionId")
    content: str = ""


class SetWaveInput(ToolInput):
    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    wave: Literal[1, 2, 3]
    sections: List[SetWaveSectionEntry] = Field(min_length=1)

    field_messages = {
        "wave": "wave must be 1, 2, or 3 for set_wave",
        "sections": "sections array must not be empty for set_wave",
    }

    @model_validator(mode="after")
    def sections_belong_to_wave(self) -> "SetWaveInput":
        for entry in self.sections:
            if SECTION_WAVE[entry.section_id] != self.wave:
                raise ValueError(
                    f"section {entry.section_id} does not belong to wave {self.wave} for set_wave"
                )
        return self


class InvalidateWave3Input(ToolInput):
    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    reason: str = Field(min_length=1)


class WarnBalanceInput(ToolInput):
    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    message: str = Field(min_length=1)
    section_id: Optional[SectionId] = Field(default=None, alias="sectionId")

    @field_validator("section_id", mode="before")
    @classmethod
    def blank_section_is_none(cls, value: Any) -> Any:
        return value or None


class SetEntityNPCsInput(ToolInput):
    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    npcs: List[Any]

    array_fields = ("npcs",)


class SetEntityAdversariesInput(ToolInput):
    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    adversaries: List[Any]

    array_fields = ("adversaries",)


class SetEntityItemsInput(ToolInput):
    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    items: List[Any]

    array_fields = ("items",)


class SetEntityPortentsInput(ToolInput):
    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    categories: List[Any]

    array_fields = ("categories",)


class PropagateRenameInput(ToolInput):
    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    old_name: str = Field(alias="oldName", min_length=1)
    new_name: str = Field(alias="newName", min_length=1)
    origin_section_id: Optional[str] = Field(default=None, alias="originSectionId")


class PropagateSemanticInput(ToolInput):
    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    entity_name: str = Field(alias="entityName", min_length=1)
    change_type: str = Field(alias="changeType", min_length=1)
    old_value: str = Field(default="", alias="oldValue")
    new_value: str = Field(default="", alias="newValue")

    @field_validator("old_value", "new_value", mode="before")
    @classmethod
    def none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class PropagateEntityChangeInput(PropagateSemanticInput):
    origin_section_id: Optional[str] = Field(default=None, alias="originSectionId")


TOOL_INPUTS: Dict[str, type[ToolInput]] = {
    "update_section": UpdateSectionInput,
    "set_wave": SetWaveInput,
    "invalidate_wave3": InvalidateWave3Input,
    "warn_balance": WarnBalanceInput,
    "set_entity_npcs": SetEntityNPCsInput,
    "set_entity_adversaries": SetEntityAdversariesInput,
    "set_entity_items": SetEntityItemsInput,
    "set_entity_portents": SetEntityPortentsInput,
    "propagate_rename": PropagateRenameInput,
    "propagate_semantic": PropagateSemanticInput,
    "propagate_entity_change": PropagateEntityChangeInput,
}


# ---------------------------------------------------------------------------
# Decode step
# ---------------------------------------------------------------------------

def _wire_name(model: type[BaseModel], field_name: str) -> str:
    field = model.model_fields.get(field_name)
    if field is not None and field.alias:
        return field.alias
    return field_name


def _is_blank(raw: dict, wire_name: str) -> bool:
    value = raw.get(wire_name)
    return value is None or value == ""


def format_validation_error(tool_name: str, model: type[ToolInput], raw: dict, exc: ValidationError) -> str:
    """Turn the first pydantic error into the message the LLM sees."""
    error = exc.errors()[0]
    loc = error.get("loc") or ()

    if not loc:
        # model-level validator; its message is already tool-specific
        message = str(error.get("msg", "invalid input"))
        return message.removeprefix("Value error, ")

    field_name = str(loc[0])
    wire_name = _wire_name(model, field_name)

    if len(loc) > 2 and isinstance(loc[1], int):
        # error inside a list entry, e.g. ("sections", 0, "sectionId")
        nested = str(loc[-1])
        if nested == "sectionId" and error.get("type") != "missing":
            return f"sectionId must be one of {', '.join(SECTION_IDS)} for {tool_name}"
        return f"{wire_name}[{loc[1]}].{nested} is required for {tool_name}"

    array_fields = getattr(model, "array_fields", ())
    field_messages = getattr(model, "field_messages", {})

    if wire_name in array_fields or field_name in array_fields:
        return f"{wire_name} array is required for {tool_name}"

    if wire_name in field_messages:
        return field_messages[wire_name]

    if error.get("type") == "missing" or _is_blank(raw, wire_name):
        return f"{wire_name} is required for {tool_name}"

    if wire_name == "sectionId":
        return f"sectionId must be one of {', '.join(SECTION_IDS)} for {tool_name}"

    return f"{wire_name} is invalid for {tool_name}: {error.get('msg')}"


def decode_tool_input(tool_name: str, raw: Any, model: type[ToolInput] | None = None) -> tuple[ToolInput | None, str | None]:
    """
    Validate *raw* against the input model for *tool_name*.

    Returns ``(model_instance, None)`` on success or ``(None, error_message)``.
    """
    schema = model or TOOL_INPUTS.get(tool_name)
    if schema is None:
        return None, f"No input schema registered for {tool_name}"

    if not isinstance(raw, dict):
        return None, f"input for {tool_name} must be an object"

    try:
        return schema.model_validate(raw), None
    except ValidationError as exc:
        message = format_validation_error(tool_name, schema, raw, exc)
        logger.info("tool_validation_failed | tool=%s | error=%s", tool_name, message)
        return None, message
