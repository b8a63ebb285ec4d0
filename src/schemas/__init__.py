# Sage Codex schema definitions
from .inscribing import (
    STAGES,
    SECTION_IDS,
    SECTION_LABELS,
    WAVE_SECTIONS,
    SECTION_WAVE,
    DETAIL_SECTIONS,
    ENTITY_SECTIONS,
    SectionRecord,
    TOOL_INPUTS,
    decode_tool_input,
    next_stage,
)
