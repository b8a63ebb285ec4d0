"""
Cross-section propagation for the Inscribing stage.

When an entity (NPC, adversary, item) changes in one section, the other
sections of the same scene arc may still reference the old version:

- **Deterministic**: literal name replacement. Mechanical and safe to apply
  everywhere, so it rewrites section content in place.
- **Semantic**: motivation, role, description ... changes that text
  substitution cannot express. Sections mentioning the entity are only
  *flagged*, with a suggested action for the Sage's next pass.
- **Both**: rename plus a deeper change; the name is swapped first, then the
  remaining change is flagged against the new name.
- **None**: nothing meaningful changed.

Matching is plain, case-sensitive substring matching with no word boundaries:
renaming "Al" also rewrites the "Al" inside "Aldric". Callers that care should
pick names that are not substrings of other words in the scene.
"""

from __future__ import annotations

import dataclasses
from typing import Iterable, Literal, Optional

from src.services.section_cache import CachedSection

PropagationType = Literal["deterministic", "semantic", "both", "none"]

# Change types that trigger deterministic propagation
DETERMINISTIC_CHANGE_TYPES = frozenset({"rename"})

# Change types that trigger semantic propagation
SEMANTIC_CHANGE_TYPES = frozenset({
    "motivation", "role", "description", "backstory", "voice", "secret",
})

# Change types that trigger both propagation types
COMBINED_CHANGE_TYPES = frozenset({"rename_and_role", "rename_and_motivation"})

ACTION_VERBS = {
    "motivation": "Revise dialogue and behavior to reflect the new motivation.",
    "role": "Adjust interactions and narrative framing for the new role.",
    "description": "Update physical descriptions and first-impression text.",
    "backstory": "Revise any backstory references or foreshadowing.",
    "voice": "Adjust dialogue style and speech patterns.",
    "secret": "Update any hints or clues related to this secret.",
}
DEFAULT_ACTION_VERB = "Review and update affected content as appropriate."


@dataclasses.dataclass
class EntityChange:
    """One entity change that may need propagating."""
    change_type: str
    old_value: str = ""
    new_value: str = ""
    entity_type: str = "npc"
    additional_changes: Optional[dict[str, dict[str, str]]] = None


@dataclasses.dataclass
class SectionScanResult:
    section_id: str
    match_count: int
    updated_content: Optional[str] = None


@dataclasses.dataclass
class UpdatedSection:
    section_id: str
    updated_content: str
    replacement_count: int


@dataclasses.dataclass
class DeterministicPropagationResult:
    updated_sections: list[UpdatedSection]
    total_replacements: int

    def summary(self) -> list[dict]:
        """``[{sectionId, replacementCount}]`` for the panel event."""
        return [
            {"sectionId": s.section_id, "replacementCount": s.replacement_count}
            for s in self.updated_sections
        ]


@dataclasses.dataclass
class SemanticPropagationHint:
    entity_name: str
    change_description: str
    affected_sections: list[CachedSection]
    suggested_action: str

    @property
    def affected_section_ids(self) -> list[str]:
        return [s.section_id for s in self.affected_sections]


# ---------------------------------------------------------------------------
# Propagation type detection
# ---------------------------------------------------------------------------

def detect_propagation_type(change: EntityChange) -> PropagationType:
    """Decide how *change* should propagate; identical values mean "none"."""
    if change.old_value == change.new_value and not change.additional_changes:
        return "none"
    if change.change_type in COMBINED_CHANGE_TYPES:
        return "both"
    if change.change_type in DETERMINISTIC_CHANGE_TYPES:
        return "deterministic"
    if change.change_type in SEMANTIC_CHANGE_TYPES:
        return "semantic"
    return "none"


# ---------------------------------------------------------------------------
# Literal matching
# ---------------------------------------------------------------------------

def replace_name_in_content(content: str, old_name: str, new_name: str) -> tuple[str, int]:
    """Replace every occurrence of *old_name*; returns ``(content, count)``."""
    if not content or not old_name:
        return content, 0
    count = content.count(old_name)
    if count == 0:
        return content, 0
    return content.replace(old_name, new_name), count


def scan_sections_for_name(
    sections: Iterable[CachedSection],
    name: str,
    new_name: Optional[str] = None,
) -> list[SectionScanResult]:
    """Sections containing *name*, in input order.

    When *new_name* is given the replaced content is included in each result.
    """
    if not name:
        return []

    results = []
    for section in sections:
        count = section.content.count(name)
        if count == 0:
            continue
        result = SectionScanResult(section.section_id, count)
        if new_name is not None:
            result.updated_content, _ = replace_name_in_content(section.content, name, new_name)
        results.append(result)
    return results


# ---------------------------------------------------------------------------
# Deterministic propagation
# ---------------------------------------------------------------------------

def build_deterministic_propagation(
    sections: Iterable[CachedSection],
    old_name: str,
    new_name: str,
    exclude_section_id: Optional[str] = None,
) -> DeterministicPropagationResult:
    """Rename *old_name* to *new_name* in every section except the origin one."""
    candidates = [s for s in sections if s.section_id != exclude_section_id] if exclude_section_id else list(sections)

    updated = [
        UpdatedSection(r.section_id, r.updated_content or "", r.match_count)
        for r in scan_sections_for_name(candidates, old_name, new_name)
    ]
    return DeterministicPropagationResult(
        updated_sections=updated,
        total_replacements=sum(s.replacement_count for s in updated),
    )


# ---------------------------------------------------------------------------
# Semantic propagation
# ---------------------------------------------------------------------------

def build_semantic_propagation_hint(
    change: EntityChange,
    sections: Iterable[CachedSection],
    entity_name: str,
) -> SemanticPropagationHint:
    """Flag the sections mentioning *entity_name*; never modifies content."""
    sections = list(sections)
    matched = {r.section_id for r in scan_sections_for_name(sections, entity_name)}
    return SemanticPropagationHint(
        entity_name=entity_name,
        change_description=format_change_description(change),
        affected_sections=[s for s in sections if s.section_id in matched],
        suggested_action=format_suggested_action(change.change_type, entity_name),
    )


def format_change_description(change: EntityChange) -> str:
    return f'Entity {change.change_type} changed: "{change.old_value}" -> "{change.new_value}"'


def format_suggested_action(change_type: str, entity_name: str) -> str:
    verb = ACTION_VERBS.get(change_type, DEFAULT_ACTION_VERB)
    return (
        f"Please update all references to {entity_name} to reflect the "
        f"{change_type} change. {verb}"
    )
