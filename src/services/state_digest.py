"""Compact text rendering of the adventure state for the Sage's system prompt.

Persisted section records supply labels, waves and entity lists; the
workspace cache supplies the freshest content, since tool writes reach the
cache before (or without) a successful database write.
"""

from __future__ import annotations

from typing import Optional

from src.schemas.inscribing import ENTITY_SECTIONS, SECTION_IDS, SECTION_LABELS, SECTION_WAVE
from src.services.persistence import SECTIONS_KEY
from src.services.section_cache import SectionCache

DEFAULT_MAX_CHARACTERS = 12000
SECTION_SEPARATOR = "\n---\n"


def _entity_names(entities) -> list[str]:
    names = []
    for entity in entities or []:
        if isinstance(entity, dict):
            name = entity.get("name") or entity.get("category")
            if name:
                names.append(str(name))
    return names


def _spark(state: dict) -> str:
    spark = state.get("spark")
    if not isinstance(spark, dict) or not spark.get("name"):
        return ""
    lines = [f'Adventure: "{spark["name"]}"']
    if spark.get("vision"):
        lines.append(f"Vision: {spark['vision']}")
    return "\n".join(lines)


def _arc(scene_arc_id: str, records: dict[str, dict], cache: Optional[SectionCache]) -> str:
    lines = [f"Scene arc {scene_arc_id}:"]
    for section_id in SECTION_IDS:
        record = records.get(section_id, {})
        content = cache.get_content(scene_arc_id, section_id) if cache is not None else None
        if content is None:
            content = str(record.get("content") or "")
        if not content and not record:
            continue
        label = record.get("label") or SECTION_LABELS[section_id]
        wave = record.get("wave") or SECTION_WAVE[section_id]
        lines.append(f"[Wave {wave}] {label}: {content.strip() or '(empty)'}")

    for section_id, field in ENTITY_SECTIONS.values():
        names = _entity_names(records.get(section_id, {}).get(field))
        if names:
            lines.append(f"  {SECTION_LABELS[section_id]} entities: {', '.join(names)}")
    return "\n".join(lines) if len(lines) > 1 else ""


def build_state_digest(
    state: Optional[dict],
    cache: Optional[SectionCache] = None,
    max_characters: int = DEFAULT_MAX_CHARACTERS,
) -> str:
    """Spark plus every scene arc's sections; truncated to *max_characters*."""
    state = state if isinstance(state, dict) else {}
    persisted = state.get(SECTIONS_KEY)
    persisted = persisted if isinstance(persisted, dict) else {}

    arc_ids = list(persisted)
    if cache is not None:
        arc_ids += [arc for arc in cache.arc_ids() if arc not in persisted]

    blocks = [_spark(state)]
    for scene_arc_id in arc_ids:
        raw = persisted.get(scene_arc_id)
        records = {
            r["id"]: r for r in (raw if isinstance(raw, list) else [])
            if isinstance(r, dict) and r.get("id") in SECTION_WAVE
        }
        blocks.append(_arc(scene_arc_id, records, cache))

    text = SECTION_SEPARATOR.join(block for block in blocks if block)
    if len(text) > max_characters:
        text = text[:max_characters - 3] + "..."
    return text
