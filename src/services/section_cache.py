"""In-memory section content cache used as the substrate for propagation scans.

Populated by the Inscribing tool handlers (update_section, set_wave) and by the
propagation tools themselves, so a rename can be applied across every section
of a scene arc without a database round trip. One cache belongs to one
``InscribingWorkspace``; nothing here is module-level state.
"""

from __future__ import annotations

import dataclasses
from typing import Iterable

from src.utils.logging_config import get_logger

logger = get_logger("sage.section_cache")


@dataclasses.dataclass(frozen=True)
class CachedSection:
    section_id: str
    content: str


class SectionCache:
    """Latest content per (scene arc, section). No TTL; cleared explicitly."""

    def __init__(self) -> None:
        self._arcs: dict[str, dict[str, str]] = {}

    def cache_section(self, scene_arc_id: str, section_id: str, content: str) -> None:
        """Upsert one section; the last write for a key wins."""
        self._arcs.setdefault(scene_arc_id, {})[section_id] = content

    def get_sections_for_arc(self, scene_arc_id: str) -> list[CachedSection]:
        sections = self._arcs.get(scene_arc_id)
        if not sections:
            return []
        return [CachedSection(section_id, content) for section_id, content in sections.items()]

    def get_content(self, scene_arc_id: str, section_id: str) -> str | None:
        return self._arcs.get(scene_arc_id, {}).get(section_id)

    def seed(self, scene_arc_id: str, entries: Iterable[CachedSection | dict]) -> int:
        """Bulk-load sections for one arc; same effect as repeated ``cache_section``.

        Entries may be ``CachedSection`` objects or dicts with ``sectionId``/``id``
        and ``content`` keys (the persisted record shape). Records of any other
        shape, or without an id, are skipped with a warning. Returns the count loaded.
        """
        count = 0
        for entry in entries:
            if isinstance(entry, CachedSection):
                section_id, content = entry.section_id, entry.content
            elif isinstance(entry, dict) and (entry.get("sectionId") or entry.get("id")):
                section_id = str(entry.get("sectionId") or entry.get("id"))
                content = entry.get("content")
                content = "" if content is None else str(content)
            else:
                logger.warning(
                    "Skipping unreadable section record: %r", entry,
                    extra={"scene_arc_id": scene_arc_id},
                )
                continue
            self.cache_section(scene_arc_id, section_id, content)
            count += 1
        return count

    def clear(self) -> None:
        self._arcs.clear()

    def arc_ids(self) -> list[str]:
        return list(self._arcs)

    def __len__(self) -> int:
        return sum(len(sections) for sections in self._arcs.values())
