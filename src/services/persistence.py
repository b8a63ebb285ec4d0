"""
Best-effort persistence of Inscribing sections into the adventure state row.

Each session owns one ``sage_adventure_state`` row whose ``state`` JSON holds
``inscribingSections: {sceneArcId: [SectionRecord, ...]}``. Writes are
read-modify-write on a deep copy and always merge: touching one scene arc
never alters another arc's entry. Every overwrite of a section record first
pushes the old record onto ``versionHistory["scene:<arc>:<section>"]``
(at most ten entries), which is what section undo pops.

``StatePersistence`` never raises. Every attempt returns a ``PersistOutcome``
and the caller decides how loudly to report a failure; tool results do not
depend on it.
"""

from __future__ import annotations

import asyncio
import copy
import dataclasses
from datetime import datetime, timezone
from typing import Any, Callable, Literal, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm.attributes import flag_modified

from src.database import AsyncSessionLocal
from src.models import AdventureState
from src.utils.logging_config import get_logger

logger = get_logger("sage.persistence")

SECTIONS_KEY = "inscribingSections"
VERSIONS_KEY = "versionHistory"
MAX_VERSION_ENTRIES = 10


class PersistenceError(Exception):
    """A state row could not be read or written."""


@dataclasses.dataclass
class StateRow:
    row_id: str
    state: dict


@dataclasses.dataclass
class PersistOutcome:
    status: Literal["written", "skipped", "failed"]
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    @classmethod
    def written(cls) -> "PersistOutcome":
        return cls("written")

    @classmethod
    def skipped(cls, detail: str) -> "PersistOutcome":
        return cls("skipped", detail)

    @classmethod
    def failed(cls, detail: str) -> "PersistOutcome":
        return cls("failed", detail)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------

class AdventureStateRepository(Protocol):
    async def fetch_state(self, session_id: str) -> Optional[StateRow]:
        """The state row for *session_id*, or None if there is none."""

    async def write_state(self, row_id: str, state: dict) -> None:
        """Replace the document of row *row_id*."""


class SqlAdventureStateRepository:
    """Reads and writes ``AdventureState.state`` through SQLAlchemy."""

    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory

    async def fetch_state(self, session_id: str) -> Optional[StateRow]:
        async with self._session_factory() as session:
            stmt = select(AdventureState).where(AdventureState.session_id == session_id)
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return StateRow(row_id=row.id, state=row.state or {})

    async def write_state(self, row_id: str, state: dict) -> None:
        async with self._session_factory() as session:
            row = await session.get(AdventureState, row_id)
            if row is None:
                raise PersistenceError(f"adventure state row {row_id} disappeared")
            row.state = state
            flag_modified(row, "state")
            await session.commit()


class InMemoryAdventureStateRepository:
    """Dict-backed repository for tests and local previews."""

    def __init__(self, rows: Optional[dict[str, dict]] = None):
        # session_id -> state
        self.rows: dict[str, dict] = rows if rows is not None else {}
        self.writes: list[tuple[str, dict]] = []

    async def fetch_state(self, session_id: str) -> Optional[StateRow]:
        if session_id not in self.rows:
            return None
        return StateRow(row_id=session_id, state=self.rows[session_id])

    async def write_state(self, row_id: str, state: dict) -> None:
        self.writes.append((row_id, copy.deepcopy(state)))
        self.rows[row_id] = state


# ---------------------------------------------------------------------------
# Merge rules (pure)
# ---------------------------------------------------------------------------

def merge_wave_sections(state: dict, scene_arc_id: str, sections: list[dict]) -> dict:
    """Replace one arc's section list wholesale; other arcs are untouched.

    Records the wave overwrites are pushed onto their version history first.
    """
    arcs = dict(state.get(SECTIONS_KEY) or {})
    previous = {
        record.get("id"): record
        for record in arcs.get(scene_arc_id) or []
        if isinstance(record, dict)
    }
    for section in sections:
        if section.get("id") in previous:
            push_version(state, section_path(scene_arc_id, section["id"]), previous[section["id"]], "set_wave")
    arcs[scene_arc_id] = sections
    state[SECTIONS_KEY] = arcs
    return state


def _patch_section(state: dict, scene_arc_id: str, section_id: str, patch: dict[str, Any]) -> Optional[dict]:
    arcs = state.get(SECTIONS_KEY) or {}
    records = arcs.get(scene_arc_id)
    if not records:
        # Sections are created by set_wave before they can be patched
        return None
    current = next((r for r in records if isinstance(r, dict) and r.get("id") == section_id), None)
    if current is None:
        return None

    push_version(state, section_path(scene_arc_id, section_id), current, ", ".join(patch))
    arcs = dict(arcs)
    arcs[scene_arc_id] = [
        {**record, **patch} if record is current else record
        for record in records
    ]
    state[SECTIONS_KEY] = arcs
    return state


def merge_section_content(state: dict, scene_arc_id: str, section_id: str, content: str) -> Optional[dict]:
    """Set one section's content. None when the arc or section is not persisted yet."""
    return _patch_section(state, scene_arc_id, section_id, {"content": content})


def merge_section_entities(state: dict, scene_arc_id: str, section_id: str, field: str, entities: list) -> Optional[dict]:
    """Attach an entity list (``entityNPCs`` ...) to one section record."""
    return _patch_section(state, scene_arc_id, section_id, {field: entities})


# ---------------------------------------------------------------------------
# Version history (pure)
# ---------------------------------------------------------------------------

def section_path(scene_arc_id: str, section_id: str) -> str:
    """History key of one section record: ``scene:<arc>:<section>``."""
    return f"scene:{scene_arc_id}:{section_id}"


def push_version(state: dict, path: str, previous: Any, description: Optional[str] = None) -> None:
    """Push *previous* onto the stack for *path*, dropping the oldest past the cap."""
    history = state.get(VERSIONS_KEY)
    if not isinstance(history, dict):
        history = {}
    stack = list(history.get(path) or [])
    stack.append({
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "value": copy.deepcopy(previous),
        "description": description,
    })
    history = {**history, path: stack[-MAX_VERSION_ENTRIES:]}
    state[VERSIONS_KEY] = history


@dataclasses.dataclass
class UndoResult:
    success: bool
    restored_value: Any = None
    remaining_entries: int = 0
    error: Optional[str] = None


def pop_version(state: dict, path: str) -> UndoResult:
    history = state.get(VERSIONS_KEY)
    stack = list(history.get(path) or []) if isinstance(history, dict) else []
    if not stack:
        return UndoResult(False, error=f'No version history for section "{path}"')

    entry = stack.pop()
    state[VERSIONS_KEY] = {**history, path: stack}
    return UndoResult(True, restored_value=entry.get("value"), remaining_entries=len(stack))


def apply_section_undo(state: dict, scene_arc_id: str, section_id: str) -> UndoResult:
    """Pop the newest version of one section and put it back into its arc."""
    result = pop_version(state, section_path(scene_arc_id, section_id))
    if not result.success:
        return result

    restored = result.restored_value
    arcs = dict(state.get(SECTIONS_KEY) or {})
    records = list(arcs.get(scene_arc_id) or [])
    for index, record in enumerate(records):
        if isinstance(record, dict) and record.get("id") == section_id:
            records[index] = restored
            break
    else:
        # The record was dropped by a later wave write
        records.append(restored)
    arcs[scene_arc_id] = records
    state[SECTIONS_KEY] = arcs
    return result


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class StatePersistence:
    """Read-modify-write against one repository with a timeout per attempt."""

    def __init__(self, repository: AdventureStateRepository, timeout_seconds: Optional[float] = None):
        if timeout_seconds is None:
            from src.config import get_settings
            timeout_seconds = get_settings().persistence_timeout_seconds
        self.repository = repository
        self.timeout_seconds = timeout_seconds

    async def load(self, session_id: str) -> Optional[dict]:
        """The persisted document, or None when missing or unreadable."""
        try:
            async with asyncio.timeout(self.timeout_seconds):
                row = await self.repository.fetch_state(session_id)
        except Exception as e:
            logger.warning("Failed to load adventure state: %s", e, extra={"session_id": session_id})
            return None
        if row is None:
            logger.info("No adventure state row", extra={"session_id": session_id})
            return None
        return row.state

    async def apply(self, session_id: str, mutate: Callable[[dict], Optional[dict]]) -> PersistOutcome:
        """Run *mutate* on a copy of the session's state and write the result.

        *mutate* returning None means there is nothing to write.
        """
        try:
            async with asyncio.timeout(self.timeout_seconds):
                row = await self.repository.fetch_state(session_id)
                if row is None:
                    return PersistOutcome.failed(f"no adventure state for session {session_id}")

                new_state = mutate(copy.deepcopy(row.state or {}))
                if new_state is None:
                    return PersistOutcome.skipped("target sections are not persisted yet")

                await self.repository.write_state(row.row_id, new_state)
        except TimeoutError:
            return PersistOutcome.failed(f"timed out after {self.timeout_seconds}s")
        except Exception as e:
            return PersistOutcome.failed(str(e) or type(e).__name__)
        return PersistOutcome.written()

    async def persist_wave(self, session_id: str, scene_arc_id: str, sections: list[dict]) -> PersistOutcome:
        return await self.apply(session_id, lambda state: merge_wave_sections(state, scene_arc_id, sections))

    async def persist_section_content(self, session_id: str, scene_arc_id: str, section_id: str, content: str) -> PersistOutcome:
        return await self.apply(
            session_id, lambda state: merge_section_content(state, scene_arc_id, section_id, content)
        )

    async def persist_section_entities(
        self, session_id: str, scene_arc_id: str, section_id: str, field: str, entities: list
    ) -> PersistOutcome:
        return await self.apply(
            session_id, lambda state: merge_section_entities(state, scene_arc_id, section_id, field, entities)
        )
