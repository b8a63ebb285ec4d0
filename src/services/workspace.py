"""Per-session Inscribing workspace and the process-wide registry of workspaces."""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, Optional

from src.schemas.events import SageEvent
from src.services.event_queue import EventQueue, drain_combined
from src.services.persistence import SECTIONS_KEY, StatePersistence
from src.services.section_cache import SectionCache
from src.utils.logging_config import get_logger

logger = get_logger("sage.workspace")


class InscribingWorkspace:
    """Bundles the mutable state the Inscribing tools share within one session.

    ``events`` collects panel events from the core handlers, and
    ``propagation_events`` those from the propagation tools. A combined drain
    returns core events first.

    Several tabs can share one workspace. ``turn_lock`` must be held from
    dispatching a batch of tool calls until its events are drained, so one
    tab never drains another tab's events.
    """

    def __init__(self, session_id: str, persistence: Optional[StatePersistence] = None):
        self.session_id = session_id
        self.persistence = persistence
        self.sections = SectionCache()
        self.events = EventQueue()
        self.propagation_events = EventQueue()
        self.turn_lock = asyncio.Lock()

    def drain_turn_events(self) -> list[SageEvent]:
        return drain_combined(self.events, self.propagation_events)

    def restore(self, state: Optional[dict]) -> int:
        """Seed the section cache from a persisted adventure state document.

        Returns the number of sections loaded. Arcs that are not lists of
        records are skipped with a warning.
        """
        arcs = (state or {}).get(SECTIONS_KEY) or {}
        if not isinstance(arcs, dict):
            logger.warning(
                "Ignoring %s of type %s", SECTIONS_KEY, type(arcs).__name__,
                extra={"session_id": self.session_id},
            )
            return 0

        count = 0
        for scene_arc_id, records in arcs.items():
            if records is None:
                continue
            if not isinstance(records, list):
                logger.warning(
                    "Skipping arc with %s instead of a section list", type(records).__name__,
                    extra={"session_id": self.session_id, "scene_arc_id": scene_arc_id},
                )
                continue
            count += self.sections.seed(scene_arc_id, records)
        logger.info(
            "Restored %d cached sections", count,
            extra={"session_id": self.session_id, "metadata": {"arcs": len(self.sections.arc_ids())}},
        )
        return count

    def reset(self) -> None:
        self.sections.clear()
        self.events.drain_all()
        self.propagation_events.drain_all()


class WorkspaceRegistry:
    """Maps session id -> workspace for the lifetime of the process."""

    def __init__(self) -> None:
        self._workspaces: dict[str, InscribingWorkspace] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[InscribingWorkspace]:
        return self._workspaces.get(session_id)

    def get_or_create(
        self,
        session_id: str,
        factory: Optional[Callable[[str], InscribingWorkspace]] = None,
    ) -> InscribingWorkspace:
        with self._lock:
            workspace = self._workspaces.get(session_id)
            if workspace is None:
                workspace = factory(session_id) if factory else InscribingWorkspace(session_id)
                self._workspaces[session_id] = workspace
            return workspace

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._workspaces.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._workspaces.clear()

    def __len__(self) -> int:
        return len(self._workspaces)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._workspaces


workspaces = WorkspaceRegistry()


def create_sql_workspace(session_id: str) -> InscribingWorkspace:
    """Factory for live sessions: persistence goes to the database."""
    from src.services.persistence import SqlAdventureStateRepository
    return InscribingWorkspace(session_id, StatePersistence(SqlAdventureStateRepository()))
