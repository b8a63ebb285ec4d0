"""Session CRUD, adventure state, section undo and stage-advance REST endpoints."""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from src.database import get_db
from src.models import AdventureState, SageSession
from src.schemas.inscribing import SectionId, next_stage
from src.services.persistence import SECTIONS_KEY, apply_section_undo, section_path
from src.services.workspace import workspaces
from src.utils.logging_config import get_logger

logger = get_logger("sage.routers.sessions")

router = APIRouter()


class CreateSessionRequest(BaseModel):
    title: str = "Untitled Adventure"
    user_id: Optional[str] = None


class SessionResponse(BaseModel):
    id: str
    title: str
    stage: str
    updated_at: str


def _session_response(session: SageSession) -> dict:
    return {
        "id": session.id,
        "title": session.title,
        "stage": session.stage,
        "updated_at": session.updated_at.isoformat() if session.updated_at else "",
    }


async def _get_session_or_404(db: AsyncSession, session_id: str) -> SageSession:
    result = await db.execute(select(SageSession).where(SageSession.id == session_id))
    session = result.scalar_one_or_none()
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.post("/sessions", response_model=SessionResponse)
async def create_session(request: CreateSessionRequest, db: AsyncSession = Depends(get_db)):
    session_id = str(uuid.uuid4())
    session = SageSession(
        id=session_id,
        title=request.title,
        user_id=request.user_id,
        stage="invoking",
        stage_history=[],
    )
    db.add(session)

    # Every session starts with an empty state document for the tools to merge into
    db.add(AdventureState(id=str(uuid.uuid4()), session_id=session_id, state={SECTIONS_KEY: {}}))

    await db.commit()
    await db.refresh(session)
    logger.info("Session created", extra={"session_id": session_id})
    return _session_response(session)


@router.get("/sessions", response_model=List[SessionResponse])
async def list_sessions(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(SageSession).where(SageSession.is_active.is_(True)).order_by(desc(SageSession.updated_at))
    )
    return [_session_response(s) for s in result.scalars().all()]


@router.get("/sessions/{session_id}")
async def get_session_details(session_id: str, db: AsyncSession = Depends(get_db)):
    session = await _get_session_or_404(db, session_id)
    return {
        **_session_response(session),
        "stage_history": session.stage_history or [],
    }


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, db: AsyncSession = Depends(get_db)):
    session = await _get_session_or_404(db, session_id)
    await db.delete(session)
    await db.commit()

    workspaces.discard(session_id)
    logger.info("Session deleted", extra={"session_id": session_id})
    return {"status": "deleted"}


@router.get("/sessions/{session_id}/state")
async def get_session_state(session_id: str, db: AsyncSession = Depends(get_db)):
    await _get_session_or_404(db, session_id)
    result = await db.execute(select(AdventureState).where(AdventureState.session_id == session_id))
    row = result.scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="Adventure state not found")
    return {"session_id": session_id, "state": row.state or {}}


@router.post("/sessions/{session_id}/advance")
async def advance_stage(session_id: str, db: AsyncSession = Depends(get_db)):
    """Move the session to the next stage of the Unfolding."""
    session = await _get_session_or_404(db, session_id)

    target = next_stage(session.stage)
    if target is None:
        raise HTTPException(status_code=409, detail=f"Session is already at the final stage ({session.stage})")

    history = list(session.stage_history or [])
    history.append({
        "from": session.stage,
        "to": target,
        "at": datetime.now(timezone.utc).isoformat(),
    })
    session.stage_history = history
    flag_modified(session, "stage_history")
    previous, session.stage = session.stage, target
    await db.commit()

    logger.info(
        "Stage advanced", extra={"session_id": session_id, "metadata": {"from": previous, "to": target}}
    )
    return {"id": session_id, "stage": target, "previous_stage": previous}


class UndoSectionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scene_arc_id: str = Field(alias="sceneArcId", min_length=1)
    section_id: SectionId = Field(alias="sectionId")


@router.post("/sessions/{session_id}/sections/undo")
async def undo_section(session_id: str, request: UndoSectionRequest, db: AsyncSession = Depends(get_db)):
    """Revert one Inscribing section to the version before its last write."""
    await _get_session_or_404(db, session_id)
    result = await db.execute(select(AdventureState).where(AdventureState.session_id == session_id))
    row = result.scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="Adventure state not found")

    state = copy.deepcopy(row.state or {})
    undo = apply_section_undo(state, request.scene_arc_id, request.section_id)
    if not undo.success:
        raise HTTPException(status_code=400, detail=undo.error)

    row.state = state
    flag_modified(row, "state")
    await db.commit()

    # Keep a live socket's cache in step so later propagation scans see the restored text
    workspace = workspaces.get(session_id)
    restored = undo.restored_value
    if workspace is not None and isinstance(restored, dict):
        content = restored.get("content")
        workspace.sections.cache_section(
            request.scene_arc_id, request.section_id, "" if content is None else str(content)
        )

    path = section_path(request.scene_arc_id, request.section_id)
    logger.info(
        "Section undone",
        extra={"session_id": session_id, "scene_arc_id": request.scene_arc_id,
               "metadata": {"section_path": path, "remaining": undo.remaining_entries}},
    )
    return {
        "success": True,
        "sectionPath": path,
        "restoredValue": restored,
        "remainingEntries": undo.remaining_entries,
    }
