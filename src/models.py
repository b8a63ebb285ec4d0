from datetime import datetime
from typing import List, Optional
from sqlalchemy import String, DateTime, ForeignKey, Text, JSON, Integer, Boolean, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

class Base(DeclarativeBase):
    pass

class SageSession(Base):
    """One adventure-authoring workflow (the Unfolding) for one user."""
    __tablename__ = "sage_sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True, index=True) # Using UUID strings
    user_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True) # nullable for anonymous local usage
    title: Mapped[str] = mapped_column(String, default="Untitled Adventure")

    # Workflow position: invoking -> attuning -> binding -> weaving -> inscribing -> delivering
    stage: Mapped[str] = mapped_column(String, default="invoking")
    stage_history: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    adventure_state: Mapped["AdventureState"] = relationship("AdventureState", back_populates="session", uselist=False, cascade="all, delete-orphan")
    messages: Mapped[List["SageMessage"]] = relationship("SageMessage", back_populates="session", cascade="all, delete-orphan", order_by="SageMessage.created_at")


class AdventureState(Base):
    """The single JSON document holding everything the Sage has produced for a session.

    Tool handlers read-modify-write ``state``; the keys this service owns are
    ``inscribingSections`` (scene arc id -> list of section records) and
    ``versionHistory`` (section path -> previous records, newest last).
    """
    __tablename__ = "sage_adventure_state"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("sage_sessions.id", ondelete="CASCADE"), unique=True)

    state: Mapped[dict] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    session: Mapped["SageSession"] = relationship("SageSession", back_populates="adventure_state")


class SageMessage(Base):
    """A chat message replayed into the Sage's context on later turns."""
    __tablename__ = "sage_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("sage_sessions.id", ondelete="CASCADE"))
    role: Mapped[str] = mapped_column(String(16))  # "user" | "model"
    content: Mapped[str] = mapped_column(Text)
    stage: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tool_calls: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    session: Mapped["SageSession"] = relationship("SageSession", back_populates="messages")

    __table_args__ = (
        Index("idx_sage_messages_session_created", "session_id", "created_at"),
    )
