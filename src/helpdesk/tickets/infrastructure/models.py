"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for the shared ticket store.

The ticket subsystem owns these tables; the escalation engine reads them
and performs guarded updates on priority, assignee, followers and the SLA
deadline.
"""

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import String, Boolean, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.infrastructure.database import Base, UTCDateTime, utcnow
from helpdesk.config import Priority, TicketStatus


def _new_id() -> str:
    return str(uuid4())


class UserModel(Base):
    """Maps to the 'users' table."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TeamModel(Base):
    """Maps to the 'teams' table."""
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class TeamLeaderModel(Base):
    """Maps to the 'team_leaders' association table."""
    __tablename__ = "team_leaders"

    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)


class TicketModel(Base):
    """
    Database model for a support ticket.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    status: Mapped[str] = mapped_column(String(32), nullable=False, default=TicketStatus.OPEN.value, index=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=Priority.MEDIUM.value)

    customer_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    team_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # SLA tracking
    sla_due_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    comments: Mapped[List["CommentModel"]] = relationship(
        order_by="CommentModel.created_at", cascade="all, delete-orphan"
    )
    history: Mapped[List["TicketHistoryModel"]] = relationship(
        order_by="TicketHistoryModel.created_at", cascade="all, delete-orphan"
    )
    followers: Mapped[List["TicketFollowerModel"]] = relationship(cascade="all, delete-orphan")
    feedback: Mapped[Optional["TicketFeedbackModel"]] = relationship(cascade="all, delete-orphan")


class CommentModel(Base):
    """Maps to the 'ticket_comments' table."""
    __tablename__ = "ticket_comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    ticket_id: Mapped[str] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    author_id: Mapped[str] = mapped_column(String(36), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class TicketHistoryModel(Base):
    """
    Maps to the 'ticket_history' table.

    Field-level audit trail; ``status_changed`` rows drive time-in-status.
    """
    __tablename__ = "ticket_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    ticket_id: Mapped[str] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    field_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class TicketFollowerModel(Base):
    """Maps to the 'ticket_followers' table."""
    __tablename__ = "ticket_followers"
    __table_args__ = (UniqueConstraint("ticket_id", "user_id", name="uq_ticket_follower"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    ticket_id: Mapped[str] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    added_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class TicketFeedbackModel(Base):
    """Maps to the 'ticket_feedback' table."""
    __tablename__ = "ticket_feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    ticket_id: Mapped[str] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), unique=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
