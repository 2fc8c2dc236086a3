"""
Escalation Infrastructure Models
================================

SQLAlchemy ORM models for escalation rules and their execution log.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.infrastructure.database import Base, UTCDateTime, utcnow


def _new_id() -> str:
    return str(uuid4())


class EscalationRuleModel(Base):
    """
    Database model for EscalationRule entity.

    Maps to the 'escalation_rules' table.
    """
    __tablename__ = "escalation_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    condition_type: Mapped[str] = mapped_column(String(32), nullable=False)
    condition_value: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    action_config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class EscalationExecutionModel(Base):
    """
    Database model for EscalationExecution entity.

    Maps to the 'escalation_executions' table. Append-only. ``rule_id`` is
    not a foreign key: rows outlive the rule.
    """
    __tablename__ = "escalation_executions"
    __table_args__ = (
        Index("ix_escalation_executions_dedup_outcome", "dedup_key", "outcome"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    ticket_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    rule_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    outcome: Mapped[str] = mapped_column(String(16), nullable=False)

    # Snapshot of the rule at execution time
    rule_name: Mapped[str] = mapped_column(String(100), nullable=False)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    condition_type: Mapped[str] = mapped_column(String(32), nullable=False)

    detail: Mapped[str] = mapped_column(Text, nullable=False, default="")
    evidence: Mapped[str] = mapped_column(Text, nullable=False, default="")
    dedup_key: Mapped[str] = mapped_column(String(512), nullable=False)

    executed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
