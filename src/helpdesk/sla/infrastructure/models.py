"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import String, Boolean, Float, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.infrastructure.database import Base, UTCDateTime, utcnow


class SLAPolicyModel(Base):
    """
    Database model for SLAPolicy entity.

    Maps to the 'sla_policies' table.
    """
    __tablename__ = "sla_policies"
    __table_args__ = (
        Index("ix_sla_policies_priority_active", "priority", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False)

    # Targets in hours
    response_time_hours: Mapped[float] = mapped_column(Float, nullable=False)
    resolution_time_hours: Mapped[float] = mapped_column(Float, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
