"""
SLA Domain Entities
====================

Pure Python domain entities for SLA policies and compliance.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List

from helpdesk.config import Priority, BreachRisk


@dataclass
class SLAPolicy:
    """
    SLA policy entity.

    Maps a ticket priority to response and resolution targets in hours.
    Several policies may share a priority; the most recently created
    active one is used.
    """

    id: Optional[str]
    name: str
    priority: Priority
    response_time_hours: float
    resolution_time_hours: float
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate policy targets on initialization."""
        if self.response_time_hours <= 0 or self.resolution_time_hours <= 0:
            raise ValueError("Response and resolution times must be positive numbers")
        if self.response_time_hours > self.resolution_time_hours:
            raise ValueError("Response time cannot be greater than resolution time")


@dataclass(frozen=True)
class ComplianceStatus:
    """SLA compliance of a single ticket at a point in time."""

    is_compliant: bool
    due_at: Optional[datetime]
    remaining_seconds: float
    breach_risk: BreachRisk

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "is_compliant": self.is_compliant,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "remaining_seconds": self.remaining_seconds,
            "breach_risk": self.breach_risk.value,
        }


@dataclass(frozen=True)
class SLAViolation:
    """A ticket that missed (or is past) its resolution deadline."""

    ticket_id: str
    priority: Priority
    policy_id: Optional[str]
    due_at: datetime
    actual_time: datetime
    delay_hours: float
    team_id: Optional[str] = None
    violation_type: str = "resolution"


@dataclass
class ComplianceMetrics:
    """Aggregated compliance over a set of tickets."""

    total_tickets: int = 0
    compliant_tickets: int = 0
    violated_tickets: int = 0
    average_resolution_hours: float = 0.0
    violations: List[SLAViolation] = field(default_factory=list)

    @property
    def compliance_rate(self) -> float:
        """Percentage of compliant tickets; 100 when there is nothing to measure."""
        if self.total_tickets == 0:
            return 100.0
        return self.compliant_tickets / self.total_tickets * 100
