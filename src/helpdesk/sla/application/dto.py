"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime

from helpdesk.config import Priority, BreachRisk


# ========== Request DTOs ==========

class SLAPolicyCreateDTO(BaseModel):
    """DTO for creating an SLA policy."""
    name: str = Field(..., min_length=1, max_length=100, description="Policy name")
    description: Optional[str] = Field(None, description="Free-text description")
    priority: Priority = Field(..., description="Ticket priority this policy governs")
    response_time_hours: float = Field(..., gt=0, description="First response target in hours")
    resolution_time_hours: float = Field(..., gt=0, description="Resolution target in hours")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()


class SLAPolicyUpdateDTO(BaseModel):
    """DTO for a partial policy update. Priority is fixed once created."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    response_time_hours: Optional[float] = Field(None, gt=0)
    resolution_time_hours: Optional[float] = Field(None, gt=0)
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("name must not be blank")
        return v.strip() if v else v


class ComplianceQueryDTO(BaseModel):
    """Query parameters for the compliance endpoint."""
    team_id: Optional[str] = None
    priority: Optional[Priority] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def to_filters(self) -> dict:
        return self.model_dump(exclude_none=True)


# ========== Response DTOs ==========

class SLAPolicyResponse(BaseModel):
    """Response model for an SLA policy."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    priority: Priority
    response_time_hours: float
    resolution_time_hours: float
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ComplianceStatusResponse(BaseModel):
    """Compliance of one ticket."""
    ticket_id: str
    is_compliant: bool
    due_at: Optional[datetime] = None
    remaining_seconds: float
    breach_risk: BreachRisk


class SLAViolationResponse(BaseModel):
    """One deadline violation."""
    model_config = ConfigDict(from_attributes=True)

    ticket_id: str
    priority: Priority
    policy_id: Optional[str] = None
    team_id: Optional[str] = None
    violation_type: str
    due_at: datetime
    actual_time: datetime
    delay_hours: float


class ComplianceMetricsResponse(BaseModel):
    """Aggregated compliance metrics."""
    total_tickets: int
    compliant_tickets: int
    violated_tickets: int
    compliance_rate: float = Field(..., description="Percentage, 100 when no tickets match")
    average_resolution_hours: float
    violations: List[SLAViolationResponse] = Field(default_factory=list)


class RecomputeResponse(BaseModel):
    """Result of an explicit deadline recomputation."""
    ticket_id: str
    priority: Priority
    previous_sla_due_at: Optional[datetime] = None
    sla_due_at: Optional[datetime] = None
    policy_id: Optional[str] = None
