"""
Escalation Application DTOs
===========================

Pydantic models for the escalation API.

Request bodies only check the envelope (name, closed type enums); the
per-type ``condition_value`` / ``action_config`` schemas are enforced by
``EscalationRuleService`` so the same rules apply to every caller.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from helpdesk.config import ActionType, ConditionType, ExecutionOutcome, HistoryAction


def _clean_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not v.strip():
        raise ValueError("name must not be blank")
    return v.strip()


# ========== Request DTOs ==========

class RuleCreateDTO(BaseModel):
    """DTO for creating an escalation rule."""
    name: str = Field(..., min_length=1, max_length=100, description="Rule name")
    description: Optional[str] = Field(None, max_length=2000)
    condition_type: ConditionType = Field(..., description="What to watch for")
    condition_value: Dict[str, Any] = Field(default_factory=dict, description="Condition parameters")
    action_type: ActionType = Field(..., description="What to do when the condition holds")
    action_config: Dict[str, Any] = Field(default_factory=dict, description="Action parameters")
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _clean_name(v)


class RuleUpdateDTO(BaseModel):
    """
    DTO for a partial rule update.

    Types may change as long as the resulting type/value pairs validate.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    condition_type: Optional[ConditionType] = None
    condition_value: Optional[Dict[str, Any]] = None
    action_type: Optional[ActionType] = None
    action_config: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _clean_name(v)


# ========== Response DTOs ==========

class RuleResponse(BaseModel):
    """Response model for an escalation rule."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    condition_type: ConditionType
    condition_value: Dict[str, Any]
    action_type: ActionType
    action_config: Dict[str, Any]
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PassSummaryResponse(BaseModel):
    """Counters for one escalation pass."""
    pass_id: str
    trigger: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_ms: int = 0
    tickets_evaluated: int = 0
    rules_evaluated: int = 0
    conditions_matched: int = 0
    executed: int = 0
    failed: int = 0
    skipped_duplicates: int = 0
    cancelled: bool = False
    errors: List[str] = Field(default_factory=list)


class AuditPayload(BaseModel):
    rule_id: str
    rule_name: str
    action_type: ActionType
    condition_type: ConditionType
    outcome: ExecutionOutcome
    detail: str


class AuditEntryResponse(BaseModel):
    """One entry of a ticket's escalation audit trail."""
    id: Optional[str] = None
    action: HistoryAction
    payload: AuditPayload
    evidence: str
    created_at: Optional[datetime] = None


class TicketHistoryResponse(BaseModel):
    ticket_id: str
    entries: List[AuditEntryResponse] = Field(default_factory=list)
