"""
Escalation Value Objects
========================

Per-type schemas for rule conditions and actions.

A rule stores ``condition_type`` plus a JSON ``condition_value`` (and
likewise ``action_type`` plus ``action_config``). The pair is a tagged
union: the type selects the schema below, which is enforced when a rule is
written and again when it is evaluated.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from helpdesk.config import (
    ActionType, ConditionType, Priority, TicketStatus, PRIORITY_ORDER
)
from helpdesk.core import ValidationException

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class _Schema(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


# ========== Condition schemas ==========

class SLABreachCondition(_Schema):
    """Fires once ``now`` is within ``threshold_hours`` of the deadline, or past it."""
    threshold_hours: float = Field(default=0, ge=0)


class TimeInStatusCondition(_Schema):
    """Fires when the ticket has sat in ``status`` for at least ``hours``."""
    status: TicketStatus
    hours: float = Field(..., gt=0)


class PriorityLevelCondition(_Schema):
    """Fires for tickets of the listed priorities older than ``hours``."""
    priorities: List[Priority] = Field(..., min_length=1)
    hours: float = Field(default=0, ge=0)

    @field_validator("priorities")
    @classmethod
    def normalize_priorities(cls, v: List[Priority]) -> List[Priority]:
        return sorted(set(v), key=PRIORITY_ORDER.index)


class NoResponseCondition(_Schema):
    """Fires when nobody on the support side answered within ``hours`` of creation."""
    hours: float = Field(..., gt=0)


class CustomerRatingCondition(_Schema):
    """Fires on resolved tickets whose feedback rating crosses ``rating``."""
    rating: int = Field(..., ge=1, le=5)
    operator: Literal["less_than", "greater_than"] = "less_than"


# ========== Action schemas ==========

class NotifyManagerAction(_Schema):
    message: Optional[str] = Field(default=None, max_length=2000)
    recipient_id: Optional[str] = Field(default=None, min_length=1)


class ReassignTicketAction(_Schema):
    target: Literal["user", "team_leader"] = "user"
    user_id: Optional[str] = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def require_user_for_user_target(self) -> "ReassignTicketAction":
        if self.target == "user" and not self.user_id:
            raise ValueError("user_id is required when target is 'user'")
        return self


class IncreasePriorityAction(_Schema):
    pass


class AddFollowerAction(_Schema):
    user_ids: List[str] = Field(..., min_length=1)

    @field_validator("user_ids")
    @classmethod
    def normalize_user_ids(cls, v: List[str]) -> List[str]:
        cleaned = [u.strip() for u in v]
        if any(not u for u in cleaned):
            raise ValueError("user_ids must not contain blank ids")
        return list(dict.fromkeys(cleaned))


class SendEmailAction(_Schema):
    recipients: List[str] = Field(..., min_length=1)
    subject: str = Field(default="Ticket Escalation", min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=10000)

    @field_validator("recipients")
    @classmethod
    def validate_recipients(cls, v: List[str]) -> List[str]:
        cleaned = [r.strip() for r in v]
        invalid = [r for r in cleaned if not EMAIL_PATTERN.match(r)]
        if invalid:
            raise ValueError(f"invalid email address: {', '.join(invalid)}")
        return list(dict.fromkeys(cleaned))


CONDITION_SCHEMAS: Dict[ConditionType, Type[_Schema]] = {
    ConditionType.SLA_BREACH: SLABreachCondition,
    ConditionType.TIME_IN_STATUS: TimeInStatusCondition,
    ConditionType.PRIORITY_LEVEL: PriorityLevelCondition,
    ConditionType.NO_RESPONSE: NoResponseCondition,
    ConditionType.CUSTOMER_RATING: CustomerRatingCondition,
}

ACTION_SCHEMAS: Dict[ActionType, Type[_Schema]] = {
    ActionType.NOTIFY_MANAGER: NotifyManagerAction,
    ActionType.REASSIGN_TICKET: ReassignTicketAction,
    ActionType.INCREASE_PRIORITY: IncreasePriorityAction,
    ActionType.ADD_FOLLOWER: AddFollowerAction,
    ActionType.SEND_EMAIL: SendEmailAction,
}


def _errors(exc: ValidationError) -> List[dict]:
    return [
        {"field": ".".join(str(p) for p in err["loc"]) or "__root__", "message": err["msg"]}
        for err in exc.errors()
    ]


def parse_condition(condition_type: ConditionType, value: Optional[dict]) -> _Schema:
    """
    Validate a condition value against its type's schema.

    Raises:
        ValidationException: Unknown type or malformed value
    """
    try:
        schema = CONDITION_SCHEMAS[ConditionType(condition_type)]
    except (KeyError, ValueError):
        raise ValidationException(
            f"Unknown condition type: {condition_type}",
            {"allowed": [c.value for c in ConditionType]}
        )
    try:
        return schema.model_validate(value or {})
    except ValidationError as exc:
        raise ValidationException(
            f"Invalid condition_value for {schema.__name__}",
            {"condition_type": ConditionType(condition_type).value, "errors": _errors(exc)}
        )


def parse_action(action_type: ActionType, config: Optional[dict]) -> _Schema:
    """
    Validate an action config against its type's schema.

    Raises:
        ValidationException: Unknown type or malformed config
    """
    try:
        schema = ACTION_SCHEMAS[ActionType(action_type)]
    except (KeyError, ValueError):
        raise ValidationException(
            f"Unknown action type: {action_type}",
            {"allowed": [a.value for a in ActionType]}
        )
    try:
        return schema.model_validate(config or {})
    except ValidationError as exc:
        raise ValidationException(
            f"Invalid action_config for {schema.__name__}",
            {"action_type": ActionType(action_type).value, "errors": _errors(exc)}
        )


def normalize(schema: _Schema) -> dict:
    """JSON-ready form stored on the rule."""
    return schema.model_dump(mode="json")


@dataclass(frozen=True)
class ConditionResult:
    """
    Outcome of evaluating one condition against one ticket snapshot.

    ``epoch`` identifies the occurrence that fired (for example the time the
    ticket entered its status) and is part of the dedup key.
    """
    matched: bool
    evidence: str
    epoch: Optional[str] = None

    @classmethod
    def no_match(cls, evidence: str) -> "ConditionResult":
        return cls(matched=False, evidence=evidence)


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one action. ``detail`` is the result or error text."""
    success: bool
    detail: str

    @classmethod
    def ok(cls, detail: str) -> "ActionResult":
        return cls(True, detail)

    @classmethod
    def failed(cls, detail: str) -> "ActionResult":
        return cls(False, detail)
