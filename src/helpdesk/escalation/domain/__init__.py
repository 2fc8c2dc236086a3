"""
Escalation Domain Layer
=======================

Rules, condition/action schemas, pure condition evaluators and the
execution record. No dependencies on infrastructure.
"""

from helpdesk.escalation.domain.entities import (
    EscalationRule,
    EscalationExecution,
    WorkUnit,
    build_dedup_key,
)
from helpdesk.escalation.domain.value_objects import (
    ConditionResult,
    ActionResult,
    CONDITION_SCHEMAS,
    ACTION_SCHEMAS,
    SLABreachCondition,
    TimeInStatusCondition,
    PriorityLevelCondition,
    NoResponseCondition,
    CustomerRatingCondition,
    NotifyManagerAction,
    ReassignTicketAction,
    IncreasePriorityAction,
    AddFollowerAction,
    SendEmailAction,
    parse_condition,
    parse_action,
    normalize,
)
from helpdesk.escalation.domain.conditions import evaluate_condition

__all__ = [
    "EscalationRule",
    "EscalationExecution",
    "WorkUnit",
    "build_dedup_key",
    "ConditionResult",
    "ActionResult",
    "CONDITION_SCHEMAS",
    "ACTION_SCHEMAS",
    "SLABreachCondition",
    "TimeInStatusCondition",
    "PriorityLevelCondition",
    "NoResponseCondition",
    "CustomerRatingCondition",
    "NotifyManagerAction",
    "ReassignTicketAction",
    "IncreasePriorityAction",
    "AddFollowerAction",
    "SendEmailAction",
    "parse_condition",
    "parse_action",
    "normalize",
    "evaluate_condition",
]
