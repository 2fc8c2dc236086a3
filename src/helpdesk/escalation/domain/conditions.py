"""
Condition Evaluators
====================

Pure functions ``(ticket, params, now) -> ConditionResult``.

Evaluation never raises: an unknown type or a malformed value yields a
non-match whose evidence explains why.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict

from helpdesk.config import ConditionType, TicketStatus
from helpdesk.core import EvaluationException, ValidationException
from helpdesk.escalation.domain.value_objects import (
    ConditionResult, CustomerRatingCondition, NoResponseCondition,
    PriorityLevelCondition, SLABreachCondition, TimeInStatusCondition,
    parse_condition
)
from helpdesk.tickets.domain import TicketSnapshot


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


def evaluate_sla_breach(ticket: TicketSnapshot, params: SLABreachCondition, now: datetime) -> ConditionResult:
    if not ticket.is_active:
        return ConditionResult.no_match(f"status {ticket.status.value} is not tracked for SLA")
    if ticket.sla_due_at is None:
        return ConditionResult.no_match("no SLA deadline tracked")

    due = ticket.sla_due_at
    trigger_at = due - timedelta(hours=params.threshold_hours)
    if now <= trigger_at:
        return ConditionResult.no_match(f"{_minutes(trigger_at - now)} minutes until escalation window")

    # One occurrence per status stay; a recomputed deadline is not a new breach
    if now > due:
        return ConditionResult(True, f"SLA breached {_minutes(now - due)} minutes ago (due {due.isoformat()})")
    return ConditionResult(True, f"{_minutes(due - now)} minutes remaining before SLA deadline {due.isoformat()}")


def evaluate_time_in_status(ticket: TicketSnapshot, params: TimeInStatusCondition, now: datetime) -> ConditionResult:
    if ticket.status != params.status:
        return ConditionResult.no_match(f"ticket is {ticket.status.value}, not {params.status.value}")

    last = ticket.last_status_change
    if last is not None and last.new_status != ticket.status:
        raise EvaluationException(
            f"status history inconsistent: last change led to {last.new_status.value} "
            f"but ticket is {ticket.status.value}"
        )

    entered = ticket.status_since
    elapsed = now - entered
    if _hours(elapsed) < params.hours:
        return ConditionResult.no_match(
            f"in {ticket.status.value} for {_hours(elapsed):.2f} of {params.hours} hours"
        )
    return ConditionResult(
        True,
        f"in {ticket.status.value} for {_hours(elapsed):.2f} hours (since {entered.isoformat()})",
        f"entered={entered.isoformat()}"
    )


def evaluate_priority_level(ticket: TicketSnapshot, params: PriorityLevelCondition, now: datetime) -> ConditionResult:
    if ticket.priority not in params.priorities:
        return ConditionResult.no_match(f"priority {ticket.priority.value} not in watched set")

    age = ticket.age(now)
    if _hours(age) < params.hours:
        return ConditionResult.no_match(f"open {_hours(age):.2f} of {params.hours} hours")
    return ConditionResult(
        True,
        f"priority {ticket.priority.value}, open {_hours(age):.2f} hours",
        f"priority={ticket.priority.value}"
    )


def evaluate_no_response(ticket: TicketSnapshot, params: NoResponseCondition, now: datetime) -> ConditionResult:
    baseline = ticket.created_at
    window_end = baseline + timedelta(hours=params.hours)

    if now < window_end:
        return ConditionResult.no_match(f"response window open for {_minutes(window_end - now)} more minutes")

    for comment in ticket.public_comments():
        if baseline <= comment.created_at <= window_end and ticket.is_responder(comment.author_id):
            return ConditionResult.no_match(f"responded at {comment.created_at.isoformat()}")

    return ConditionResult(
        True,
        f"no response within {params.hours} hours of creation ({baseline.isoformat()})",
        f"baseline={baseline.isoformat()}"
    )


def evaluate_customer_rating(
    ticket: TicketSnapshot,
    params: CustomerRatingCondition,
    now: datetime
) -> ConditionResult:
    if ticket.status not in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
        return ConditionResult.no_match(f"status {ticket.status.value} has no rating yet")
    if ticket.feedback is None:
        return ConditionResult.no_match("no customer feedback")

    rating = ticket.feedback.rating
    if params.operator == "less_than":
        crossed = rating < params.rating
    else:
        crossed = rating > params.rating
    if not crossed:
        return ConditionResult.no_match(f"rating {rating} does not cross {params.operator} {params.rating}")
    return ConditionResult(
        True,
        f"customer rated {rating} ({params.operator} {params.rating})",
        f"feedback={ticket.feedback.submitted_at.isoformat()}"
    )


EVALUATORS: Dict[ConditionType, Callable[..., ConditionResult]] = {
    ConditionType.SLA_BREACH: evaluate_sla_breach,
    ConditionType.TIME_IN_STATUS: evaluate_time_in_status,
    ConditionType.PRIORITY_LEVEL: evaluate_priority_level,
    ConditionType.NO_RESPONSE: evaluate_no_response,
    ConditionType.CUSTOMER_RATING: evaluate_customer_rating,
}


def evaluate_condition(
    ticket: TicketSnapshot,
    condition_type: ConditionType,
    condition_value: dict,
    now: datetime
) -> ConditionResult:
    """
    Evaluate a stored condition against a ticket snapshot.

    Args:
        ticket: Snapshot taken at pass start
        condition_type: The rule's condition type
        condition_value: The rule's stored condition value
        now: Pass clock reading

    Returns:
        ConditionResult, never raising
    """
    try:
        params = parse_condition(condition_type, condition_value)
    except ValidationException as exc:
        return ConditionResult.no_match(f"malformed condition: {exc.message}")

    evaluator = EVALUATORS[ConditionType(condition_type)]
    try:
        return evaluator(ticket, params, now)
    except EvaluationException as exc:
        return ConditionResult.no_match(f"evaluation error: {exc}")
    except Exception as exc:
        return ConditionResult.no_match(f"evaluation error: {type(exc).__name__}: {exc}")
