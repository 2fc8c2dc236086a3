from datetime import timedelta

import pytest

from helpdesk.config import ConditionType, Priority, TicketStatus
from helpdesk.escalation.domain import build_dedup_key, conditions, evaluate_condition
from helpdesk.tickets.domain import Comment, StatusChange, TicketFeedback

from conftest import NOW, make_ticket


@pytest.mark.parametrize(
    "due_offset_hours, threshold_hours, status, expected",
    [
        (-1, 0, TicketStatus.OPEN, True),             # past due
        (1, 0, TicketStatus.OPEN, False),             # before due
        (1, 2, TicketStatus.IN_PROGRESS, True),       # inside warning window
        (3, 2, TicketStatus.OPEN, False),             # warning window not reached
        (-1, 0, TicketStatus.RESOLVED, False),        # terminal
        (-1, 0, TicketStatus.CLOSED, False),
        (-1, 0, TicketStatus.WAITING_FOR_CUSTOMER, True),
    ],
)
def test_sla_breach(due_offset_hours, threshold_hours, status, expected):
    ticket = make_ticket(status=status, sla_due_at=NOW + timedelta(hours=due_offset_hours))

    result = evaluate_condition(
        ticket, ConditionType.SLA_BREACH, {"threshold_hours": threshold_hours}, NOW
    )

    assert result.matched is expected
    if expected:
        assert result.epoch is None


def test_sla_breach_exactly_at_deadline_does_not_fire():
    ticket = make_ticket(sla_due_at=NOW)
    assert not evaluate_condition(ticket, ConditionType.SLA_BREACH, {}, NOW).matched


def test_sla_breach_without_deadline_never_fires():
    result = evaluate_condition(make_ticket(sla_due_at=None), ConditionType.SLA_BREACH, {}, NOW)
    assert not result.matched
    assert "no SLA deadline" in result.evidence


def test_time_in_status_uses_last_status_change():
    ticket = make_ticket(
        status=TicketStatus.WAITING_FOR_CUSTOMER,
        status_changes=(
            StatusChange(TicketStatus.OPEN, TicketStatus.IN_PROGRESS, NOW - timedelta(hours=4)),
            StatusChange(TicketStatus.IN_PROGRESS, TicketStatus.WAITING_FOR_CUSTOMER, NOW - timedelta(hours=3)),
        ),
    )

    hit = evaluate_condition(
        ticket, ConditionType.TIME_IN_STATUS, {"status": "WAITING_FOR_CUSTOMER", "hours": 3}, NOW
    )
    miss = evaluate_condition(
        ticket, ConditionType.TIME_IN_STATUS, {"status": "WAITING_FOR_CUSTOMER", "hours": 3.5}, NOW
    )
    other = evaluate_condition(
        ticket, ConditionType.TIME_IN_STATUS, {"status": "OPEN", "hours": 1}, NOW
    )

    assert hit.matched
    assert hit.epoch == f"entered={(NOW - timedelta(hours=3)).isoformat()}"
    assert not miss.matched
    assert not other.matched


def test_time_in_status_without_history_counts_from_creation():
    ticket = make_ticket(created_at=NOW - timedelta(hours=2))
    result = evaluate_condition(ticket, ConditionType.TIME_IN_STATUS, {"status": "OPEN", "hours": 2}, NOW)
    assert result.matched


def test_time_in_status_with_inconsistent_history_is_not_a_match():
    ticket = make_ticket(
        status=TicketStatus.IN_PROGRESS,
        status_changes=(StatusChange(TicketStatus.IN_PROGRESS, TicketStatus.OPEN, NOW - timedelta(hours=9)),),
    )

    result = evaluate_condition(
        ticket, ConditionType.TIME_IN_STATUS, {"status": "IN_PROGRESS", "hours": 1}, NOW
    )

    assert not result.matched
    assert result.evidence.startswith("evaluation error")


def test_priority_level():
    ticket = make_ticket(priority=Priority.HIGH, created_at=NOW - timedelta(hours=5))

    assert evaluate_condition(
        ticket, ConditionType.PRIORITY_LEVEL, {"priorities": ["HIGH", "URGENT"], "hours": 4}, NOW
    ).matched
    assert not evaluate_condition(
        ticket, ConditionType.PRIORITY_LEVEL, {"priorities": ["HIGH"], "hours": 6}, NOW
    ).matched
    assert not evaluate_condition(
        ticket, ConditionType.PRIORITY_LEVEL, {"priorities": ["LOW"]}, NOW
    ).matched


def test_no_response_fires_without_public_reply():
    ticket = make_ticket(
        assigned_to="agent-1",
        comments=(
            Comment("c1", "agent-1", True, NOW - timedelta(hours=4, minutes=30)),    # internal note
            Comment("c2", "customer-1", False, NOW - timedelta(hours=4)),            # customer
        ),
    )

    result = evaluate_condition(ticket, ConditionType.NO_RESPONSE, {"hours": 4}, NOW)

    assert result.matched
    assert result.epoch == f"baseline={ticket.created_at.isoformat()}"


def test_no_response_satisfied_by_assignee_reply_in_window():
    ticket = make_ticket(
        assigned_to="agent-1",
        comments=(Comment("c1", "agent-1", False, NOW - timedelta(hours=2)),),
    )
    assert not evaluate_condition(ticket, ConditionType.NO_RESPONSE, {"hours": 4}, NOW).matched


def test_no_response_late_reply_still_counts_as_missed():
    ticket = make_ticket(
        assigned_to="agent-1",
        comments=(Comment("c1", "agent-1", False, NOW - timedelta(minutes=10)),),
    )
    assert evaluate_condition(ticket, ConditionType.NO_RESPONSE, {"hours": 4}, NOW).matched


def test_no_response_waits_for_window_to_close():
    ticket = make_ticket(created_at=NOW - timedelta(hours=3))
    assert not evaluate_condition(ticket, ConditionType.NO_RESPONSE, {"hours": 4}, NOW).matched


def test_no_response_unassigned_ticket_accepts_any_agent():
    ticket = make_ticket(comments=(Comment("c1", "agent-7", False, NOW - timedelta(hours=4)),))
    assert not evaluate_condition(ticket, ConditionType.NO_RESPONSE, {"hours": 4}, NOW).matched


def test_customer_rating():
    feedback = TicketFeedback(rating=2, submitted_at=NOW - timedelta(hours=1))
    resolved = make_ticket(status=TicketStatus.RESOLVED, feedback=feedback)

    assert evaluate_condition(resolved, ConditionType.CUSTOMER_RATING, {"rating": 3}, NOW).matched
    assert not evaluate_condition(resolved, ConditionType.CUSTOMER_RATING, {"rating": 2}, NOW).matched
    assert evaluate_condition(
        resolved, ConditionType.CUSTOMER_RATING, {"rating": 1, "operator": "greater_than"}, NOW
    ).matched
    assert not evaluate_condition(
        make_ticket(status=TicketStatus.OPEN, feedback=feedback), ConditionType.CUSTOMER_RATING, {"rating": 3}, NOW
    ).matched
    assert not evaluate_condition(
        make_ticket(status=TicketStatus.CLOSED), ConditionType.CUSTOMER_RATING, {"rating": 3}, NOW
    ).matched


@pytest.mark.parametrize(
    "condition_type, value",
    [
        (ConditionType.NO_RESPONSE, {"hours": "soon"}),
        (ConditionType.TIME_IN_STATUS, {"hours": 2}),
        (ConditionType.SLA_BREACH, {"threshold_hours": 1, "unexpected": True}),
        ("bogus", {}),
    ],
)
def test_malformed_condition_is_not_a_match(condition_type, value):
    result = evaluate_condition(make_ticket(sla_due_at=NOW - timedelta(hours=1)), condition_type, value, NOW)
    assert not result.matched
    assert result.evidence.startswith("malformed condition")


def test_dedup_key_changes_when_ticket_reenters_status():
    first = make_ticket()
    reopened = make_ticket(
        status_changes=(
            StatusChange(TicketStatus.OPEN, TicketStatus.RESOLVED, NOW - timedelta(hours=2)),
            StatusChange(TicketStatus.RESOLVED, TicketStatus.OPEN, NOW - timedelta(hours=1)),
        ),
    )

    assert build_dedup_key(first, "R1", "due=x") != build_dedup_key(reopened, "R1", "due=x")
    assert build_dedup_key(first, "R1", "due=x") == build_dedup_key(make_ticket(), "R1", "due=x")
    assert build_dedup_key(first, "R1", "due=x") != build_dedup_key(first, "R1", "due=y")


def test_sla_breach_key_ignores_recomputed_deadline():
    breached = make_ticket(sla_due_at=NOW - timedelta(hours=5))
    bumped = make_ticket(sla_due_at=NOW - timedelta(hours=1))

    first = evaluate_condition(breached, ConditionType.SLA_BREACH, {}, NOW)
    second = evaluate_condition(bumped, ConditionType.SLA_BREACH, {}, NOW)

    assert build_dedup_key(breached, "R1", first.epoch) == build_dedup_key(bumped, "R1", second.epoch)


def test_unexpected_evaluator_error_is_not_a_match(monkeypatch):
    def broken(ticket, params, now):
        raise KeyError("feedback")

    monkeypatch.setitem(conditions.EVALUATORS, ConditionType.PRIORITY_LEVEL, broken)

    result = evaluate_condition(make_ticket(), ConditionType.PRIORITY_LEVEL, {"priorities": ["MEDIUM"]}, NOW)

    assert not result.matched
    assert result.evidence.startswith("evaluation error: KeyError")
