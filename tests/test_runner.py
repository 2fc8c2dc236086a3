import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from helpdesk.config import ActionType, ConditionType, HistoryAction, Priority, TicketStatus
from helpdesk.core import TicketNotFoundException
from helpdesk.escalation.application import (
    ActionExecutor, EscalationRunner, ExecutionHistoryService, INotificationService
)
from helpdesk.escalation.domain import EscalationRule
from helpdesk.escalation.infrastructure import (
    EscalationExecutionModel, SQLAlchemyEscalationUnitOfWork, SQLAlchemyExecutionRepository,
    SQLAlchemyRuleRepository
)
from helpdesk.sla.domain import SLAPolicy
from helpdesk.sla.infrastructure import SQLAlchemySLAPolicyRepository
from helpdesk.tickets.domain import TicketFeedback, User
from helpdesk.tickets.infrastructure import SQLAlchemyTicketRepository, TicketHistoryModel

from conftest import LEADER, NOW, TEAM, load_ticket, make_ticket, seed

LEAD = User(id=LEADER, email="lead@example.com", name="Lead")


def make_runner(session_maker, notifier, email_gateway, max_concurrency=4, now=NOW) -> EscalationRunner:
    return EscalationRunner(
        uow_factory=lambda: SQLAlchemyEscalationUnitOfWork(session_maker),
        executor=ActionExecutor(notifier, email_gateway),
        max_concurrency=max_concurrency,
        clock=lambda: now,
    )


async def add_rule(session_maker, condition_type, condition_value, action_type, action_config=None, name="R"):
    async with session_maker() as session:
        rule = await SQLAlchemyRuleRepository(session).create(EscalationRule(
            id=None,
            name=name,
            condition_type=condition_type,
            condition_value=condition_value,
            action_type=action_type,
            action_config=action_config or {},
        ))
        await session.commit()
    return rule


async def history_values(session_maker, action: HistoryAction):
    async with session_maker() as session:
        rows = await session.execute(
            select(TicketHistoryModel.ticket_id, TicketHistoryModel.new_value)
            .where(TicketHistoryModel.action == action.value)
        )
        return rows.all()


async def execution_count(session_maker) -> int:
    async with session_maker() as session:
        return await session.scalar(select(func.count()).select_from(EscalationExecutionModel))


async def test_breached_urgent_ticket_records_noop_escalation(session_maker, notifier, email_gateway):
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await seed(session_maker, tickets=[make_ticket(
        id="T1", priority=Priority.URGENT, created_at=created, updated_at=created,
        sla_due_at=created + timedelta(hours=8),
    )])
    async with session_maker() as session:
        await SQLAlchemySLAPolicyRepository(session).create(SLAPolicy(
            id=None, name="Urgent", priority=Priority.URGENT,
            response_time_hours=1, resolution_time_hours=8, created_at=created - timedelta(days=1)
        ))
        await session.commit()
    await add_rule(session_maker, ConditionType.SLA_BREACH, {"threshold_hours": 0}, ActionType.INCREASE_PRIORITY, name="R1")

    summary = await make_runner(session_maker, notifier, email_gateway).run_pass()

    assert summary.conditions_matched == 1
    assert summary.executed == 1
    assert summary.failed == 0
    assert (await load_ticket(session_maker, "T1")).priority == Priority.URGENT
    rows = await history_values(session_maker, HistoryAction.ESCALATION_EXECUTED)
    assert [ticket_id for ticket_id, _ in rows] == ["T1"]
    payload = json.loads(rows[0][1])
    assert payload["execution_id"]
    assert payload["rule_name"] == "R1"
    assert payload["action_type"] == "increase_priority"
    assert payload["outcome"] == "executed"
    assert payload["detail"] == "Ticket already at highest priority"


async def test_unresolvable_manager_is_recorded_and_pass_continues(session_maker, notifier, email_gateway):
    await seed(
        session_maker,
        tickets=[
            make_ticket(id="T2", team_id=None, created_at=NOW - timedelta(hours=5)),
            make_ticket(id="T3", team_id=TEAM, created_at=NOW - timedelta(hours=6)),
        ],
        users=[LEAD],
        leaders=[LEADER],
    )
    await add_rule(session_maker, ConditionType.NO_RESPONSE, {"hours": 4}, ActionType.NOTIFY_MANAGER, name="R2")

    summary = await make_runner(session_maker, notifier, email_gateway).run_pass()

    assert summary.tickets_evaluated == 2
    assert summary.executed == 1
    assert summary.failed == 1
    assert summary.errors == []
    failed = await history_values(session_maker, HistoryAction.ESCALATION_FAILED)
    assert [ticket_id for ticket_id, _ in failed] == ["T2"]
    payload = json.loads(failed[0][1])
    assert (payload["rule_name"], payload["action_type"], payload["outcome"]) == ("R2", "notify_manager", "failed")
    assert payload["detail"] == "no manager found for ticket's team"
    assert [sent[1] for sent in notifier.sent] == ["T3"]


async def test_second_pass_does_not_repeat_executed_escalation(session_maker, notifier, email_gateway):
    await seed(
        session_maker,
        tickets=[
            make_ticket(id="ok", team_id=TEAM, sla_due_at=NOW - timedelta(hours=1)),
            make_ticket(id="no-team", sla_due_at=NOW - timedelta(hours=1)),
        ],
        users=[LEAD],
        leaders=[LEADER],
    )
    await add_rule(session_maker, ConditionType.SLA_BREACH, {}, ActionType.NOTIFY_MANAGER)
    runner = make_runner(session_maker, notifier, email_gateway)

    first = await runner.run_pass()
    second = await runner.run_pass()

    assert (first.executed, first.failed) == (1, 1)
    # Failures are retried; successes are not
    assert (second.executed, second.failed, second.skipped_duplicates) == (0, 1, 1)
    assert len(notifier.sent) == 1
    assert await execution_count(session_maker) == 3


async def test_resolved_tickets_are_skipped_by_passes(session_maker, notifier, email_gateway):
    await seed(session_maker, tickets=[
        make_ticket(id="done", status=TicketStatus.RESOLVED, sla_due_at=NOW - timedelta(hours=1)),
    ])
    await add_rule(session_maker, ConditionType.SLA_BREACH, {}, ActionType.INCREASE_PRIORITY)

    summary = await make_runner(session_maker, notifier, email_gateway).run_pass()

    assert summary.tickets_evaluated == 0
    assert summary.executed == 0


async def test_inactive_rules_are_ignored(session_maker, notifier, email_gateway):
    await seed(session_maker, tickets=[make_ticket(sla_due_at=NOW - timedelta(hours=1))])
    rule = await add_rule(session_maker, ConditionType.SLA_BREACH, {}, ActionType.INCREASE_PRIORITY)
    async with session_maker() as session:
        rule.is_active = False
        await SQLAlchemyRuleRepository(session).update(rule)
        await session.commit()

    summary = await make_runner(session_maker, notifier, email_gateway).run_pass()

    assert summary.rules_evaluated == 0
    assert (await load_ticket(session_maker, "T1")).priority == Priority.MEDIUM


async def test_audit_trail_outlives_deleted_rule(session_maker, notifier, email_gateway):
    await seed(session_maker, tickets=[make_ticket(sla_due_at=NOW - timedelta(hours=1))])
    rule = await add_rule(
        session_maker, ConditionType.SLA_BREACH, {}, ActionType.INCREASE_PRIORITY, name="Bump overdue"
    )
    await make_runner(session_maker, notifier, email_gateway).run_pass()

    async with session_maker() as session:
        assert await SQLAlchemyRuleRepository(session).delete(rule.id)
        await session.commit()

    async with session_maker() as session:
        entries = await ExecutionHistoryService(
            SQLAlchemyExecutionRepository(session), SQLAlchemyTicketRepository(session)
        ).get_ticket_history("T1")

    assert len(entries) == 1
    assert entries[0]["action"] == "escalation_executed"
    assert entries[0]["payload"]["rule_id"] == rule.id
    assert entries[0]["payload"]["rule_name"] == "Bump overdue"
    assert entries[0]["payload"]["detail"] == "Priority increased from MEDIUM to HIGH"


async def test_history_for_unknown_ticket(session_maker):
    async with session_maker() as session:
        service = ExecutionHistoryService(
            SQLAlchemyExecutionRepository(session), SQLAlchemyTicketRepository(session)
        )
        with pytest.raises(TicketNotFoundException):
            await service.get_ticket_history("missing")


async def test_evaluate_ticket_covers_resolved_tickets(session_maker, notifier, email_gateway):
    await seed(
        session_maker,
        tickets=[make_ticket(
            id="rated", status=TicketStatus.RESOLVED, team_id=TEAM,
            feedback=TicketFeedback(rating=1, submitted_at=NOW - timedelta(hours=1)),
        )],
        users=[LEAD],
        leaders=[LEADER],
    )
    await add_rule(session_maker, ConditionType.CUSTOMER_RATING, {"rating": 3}, ActionType.NOTIFY_MANAGER)
    runner = make_runner(session_maker, notifier, email_gateway)

    summary = await runner.evaluate_ticket("rated")

    assert summary.trigger == "on_demand"
    assert summary.executed == 1
    assert (await runner.run_pass()).tickets_evaluated == 0
    with pytest.raises(TicketNotFoundException):
        await runner.evaluate_ticket("missing")


class CancellingNotifier(INotificationService):
    def __init__(self):
        self.runner = None
        self.sent = []

    async def notify(self, recipient, ticket, message):
        self.sent.append(ticket.id)
        self.runner.cancel()


async def test_cancel_stops_handing_out_units(session_maker, email_gateway):
    await seed(
        session_maker,
        tickets=[make_ticket(id=f"T{i}", team_id=TEAM, sla_due_at=NOW - timedelta(hours=1)) for i in range(3)],
        users=[LEAD],
        leaders=[LEADER],
    )
    await add_rule(session_maker, ConditionType.SLA_BREACH, {}, ActionType.NOTIFY_MANAGER)
    notifier = CancellingNotifier()
    runner = make_runner(session_maker, notifier, email_gateway, max_concurrency=1)
    notifier.runner = runner

    summary = await runner.run_pass()

    assert summary.cancelled
    assert summary.conditions_matched == 3
    assert summary.executed == 1
    assert len(notifier.sent) == 1
    assert not runner.is_running


class BlockingNotifier(INotificationService):
    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def notify(self, recipient, ticket, message):
        self.started.set()
        await self.release.wait()


async def test_overlapping_pass_is_refused(session_maker, email_gateway):
    await seed(
        session_maker,
        tickets=[make_ticket(team_id=TEAM, sla_due_at=NOW - timedelta(hours=1))],
        users=[LEAD],
        leaders=[LEADER],
    )
    await add_rule(session_maker, ConditionType.SLA_BREACH, {}, ActionType.NOTIFY_MANAGER)
    notifier = BlockingNotifier()
    runner = make_runner(session_maker, notifier, email_gateway)

    first_task = asyncio.create_task(runner.run_pass())
    await asyncio.wait_for(notifier.started.wait(), timeout=5)

    refused = await runner.run_pass(trigger="manual")
    notifier.release.set()
    first = await first_task

    assert refused.errors == ["Escalation pass already running"]
    assert refused.executed == 0
    assert first.executed == 1


class CancelOnceNotifier(INotificationService):
    def __init__(self):
        self.runner = None
        self.sent = []

    async def notify(self, recipient, ticket, message):
        self.sent.append(ticket.id)
        if len(self.sent) == 1:
            self.runner.cancel()


async def test_cancelled_pass_does_not_block_later_work(session_maker, email_gateway):
    await seed(
        session_maker,
        tickets=[make_ticket(id=f"T{i}", team_id=TEAM, sla_due_at=NOW - timedelta(hours=1)) for i in range(3)],
        users=[LEAD],
        leaders=[LEADER],
    )
    await add_rule(session_maker, ConditionType.SLA_BREACH, {}, ActionType.NOTIFY_MANAGER)
    notifier = CancelOnceNotifier()
    runner = make_runner(session_maker, notifier, email_gateway, max_concurrency=1)
    notifier.runner = runner

    cancelled = await runner.run_pass()
    unsent = next(f"T{i}" for i in range(3) if f"T{i}" not in notifier.sent)
    evaluated = await runner.evaluate_ticket(unsent)
    follow_up = await runner.run_pass()

    assert cancelled.cancelled and cancelled.executed == 1
    assert not evaluated.cancelled
    assert evaluated.executed == 1
    assert not follow_up.cancelled
    assert (follow_up.executed, follow_up.skipped_duplicates) == (1, 2)
    assert sorted(notifier.sent) == ["T0", "T1", "T2"]


async def test_cancel_while_idle_does_not_affect_next_pass(session_maker, notifier, email_gateway):
    await seed(session_maker, tickets=[make_ticket(sla_due_at=NOW - timedelta(hours=1))])
    await add_rule(session_maker, ConditionType.SLA_BREACH, {}, ActionType.INCREASE_PRIORITY)
    runner = make_runner(session_maker, notifier, email_gateway)

    runner.cancel()
    summary = await runner.run_pass()

    assert not summary.cancelled
    assert summary.executed == 1


async def test_breach_escalates_once_while_status_is_unchanged(session_maker, notifier, email_gateway):
    await seed(session_maker, tickets=[make_ticket(priority=Priority.LOW, sla_due_at=NOW - timedelta(hours=1))])
    async with session_maker() as session:
        repo = SQLAlchemySLAPolicyRepository(session)
        for priority in Priority:
            await repo.create(SLAPolicy(
                id=None, name=priority.value, priority=priority,
                response_time_hours=1, resolution_time_hours=2, created_at=NOW - timedelta(days=1)
            ))
        await session.commit()
    await add_rule(session_maker, ConditionType.SLA_BREACH, {}, ActionType.INCREASE_PRIORITY)
    runner = make_runner(session_maker, notifier, email_gateway)

    summaries = [await runner.run_pass() for _ in range(4)]

    assert [s.executed for s in summaries] == [1, 0, 0, 0]
    assert [s.skipped_duplicates for s in summaries] == [0, 1, 1, 1]
    assert (await load_ticket(session_maker, "T1")).priority == Priority.MEDIUM
    assert await execution_count(session_maker) == 1


class ExplodingNotifier(INotificationService):
    def __init__(self):
        self.sent = []

    async def notify(self, recipient, ticket, message):
        if ticket.id == "boom":
            raise RuntimeError("socket closed")
        self.sent.append(ticket.id)


async def test_unexpected_action_error_is_contained(session_maker, email_gateway):
    await seed(
        session_maker,
        tickets=[
            make_ticket(id="boom", team_id=TEAM, sla_due_at=NOW - timedelta(hours=1)),
            make_ticket(id="fine", team_id=TEAM, sla_due_at=NOW - timedelta(hours=1)),
        ],
        users=[LEAD],
        leaders=[LEADER],
    )
    await add_rule(session_maker, ConditionType.SLA_BREACH, {}, ActionType.NOTIFY_MANAGER, name="Page")
    notifier = ExplodingNotifier()

    summary = await make_runner(session_maker, notifier, email_gateway).run_pass()

    assert (summary.executed, summary.failed) == (1, 1)
    assert len(summary.errors) == 1
    assert "socket closed" in summary.errors[0]
    assert notifier.sent == ["fine"]
    failed = await history_values(session_maker, HistoryAction.ESCALATION_FAILED)
    assert [ticket_id for ticket_id, _ in failed] == ["boom"]
    assert json.loads(failed[0][1])["detail"] == "unexpected error: socket closed"
