from datetime import timedelta

from sqlalchemy import select

from helpdesk.config import ActionType, ConditionType, HistoryAction, Priority, TicketStatus
from helpdesk.escalation.application import ActionExecutor
from helpdesk.escalation.domain import EscalationRule, WorkUnit
from helpdesk.escalation.infrastructure import SQLAlchemyEscalationUnitOfWork
from helpdesk.sla.domain import SLAPolicy
from helpdesk.tickets.domain import User
from helpdesk.tickets.infrastructure import TicketHistoryModel

from conftest import LEADER, NOW, TEAM, FakeNotifier, load_ticket, make_ticket, seed

LEAD = User(id=LEADER, email="lead@example.com", name="Lead")
HIGH_POLICY = SLAPolicy(
    id="p-high", name="High", priority=Priority.HIGH,
    response_time_hours=2, resolution_time_hours=24, created_at=NOW - timedelta(days=30)
)


async def run_action(session_maker, executor, ticket, action_type, config=None, policies=()):
    rule = EscalationRule(
        id="R1",
        name="Escalate",
        condition_type=ConditionType.SLA_BREACH,
        condition_value={},
        action_type=action_type,
        action_config=config or {},
    )
    unit = WorkUnit(ticket=ticket, rule=rule, evidence="SLA breached 60 minutes ago", dedup_key="k", pass_id="p1")
    async with SQLAlchemyEscalationUnitOfWork(session_maker) as uow:
        result = await executor.execute(uow, unit, policies)
        if result.success:
            await uow.commit()
    return result


async def history(session_maker, action: HistoryAction):
    async with session_maker() as session:
        rows = await session.execute(
            select(TicketHistoryModel).where(TicketHistoryModel.action == action.value)
        )
        return rows.scalars().all()


async def test_increase_priority_steps_up_and_recomputes_deadline(session_maker, notifier, email_gateway):
    ticket = make_ticket(priority=Priority.MEDIUM, sla_due_at=NOW + timedelta(hours=40))
    await seed(session_maker, tickets=[ticket])

    result = await run_action(
        session_maker, ActionExecutor(notifier, email_gateway), ticket,
        ActionType.INCREASE_PRIORITY, policies=[HIGH_POLICY]
    )

    stored = await load_ticket(session_maker, ticket.id)
    assert result.success
    assert result.detail == "Priority increased from MEDIUM to HIGH"
    assert stored.priority == Priority.HIGH
    assert stored.sla_due_at == ticket.created_at + timedelta(hours=24)
    assert len(await history(session_maker, HistoryAction.PRIORITY_CHANGED)) == 1
    assert len(await history(session_maker, HistoryAction.SLA_RECOMPUTED)) == 1


async def test_increase_priority_at_urgent_is_a_noop(session_maker, notifier, email_gateway):
    ticket = make_ticket(priority=Priority.URGENT, sla_due_at=NOW - timedelta(hours=1))
    await seed(session_maker, tickets=[ticket])

    result = await run_action(
        session_maker, ActionExecutor(notifier, email_gateway), ticket, ActionType.INCREASE_PRIORITY
    )

    assert result.success
    assert result.detail == "Ticket already at highest priority"
    assert (await load_ticket(session_maker, ticket.id)).priority == Priority.URGENT
    assert await history(session_maker, HistoryAction.PRIORITY_CHANGED) == []


async def test_mutation_refused_when_ticket_moved_on(session_maker, notifier, email_gateway):
    await seed(session_maker, tickets=[make_ticket(status=TicketStatus.RESOLVED)])
    stale = make_ticket(status=TicketStatus.OPEN)

    result = await run_action(
        session_maker, ActionExecutor(notifier, email_gateway), stale, ActionType.INCREASE_PRIORITY
    )

    assert not result.success
    assert "changed state" in result.detail
    assert (await load_ticket(session_maker, stale.id)).priority == Priority.MEDIUM


async def test_add_follower_is_idempotent(session_maker, notifier, email_gateway):
    users = [User(id="u1", email="u1@example.com", name="U1"), User(id="u2", email="u2@example.com", name="U2")]
    ticket = make_ticket(followers=frozenset({"u1"}))
    await seed(session_maker, tickets=[ticket], users=users)
    executor = ActionExecutor(notifier, email_gateway)

    already = await run_action(session_maker, executor, ticket, ActionType.ADD_FOLLOWER, {"user_ids": ["u1"]})
    added = await run_action(session_maker, executor, ticket, ActionType.ADD_FOLLOWER, {"user_ids": ["u1", "u2"]})

    assert already.success and already.detail == "All users already following"
    assert added.success and added.detail == "Added 1 follower(s)"
    assert (await load_ticket(session_maker, ticket.id)).followers == frozenset({"u1", "u2"})
    assert len(await history(session_maker, HistoryAction.FOLLOWER_ADDED)) == 1


async def test_add_follower_rejects_inactive_users(session_maker, notifier, email_gateway):
    ticket = make_ticket()
    await seed(session_maker, tickets=[ticket], users=[User(id="gone", email="g@example.com", name="G", is_active=False)])

    result = await run_action(
        session_maker, ActionExecutor(notifier, email_gateway), ticket,
        ActionType.ADD_FOLLOWER, {"user_ids": ["gone", "ghost"]}
    )

    assert not result.success
    assert result.detail == "unknown or inactive users: gone, ghost"


async def test_notify_manager_reaches_team_leaders(session_maker, notifier, email_gateway):
    ticket = make_ticket(team_id=TEAM)
    await seed(session_maker, tickets=[ticket], users=[LEAD], leaders=[LEADER])

    result = await run_action(session_maker, ActionExecutor(notifier, email_gateway), ticket, ActionType.NOTIFY_MANAGER)

    assert result.success
    assert result.detail == "Notified 1 manager(s)"
    assert notifier.sent[0][0] == LEADER
    assert "SLA breached 60 minutes ago" in notifier.sent[0][2]


async def test_notify_manager_without_team_fails(session_maker, notifier, email_gateway):
    ticket = make_ticket(team_id=None)
    await seed(session_maker, tickets=[ticket])

    result = await run_action(session_maker, ActionExecutor(notifier, email_gateway), ticket, ActionType.NOTIFY_MANAGER)

    assert not result.success
    assert result.detail == "no manager found for ticket's team"
    assert notifier.sent == []


async def test_transport_failure_is_reported(session_maker, email_gateway):
    ticket = make_ticket(team_id=TEAM)
    await seed(session_maker, tickets=[ticket], users=[LEAD], leaders=[LEADER])

    result = await run_action(
        session_maker, ActionExecutor(FakeNotifier(fail=True), email_gateway), ticket, ActionType.NOTIFY_MANAGER
    )

    assert not result.success
    assert result.detail.startswith("slack:")


async def test_reassign_to_team_leader(session_maker, notifier, email_gateway):
    ticket = make_ticket(team_id=TEAM, assigned_to="agent-9")
    await seed(session_maker, tickets=[ticket], users=[LEAD], leaders=[LEADER])

    result = await run_action(
        session_maker, ActionExecutor(notifier, email_gateway), ticket,
        ActionType.REASSIGN_TICKET, {"target": "team_leader"}
    )

    assert result.success
    assert (await load_ticket(session_maker, ticket.id)).assigned_to == LEADER
    rows = await history(session_maker, HistoryAction.REASSIGNED)
    assert (rows[0].old_value, rows[0].new_value) == ("agent-9", LEADER)


async def test_send_email_includes_ticket_details(session_maker, notifier, email_gateway):
    ticket = make_ticket()
    await seed(session_maker, tickets=[ticket])

    result = await run_action(
        session_maker, ActionExecutor(notifier, email_gateway), ticket, ActionType.SEND_EMAIL,
        {"recipients": ["ops@example.com"], "message": "Please look at this"}
    )

    assert result.success
    recipients, subject, body = email_gateway.sent[0]
    assert recipients == ["ops@example.com"]
    assert subject == "Ticket Escalation"
    assert "Ticket: T1" in body
    assert "Reason: SLA breached 60 minutes ago" in body


async def test_invalid_stored_config_fails_the_attempt(session_maker, notifier, email_gateway):
    ticket = make_ticket()
    await seed(session_maker, tickets=[ticket])

    result = await run_action(
        session_maker, ActionExecutor(notifier, email_gateway), ticket, ActionType.SEND_EMAIL, {"recipients": []}
    )

    assert not result.success
    assert result.detail.startswith("invalid action config")
