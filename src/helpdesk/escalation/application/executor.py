"""
Action Executor
===============

Carries out a rule's action for one matched ticket inside the caller's
unit of work.

Mutating actions go through guarded repository updates keyed on the
snapshot's status; if the ticket moved on, the update is refused and the
attempt is reported as failed so the next pass re-evaluates it.
"""

from typing import List, Sequence

from helpdesk.config import ActionType, HistoryAction
from helpdesk.core import ActionExecutionException, ExternalServiceException, ValidationException
from helpdesk.escalation.application.services import (
    IEmailGateway, IEscalationUnitOfWork, INotificationService
)
from helpdesk.escalation.domain import (
    ActionResult, AddFollowerAction, NotifyManagerAction, ReassignTicketAction,
    SendEmailAction, WorkUnit, parse_action
)
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.domain import SLACalculator, SLAPolicy
from helpdesk.tickets.domain import TicketSnapshot, User, next_priority

logger = get_logger(__name__)


class ActionExecutor:
    """
    Dispatches on ``action_type``.

    ``execute`` returns an ``ActionResult``; expected failures (validation,
    missing users, transport errors, concurrent edits) come back as
    ``success=False`` rather than exceptions.
    """

    def __init__(self, notifier: INotificationService, email_gateway: IEmailGateway):
        self._notifier = notifier
        self._email = email_gateway
        self._handlers = {
            ActionType.NOTIFY_MANAGER: self._notify_manager,
            ActionType.REASSIGN_TICKET: self._reassign_ticket,
            ActionType.INCREASE_PRIORITY: self._increase_priority,
            ActionType.ADD_FOLLOWER: self._add_follower,
            ActionType.SEND_EMAIL: self._send_email,
        }

    async def execute(
        self,
        uow: IEscalationUnitOfWork,
        unit: WorkUnit,
        policies: Sequence[SLAPolicy]
    ) -> ActionResult:
        rule = unit.rule
        try:
            config = parse_action(rule.action_type, rule.action_config)
            handler = self._handlers[ActionType(rule.action_type)]
            return await handler(uow, unit, config, policies)
        except (ActionExecutionException, ExternalServiceException) as exc:
            logger.warning(
                "Escalation action failed",
                extra={
                    "pass_id": unit.pass_id,
                    "ticket_id": unit.ticket.id,
                    "rule_id": rule.id,
                    "action_type": rule.action_type.value,
                    "error": exc.message,
                }
            )
            return ActionResult.failed(exc.message)
        except ValidationException as exc:
            # Stored config no longer fits its schema
            logger.warning(
                "Escalation action rejected",
                extra={"ticket_id": unit.ticket.id, "rule_id": rule.id, "error": exc.message}
            )
            return ActionResult.failed(f"invalid action config: {exc.message}")

    # ========== Helpers ==========

    @staticmethod
    async def _active_user(uow: IEscalationUnitOfWork, user_id: str) -> User:
        user = await uow.users.get_user(user_id)
        if user is None or not user.is_active:
            raise ActionExecutionException(f"user {user_id} not found or inactive")
        return user

    @staticmethod
    async def _team_leaders(uow: IEscalationUnitOfWork, ticket: TicketSnapshot) -> List[User]:
        if not ticket.team_id:
            return []
        return await uow.users.get_team_leaders(ticket.team_id)

    @staticmethod
    def _default_message(unit: WorkUnit) -> str:
        ticket = unit.ticket
        return (
            f"Ticket {ticket.id} ({ticket.priority.value}, {ticket.status.value}) escalated "
            f"by rule '{unit.rule.name}': {unit.evidence}"
        )

    # ========== Actions ==========

    async def _notify_manager(self, uow, unit: WorkUnit, config: NotifyManagerAction, policies) -> ActionResult:
        ticket = unit.ticket
        if config.recipient_id:
            recipients = [await self._active_user(uow, config.recipient_id)]
        else:
            recipients = await self._team_leaders(uow, ticket)
        if not recipients:
            raise ActionExecutionException("no manager found for ticket's team")

        message = config.message or self._default_message(unit)
        for recipient in recipients:
            await self._notifier.notify(recipient, ticket, message)

        return ActionResult.ok(f"Notified {len(recipients)} manager(s)")

    async def _reassign_ticket(self, uow, unit: WorkUnit, config: ReassignTicketAction, policies) -> ActionResult:
        ticket = unit.ticket
        if config.target == "team_leader":
            leaders = await self._team_leaders(uow, ticket)
            if not leaders:
                raise ActionExecutionException("no team leader found for ticket's team")
            target = leaders[0]
        else:
            target = await self._active_user(uow, config.user_id)

        if ticket.assigned_to == target.id:
            return ActionResult.ok(f"Ticket already assigned to {target.id}")

        await uow.tickets.update_assignee(ticket.id, ticket.status, target.id)
        await uow.tickets.record_history(
            ticket.id, HistoryAction.REASSIGNED, "assigned_to",
            ticket.assigned_to or "unassigned", target.id
        )
        return ActionResult.ok(f"Ticket reassigned to {target.id}")

    async def _increase_priority(self, uow, unit: WorkUnit, config, policies: Sequence[SLAPolicy]) -> ActionResult:
        ticket = unit.ticket
        new_priority = next_priority(ticket.priority)
        if new_priority == ticket.priority:
            return ActionResult.ok("Ticket already at highest priority")

        policy = SLACalculator.select_policy(policies, new_priority)
        due_at = SLACalculator.resolve_due_date(ticket.created_at, policy)

        await uow.tickets.update_priority(ticket.id, ticket.status, ticket.priority, new_priority, due_at)
        await uow.tickets.record_history(
            ticket.id, HistoryAction.PRIORITY_CHANGED, "priority",
            ticket.priority.value, new_priority.value
        )
        if due_at != ticket.sla_due_at:
            await uow.tickets.record_history(
                ticket.id, HistoryAction.SLA_RECOMPUTED, "sla_due_at",
                ticket.sla_due_at.isoformat() if ticket.sla_due_at else None,
                due_at.isoformat() if due_at else None
            )
        return ActionResult.ok(f"Priority increased from {ticket.priority.value} to {new_priority.value}")

    async def _add_follower(self, uow, unit: WorkUnit, config: AddFollowerAction, policies) -> ActionResult:
        ticket = unit.ticket

        unavailable = []
        for user_id in config.user_ids:
            user = await uow.users.get_user(user_id)
            if user is None or not user.is_active:
                unavailable.append(user_id)
        if unavailable:
            raise ActionExecutionException(f"unknown or inactive users: {', '.join(unavailable)}")

        pending = [u for u in config.user_ids if u not in ticket.followers]
        if not pending:
            return ActionResult.ok("All users already following")

        added = await uow.tickets.add_followers(ticket.id, ticket.status, pending)
        for user_id in added:
            await uow.tickets.record_history(
                ticket.id, HistoryAction.FOLLOWER_ADDED, "followers", None, user_id
            )
        return ActionResult.ok(f"Added {len(added)} follower(s)")

    async def _send_email(self, uow, unit: WorkUnit, config: SendEmailAction, policies) -> ActionResult:
        ticket = unit.ticket
        body = "\n".join([
            config.message,
            "",
            f"Ticket: {ticket.id}",
            f"Title: {ticket.title}",
            f"Priority: {ticket.priority.value}",
            f"Status: {ticket.status.value}",
            f"Reason: {unit.evidence}",
        ])
        await self._email.send(config.recipients, config.subject, body)
        return ActionResult.ok(f"Email sent to {len(config.recipients)} recipient(s)")
