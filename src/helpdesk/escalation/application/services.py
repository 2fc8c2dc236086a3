"""
Escalation Application Services
===============================

Repository and transport interfaces plus the services behind the rule
management and audit trail endpoints.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from helpdesk.config import ActionType, ConditionType
from helpdesk.core import (
    IPermissionOracle, RuleNotFoundException, TicketNotFoundException, ensure_permission
)
from helpdesk.escalation.application.dto import RuleCreateDTO, RuleUpdateDTO
from helpdesk.escalation.domain import (
    EscalationExecution, EscalationRule, normalize, parse_action, parse_condition
)
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application import ISLAPolicyRepository
from helpdesk.tickets.application import ITicketRepository, IUserDirectory
from helpdesk.tickets.domain import TicketSnapshot, User

logger = get_logger(__name__)

RULE_RESOURCE = "escalation_rule"


# ========== Repository Interfaces (Dependency Inversion) ==========

class IRuleRepository(ABC):
    """Interface for escalation rule data access."""

    @abstractmethod
    async def create(self, rule: EscalationRule) -> EscalationRule:
        """Persist a new rule and return it with id and timestamps."""

    @abstractmethod
    async def get_by_id(self, rule_id: str) -> Optional[EscalationRule]:
        """Get a rule by id."""

    @abstractmethod
    async def update(self, rule: EscalationRule) -> EscalationRule:
        """Overwrite an existing rule."""

    @abstractmethod
    async def delete(self, rule_id: str) -> bool:
        """Delete a rule; False if it did not exist. Executions are kept."""

    @abstractmethod
    async def list(self, active_only: bool = False) -> List[EscalationRule]:
        """List rules, oldest first."""


class IExecutionRepository(ABC):
    """Interface for the append-only escalation execution log."""

    @abstractmethod
    async def add(self, execution: EscalationExecution) -> EscalationExecution:
        """Append one execution record."""

    @abstractmethod
    async def has_executed(self, dedup_key: str) -> bool:
        """Whether a successful execution with this dedup key exists."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[EscalationExecution]:
        """Executions for a ticket, oldest first."""


# ========== Transport Interfaces ==========

class INotificationService(ABC):
    """Interface for the in-app/chat notification transport."""

    @abstractmethod
    async def notify(self, recipient: User, ticket: TicketSnapshot, message: str) -> None:
        """
        Deliver an escalation notice.

        Raises:
            ExternalServiceException: Delivery failed
        """


class IEmailGateway(ABC):
    """Interface for the outbound email transport."""

    @abstractmethod
    async def send(self, recipients: Sequence[str], subject: str, body: str) -> None:
        """
        Send one message to all recipients.

        Raises:
            ExternalServiceException: Not configured or delivery failed
        """


# ========== Unit of Work ==========

class IEscalationUnitOfWork(ABC):
    """
    One database transaction for one (ticket, rule) unit.

    Leaving the context without ``commit()`` discards every change; an
    exception inside the context rolls back.
    """

    tickets: ITicketRepository
    users: IUserDirectory
    rules: IRuleRepository
    policies: ISLAPolicyRepository
    executions: IExecutionRepository

    async def __aenter__(self) -> "IEscalationUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
        finally:
            await self.close()

    @abstractmethod
    async def commit(self) -> None:
        """Commit everything done in this unit."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard everything done in this unit so far."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""


# ========== Application Services ==========

class EscalationRuleService:
    """
    Service for escalation rule management.

    Writes and single-rule reads ask the permission oracle first and fail
    with ``AccessDeniedException`` before touching storage. Listing is open
    to any authenticated caller.
    """

    def __init__(self, rule_repository: IRuleRepository, permission_oracle: IPermissionOracle):
        self._rule_repo = rule_repository
        self._oracle = permission_oracle

    async def create_rule(self, data: RuleCreateDTO, user_id: str) -> EscalationRule:
        await ensure_permission(self._oracle, user_id, "create", RULE_RESOURCE)

        condition = parse_condition(data.condition_type, data.condition_value)
        action = parse_action(data.action_type, data.action_config)

        rule = await self._rule_repo.create(EscalationRule(
            id=None,
            name=data.name,
            description=data.description,
            condition_type=ConditionType(data.condition_type),
            condition_value=normalize(condition),
            action_type=ActionType(data.action_type),
            action_config=normalize(action),
            is_active=data.is_active,
        ))
        logger.info(
            "Escalation rule created",
            extra={
                "rule_id": rule.id,
                "condition_type": rule.condition_type.value,
                "action_type": rule.action_type.value,
                "user_id": user_id,
            }
        )
        return rule

    async def update_rule(self, rule_id: str, data: RuleUpdateDTO, user_id: str) -> EscalationRule:
        await ensure_permission(self._oracle, user_id, "update", RULE_RESOURCE)

        rule = await self._rule_repo.get_by_id(rule_id)
        if rule is None:
            raise RuleNotFoundException(rule_id)

        changes = data.model_dump(exclude_unset=True)

        condition_type = ConditionType(changes.get("condition_type") or rule.condition_type)
        condition_value = changes.get("condition_value")
        if condition_value is None:
            condition_value = rule.condition_value
        action_type = ActionType(changes.get("action_type") or rule.action_type)
        action_config = changes.get("action_config")
        if action_config is None:
            action_config = rule.action_config

        # The stored value must fit the (possibly new) type
        rule.condition_type = condition_type
        rule.condition_value = normalize(parse_condition(condition_type, condition_value))
        rule.action_type = action_type
        rule.action_config = normalize(parse_action(action_type, action_config))

        if changes.get("name") is not None:
            rule.name = changes["name"]
        if "description" in changes:
            rule.description = changes["description"]
        if changes.get("is_active") is not None:
            rule.is_active = changes["is_active"]

        rule = await self._rule_repo.update(rule)
        logger.info("Escalation rule updated", extra={"rule_id": rule_id, "user_id": user_id})
        return rule

    async def delete_rule(self, rule_id: str, user_id: str) -> None:
        await ensure_permission(self._oracle, user_id, "delete", RULE_RESOURCE)
        if not await self._rule_repo.delete(rule_id):
            raise RuleNotFoundException(rule_id)
        logger.info("Escalation rule deleted", extra={"rule_id": rule_id, "user_id": user_id})

    async def get_rule(self, rule_id: str, user_id: str) -> EscalationRule:
        await ensure_permission(self._oracle, user_id, "read", RULE_RESOURCE)
        rule = await self._rule_repo.get_by_id(rule_id)
        if rule is None:
            raise RuleNotFoundException(rule_id)
        return rule

    async def list_rules(self, active_only: bool = False) -> List[EscalationRule]:
        return await self._rule_repo.list(active_only=active_only)


class ExecutionHistoryService:
    """Read side of the escalation audit trail."""

    def __init__(self, execution_repository: IExecutionRepository, ticket_repository: ITicketRepository):
        self._execution_repo = execution_repository
        self._ticket_repo = ticket_repository

    async def get_ticket_history(self, ticket_id: str) -> List[dict]:
        """
        Audit entries for a ticket, oldest first.

        Entries outlive the rules that produced them.
        """
        if await self._ticket_repo.get_snapshot(ticket_id) is None:
            raise TicketNotFoundException(ticket_id)
        executions = await self._execution_repo.list_for_ticket(ticket_id)
        return [e.to_audit_entry() for e in executions]
