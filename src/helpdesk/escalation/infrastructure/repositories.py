"""
Escalation Infrastructure Repositories
======================================

SQLAlchemy implementations of the rule and execution repositories, and
the unit of work the runner opens per (ticket, rule) pair.
"""

from typing import List, Optional

from sqlalchemy import select, exists
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.config import ActionType, ConditionType, ExecutionOutcome
from helpdesk.core import RuleNotFoundException
from helpdesk.escalation.application import (
    IExecutionRepository, IEscalationUnitOfWork, IRuleRepository
)
from helpdesk.escalation.domain import EscalationExecution, EscalationRule
from helpdesk.escalation.infrastructure.models import (
    EscalationExecutionModel, EscalationRuleModel
)
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.infrastructure import SQLAlchemySLAPolicyRepository
from helpdesk.tickets.infrastructure import (
    SQLAlchemyTicketRepository, SQLAlchemyUserDirectory
)

logger = get_logger(__name__)


class SQLAlchemyRuleRepository(IRuleRepository):
    """
    SQLAlchemy implementation of escalation rule repository.

    Handles persistence of EscalationRule entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: EscalationRuleModel) -> EscalationRule:
        return EscalationRule(
            id=model.id,
            name=model.name,
            description=model.description,
            condition_type=ConditionType(model.condition_type),
            condition_value=dict(model.condition_value or {}),
            action_type=ActionType(model.action_type),
            action_config=dict(model.action_config or {}),
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, rule: EscalationRule) -> EscalationRule:
        model = EscalationRuleModel(
            name=rule.name,
            description=rule.description,
            condition_type=rule.condition_type.value,
            condition_value=rule.condition_value,
            action_type=rule.action_type.value,
            action_config=rule.action_config,
            is_active=rule.is_active,
        )
        self._session.add(model)
        await self._session.flush()
        await self._session.refresh(model)
        return self._to_domain(model)

    async def get_by_id(self, rule_id: str) -> Optional[EscalationRule]:
        model = await self._session.get(EscalationRuleModel, rule_id)
        return self._to_domain(model) if model else None

    async def update(self, rule: EscalationRule) -> EscalationRule:
        model = await self._session.get(EscalationRuleModel, rule.id)
        if model is None:
            raise RuleNotFoundException(rule.id)

        model.name = rule.name
        model.description = rule.description
        model.condition_type = rule.condition_type.value
        model.condition_value = rule.condition_value
        model.action_type = rule.action_type.value
        model.action_config = rule.action_config
        model.is_active = rule.is_active

        await self._session.flush()
        await self._session.refresh(model)
        return self._to_domain(model)

    async def delete(self, rule_id: str) -> bool:
        model = await self._session.get(EscalationRuleModel, rule_id)
        if model is None:
            return False
        await self._session.delete(model)
        await self._session.flush()
        return True

    async def list(self, active_only: bool = False) -> List[EscalationRule]:
        stmt = select(EscalationRuleModel).order_by(EscalationRuleModel.created_at.asc())
        if active_only:
            stmt = stmt.where(EscalationRuleModel.is_active.is_(True))
        result = await self._session.execute(stmt)

        rules = []
        for model in result.scalars().all():
            try:
                rules.append(self._to_domain(model))
            except ValueError:
                logger.warning(
                    "Skipping rule with unknown type",
                    extra={
                        "rule_id": model.id,
                        "condition_type": model.condition_type,
                        "action_type": model.action_type,
                    }
                )
        return rules


class SQLAlchemyExecutionRepository(IExecutionRepository):
    """SQLAlchemy implementation of the execution log. Insert and read only."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: EscalationExecutionModel) -> EscalationExecution:
        return EscalationExecution(
            id=model.id,
            ticket_id=model.ticket_id,
            rule_id=model.rule_id,
            outcome=ExecutionOutcome(model.outcome),
            rule_name=model.rule_name,
            action_type=ActionType(model.action_type),
            condition_type=ConditionType(model.condition_type),
            detail=model.detail,
            evidence=model.evidence,
            dedup_key=model.dedup_key,
            executed_at=model.executed_at,
        )

    async def add(self, execution: EscalationExecution) -> EscalationExecution:
        model = EscalationExecutionModel(
            ticket_id=execution.ticket_id,
            rule_id=execution.rule_id,
            outcome=execution.outcome.value,
            rule_name=execution.rule_name,
            action_type=execution.action_type.value,
            condition_type=execution.condition_type.value,
            detail=execution.detail,
            evidence=execution.evidence,
            dedup_key=execution.dedup_key,
        )
        if execution.executed_at is not None:
            model.executed_at = execution.executed_at

        self._session.add(model)
        await self._session.flush()
        return self._to_domain(model)

    async def has_executed(self, dedup_key: str) -> bool:
        stmt = select(exists().where(
            EscalationExecutionModel.dedup_key == dedup_key,
            EscalationExecutionModel.outcome == ExecutionOutcome.EXECUTED.value,
        ))
        return bool(await self._session.scalar(stmt))

    async def list_for_ticket(self, ticket_id: str) -> List[EscalationExecution]:
        stmt = (
            select(EscalationExecutionModel)
            .where(EscalationExecutionModel.ticket_id == ticket_id)
            .order_by(EscalationExecutionModel.executed_at.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()]


class SQLAlchemyEscalationUnitOfWork(IEscalationUnitOfWork):
    """
    Unit of work backed by one ``AsyncSession``.

    Usage:
        async with SQLAlchemyEscalationUnitOfWork(get_session_maker()) as uow:
            ...
            await uow.commit()
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self._session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SQLAlchemyEscalationUnitOfWork":
        self._session = self._session_maker()
        self.tickets = SQLAlchemyTicketRepository(self._session)
        self.users = SQLAlchemyUserDirectory(self._session)
        self.rules = SQLAlchemyRuleRepository(self._session)
        self.policies = SQLAlchemySLAPolicyRepository(self._session)
        self.executions = SQLAlchemyExecutionRepository(self._session)
        return self

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
