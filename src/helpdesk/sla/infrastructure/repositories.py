"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import Priority
from helpdesk.core import PolicyNotFoundException
from helpdesk.sla.application import ISLAPolicyRepository
from helpdesk.sla.domain import SLAPolicy
from helpdesk.sla.infrastructure.models import SLAPolicyModel


class SQLAlchemySLAPolicyRepository(ISLAPolicyRepository):
    """
    SQLAlchemy implementation of SLA policy repository.

    Handles persistence of SLAPolicy entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: SLAPolicyModel) -> SLAPolicy:
        return SLAPolicy(
            id=model.id,
            name=model.name,
            description=model.description,
            priority=Priority(model.priority),
            response_time_hours=model.response_time_hours,
            resolution_time_hours=model.resolution_time_hours,
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        model = SLAPolicyModel(
            name=policy.name,
            description=policy.description,
            priority=policy.priority.value,
            response_time_hours=policy.response_time_hours,
            resolution_time_hours=policy.resolution_time_hours,
            is_active=policy.is_active,
        )
        if policy.created_at is not None:
            model.created_at = policy.created_at

        self._session.add(model)
        await self._session.flush()
        await self._session.refresh(model)
        return self._to_domain(model)

    async def get_by_id(self, policy_id: str) -> Optional[SLAPolicy]:
        model = await self._session.get(SLAPolicyModel, policy_id)
        return self._to_domain(model) if model else None

    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        model = await self._session.get(SLAPolicyModel, policy.id)
        if model is None:
            raise PolicyNotFoundException(policy.id)

        model.name = policy.name
        model.description = policy.description
        model.response_time_hours = policy.response_time_hours
        model.resolution_time_hours = policy.resolution_time_hours
        model.is_active = policy.is_active

        await self._session.flush()
        await self._session.refresh(model)
        return self._to_domain(model)

    async def delete(self, policy_id: str) -> bool:
        model = await self._session.get(SLAPolicyModel, policy_id)
        if model is None:
            return False
        await self._session.delete(model)
        await self._session.flush()
        return True

    async def list(self, active_only: bool = True) -> List[SLAPolicy]:
        stmt = select(SLAPolicyModel).order_by(SLAPolicyModel.created_at.asc())
        if active_only:
            stmt = stmt.where(SLAPolicyModel.is_active.is_(True))
        result = await self._session.execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()]
