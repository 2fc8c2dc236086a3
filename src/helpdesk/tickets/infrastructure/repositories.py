"""
Ticket Infrastructure Repositories
==================================

SQLAlchemy implementations of the ticket store and user directory.

Mutations are conditional UPDATEs keyed on the status the caller saw, so a
concurrent human edit makes the update match zero rows instead of being
silently overwritten.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from helpdesk.config import Priority, TicketStatus, HistoryAction, SYSTEM_USER_ID
from helpdesk.core import TicketNotFoundException, TicketStateChangedException
from helpdesk.infrastructure.database import utcnow
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.application import ITicketRepository, IUserDirectory
from helpdesk.tickets.domain import (
    Comment, StatusChange, TicketFeedback, TicketSnapshot, User
)
from helpdesk.tickets.infrastructure.models import (
    CommentModel, TeamLeaderModel, TicketFeedbackModel, TicketFollowerModel,
    TicketHistoryModel, TicketModel, UserModel
)

logger = get_logger(__name__)


def _parse_status(value: Optional[str]) -> Optional[TicketStatus]:
    if value is None:
        return None
    try:
        return TicketStatus(value)
    except ValueError:
        return None


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of the ticket store.

    Loads full snapshots eagerly; async sessions cannot lazy load.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    def _snapshot_query(self):
        return select(TicketModel).options(
            selectinload(TicketModel.comments),
            selectinload(TicketModel.history),
            selectinload(TicketModel.followers),
            selectinload(TicketModel.feedback),
        )

    def _to_snapshot(self, model: TicketModel) -> TicketSnapshot:
        status_changes = []
        for entry in model.history:
            if entry.action != HistoryAction.STATUS_CHANGED.value:
                continue
            new_status = _parse_status(entry.new_value)
            if new_status is None:
                logger.warning(
                    "Skipping unreadable status change",
                    extra={"ticket_id": model.id, "history_id": entry.id, "new_value": entry.new_value}
                )
                continue
            status_changes.append(StatusChange(
                old_status=_parse_status(entry.old_value),
                new_status=new_status,
                changed_at=entry.created_at,
            ))

        feedback = None
        if model.feedback is not None:
            feedback = TicketFeedback(rating=model.feedback.rating, submitted_at=model.feedback.created_at)

        return TicketSnapshot(
            id=model.id,
            title=model.title,
            status=TicketStatus(model.status),
            priority=Priority(model.priority),
            created_at=model.created_at,
            updated_at=model.updated_at,
            customer_id=model.customer_id,
            resolved_at=model.resolved_at,
            closed_at=model.closed_at,
            sla_due_at=model.sla_due_at,
            assigned_to=model.assigned_to,
            team_id=model.team_id,
            followers=frozenset(f.user_id for f in model.followers),
            comments=tuple(
                Comment(id=c.id, author_id=c.author_id, is_internal=c.is_internal, created_at=c.created_at)
                for c in model.comments
            ),
            status_changes=tuple(status_changes),
            feedback=feedback,
        )

    async def get_snapshot(self, ticket_id: str) -> Optional[TicketSnapshot]:
        stmt = self._snapshot_query().where(TicketModel.id == ticket_id)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_snapshot(model) if model else None

    async def list_snapshots(self, statuses: Sequence[TicketStatus]) -> List[TicketSnapshot]:
        stmt = (
            self._snapshot_query()
            .where(TicketModel.status.in_([s.value for s in statuses]))
            .order_by(TicketModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_snapshot(m) for m in result.scalars().all()]

    async def list_with_deadline(self, filters: dict) -> List[TicketSnapshot]:
        conditions = [TicketModel.sla_due_at.is_not(None)]

        if filters.get("team_id"):
            conditions.append(TicketModel.team_id == filters["team_id"])
        if filters.get("priority"):
            conditions.append(TicketModel.priority == Priority(filters["priority"]).value)
        if filters.get("start_date"):
            conditions.append(TicketModel.created_at >= filters["start_date"])
        if filters.get("end_date"):
            conditions.append(TicketModel.created_at <= filters["end_date"])

        stmt = self._snapshot_query().where(and_(*conditions)).order_by(TicketModel.created_at.asc())
        result = await self._session.execute(stmt)
        return [self._to_snapshot(m) for m in result.scalars().all()]

    async def add(self, ticket: TicketSnapshot) -> TicketSnapshot:
        model = TicketModel(
            id=ticket.id,
            title=ticket.title,
            status=ticket.status.value,
            priority=ticket.priority.value,
            customer_id=ticket.customer_id,
            assigned_to=ticket.assigned_to,
            team_id=ticket.team_id,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            resolved_at=ticket.resolved_at,
            closed_at=ticket.closed_at,
            sla_due_at=ticket.sla_due_at,
        )
        model.comments = [
            CommentModel(id=c.id, author_id=c.author_id, is_internal=c.is_internal, created_at=c.created_at)
            for c in ticket.comments
        ]
        model.history = [
            TicketHistoryModel(
                user_id=SYSTEM_USER_ID,
                action=HistoryAction.STATUS_CHANGED.value,
                field_name="status",
                old_value=change.old_status.value if change.old_status else None,
                new_value=change.new_status.value,
                created_at=change.changed_at,
            )
            for change in ticket.status_changes
        ]
        model.followers = [
            TicketFollowerModel(user_id=user_id, added_by=SYSTEM_USER_ID)
            for user_id in sorted(ticket.followers)
        ]
        if ticket.feedback is not None:
            model.feedback = TicketFeedbackModel(
                rating=ticket.feedback.rating, created_at=ticket.feedback.submitted_at
            )

        self._session.add(model)
        await self._session.flush()
        return ticket

    async def set_sla_due_at(self, ticket_id: str, sla_due_at: Optional[datetime]) -> None:
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket_id)
            .values(sla_due_at=sla_due_at, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise TicketNotFoundException(ticket_id)

    async def _guarded_update(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        extra_conditions: tuple = (),
        **values
    ) -> None:
        """Apply ``values`` only if the ticket is still in ``expected_status``."""
        stmt = (
            update(TicketModel)
            .where(
                TicketModel.id == ticket_id,
                TicketModel.status == expected_status.value,
                *extra_conditions
            )
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount:
            return

        row = (await self._session.execute(
            select(TicketModel.status, TicketModel.priority).where(TicketModel.id == ticket_id)
        )).one_or_none()
        if row is None:
            raise TicketNotFoundException(ticket_id)
        actual = row.status if row.status != expected_status.value else f"{row.status} (priority {row.priority})"
        raise TicketStateChangedException(ticket_id, expected_status, actual)

    async def update_priority(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        expected_priority: Priority,
        new_priority: Priority,
        sla_due_at: Optional[datetime],
    ) -> None:
        await self._guarded_update(
            ticket_id,
            expected_status,
            (TicketModel.priority == expected_priority.value,),
            priority=new_priority.value,
            sla_due_at=sla_due_at,
        )

    async def update_assignee(self, ticket_id: str, expected_status: TicketStatus, user_id: str) -> None:
        await self._guarded_update(ticket_id, expected_status, assigned_to=user_id)

    async def add_followers(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        user_ids: Sequence[str],
    ) -> List[str]:
        # Touching the row doubles as the status guard
        await self._guarded_update(ticket_id, expected_status)

        existing = set((await self._session.execute(
            select(TicketFollowerModel.user_id).where(TicketFollowerModel.ticket_id == ticket_id)
        )).scalars().all())

        added = []
        for user_id in dict.fromkeys(user_ids):
            if user_id in existing:
                continue
            self._session.add(TicketFollowerModel(ticket_id=ticket_id, user_id=user_id, added_by=SYSTEM_USER_ID))
            added.append(user_id)

        await self._session.flush()
        return added

    async def record_history(
        self,
        ticket_id: str,
        action: HistoryAction,
        field_name: Optional[str],
        old_value: Optional[str],
        new_value: Optional[str],
        user_id: str = SYSTEM_USER_ID,
    ) -> None:
        self._session.add(TicketHistoryModel(
            ticket_id=ticket_id,
            user_id=user_id,
            action=action.value,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
        ))
        await self._session.flush()


class SQLAlchemyUserDirectory(IUserDirectory):
    """SQLAlchemy implementation of user and team lookups."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: UserModel) -> User:
        return User(id=model.id, email=model.email, name=model.name, is_active=model.is_active)

    async def get_user(self, user_id: str) -> Optional[User]:
        model = await self._session.get(UserModel, user_id)
        return self._to_domain(model) if model else None

    async def get_team_leaders(self, team_id: str) -> List[User]:
        stmt = (
            select(UserModel)
            .join(TeamLeaderModel, TeamLeaderModel.user_id == UserModel.id)
            .where(TeamLeaderModel.team_id == team_id, UserModel.is_active.is_(True))
            .order_by(UserModel.email.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()]
