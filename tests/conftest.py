import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Sequence

import pytest
from fastapi.testclient import TestClient

from helpdesk.config import Priority, Settings, TicketStatus
from helpdesk.core import ExternalServiceException, IPermissionOracle
from helpdesk.escalation.application import IEmailGateway, INotificationService
from helpdesk.infrastructure.database import (
    close_database, create_tables, get_session_maker, init_database
)
from helpdesk.tickets.domain import TicketSnapshot, User
from helpdesk.tickets.infrastructure import (
    SQLAlchemyTicketRepository, TeamLeaderModel, TeamModel, UserModel
)

NOW = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
ADMIN = "admin-1"
AGENT = "agent-1"
LEADER = "leader-1"
TEAM = "team-1"


def make_ticket(**overrides) -> TicketSnapshot:
    data = dict(
        id="T1",
        title="Printer on fire",
        status=TicketStatus.OPEN,
        priority=Priority.MEDIUM,
        created_at=NOW - timedelta(hours=5),
        updated_at=NOW - timedelta(hours=5),
        customer_id="customer-1",
    )
    data.update(overrides)
    return TicketSnapshot(**data)


async def seed(
    session_maker,
    tickets: Iterable[TicketSnapshot] = (),
    users: Iterable[User] = (),
    leaders: Sequence[str] = (),
    team_id: str = TEAM,
) -> None:
    """Insert directory data and tickets straight into the shared store."""
    async with session_maker() as session:
        for user in users:
            session.add(UserModel(id=user.id, email=user.email, name=user.name, is_active=user.is_active))
        if leaders:
            session.add(TeamModel(id=team_id, name="Support"))
            await session.flush()
            for user_id in leaders:
                session.add(TeamLeaderModel(team_id=team_id, user_id=user_id))
        await session.flush()

        repo = SQLAlchemyTicketRepository(session)
        for ticket in tickets:
            await repo.add(ticket)
        await session.commit()


async def load_ticket(session_maker, ticket_id: str) -> TicketSnapshot:
    async with session_maker() as session:
        return await SQLAlchemyTicketRepository(session).get_snapshot(ticket_id)


class AllowAll(IPermissionOracle):
    async def has_permission(self, user_id: str, action: str, resource_type: str) -> bool:
        return True


class DenyAll(IPermissionOracle):
    def __init__(self):
        self.calls: List[tuple] = []

    async def has_permission(self, user_id: str, action: str, resource_type: str) -> bool:
        self.calls.append((user_id, action, resource_type))
        return False


class FakeNotifier(INotificationService):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[tuple] = []

    async def notify(self, recipient: User, ticket: TicketSnapshot, message: str) -> None:
        if self.fail:
            raise ExternalServiceException("slack", "webhook returned 500")
        self.sent.append((recipient.id, ticket.id, message))


class FakeEmailGateway(IEmailGateway):
    def __init__(self):
        self.sent: List[tuple] = []

    async def send(self, recipients, subject: str, body: str) -> None:
        self.sent.append((list(recipients), subject, body))


@pytest.fixture()
async def session_maker(tmp_path: Path):
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'escalation.db'}")
    await create_tables()
    yield get_session_maker()
    await close_database()


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def email_gateway():
    return FakeEmailGateway()


@pytest.fixture()
def api_settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        environment="test",
        escalation_enabled=False,
        admin_user_ids=[ADMIN],
        slack_webhook_url=None,
        smtp_host=None,
    )


@pytest.fixture()
def client(api_settings: Settings):
    now = datetime.now(timezone.utc)

    async def _prepare():
        init_database(api_settings.database_url)
        await create_tables()
        await seed(
            get_session_maker(),
            tickets=[
                make_ticket(
                    id="T-API",
                    priority=Priority.HIGH,
                    created_at=now - timedelta(hours=5),
                    updated_at=now - timedelta(hours=5),
                    sla_due_at=now - timedelta(hours=1),
                    team_id=TEAM,
                ),
            ],
            users=[User(id=LEADER, email="lead@example.com", name="Lead")],
            leaders=[LEADER],
        )
        await close_database()

    asyncio.run(_prepare())

    from helpdesk.main import create_app

    app = create_app(api_settings)
    with TestClient(app) as test_client:
        yield test_client
