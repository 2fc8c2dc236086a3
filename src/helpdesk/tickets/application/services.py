"""
Ticket Store Interfaces
=======================

The ticket subsystem owns ticket CRUD. These are the narrow read and
mutation contracts the SLA and escalation contexts depend on.

Every mutation takes the status the caller observed; implementations must
apply it only if the ticket still has that status and raise
``TicketStateChangedException`` otherwise.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from helpdesk.config import Priority, TicketStatus, HistoryAction, SYSTEM_USER_ID
from helpdesk.tickets.domain import TicketSnapshot, User


class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_snapshot(self, ticket_id: str) -> Optional[TicketSnapshot]:
        """Load a ticket with comments, status history, followers and feedback."""

    @abstractmethod
    async def list_snapshots(self, statuses: Sequence[TicketStatus]) -> List[TicketSnapshot]:
        """Load every ticket currently in one of ``statuses``."""

    @abstractmethod
    async def list_with_deadline(self, filters: dict) -> List[TicketSnapshot]:
        """
        Load tickets that carry an SLA deadline.

        Supported filters: ``team_id``, ``priority``, ``start_date``, ``end_date``
        (the last two bound ``created_at``).
        """

    @abstractmethod
    async def add(self, ticket: TicketSnapshot) -> TicketSnapshot:
        """Persist a ticket with its children (used by seeding and tests)."""

    @abstractmethod
    async def set_sla_due_at(self, ticket_id: str, sla_due_at: Optional[datetime]) -> None:
        """Overwrite the SLA deadline (explicit recomputation only)."""

    @abstractmethod
    async def update_priority(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        expected_priority: Priority,
        new_priority: Priority,
        sla_due_at: Optional[datetime],
    ) -> None:
        """Raise priority and replace the deadline in one guarded update."""

    @abstractmethod
    async def update_assignee(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        user_id: str,
    ) -> None:
        """Reassign the ticket."""

    @abstractmethod
    async def add_followers(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        user_ids: Sequence[str],
    ) -> List[str]:
        """Add followers not already present; return the ids actually added."""

    @abstractmethod
    async def record_history(
        self,
        ticket_id: str,
        action: HistoryAction,
        field_name: Optional[str],
        old_value: Optional[str],
        new_value: Optional[str],
        user_id: str = SYSTEM_USER_ID,
    ) -> None:
        """Append an entry to the ticket's audit trail."""


class IUserDirectory(ABC):
    """Interface for user and team lookups."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """Get a user by id (active or not)."""

    @abstractmethod
    async def get_team_leaders(self, team_id: str) -> List[User]:
        """Active leaders of a team."""
