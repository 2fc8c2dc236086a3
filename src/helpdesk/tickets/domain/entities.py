"""
Ticket Domain Entities
======================

Read-side view of the ticket aggregate owned by the ticket subsystem.

The escalation engine works on frozen snapshots so that one pass sees a
single consistent picture of each ticket from evaluation through dispatch.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Tuple, FrozenSet

from helpdesk.config import (
    Priority, TicketStatus, PRIORITY_ORDER, ACTIVE_STATUSES, TERMINAL_STATUSES
)


@dataclass(frozen=True)
class Comment:
    """A ticket comment. Internal comments are agent-only notes."""
    id: str
    author_id: str
    is_internal: bool
    created_at: datetime


@dataclass(frozen=True)
class StatusChange:
    """One ``status_changed`` entry from the ticket's history."""
    old_status: Optional[TicketStatus]
    new_status: TicketStatus
    changed_at: datetime


@dataclass(frozen=True)
class TicketFeedback:
    """Customer satisfaction rating left on a resolved ticket."""
    rating: int
    submitted_at: datetime


@dataclass(frozen=True)
class User:
    """Directory entry for an agent or manager."""
    id: str
    email: str
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class TicketSnapshot:
    """
    Immutable snapshot of a ticket at the start of an escalation pass.

    Comments and status changes are ordered oldest first.
    """

    id: str
    status: TicketStatus
    priority: Priority
    created_at: datetime
    updated_at: datetime
    customer_id: Optional[str] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    sla_due_at: Optional[datetime] = None
    assigned_to: Optional[str] = None
    team_id: Optional[str] = None
    title: str = ""
    followers: FrozenSet[str] = field(default_factory=frozenset)
    comments: Tuple[Comment, ...] = ()
    status_changes: Tuple[StatusChange, ...] = ()
    feedback: Optional[TicketFeedback] = None

    @property
    def is_active(self) -> bool:
        """Eligible for escalation: not resolved or closed."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_resolved(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def status_since(self) -> datetime:
        """When the ticket entered its current status."""
        if self.status_changes:
            return self.status_changes[-1].changed_at
        return self.created_at

    @property
    def last_status_change(self) -> Optional[StatusChange]:
        return self.status_changes[-1] if self.status_changes else None

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    def public_comments(self) -> Tuple[Comment, ...]:
        return tuple(c for c in self.comments if not c.is_internal)

    def is_responder(self, author_id: str) -> bool:
        """
        Whether a comment author counts as the support side answering.

        The assignee when there is one; otherwise anyone but the customer.
        """
        if self.assigned_to:
            return author_id == self.assigned_to
        return author_id != self.customer_id


def next_priority(priority: Priority) -> Priority:
    """One step up the total order; URGENT stays URGENT."""
    index = PRIORITY_ORDER.index(priority)
    return PRIORITY_ORDER[min(index + 1, len(PRIORITY_ORDER) - 1)]
