"""
Ticket Domain Layer
===================

Pure Python view of tickets, comments, status history, feedback and users.
No dependencies on infrastructure.
"""

from helpdesk.tickets.domain.entities import (
    Comment,
    StatusChange,
    TicketFeedback,
    TicketSnapshot,
    User,
    next_priority,
)

__all__ = [
    "Comment",
    "StatusChange",
    "TicketFeedback",
    "TicketSnapshot",
    "User",
    "next_priority",
]
