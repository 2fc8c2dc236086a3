"""
Ticket Infrastructure Layer
===========================

SQLAlchemy models and repositories for the shared ticket store.
"""

from helpdesk.tickets.infrastructure.models import (
    UserModel,
    TeamModel,
    TeamLeaderModel,
    TicketModel,
    CommentModel,
    TicketHistoryModel,
    TicketFollowerModel,
    TicketFeedbackModel,
)
from helpdesk.tickets.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyUserDirectory,
)

__all__ = [
    "UserModel",
    "TeamModel",
    "TeamLeaderModel",
    "TicketModel",
    "CommentModel",
    "TicketHistoryModel",
    "TicketFollowerModel",
    "TicketFeedbackModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyUserDirectory",
]
