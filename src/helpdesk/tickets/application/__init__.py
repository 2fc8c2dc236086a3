"""
Ticket Application Layer
========================

Repository interfaces for the shared ticket store and user directory.
"""

from helpdesk.tickets.application.services import ITicketRepository, IUserDirectory

__all__ = ["ITicketRepository", "IUserDirectory"]
