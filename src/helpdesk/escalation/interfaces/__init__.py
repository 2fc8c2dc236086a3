"""
Escalation Interfaces Layer
===========================

FastAPI routes for the escalation engine.
"""

from helpdesk.escalation.interfaces.controllers import escalation_router

__all__ = ["escalation_router"]
