"""
SLA Infrastructure Layer
=========================

SQLAlchemy models and repositories for SLA policies.
"""

from helpdesk.sla.infrastructure.models import SLAPolicyModel
from helpdesk.sla.infrastructure.repositories import SQLAlchemySLAPolicyRepository

__all__ = [
    "SLAPolicyModel",
    "SQLAlchemySLAPolicyRepository",
]
