"""
Escalation Infrastructure Layer
===============================

Persistence, unit of work and external transports for the escalation
engine.
"""

from helpdesk.escalation.infrastructure.models import (
    EscalationRuleModel,
    EscalationExecutionModel,
)
from helpdesk.escalation.infrastructure.repositories import (
    SQLAlchemyRuleRepository,
    SQLAlchemyExecutionRepository,
    SQLAlchemyEscalationUnitOfWork,
)
from helpdesk.escalation.infrastructure.external import (
    CircuitBreaker,
    LogNotificationService,
    SlackNotificationService,
    SMTPEmailGateway,
    EscalationScheduler,
)

__all__ = [
    "EscalationRuleModel",
    "EscalationExecutionModel",
    "SQLAlchemyRuleRepository",
    "SQLAlchemyExecutionRepository",
    "SQLAlchemyEscalationUnitOfWork",
    "CircuitBreaker",
    "LogNotificationService",
    "SlackNotificationService",
    "SMTPEmailGateway",
    "EscalationScheduler",
]
