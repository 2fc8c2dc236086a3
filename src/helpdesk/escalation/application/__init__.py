"""
Escalation Application Layer
============================

Contains:
- Services: rule management and the audit trail read side
- Executor and Runner: the escalation pipeline
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and on interfaces, never on
concrete infrastructure.
"""

from helpdesk.escalation.application.dto import (
    RuleCreateDTO,
    RuleUpdateDTO,
    RuleResponse,
    PassSummaryResponse,
    AuditPayload,
    AuditEntryResponse,
    TicketHistoryResponse,
)
from helpdesk.escalation.application.services import (
    IRuleRepository,
    IExecutionRepository,
    INotificationService,
    IEmailGateway,
    IEscalationUnitOfWork,
    EscalationRuleService,
    ExecutionHistoryService,
)
from helpdesk.escalation.application.executor import ActionExecutor
from helpdesk.escalation.application.runner import EscalationRunner, PassSummary

__all__ = [
    # DTOs
    "RuleCreateDTO",
    "RuleUpdateDTO",
    "RuleResponse",
    "PassSummaryResponse",
    "AuditPayload",
    "AuditEntryResponse",
    "TicketHistoryResponse",
    # Interfaces
    "IRuleRepository",
    "IExecutionRepository",
    "INotificationService",
    "IEmailGateway",
    "IEscalationUnitOfWork",
    # Services
    "EscalationRuleService",
    "ExecutionHistoryService",
    "ActionExecutor",
    "EscalationRunner",
    "PassSummary",
]
