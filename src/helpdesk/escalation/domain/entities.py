"""
Escalation Domain Entities
==========================

Escalation rules and the append-only record of their executions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from helpdesk.config import ActionType, ConditionType, ExecutionOutcome, HistoryAction
from helpdesk.tickets.domain import TicketSnapshot


@dataclass
class EscalationRule:
    """
    Admin-defined condition/action pair.

    ``condition_value`` and ``action_config`` are stored in the normalized
    form produced by their schemas.
    """

    id: Optional[str]
    name: str
    condition_type: ConditionType
    condition_value: dict
    action_type: ActionType
    action_config: dict
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class EscalationExecution:
    """
    One attempt to run a rule's action against a ticket.

    Rule name and types are copied at execution time so the record stays
    meaningful after the rule is edited or deleted.
    """

    ticket_id: str
    rule_id: str
    outcome: ExecutionOutcome
    rule_name: str
    action_type: ActionType
    condition_type: ConditionType
    detail: str
    evidence: str
    dedup_key: str
    id: Optional[str] = None
    executed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == ExecutionOutcome.EXECUTED

    @property
    def history_action(self) -> HistoryAction:
        return HistoryAction.ESCALATION_EXECUTED if self.succeeded else HistoryAction.ESCALATION_FAILED

    def audit_payload(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "action_type": self.action_type.value,
            "condition_type": self.condition_type.value,
            "outcome": self.outcome.value,
            "detail": self.detail,
        }

    def to_audit_entry(self) -> dict:
        """Structured entry for the ticket's escalation audit trail."""
        return {
            "id": self.id,
            "action": self.history_action.value,
            "payload": self.audit_payload(),
            "evidence": self.evidence,
            "created_at": self.executed_at,
        }


@dataclass(frozen=True)
class WorkUnit:
    """A matched (ticket, rule) pair queued for execution within a pass."""

    ticket: TicketSnapshot
    rule: EscalationRule
    evidence: str
    dedup_key: str
    pass_id: str = field(default="")


def build_dedup_key(ticket: TicketSnapshot, rule_id: str, epoch: Optional[str]) -> str:
    """
    Identity of one condition occurrence.

    Combines the ticket, the rule, the status the ticket is in and when it
    entered it (so reopening starts a new occurrence) and the
    condition-specific epoch.
    """
    return (
        f"{ticket.id}:{rule_id}:"
        f"{ticket.status.value}@{ticket.status_since.isoformat()}:"
        f"{epoch or '-'}"
    )
