"""
SLA Value Objects
==================

Stateless SLA calculations.

Everything here takes ``now`` explicitly so the same pass evaluates every
ticket against one clock reading.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from helpdesk.config import Priority, BreachRisk
from helpdesk.sla.domain.entities import SLAPolicy, ComplianceStatus
from helpdesk.tickets.domain import TicketSnapshot

# Fractions of the resolution window left below which a ticket is at risk
HIGH_RISK_FRACTION = 0.10
MEDIUM_RISK_FRACTION = 0.25


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class; all deadline and compliance logic lives here.
    """

    @staticmethod
    def select_policy(policies: Iterable[SLAPolicy], priority: Priority) -> Optional[SLAPolicy]:
        """
        Pick the policy governing ``priority``.

        Only active policies count; when several match, the most recently
        created wins.
        """
        candidates = [p for p in policies if p.is_active and p.priority == priority]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.created_at.timestamp() if p.created_at else float("-inf"))

    @staticmethod
    def resolve_due_date(created_at: datetime, policy: Optional[SLAPolicy]) -> Optional[datetime]:
        """
        Calculate the resolution deadline for a ticket.

        Args:
            created_at: When the ticket was created
            policy: Governing policy, or None when no SLA is tracked

        Returns:
            ``created_at + resolution_time_hours``, or None
        """
        if policy is None:
            return None
        return created_at + timedelta(hours=policy.resolution_time_hours)

    @staticmethod
    def breach_risk(remaining_seconds: float, window_seconds: float) -> BreachRisk:
        """Classify how close an open ticket is to its deadline."""
        if remaining_seconds < 0 or window_seconds <= 0:
            return BreachRisk.HIGH
        fraction = remaining_seconds / window_seconds
        if fraction < HIGH_RISK_FRACTION:
            return BreachRisk.HIGH
        if fraction < MEDIUM_RISK_FRACTION:
            return BreachRisk.MEDIUM
        return BreachRisk.LOW

    @staticmethod
    def check_compliance(ticket: TicketSnapshot, now: datetime) -> ComplianceStatus:
        """
        Calculate a ticket's compliance against its stored deadline.

        The deadline is fixed when computed, so later policy changes do not
        affect the result. Tickets without a deadline are compliant. Resolved
        tickets are compliant iff they were resolved (or closed) by the
        deadline.
        """
        due_at = ticket.sla_due_at
        if due_at is None:
            return ComplianceStatus(True, None, 0.0, BreachRisk.LOW)

        if ticket.is_resolved:
            finished_at = ticket.resolved_at or ticket.closed_at
            if finished_at is not None:
                return ComplianceStatus(finished_at <= due_at, due_at, 0.0, BreachRisk.LOW)

        remaining = (due_at - now).total_seconds()
        return ComplianceStatus(
            is_compliant=remaining > 0,
            due_at=due_at,
            remaining_seconds=remaining,
            breach_risk=SLACalculator.breach_risk(remaining, (due_at - ticket.created_at).total_seconds()),
        )

    @staticmethod
    def delay_hours(due_at: datetime, actual_time: datetime) -> float:
        """Hours past the deadline, never negative."""
        return max(0.0, (actual_time - due_at).total_seconds() / 3600)
