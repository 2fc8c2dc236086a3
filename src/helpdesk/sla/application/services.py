"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

- SLAPolicyService: policy CRUD behind the permission oracle
- SLAService: resolves and recomputes ticket deadlines
- SLAComplianceService: per-ticket compliance and aggregated metrics
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple
from abc import ABC, abstractmethod

from helpdesk.config import Priority, PRIORITY_ORDER, HistoryAction
from helpdesk.core import (
    IPermissionOracle, PolicyNotFoundException, TicketNotFoundException,
    ValidationException, ensure_permission
)
from helpdesk.sla.application.dto import (
    SLAPolicyCreateDTO, SLAPolicyUpdateDTO, RecomputeResponse
)
from helpdesk.sla.domain import (
    SLAPolicy, SLACalculator, ComplianceStatus, ComplianceMetrics, SLAViolation
)
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.application import ITicketRepository
from helpdesk.tickets.domain import TicketSnapshot

logger = get_logger(__name__)

POLICY_RESOURCE = "sla_policy"


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLAPolicyRepository(ABC):
    """Interface for SLA policy data access."""

    @abstractmethod
    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        """Persist a new policy and return it with id and timestamps."""

    @abstractmethod
    async def get_by_id(self, policy_id: str) -> Optional[SLAPolicy]:
        """Get a policy by id."""

    @abstractmethod
    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        """Overwrite an existing policy."""

    @abstractmethod
    async def delete(self, policy_id: str) -> bool:
        """Delete a policy; False if it did not exist."""

    @abstractmethod
    async def list(self, active_only: bool = True) -> List[SLAPolicy]:
        """List policies."""


def _validate_targets(response_hours: float, resolution_hours: float) -> None:
    if response_hours <= 0 or resolution_hours <= 0:
        raise ValidationException(
            "Response and resolution times must be positive numbers",
            {"response_time_hours": response_hours, "resolution_time_hours": resolution_hours}
        )
    if response_hours > resolution_hours:
        raise ValidationException(
            "Response time cannot be greater than resolution time",
            {"response_time_hours": response_hours, "resolution_time_hours": resolution_hours}
        )


# ========== Application Services ==========

class SLAPolicyService:
    """
    Service for SLA policy management.

    Writes and single-policy reads are guarded by the permission oracle;
    listing is open to any authenticated caller. Editing a policy never
    moves deadlines already stamped on tickets.
    """

    def __init__(self, policy_repository: ISLAPolicyRepository, permission_oracle: IPermissionOracle):
        self._policy_repo = policy_repository
        self._oracle = permission_oracle

    async def create_policy(self, data: SLAPolicyCreateDTO, user_id: str) -> SLAPolicy:
        await ensure_permission(self._oracle, user_id, "create", POLICY_RESOURCE)
        _validate_targets(data.response_time_hours, data.resolution_time_hours)

        policy = await self._policy_repo.create(SLAPolicy(
            id=None,
            name=data.name,
            description=data.description,
            priority=data.priority,
            response_time_hours=data.response_time_hours,
            resolution_time_hours=data.resolution_time_hours,
            is_active=True,
        ))
        logger.info(
            "SLA policy created",
            extra={"policy_id": policy.id, "priority": policy.priority.value, "user_id": user_id}
        )
        return policy

    async def update_policy(self, policy_id: str, data: SLAPolicyUpdateDTO, user_id: str) -> SLAPolicy:
        await ensure_permission(self._oracle, user_id, "update", POLICY_RESOURCE)

        policy = await self._policy_repo.get_by_id(policy_id)
        if policy is None:
            raise PolicyNotFoundException(policy_id)

        changes = data.model_dump(exclude_unset=True)
        response_hours = changes.get("response_time_hours") or policy.response_time_hours
        resolution_hours = changes.get("resolution_time_hours") or policy.resolution_time_hours
        _validate_targets(response_hours, resolution_hours)

        policy.response_time_hours = response_hours
        policy.resolution_time_hours = resolution_hours
        if changes.get("name") is not None:
            policy.name = changes["name"]
        if "description" in changes:
            policy.description = changes["description"]
        if changes.get("is_active") is not None:
            policy.is_active = changes["is_active"]

        policy = await self._policy_repo.update(policy)
        logger.info("SLA policy updated", extra={"policy_id": policy_id, "user_id": user_id})
        return policy

    async def delete_policy(self, policy_id: str, user_id: str) -> None:
        await ensure_permission(self._oracle, user_id, "delete", POLICY_RESOURCE)
        if not await self._policy_repo.delete(policy_id):
            raise PolicyNotFoundException(policy_id)
        logger.info("SLA policy deleted", extra={"policy_id": policy_id, "user_id": user_id})

    async def get_policy(self, policy_id: str, user_id: str) -> SLAPolicy:
        await ensure_permission(self._oracle, user_id, "read", POLICY_RESOURCE)
        policy = await self._policy_repo.get_by_id(policy_id)
        if policy is None:
            raise PolicyNotFoundException(policy_id)
        return policy

    async def list_policies(self, include_inactive: bool = False) -> List[SLAPolicy]:
        """Most urgent priority first, oldest first within a priority."""
        policies = await self._policy_repo.list(active_only=not include_inactive)
        return sorted(
            policies,
            key=lambda p: (
                -PRIORITY_ORDER.index(p.priority),
                p.created_at.timestamp() if p.created_at else 0.0,
            )
        )


class SLAService:
    """
    Service for ticket deadline resolution.

    A deadline is stamped when a ticket is created and changes only through
    ``recompute_due_date`` (or a priority bump, which recomputes inline).
    """

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        ticket_repository: ITicketRepository,
        permission_oracle: Optional[IPermissionOracle] = None
    ):
        self._policy_repo = policy_repository
        self._ticket_repo = ticket_repository
        self._oracle = permission_oracle

    async def get_policy_for_priority(self, priority: Priority) -> Optional[SLAPolicy]:
        policies = await self._policy_repo.list(active_only=True)
        return SLACalculator.select_policy(policies, priority)

    async def resolve_due_date(self, ticket: TicketSnapshot) -> Optional[datetime]:
        """
        Deadline for ``ticket`` under the current policies.

        Returns None when no active policy covers the ticket's priority,
        meaning no SLA is tracked.
        """
        policy = await self.get_policy_for_priority(ticket.priority)
        return SLACalculator.resolve_due_date(ticket.created_at, policy)

    async def recompute_due_date(self, ticket_id: str, user_id: str) -> RecomputeResponse:
        """
        Re-derive and store a ticket's deadline from its current priority.

        With no matching policy the deadline is cleared. The change is
        written to the ticket history.
        """
        if self._oracle is not None:
            await ensure_permission(self._oracle, user_id, "update", POLICY_RESOURCE)

        ticket = await self._ticket_repo.get_snapshot(ticket_id)
        if ticket is None:
            raise TicketNotFoundException(ticket_id)

        policy = await self.get_policy_for_priority(ticket.priority)
        due_at = SLACalculator.resolve_due_date(ticket.created_at, policy)

        await self._ticket_repo.set_sla_due_at(ticket_id, due_at)
        if due_at != ticket.sla_due_at:
            await self._ticket_repo.record_history(
                ticket_id,
                HistoryAction.SLA_RECOMPUTED,
                "sla_due_at",
                ticket.sla_due_at.isoformat() if ticket.sla_due_at else None,
                due_at.isoformat() if due_at else None,
                user_id=user_id,
            )

        logger.info(
            "SLA deadline recomputed",
            extra={
                "ticket_id": ticket_id,
                "priority": ticket.priority.value,
                "policy_id": policy.id if policy else None,
                "sla_due_at": due_at.isoformat() if due_at else None,
            }
        )
        return RecomputeResponse(
            ticket_id=ticket_id,
            priority=ticket.priority,
            previous_sla_due_at=ticket.sla_due_at,
            sla_due_at=due_at,
            policy_id=policy.id if policy else None,
        )


class SLAComplianceService:
    """Service for SLA compliance checks and aggregation."""

    def __init__(self, policy_repository: ISLAPolicyRepository, ticket_repository: ITicketRepository):
        self._policy_repo = policy_repository
        self._ticket_repo = ticket_repository

    async def check_compliance(
        self,
        ticket_id: str,
        now: Optional[datetime] = None
    ) -> Tuple[TicketSnapshot, ComplianceStatus]:
        ticket = await self._ticket_repo.get_snapshot(ticket_id)
        if ticket is None:
            raise TicketNotFoundException(ticket_id)

        return ticket, SLACalculator.check_compliance(ticket, now or datetime.now(timezone.utc))

    async def get_compliance_metrics(
        self,
        filters: dict,
        now: Optional[datetime] = None
    ) -> ComplianceMetrics:
        """
        Aggregate compliance over tickets that carry a deadline.

        Args:
            filters: Optional ``team_id``, ``priority``, ``start_date``, ``end_date``
            now: Evaluation time (defaults to the current UTC time)
        """
        now = now or datetime.now(timezone.utc)
        tickets = await self._ticket_repo.list_with_deadline(filters)
        policies = await self._policy_repo.list(active_only=True)

        metrics = ComplianceMetrics(total_tickets=len(tickets))
        total_resolution_hours = 0.0
        resolved_count = 0

        for ticket in tickets:
            status = SLACalculator.check_compliance(ticket, now)

            if status.is_compliant:
                metrics.compliant_tickets += 1
            else:
                metrics.violated_tickets += 1
                policy = SLACalculator.select_policy(policies, ticket.priority)
                actual_time = ticket.resolved_at or ticket.closed_at or now
                metrics.violations.append(SLAViolation(
                    ticket_id=ticket.id,
                    priority=ticket.priority,
                    policy_id=policy.id if policy else None,
                    team_id=ticket.team_id,
                    due_at=ticket.sla_due_at,
                    actual_time=actual_time,
                    delay_hours=SLACalculator.delay_hours(ticket.sla_due_at, actual_time),
                ))

            finished_at = ticket.resolved_at or ticket.closed_at
            if finished_at is not None:
                total_resolution_hours += (finished_at - ticket.created_at).total_seconds() / 3600
                resolved_count += 1

        if resolved_count:
            metrics.average_resolution_hours = total_resolution_hours / resolved_count

        logger.debug(
            "Compliance metrics computed",
            extra={"total": metrics.total_tickets, "violated": metrics.violated_tickets}
        )
        return metrics
