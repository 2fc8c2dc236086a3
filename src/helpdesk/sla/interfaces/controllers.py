"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA policy management and compliance reporting.

Controllers are thin - they delegate to application services.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core import IPermissionOracle
from helpdesk.infrastructure.database import get_session
from helpdesk.shared.api.dependencies import get_current_user_id, get_permission_oracle
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application import (
    SLAPolicyService, SLAService, SLAComplianceService,
    SLAPolicyCreateDTO, SLAPolicyUpdateDTO, SLAPolicyResponse,
    ComplianceQueryDTO, ComplianceStatusResponse, ComplianceMetricsResponse,
    SLAViolationResponse, RecomputeResponse
)
from helpdesk.sla.infrastructure import SQLAlchemySLAPolicyRepository
from helpdesk.tickets.infrastructure import SQLAlchemyTicketRepository

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Policies"])


# ========== Example payloads for Swagger ==========

POLICY_CREATE_EXAMPLE = {
    "name": "High priority",
    "description": "Business-impacting issues",
    "priority": "HIGH",
    "response_time_hours": 4,
    "resolution_time_hours": 24
}


# ========== Dependencies ==========

async def get_policy_service(
    session: AsyncSession = Depends(get_session),
    oracle: IPermissionOracle = Depends(get_permission_oracle)
) -> SLAPolicyService:
    """Get SLA policy service instance."""
    return SLAPolicyService(SQLAlchemySLAPolicyRepository(session), oracle)


async def get_sla_service(
    session: AsyncSession = Depends(get_session),
    oracle: IPermissionOracle = Depends(get_permission_oracle)
) -> SLAService:
    """Get SLA deadline service instance."""
    return SLAService(
        SQLAlchemySLAPolicyRepository(session),
        SQLAlchemyTicketRepository(session),
        oracle
    )


async def get_compliance_service(
    session: AsyncSession = Depends(get_session)
) -> SLAComplianceService:
    """Get SLA compliance service instance."""
    return SLAComplianceService(
        SQLAlchemySLAPolicyRepository(session),
        SQLAlchemyTicketRepository(session)
    )


# ========== Route Handlers ==========

@router.get(
    "/policies",
    response_model=List[SLAPolicyResponse],
    summary="List SLA policies",
    description="Active policies, most urgent priority first. Open to any authenticated caller."
)
async def list_policies(
    include_inactive: bool = Query(default=False, description="Include deactivated policies"),
    user_id: str = Depends(get_current_user_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    policies = await service.list_policies(include_inactive=include_inactive)
    return [SLAPolicyResponse.model_validate(p) for p in policies]


@router.get(
    "/policies/{policy_id}",
    response_model=SLAPolicyResponse,
    summary="Get an SLA policy"
)
async def get_policy(
    policy_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    policy = await service.get_policy(policy_id, user_id)
    return SLAPolicyResponse.model_validate(policy)


@router.post(
    "/policies",
    response_model=SLAPolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an SLA policy",
    description="""
    Create a policy for a ticket priority.

    **Validation**: both targets positive, response time not greater than
    resolution time. Existing ticket deadlines are not touched.
    """,
    responses={201: {"content": {"application/json": {"example": POLICY_CREATE_EXAMPLE}}}}
)
async def create_policy(
    request: SLAPolicyCreateDTO,
    user_id: str = Depends(get_current_user_id),
    service: SLAPolicyService = Depends(get_policy_service),
    session: AsyncSession = Depends(get_session)
):
    policy = await service.create_policy(request, user_id)
    await session.commit()
    return SLAPolicyResponse.model_validate(policy)


@router.patch(
    "/policies/{policy_id}",
    response_model=SLAPolicyResponse,
    summary="Update an SLA policy"
)
async def update_policy(
    policy_id: str,
    request: SLAPolicyUpdateDTO,
    user_id: str = Depends(get_current_user_id),
    service: SLAPolicyService = Depends(get_policy_service),
    session: AsyncSession = Depends(get_session)
):
    policy = await service.update_policy(policy_id, request, user_id)
    await session.commit()
    return SLAPolicyResponse.model_validate(policy)


@router.delete(
    "/policies/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an SLA policy"
)
async def delete_policy(
    policy_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SLAPolicyService = Depends(get_policy_service),
    session: AsyncSession = Depends(get_session)
):
    await service.delete_policy(policy_id, user_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/tickets/{ticket_id}/recompute",
    response_model=RecomputeResponse,
    summary="Recompute a ticket's SLA deadline",
    description="Re-derive `sla_due_at` from the ticket's current priority. No matching policy clears it."
)
async def recompute_due_date(
    ticket_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SLAService = Depends(get_sla_service),
    session: AsyncSession = Depends(get_session)
):
    result = await service.recompute_due_date(ticket_id, user_id)
    await session.commit()
    return result


@router.get(
    "/tickets/{ticket_id}/compliance",
    response_model=ComplianceStatusResponse,
    summary="Get a ticket's SLA compliance"
)
async def get_ticket_compliance(
    ticket_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SLAComplianceService = Depends(get_compliance_service)
):
    ticket, compliance = await service.check_compliance(ticket_id)
    return ComplianceStatusResponse(ticket_id=ticket.id, **compliance.to_dict())


@router.get(
    "/compliance",
    response_model=ComplianceMetricsResponse,
    summary="Get SLA compliance metrics",
    description="""
    Aggregate compliance over tickets that carry a deadline.

    Filters bound the ticket's team, priority and creation time. The
    compliance rate is 100 when no ticket matches.
    """
)
async def get_compliance_metrics(
    query: ComplianceQueryDTO = Depends(),
    user_id: str = Depends(get_current_user_id),
    service: SLAComplianceService = Depends(get_compliance_service)
):
    metrics = await service.get_compliance_metrics(query.to_filters())
    return ComplianceMetricsResponse(
        total_tickets=metrics.total_tickets,
        compliant_tickets=metrics.compliant_tickets,
        violated_tickets=metrics.violated_tickets,
        compliance_rate=metrics.compliance_rate,
        average_resolution_hours=metrics.average_resolution_hours,
        violations=[SLAViolationResponse.model_validate(v) for v in metrics.violations],
    )


# Export router for inclusion in main app
sla_router = router
