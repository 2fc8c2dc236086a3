"""
Escalation Controllers (API Routes)
===================================

FastAPI routes for escalation rule management, on-demand passes and the
per-ticket escalation audit trail.

Controllers are thin - they delegate to application services.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core import IPermissionOracle, ensure_permission
from helpdesk.escalation.application import (
    EscalationRuleService, EscalationRunner, ExecutionHistoryService,
    RuleCreateDTO, RuleUpdateDTO, RuleResponse,
    PassSummaryResponse, AuditEntryResponse, TicketHistoryResponse
)
from helpdesk.escalation.infrastructure import (
    SQLAlchemyRuleRepository, SQLAlchemyExecutionRepository
)
from helpdesk.infrastructure.database import get_session
from helpdesk.shared.api.dependencies import get_current_user_id, get_permission_oracle
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.infrastructure import SQLAlchemyTicketRepository

logger = get_logger(__name__)
router = APIRouter(prefix="/escalation", tags=["Escalation"])

ENGINE_RESOURCE = "escalation"


# ========== Example payloads for Swagger ==========

RULE_CREATE_EXAMPLE = {
    "name": "Bump overdue tickets",
    "condition_type": "sla_breach",
    "condition_value": {"threshold_hours": 0},
    "action_type": "increase_priority",
    "action_config": {}
}


# ========== Dependencies ==========

async def get_rule_service(
    session: AsyncSession = Depends(get_session),
    oracle: IPermissionOracle = Depends(get_permission_oracle)
) -> EscalationRuleService:
    """Get escalation rule service instance."""
    return EscalationRuleService(SQLAlchemyRuleRepository(session), oracle)


async def get_history_service(
    session: AsyncSession = Depends(get_session)
) -> ExecutionHistoryService:
    """Get escalation audit trail service instance."""
    return ExecutionHistoryService(
        SQLAlchemyExecutionRepository(session),
        SQLAlchemyTicketRepository(session)
    )


def get_runner(request: Request) -> EscalationRunner:
    """Escalation runner configured during application startup."""
    return request.app.state.escalation_runner


# ========== Rule Management ==========

@router.get(
    "/rules",
    response_model=List[RuleResponse],
    summary="List escalation rules",
    description="Open to any authenticated caller."
)
async def list_rules(
    active_only: bool = Query(default=False, description="Only rules evaluated by passes"),
    user_id: str = Depends(get_current_user_id),
    service: EscalationRuleService = Depends(get_rule_service)
):
    rules = await service.list_rules(active_only=active_only)
    return [RuleResponse.model_validate(r) for r in rules]


@router.get(
    "/rules/{rule_id}",
    response_model=RuleResponse,
    summary="Get an escalation rule"
)
async def get_rule(
    rule_id: str,
    user_id: str = Depends(get_current_user_id),
    service: EscalationRuleService = Depends(get_rule_service)
):
    rule = await service.get_rule(rule_id, user_id)
    return RuleResponse.model_validate(rule)


@router.post(
    "/rules",
    response_model=RuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an escalation rule",
    description="""
    Create a condition/action rule.

    **Condition types**: `sla_breach`, `time_in_status`, `priority_level`,
    `no_response`, `customer_rating`

    **Action types**: `notify_manager`, `reassign_ticket`, `increase_priority`,
    `add_follower`, `send_email`

    `condition_value` and `action_config` are validated against the schema
    of their type and stored normalized.
    """,
    responses={201: {"content": {"application/json": {"example": RULE_CREATE_EXAMPLE}}}}
)
async def create_rule(
    request: RuleCreateDTO,
    user_id: str = Depends(get_current_user_id),
    service: EscalationRuleService = Depends(get_rule_service),
    session: AsyncSession = Depends(get_session)
):
    rule = await service.create_rule(request, user_id)
    await session.commit()
    return RuleResponse.model_validate(rule)


@router.patch(
    "/rules/{rule_id}",
    response_model=RuleResponse,
    summary="Update an escalation rule"
)
async def update_rule(
    rule_id: str,
    request: RuleUpdateDTO,
    user_id: str = Depends(get_current_user_id),
    service: EscalationRuleService = Depends(get_rule_service),
    session: AsyncSession = Depends(get_session)
):
    rule = await service.update_rule(rule_id, request, user_id)
    await session.commit()
    return RuleResponse.model_validate(rule)


@router.delete(
    "/rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an escalation rule",
    description="Execution history for the rule is kept."
)
async def delete_rule(
    rule_id: str,
    user_id: str = Depends(get_current_user_id),
    service: EscalationRuleService = Depends(get_rule_service),
    session: AsyncSession = Depends(get_session)
):
    await service.delete_rule(rule_id, user_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ========== Passes ==========

@router.post(
    "/run",
    response_model=PassSummaryResponse,
    summary="Run an escalation pass now",
    description="Refused (reported in `errors`) while another pass is running."
)
async def run_pass(
    user_id: str = Depends(get_current_user_id),
    oracle: IPermissionOracle = Depends(get_permission_oracle),
    runner: EscalationRunner = Depends(get_runner)
):
    await ensure_permission(oracle, user_id, "run", ENGINE_RESOURCE)
    summary = await runner.run_pass(trigger="manual")
    return PassSummaryResponse(**summary.to_dict())


@router.post(
    "/cancel",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Cancel the running pass",
    description="Workers stop taking new units; units already executing finish."
)
async def cancel_pass(
    user_id: str = Depends(get_current_user_id),
    oracle: IPermissionOracle = Depends(get_permission_oracle),
    runner: EscalationRunner = Depends(get_runner)
):
    await ensure_permission(oracle, user_id, "run", ENGINE_RESOURCE)
    was_running = runner.is_running
    if was_running:
        runner.cancel()
    return {"cancelled": was_running}


@router.post(
    "/evaluate/{ticket_id}",
    response_model=PassSummaryResponse,
    summary="Evaluate one ticket now",
    description="Runs every active rule against the ticket, whatever its status."
)
async def evaluate_ticket(
    ticket_id: str,
    user_id: str = Depends(get_current_user_id),
    oracle: IPermissionOracle = Depends(get_permission_oracle),
    runner: EscalationRunner = Depends(get_runner)
):
    await ensure_permission(oracle, user_id, "evaluate", ENGINE_RESOURCE)
    summary = await runner.evaluate_ticket(ticket_id)
    return PassSummaryResponse(**summary.to_dict())


# ========== Audit Trail ==========

@router.get(
    "/tickets/{ticket_id}/history",
    response_model=TicketHistoryResponse,
    summary="Get a ticket's escalation history"
)
async def get_ticket_history(
    ticket_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ExecutionHistoryService = Depends(get_history_service)
):
    entries = await service.get_ticket_history(ticket_id)
    return TicketHistoryResponse(
        ticket_id=ticket_id,
        entries=[AuditEntryResponse(**entry) for entry in entries]
    )


# Export router for inclusion in main app
escalation_router = router
