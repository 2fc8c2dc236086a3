"""
SLA Application Layer
======================

Application layer for SLA policies and compliance.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.sla.application.dto import (
    SLAPolicyCreateDTO,
    SLAPolicyUpdateDTO,
    SLAPolicyResponse,
    ComplianceQueryDTO,
    ComplianceStatusResponse,
    ComplianceMetricsResponse,
    SLAViolationResponse,
    RecomputeResponse,
)
from helpdesk.sla.application.services import (
    ISLAPolicyRepository,
    SLAPolicyService,
    SLAService,
    SLAComplianceService,
)

__all__ = [
    # DTOs
    "SLAPolicyCreateDTO",
    "SLAPolicyUpdateDTO",
    "SLAPolicyResponse",
    "ComplianceQueryDTO",
    "ComplianceStatusResponse",
    "ComplianceMetricsResponse",
    "SLAViolationResponse",
    "RecomputeResponse",
    # Services
    "SLAPolicyService",
    "SLAService",
    "SLAComplianceService",
    # Repository Interfaces
    "ISLAPolicyRepository",
]
