"""
SLA Domain Layer
================

Pure Python domain entities and value objects for SLA policies.
No dependencies on infrastructure.
"""

from helpdesk.sla.domain.entities import (
    SLAPolicy,
    ComplianceStatus,
    SLAViolation,
    ComplianceMetrics,
)
from helpdesk.sla.domain.value_objects import SLACalculator

__all__ = [
    "SLAPolicy",
    "ComplianceStatus",
    "SLAViolation",
    "ComplianceMetrics",
    "SLACalculator",
]
