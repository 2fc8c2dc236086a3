"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Boundary errors (validation, access, not found) carry an ``error_code`` and
``status_code`` so the API layer can render them without inspecting types.
Errors raised inside an escalation pass are contained per (ticket, rule)
unit and never reach the caller.
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    error_code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Malformed rule or policy fields, rejected before persistence."""

    error_code = "VALIDATION_ERROR"
    status_code = 400


class AccessDeniedException(ApplicationException):
    """Caller lacks permission for a guarded operation."""

    error_code = "ACCESS_DENIED"
    status_code = 403

    def __init__(
        self,
        action: str,
        resource_type: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.action = action
        self.resource_type = resource_type
        self.user_id = user_id
        super().__init__(
            f"Access denied: cannot {action} {resource_type}",
            details or {"action": action, "resource_type": resource_type}
        )


class AuthenticationException(ApplicationException):
    """No caller identity was supplied."""

    error_code = "UNAUTHENTICATED"
    status_code = 401


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.error_code = f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND"
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class RuleNotFoundException(ResourceNotFoundException):
    """Escalation rule id does not exist."""

    def __init__(self, rule_id: str):
        super().__init__("rule", rule_id)


class PolicyNotFoundException(ResourceNotFoundException):
    """SLA policy id does not exist."""

    def __init__(self, policy_id: str):
        super().__init__("policy", policy_id)


class TicketNotFoundException(ResourceNotFoundException):
    """Ticket id does not exist in the ticket store."""

    def __init__(self, ticket_id: str):
        super().__init__("ticket", ticket_id)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class EvaluationException(DomainException):
    """A condition evaluator met data it cannot interpret."""


class ActionExecutionException(DomainException):
    """An escalation action could not be carried out."""


class TicketStateChangedException(ActionExecutionException):
    """Optimistic check failed: the ticket moved on since it was snapshotted."""

    def __init__(
        self,
        ticket_id: str,
        expected_status: Any,
        actual_status: Any = None
    ):
        self.ticket_id = ticket_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        expected = getattr(expected_status, "value", expected_status)
        actual = getattr(actual_status, "value", actual_status)
        super().__init__(
            f"Ticket {ticket_id} changed state during evaluation "
            f"(expected {expected}, found {actual}); action aborted",
            {"ticket_id": ticket_id, "expected_status": expected, "actual_status": actual}
        )
