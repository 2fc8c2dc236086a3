"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from helpdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    AccessDeniedException,
    AuthenticationException,
    ResourceNotFoundException,
    RuleNotFoundException,
    PolicyNotFoundException,
    TicketNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    EvaluationException,
    ActionExecutionException,
    TicketStateChangedException,
)
from helpdesk.core.permissions import IPermissionOracle, ensure_permission

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "AccessDeniedException",
    "AuthenticationException",
    "ResourceNotFoundException",
    "RuleNotFoundException",
    "PolicyNotFoundException",
    "TicketNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "EvaluationException",
    "ActionExecutionException",
    "TicketStateChangedException",
    "IPermissionOracle",
    "ensure_permission",
]
