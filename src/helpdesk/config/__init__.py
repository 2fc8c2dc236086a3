"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-escalation", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="Async SQLAlchemy connection URL"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    db_create_tables: bool = Field(
        default=True,
        description="Create tables on startup (development only, use migrations in production)"
    )

    # ========== Escalation Engine ==========
    escalation_enabled: bool = Field(
        default=True,
        description="Run escalation passes on a timer"
    )
    escalation_interval_seconds: int = Field(
        default=1800,
        description="Seconds between scheduled escalation passes",
        ge=10
    )
    escalation_max_concurrency: int = Field(
        default=4,
        description="Max (ticket, rule) units executed concurrently within a pass",
        ge=1,
        le=64
    )

    # ========== Permission Oracle ==========
    admin_user_ids: List[str] = Field(
        default_factory=list,
        description="User IDs allowed to manage escalation rules and SLA policies"
    )

    # ========== Slack Integration (notify transport) ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for manager notifications"
    )
    slack_channel: str = Field(
        default="#support-escalations",
        description="Slack channel for escalation notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== SMTP (email gateway) ==========
    smtp_host: Optional[str] = Field(default=None, description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port", ge=1, le=65535)
    smtp_use_tls: bool = Field(default=True, description="Issue STARTTLS before login")
    smtp_username: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    smtp_sender: str = Field(
        default="helpdesk@example.com",
        description="From address for escalation emails"
    )
    smtp_timeout_seconds: float = Field(default=10.0, description="SMTP socket timeout", gt=0)

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Priority(str, Enum):
    """Ticket priority levels, ordered LOW < MEDIUM < HIGH < URGENT."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_FOR_CUSTOMER = "WAITING_FOR_CUSTOMER"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class ConditionType(str, Enum):
    """Escalation rule condition types."""
    SLA_BREACH = "sla_breach"
    TIME_IN_STATUS = "time_in_status"
    PRIORITY_LEVEL = "priority_level"
    NO_RESPONSE = "no_response"
    CUSTOMER_RATING = "customer_rating"


class ActionType(str, Enum):
    """Escalation rule action types."""
    NOTIFY_MANAGER = "notify_manager"
    REASSIGN_TICKET = "reassign_ticket"
    INCREASE_PRIORITY = "increase_priority"
    ADD_FOLLOWER = "add_follower"
    SEND_EMAIL = "send_email"


class ExecutionOutcome(str, Enum):
    """Outcome of one escalation attempt."""
    EXECUTED = "executed"
    FAILED = "failed"


class HistoryAction(str, Enum):
    """Ticket audit trail actions."""
    STATUS_CHANGED = "status_changed"
    PRIORITY_CHANGED = "priority_changed"
    REASSIGNED = "reassigned"
    FOLLOWER_ADDED = "follower_added"
    SLA_RECOMPUTED = "sla_recomputed"
    ESCALATION_EXECUTED = "escalation_executed"
    ESCALATION_FAILED = "escalation_failed"


class BreachRisk(str, Enum):
    """SLA breach risk buckets."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ========== Lists for validation ==========

PRIORITY_ORDER = [Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.URGENT]
ACTIVE_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS,
    TicketStatus.WAITING_FOR_CUSTOMER
]
TERMINAL_STATUSES = [TicketStatus.RESOLVED, TicketStatus.CLOSED]
VALID_CONDITION_TYPES = [c.value for c in ConditionType]
VALID_ACTION_TYPES = [a.value for a in ActionType]

# User id recorded on audit rows written by the engine
SYSTEM_USER_ID = "system"
