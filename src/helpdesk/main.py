"""
Helpdesk Escalation Service - Main Application
==============================================

SLA-driven escalation engine for a customer-support ticketing system.

Modules:
- SLA: policies, ticket deadlines, compliance reporting
- Escalation: rules, scheduled and on-demand passes, audit trail

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services, executor, runner and DTOs
- Domain: Entities, value objects and condition evaluators
- Infrastructure: Database, Slack, SMTP, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from helpdesk.config import Settings, settings as default_settings
from helpdesk.core import ApplicationException

# Infrastructure
from helpdesk.infrastructure.database import (
    init_database, close_database, create_tables, get_session_maker
)

# Escalation Module
from helpdesk.escalation.application import ActionExecutor, EscalationRunner
from helpdesk.escalation.infrastructure import (
    EscalationScheduler, LogNotificationService, SlackNotificationService,
    SMTPEmailGateway, SQLAlchemyEscalationUnitOfWork
)

# Module Routers
from helpdesk.escalation.interfaces import escalation_router
from helpdesk.sla.interfaces import sla_router

# Shared
from helpdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    request_validation_exception_handler,
    global_exception_handler
)
from helpdesk.shared.infrastructure.logging import setup_logging, get_logger, log_latency
from helpdesk.shared.infrastructure.permissions import SettingsPermissionOracle

logger = get_logger(__name__)


def build_notifier(config: Settings):
    """Slack when a webhook is configured, log-only otherwise."""
    if config.slack_webhook_url:
        return SlackNotificationService(
            webhook_url=config.slack_webhook_url,
            channel=config.slack_channel,
            timeout_seconds=config.slack_timeout_seconds,
        )
    logger.info("Slack webhook not configured - notifications are logged only")
    return LogNotificationService()


def build_runner(config: Settings, notifier, email_gateway) -> EscalationRunner:
    session_maker = get_session_maker()
    return EscalationRunner(
        uow_factory=lambda: SQLAlchemyEscalationUnitOfWork(session_maker),
        executor=ActionExecutor(notifier, email_gateway),
        max_concurrency=config.escalation_max_concurrency,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database (and create tables in development)
    3. Wire permission oracle, transports and the escalation runner
    4. Start the escalation scheduler

    SHUTDOWN:
    1. Stop the scheduler and cancel any running pass
    2. Close the Slack client
    3. Close database connections
    """
    config: Settings = app.state.settings

    # === STARTUP ===
    setup_logging(config.log_level, config.environment)
    logger.info("Starting Helpdesk Escalation Service", extra={
        "version": config.app_version,
        "environment": config.environment
    })

    logger.info("Initializing database")
    init_database(config.database_url)
    if config.db_create_tables:
        logger.info("Creating database tables")
        await create_tables()

    notifier = build_notifier(config)
    runner = build_runner(config, notifier, SMTPEmailGateway(config))

    app.state.permission_oracle = SettingsPermissionOracle(config.admin_user_ids)
    app.state.notifier = notifier
    app.state.escalation_runner = runner

    scheduler = EscalationScheduler(interval_seconds=config.escalation_interval_seconds)
    app.state.escalation_scheduler = scheduler

    if config.escalation_enabled:
        async def escalation_job():
            """Background escalation pass."""
            with log_latency(logger, "scheduled_escalation_pass"):
                await runner.run_pass(trigger="scheduled")

        await scheduler.start(escalation_job)
    else:
        logger.info("Escalation scheduler disabled")

    logger.info("Helpdesk Escalation Service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Helpdesk Escalation Service")

    await scheduler.stop()
    runner.cancel()

    if isinstance(notifier, SlackNotificationService):
        await notifier.close()

    await close_database()
    logger.info("Helpdesk Escalation Service shutdown complete")


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings override (tests pass their own)
    """
    config = config or default_settings

    app = FastAPI(
        title="Helpdesk Escalation API",
        description="""
    ## SLA-Driven Escalation Engine

    ### SLA Policies
    - `GET/POST /sla/policies`, `GET/PATCH/DELETE /sla/policies/{id}`
    - `POST /sla/tickets/{id}/recompute` - Re-derive a ticket's deadline
    - `GET /sla/compliance` - Compliance metrics and violations

    ### Escalation
    - `GET/POST /escalation/rules`, `GET/PATCH/DELETE /escalation/rules/{id}`
    - `POST /escalation/run` - Run a pass now
    - `POST /escalation/evaluate/{ticket_id}` - Evaluate one ticket
    - `GET /escalation/tickets/{ticket_id}/history` - Escalation audit trail

    Callers identify themselves with the `X-User-ID` header.
    """,
        version=config.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = config

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)

    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(sla_router)
    app.include_router(escalation_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Returns scheduler and runner state alongside version info.
        """
        scheduler = getattr(request.app.state, "escalation_scheduler", None)
        runner = getattr(request.app.state, "escalation_runner", None)
        checks = {
            "database": "initialized" if runner else "not_initialized",
            "escalation_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
            "escalation_pass": "running" if runner and runner.is_running else "idle",
            "notifier": type(getattr(request.app.state, "notifier", None)).__name__,
        }
        return {
            "status": "healthy",
            "version": config.app_version,
            "environment": config.environment,
            "checks": checks
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": config.app_name,
            "version": config.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "sla": {"prefix": "/sla"},
                "escalation": {"prefix": "/escalation"},
            }
        }

    return app


# Create FastAPI application
app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "helpdesk.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.environment == "development",
        log_level="info"
    )
