"""
Escalation External Service Integrations
========================================

External services for the escalation engine:
- Slack webhook notifications (notify transport)
- SMTP email gateway
- APScheduler for periodic escalation passes
"""

import asyncio
import smtplib
import time
from email.message import EmailMessage
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from helpdesk.config import Settings, settings as default_settings
from helpdesk.core import ExternalServiceException
from helpdesk.escalation.application import IEmailGateway, INotificationService
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.tickets.domain import TicketSnapshot, User

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class LogNotificationService(INotificationService):
    """Notifier used when no chat webhook is configured: logs the notice."""

    async def notify(self, recipient: User, ticket: TicketSnapshot, message: str) -> None:
        logger.info(
            "Escalation notification",
            extra={
                "recipient_id": recipient.id,
                "recipient_email": recipient.email,
                "ticket_id": ticket.id,
                "notification": message,
            }
        )


class SlackNotificationService(INotificationService):
    """
    Slack webhook notifier with circuit breaker and retry logic.

    Delivery failures raise ``ExternalServiceException`` so the escalation
    is recorded as failed and retried on the next pass.
    """

    def __init__(
        self,
        webhook_url: str,
        channel: str,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url
        self._channel = channel
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def _build_message(self, recipient: User, ticket: TicketSnapshot, message: str) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "Ticket Escalation", "emoji": True}
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": message}
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Ticket:*\n{ticket.id}"},
                    {"type": "mrkdwn", "text": f"*Priority:*\n{ticket.priority.value.title()}"},
                    {"type": "mrkdwn", "text": f"*Status:*\n{ticket.status.value}"},
                    {"type": "mrkdwn", "text": f"*For:*\n{recipient.name or recipient.email}"},
                ]
            },
        ]
        if ticket.sla_due_at:
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"SLA due: {ticket.sla_due_at.isoformat()}"}]
            })
        return {"channel": self._channel, "text": message, "blocks": blocks}

    async def notify(self, recipient: User, ticket: TicketSnapshot, message: str) -> None:
        if not self._circuit_breaker.allow_request():
            raise ExternalServiceException("slack", "circuit breaker open, notification not sent")

        payload = self._build_message(recipient, ticket, message)
        last_error = "unknown error"

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=payload)
                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Slack notification sent",
                        extra={"ticket_id": ticket.id, "recipient_id": recipient.id}
                    )
                    return
                last_error = f"webhook returned {response.status_code}"
                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
                logger.error(
                    "Slack notification failed",
                    extra={"error": last_error, "attempt": attempt + 1, "ticket_id": ticket.id}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        raise ExternalServiceException("slack", last_error, {"ticket_id": ticket.id})

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class SMTPEmailGateway(IEmailGateway):
    """
    Outbound email over SMTP.

    ``smtplib`` is blocking, so each send runs in a worker thread.
    """

    def __init__(self, config: Optional[Settings] = None):
        self._settings = config or default_settings

    def _send_sync(self, recipients: Sequence[str], subject: str, body: str) -> None:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._settings.smtp_sender
        message["To"] = ", ".join(recipients)
        message.set_content(body)

        with smtplib.SMTP(
            self._settings.smtp_host,
            self._settings.smtp_port,
            timeout=self._settings.smtp_timeout_seconds
        ) as server:
            if self._settings.smtp_use_tls:
                server.starttls()
            if self._settings.smtp_username and self._settings.smtp_password:
                server.login(self._settings.smtp_username, self._settings.smtp_password)
            server.send_message(message)

    async def send(self, recipients: Sequence[str], subject: str, body: str) -> None:
        if not self._settings.smtp_host:
            raise ExternalServiceException("smtp", "SMTP is not configured")

        try:
            await asyncio.to_thread(self._send_sync, list(recipients), subject, body)
        except (smtplib.SMTPException, OSError) as exc:
            raise ExternalServiceException("smtp", str(exc) or type(exc).__name__)

        logger.info("Escalation email sent", extra={"recipients": len(recipients), "subject": subject})


class EscalationScheduler:
    """
    Wrapper for APScheduler running escalation passes on an interval.

    Manages the lifecycle of the scheduler and jobs.
    """

    JOB_ID = "escalation_pass"

    def __init__(self, interval_seconds: int = 1800):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[Any]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("Escalation scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="Escalation Pass",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info(
            "Escalation scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler (safe to call when not running)."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Escalation scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
