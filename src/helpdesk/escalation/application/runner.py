"""
Escalation Runner
=================

Runs escalation passes: snapshot, evaluate, dedup, execute, record.

A pass snapshots active rules, active SLA policies and every non-terminal
ticket once, evaluates every (ticket, rule) pair inline, then hands the
matched pairs to a bounded pool of workers. Each pair runs in its own unit
of work so one failure never affects another.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Set
from uuid import uuid4

from helpdesk.config import ACTIVE_STATUSES, ExecutionOutcome
from helpdesk.core import TicketNotFoundException
from helpdesk.escalation.application.executor import ActionExecutor
from helpdesk.escalation.application.services import IEscalationUnitOfWork
from helpdesk.escalation.domain import (
    ActionResult, EscalationExecution, EscalationRule, WorkUnit,
    build_dedup_key, evaluate_condition
)
from helpdesk.shared.infrastructure.logging import (
    get_logger, reset_correlation_id, set_correlation_id
)
from helpdesk.sla.domain import SLAPolicy
from helpdesk.tickets.domain import TicketSnapshot

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PassSummary:
    """Counters for one pass."""

    pass_id: str
    trigger: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    tickets_evaluated: int = 0
    rules_evaluated: int = 0
    conditions_matched: int = 0
    executed: int = 0
    failed: int = 0
    skipped_duplicates: int = 0
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def duration_ms(self) -> int:
        if self.finished_at is None:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = self.duration_ms
        return data


class EscalationRunner:
    """
    Explicit, independently schedulable escalation pass.

    Args:
        uow_factory: Returns a fresh unit of work per call
        executor: Action executor
        max_concurrency: Worker count for matched pairs
        clock: Current-time source (UTC-aware)
    """

    def __init__(
        self,
        uow_factory: Callable[[], IEscalationUnitOfWork],
        executor: ActionExecutor,
        max_concurrency: int = 4,
        clock: Callable[[], datetime] = _utcnow
    ):
        self._uow_factory = uow_factory
        self._executor = executor
        self._max_concurrency = max(1, max_concurrency)
        self._clock = clock
        self._running = False
        self._cancel_event: Optional[asyncio.Event] = None
        self._inflight: Set[str] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    def cancel(self) -> None:
        """Stop the running pass handing out new units; units already executing finish."""
        if self._cancel_event is None:
            return
        logger.info("Escalation pass cancellation requested")
        self._cancel_event.set()

    async def run_pass(self, trigger: str = "scheduled") -> PassSummary:
        """
        Evaluate every non-terminal ticket against every active rule.

        Returns immediately with an error entry if a pass is already
        running.
        """
        summary = PassSummary(pass_id=str(uuid4()), trigger=trigger, started_at=self._clock())

        if self._running:
            logger.warning("Escalation pass already running, skipping", extra={"trigger": trigger})
            summary.errors.append("Escalation pass already running")
            summary.finished_at = self._clock()
            return summary

        self._running = True
        cancel_event = asyncio.Event()
        self._cancel_event = cancel_event
        token = set_correlation_id(summary.pass_id)
        start_time = time.perf_counter()
        try:
            async with self._uow_factory() as uow:
                tickets = await uow.tickets.list_snapshots(ACTIVE_STATUSES)
                rules = await uow.rules.list(active_only=True)
                policies = await uow.policies.list(active_only=True)

            logger.info(
                "Escalation pass started",
                extra={
                    "pass_id": summary.pass_id,
                    "trigger": trigger,
                    "tickets": len(tickets),
                    "rules": len(rules),
                }
            )
            await self._process(tickets, rules, policies, summary, cancel_event)
        finally:
            self._running = False
            self._cancel_event = None
            summary.finished_at = self._clock()
            reset_correlation_id(token)

        logger.info(
            "Escalation pass completed",
            extra={
                "pass_id": summary.pass_id,
                "tickets_evaluated": summary.tickets_evaluated,
                "conditions_matched": summary.conditions_matched,
                "executed": summary.executed,
                "failed": summary.failed,
                "skipped_duplicates": summary.skipped_duplicates,
                "errors": len(summary.errors),
                "cancelled": summary.cancelled,
                "latency_ms": int((time.perf_counter() - start_time) * 1000),
            }
        )
        return summary

    async def evaluate_ticket(self, ticket_id: str, trigger: str = "on_demand") -> PassSummary:
        """
        Run the pipeline for one ticket regardless of its status.

        Raises:
            TicketNotFoundException: Unknown ticket id
        """
        summary = PassSummary(pass_id=str(uuid4()), trigger=trigger, started_at=self._clock())

        async with self._uow_factory() as uow:
            ticket = await uow.tickets.get_snapshot(ticket_id)
            if ticket is None:
                raise TicketNotFoundException(ticket_id)
            rules = await uow.rules.list(active_only=True)
            policies = await uow.policies.list(active_only=True)

        # On-demand evaluations are not affected by pass cancellation
        await self._process([ticket], rules, policies, summary, asyncio.Event())
        summary.finished_at = self._clock()
        logger.info(
            "Ticket evaluated",
            extra={
                "pass_id": summary.pass_id,
                "ticket_id": ticket_id,
                "conditions_matched": summary.conditions_matched,
                "executed": summary.executed,
                "failed": summary.failed,
            }
        )
        return summary

    # ========== Internals ==========

    async def _process(
        self,
        tickets: Sequence[TicketSnapshot],
        rules: Sequence[EscalationRule],
        policies: Sequence[SLAPolicy],
        summary: PassSummary,
        cancel_event: asyncio.Event
    ) -> None:
        now = self._clock()
        summary.tickets_evaluated = len(tickets)
        summary.rules_evaluated = len(rules)

        queue: asyncio.Queue = asyncio.Queue()
        for ticket in tickets:
            for rule in rules:
                result = evaluate_condition(ticket, rule.condition_type, rule.condition_value, now)
                if not result.matched:
                    continue
                summary.conditions_matched += 1
                queue.put_nowait(WorkUnit(
                    ticket=ticket,
                    rule=rule,
                    evidence=result.evidence,
                    dedup_key=build_dedup_key(ticket, rule.id, result.epoch),
                    pass_id=summary.pass_id,
                ))

        if queue.empty():
            return

        workers = [
            asyncio.create_task(self._worker(queue, policies, summary, cancel_event))
            for _ in range(min(self._max_concurrency, queue.qsize()))
        ]
        await asyncio.gather(*workers)

        if not queue.empty():
            summary.cancelled = True
            logger.info(
                "Escalation pass cancelled",
                extra={"pass_id": summary.pass_id, "units_skipped": queue.qsize()}
            )

    async def _worker(
        self,
        queue: asyncio.Queue,
        policies: Sequence[SLAPolicy],
        summary: PassSummary,
        cancel_event: asyncio.Event
    ) -> None:
        while not cancel_event.is_set():
            try:
                unit = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._run_unit(unit, policies, summary)

    async def _run_unit(self, unit: WorkUnit, policies: Sequence[SLAPolicy], summary: PassSummary) -> None:
        """Dedup check, action and audit row in one transaction."""
        log_context = {
            "pass_id": unit.pass_id,
            "ticket_id": unit.ticket.id,
            "rule_id": unit.rule.id,
            "dedup_key": unit.dedup_key,
        }

        # Same occurrence already being handled by a concurrent pass or evaluation
        if unit.dedup_key in self._inflight:
            summary.skipped_duplicates += 1
            return
        self._inflight.add(unit.dedup_key)

        try:
            async with self._uow_factory() as uow:
                if await uow.executions.has_executed(unit.dedup_key):
                    summary.skipped_duplicates += 1
                    logger.debug("Escalation already executed", extra=log_context)
                    return

                try:
                    result = await self._executor.execute(uow, unit, policies)
                except Exception as exc:
                    logger.exception("Escalation action raised", extra=log_context)
                    summary.errors.append(f"{unit.ticket.id}/{unit.rule.id}: {exc}")
                    result = ActionResult.failed(f"unexpected error: {exc}")

                if not result.success:
                    await uow.rollback()

                await self._record(uow, unit, result)
                await uow.commit()

            if result.success:
                summary.executed += 1
                logger.info("Escalation executed", extra={**log_context, "detail": result.detail})
            else:
                summary.failed += 1
                logger.warning("Escalation failed", extra={**log_context, "detail": result.detail})
        except Exception as exc:
            summary.errors.append(f"{unit.ticket.id}/{unit.rule.id}: {exc}")
            logger.error("Escalation unit aborted", extra={**log_context, "error": str(exc)})
        finally:
            self._inflight.discard(unit.dedup_key)

    @staticmethod
    async def _record(uow: IEscalationUnitOfWork, unit: WorkUnit, result: ActionResult) -> None:
        rule = unit.rule
        outcome = ExecutionOutcome.EXECUTED if result.success else ExecutionOutcome.FAILED

        recorded = await uow.executions.add(EscalationExecution(
            ticket_id=unit.ticket.id,
            rule_id=rule.id,
            outcome=outcome,
            rule_name=rule.name,
            action_type=rule.action_type,
            condition_type=rule.condition_type,
            detail=result.detail,
            evidence=unit.evidence,
            dedup_key=unit.dedup_key,
        ))
        await uow.tickets.record_history(
            unit.ticket.id,
            recorded.history_action,
            "escalation_rule",
            None,
            json.dumps({"execution_id": recorded.id, **recorded.audit_payload()})
        )
