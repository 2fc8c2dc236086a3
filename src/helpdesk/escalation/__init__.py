"""
Escalation Module
=================

SLA-driven escalation engine: admin-defined condition/action rules
evaluated against live tickets, with idempotent, audited execution.

Bounded context layout:
- domain: rules, schemas, condition evaluators
- application: rule service, executor, runner
- infrastructure: persistence, transports, scheduler
- interfaces: FastAPI routes
"""
