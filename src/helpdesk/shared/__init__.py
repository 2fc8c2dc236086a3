"""
Shared Kernel Module
====================

Shared infrastructure used across the bounded contexts (tickets, SLA,
escalation).

DO NOT add business logic from SLA or Escalation to shared kernel.
"""
