"""
Helpdesk Escalation Service
===========================

SLA-driven escalation engine for a customer support ticketing system.
"""

__version__ = "1.0.0"
