"""
Tickets Module
==============

Read model and narrow mutation surface of the shared ticket store.

Ticket CRUD belongs to the ticketing subsystem; this package only exposes
what SLA tracking and escalation need.
"""
