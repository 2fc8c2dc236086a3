"""
SLA Module
==========

SLA policies, ticket deadline resolution and compliance reporting.

Bounded context layout:
- domain: policy entity and deadline calculator
- application: services and DTOs
- infrastructure: SQLAlchemy models and repositories
- interfaces: FastAPI routes
"""
