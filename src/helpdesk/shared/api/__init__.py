"""Shared HTTP concerns: middleware, exception handlers, caller identity."""
