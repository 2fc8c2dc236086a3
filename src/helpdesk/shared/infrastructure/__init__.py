"""
Infrastructure Layer
=====================

Low-level technical concerns:
- Logging setup
- Permission oracle adapter
"""
