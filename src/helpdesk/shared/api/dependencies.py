"""
Shared API Dependencies
=======================

Caller identity and permission oracle lookup for route handlers.

Authentication happens upstream; by the time a request reaches this
service the gateway has resolved the caller to a user id in ``X-User-ID``.
"""

from typing import Optional

from fastapi import Header, Request

from helpdesk.core import AuthenticationException, IPermissionOracle


async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID")
) -> str:
    """Resolve the authenticated caller or fail with 401."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationException("Missing X-User-ID header")
    return x_user_id.strip()


def get_permission_oracle(request: Request) -> IPermissionOracle:
    """Permission oracle configured during application startup."""
    return request.app.state.permission_oracle
