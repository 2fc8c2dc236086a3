"""
Config-backed Permission Oracle
===============================

Stand-in for the organisation's RBAC service: users listed in
``ADMIN_USER_IDS`` may perform any guarded action, everyone else none.
"""

from typing import Iterable

from helpdesk.core import IPermissionOracle
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class SettingsPermissionOracle(IPermissionOracle):
    """Grants every guarded action to a fixed set of admin user ids."""

    def __init__(self, admin_user_ids: Iterable[str]):
        self._admins = frozenset(admin_user_ids)

    async def has_permission(self, user_id: str, action: str, resource_type: str) -> bool:
        allowed = user_id in self._admins
        if not allowed:
            logger.info(
                "Permission denied",
                extra={"user_id": user_id, "action": action, "resource_type": resource_type}
            )
        return allowed
