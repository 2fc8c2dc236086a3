"""
Permission Oracle Contract
==========================

The engine never performs role logic itself. Every guarded operation asks
an external oracle and treats the answer as opaque.
"""

from abc import ABC, abstractmethod

from helpdesk.core.exceptions import AccessDeniedException


class IPermissionOracle(ABC):
    """Interface for the external permission check."""

    @abstractmethod
    async def has_permission(self, user_id: str, action: str, resource_type: str) -> bool:
        """Return True if ``user_id`` may perform ``action`` on ``resource_type``."""


async def ensure_permission(
    oracle: IPermissionOracle,
    user_id: str,
    action: str,
    resource_type: str
) -> None:
    """Ask the oracle and raise ``AccessDeniedException`` on refusal."""
    if not await oracle.has_permission(user_id, action, resource_type):
        raise AccessDeniedException(action, resource_type, user_id)
