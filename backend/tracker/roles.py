from __future__ import annotations

import logging

from tracker.constants import DEFAULT_ROLE, ROLE_DM

logger = logging.getLogger(__name__)


class RoleRegistry:
    """Connection id -> role. Lives only as long as the process; never persisted."""

    def __init__(self) -> None:
        self._roles: dict[str, str] = {}

    def set_role(self, connection_id: str, role: str) -> None:
        self._roles[connection_id] = role
        logger.info("Client %s registered as %s", connection_id, role)

    def get_role(self, connection_id: str) -> str:
        return self._roles.get(connection_id, DEFAULT_ROLE)

    def is_dm(self, connection_id: str) -> bool:
        return self.get_role(connection_id) == ROLE_DM

    def remove(self, connection_id: str) -> None:
        self._roles.pop(connection_id, None)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._roles

    def __len__(self) -> int:
        return len(self._roles)
