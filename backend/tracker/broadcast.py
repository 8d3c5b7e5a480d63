from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Optional

from fastapi import WebSocket

from tracker.constants import EVENT_STATE_SYNC
from tracker.models import GameState
from tracker.roles import RoleRegistry
from tracker.visibility import project

logger = logging.getLogger(__name__)

PayloadBuilder = Callable[[str], Optional[Any]]


def message(event: str, payload: Any) -> dict[str, Any]:
    return {"type": event, "payload": payload}


class Connection:
    def __init__(self, ws: WebSocket, connection_id: Optional[str] = None) -> None:
        self.ws = ws
        self.connection_id = connection_id or str(uuid.uuid4())


class BroadcastRouter:
    """Subscriber list plus per-recipient projection.

    Who gets notified comes from the connection list; what each recipient
    may see comes from its role in the registry.
    """

    def __init__(self, roles: RoleRegistry) -> None:
        self.roles = roles
        self.connections: list[Connection] = []
        self.lock = asyncio.Lock()

    async def connect(self, ws: WebSocket) -> Connection:
        conn = Connection(ws)
        async with self.lock:
            self.connections.append(conn)
        logger.info("Client connected: %s", conn.connection_id)
        return conn

    async def disconnect(self, conn: Connection) -> None:
        async with self.lock:
            if conn in self.connections:
                self.connections.remove(conn)
        self.roles.remove(conn.connection_id)
        logger.info("Client disconnected: %s", conn.connection_id)

    async def _targets(self, exclude: Optional[str]) -> list[Connection]:
        async with self.lock:
            return [c for c in self.connections if c.connection_id != exclude]

    async def _deliver(self, conn: Connection, data: dict[str, Any]) -> None:
        try:
            await conn.ws.send_json(data)
        except Exception as exc:
            logger.error("Failed to send to %s: %s", conn.connection_id, exc)

    async def send(self, connection_id: str, event: str, payload: Any) -> None:
        async with self.lock:
            conn = next((c for c in self.connections if c.connection_id == connection_id), None)
        if conn is None:
            return
        await self._deliver(conn, message(event, payload))

    async def send_state(self, conn: Connection, state: GameState) -> None:
        role = self.roles.get_role(conn.connection_id)
        await self._deliver(conn, message(EVENT_STATE_SYNC, project(state, role).to_wire()))

    async def broadcast_state(
        self,
        state: GameState,
        exclude: Optional[str] = None,
        where: Optional[Callable[[str], bool]] = None,
    ) -> None:
        for conn in await self._targets(exclude):
            if where is not None and not where(self.roles.get_role(conn.connection_id)):
                continue
            await self.send_state(conn, state)

    async def broadcast_filtered_event(
        self,
        event: str,
        builder: PayloadBuilder,
        exclude: Optional[str] = None,
    ) -> None:
        """Send `event` with a payload recomputed per recipient role.

        `builder` returns None to withhold the event from that recipient.
        """
        cache: dict[str, Optional[Any]] = {}
        for conn in await self._targets(exclude):
            role = self.roles.get_role(conn.connection_id)
            if role not in cache:
                cache[role] = builder(role)
            payload = cache[role]
            if payload is None:
                continue
            await self._deliver(conn, message(event, payload))
