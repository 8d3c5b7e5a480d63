from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fastapi import WebSocket
from pydantic import ValidationError

from tracker.broadcast import BroadcastRouter, Connection
from tracker.constants import (
    DIRECTION_REDO,
    DIRECTION_UNDO,
    DM_ONLY_PAGES,
    EVENT_CHARACTER_UPDATED,
    EVENT_COMBAT_UPDATED,
    EVENT_ERROR,
    EVENT_HISTORY_APPLIED,
    EVENT_HISTORY_ERROR,
    EVENT_REGISTER_MODE,
    EVENT_REQUEST_REDO,
    EVENT_REQUEST_UNDO,
    EVENT_SAVE_HISTORY,
    EVENT_UPDATE_CHARACTER,
    EVENT_UPDATE_COMBAT,
    EVENT_UPDATE_STATE,
    ROLE_DM,
)
from tracker.errors import NoHistoryError, PermissionDenied, UnknownPage
from tracker.history import HistoryManager
from tracker.models import GameState, HistoryApplied, HistoryEntry, HistoryRequest
from tracker.roles import RoleRegistry
from tracker.state import StateStore
from tracker.visibility import is_visible_to_players, project_character, project_characters

logger = logging.getLogger(__name__)


def _page_request(payload: Any) -> Optional[HistoryRequest]:
    if isinstance(payload, str):
        payload = {"page": payload}
    if not isinstance(payload, dict):
        return None
    try:
        return HistoryRequest.model_validate(payload)
    except ValidationError:
        return None


class SyncSession:
    """Inbound event handlers over one canonical document.

    Every handler runs under `self.lock`, so reading the document, mutating
    it and fanning out the result happen as one step relative to other
    connections.
    """

    def __init__(
        self,
        store: StateStore,
        roles: RoleRegistry,
        router: BroadcastRouter,
        *,
        max_history: int = 20,
        persistence: Any = None,
        autosave: bool = True,
    ) -> None:
        self.store = store
        self.roles = roles
        self.router = router
        self.history = HistoryManager(store, max_history=max_history)
        self.persistence = persistence
        self.autosave = autosave
        self.lock = asyncio.Lock()
        self._save_tasks: set[asyncio.Task] = set()
        self._save_lock = asyncio.Lock()
        self._version = 0
        self._saved_version = 0
        self._handlers = {
            EVENT_REGISTER_MODE: self.register_mode,
            EVENT_UPDATE_STATE: self.update_state,
            EVENT_UPDATE_CHARACTER: self.update_character,
            EVENT_UPDATE_COMBAT: self.update_combat,
            EVENT_SAVE_HISTORY: self.save_history_entry,
            EVENT_REQUEST_UNDO: self.request_undo,
            EVENT_REQUEST_REDO: self.request_redo,
        }

    @property
    def state(self) -> GameState:
        return self.store.state

    async def connect(self, ws: WebSocket) -> Connection:
        conn = await self.router.connect(ws)
        async with self.lock:
            # Default role until register-mode arrives.
            await self.router.send_state(conn, self.state)
        return conn

    async def disconnect(self, conn: Connection) -> None:
        await self.router.disconnect(conn)

    async def handle(self, conn: Connection, msg_type: Any, payload: Any) -> None:
        handler = self._handlers.get(msg_type)
        if handler is None:
            await self.router.send(conn.connection_id, EVENT_ERROR, {"message": "unknown type"})
            return
        async with self.lock:
            await handler(conn, payload)

    def role_of(self, conn: Connection) -> str:
        return self.roles.get_role(conn.connection_id)

    async def register_mode(self, conn: Connection, payload: Any) -> None:
        role = payload.get("role") if isinstance(payload, dict) else payload
        if not isinstance(role, str):
            return
        self.roles.set_role(conn.connection_id, role)
        await self.router.send_state(conn, self.state)

    async def update_state(self, conn: Connection, payload: Any) -> None:
        if not isinstance(payload, dict):
            return
        role = self.role_of(conn)
        if not self.store.apply_update_state(payload, role):
            return
        logger.info("State updated by %s and broadcasted", "DM" if role == ROLE_DM else "player")
        await self.router.broadcast_state(self.state, exclude=conn.connection_id)
        self.schedule_save()

    async def update_character(self, conn: Connection, payload: Any) -> None:
        previous = self.store.apply_character_update(payload, self.role_of(conn))
        if previous is None:
            return
        await self.router.broadcast_filtered_event(
            EVENT_CHARACTER_UPDATED,
            lambda role: project_character(payload, role),
            exclude=conn.connection_id,
        )
        if is_visible_to_players(previous) and not is_visible_to_players(payload):
            # Players still hold the old record; resync them without it.
            await self.router.broadcast_state(
                self.state,
                exclude=conn.connection_id,
                where=lambda role: role != ROLE_DM,
            )
        self.schedule_save()

    async def update_combat(self, conn: Connection, payload: Any) -> None:
        combat = self.store.apply_combat_update(payload)
        if combat is None:
            return
        await self.router.broadcast_filtered_event(
            EVENT_COMBAT_UPDATED,
            lambda role: combat.to_wire(),
            exclude=conn.connection_id,
        )
        self.schedule_save()

    async def save_history_entry(self, conn: Connection, payload: Any) -> None:
        request = _page_request(payload)
        if request is None:
            return
        try:
            self.history.record_entry(request.page, request.description, self.role_of(conn))
        except (PermissionDenied, UnknownPage) as exc:
            logger.debug("Dropped save-history-entry from %s: %s", conn.connection_id, exc)
            return
        self.schedule_save()

    async def request_undo(self, conn: Connection, payload: Any) -> None:
        await self._replay(conn, payload, DIRECTION_UNDO)

    async def request_redo(self, conn: Connection, payload: Any) -> None:
        await self._replay(conn, payload, DIRECTION_REDO)

    async def _replay(self, conn: Connection, payload: Any, direction: str) -> None:
        request = _page_request(payload)
        if request is None:
            return
        role = self.role_of(conn)
        try:
            if direction == DIRECTION_UNDO:
                entry = self.history.undo(request.page, role)
            else:
                entry = self.history.redo(request.page, role)
        except (PermissionDenied, UnknownPage) as exc:
            logger.debug("Dropped %s from %s: %s", direction, conn.connection_id, exc)
            return
        except NoHistoryError as exc:
            await self.router.send(conn.connection_id, EVENT_HISTORY_ERROR, {"message": str(exc)})
            return
        await self.router.broadcast_filtered_event(
            EVENT_HISTORY_APPLIED,
            lambda viewer: self._history_payload(request.page, entry, direction, viewer),
        )
        self.schedule_save()

    def _history_payload(
        self, page: str, entry: HistoryEntry, direction: str, role: str
    ) -> dict[str, Any]:
        description = entry.description
        if page in DM_ONLY_PAGES and role != ROLE_DM:
            description = ""
        return HistoryApplied(
            page=page,
            description=description,
            direction=direction,
            characters=project_characters(self.state.characters, role),
            combat_state=self.state.combat_state,
        ).to_wire()

    def schedule_save(self) -> None:
        if self.persistence is None or not self.autosave:
            return
        self._version += 1
        document = self.store.to_document()
        task = asyncio.create_task(self._save(document, self._version))
        self._save_tasks.add(task)
        task.add_done_callback(self._save_tasks.discard)

    async def _save(self, document: dict[str, Any], version: int) -> bool:
        # One writer at a time; a document older than the last one written is dropped.
        async with self._save_lock:
            if version <= self._saved_version:
                return True
            ok = await self.persistence.save(document)
            if ok:
                self._saved_version = version
            else:
                logger.warning("Autosave failed; state is kept in memory")
            return ok

    async def save_now(self) -> bool:
        if self.persistence is None:
            return False
        async with self.lock:
            self._version += 1
            version = self._version
            document = self.store.to_document()
        return await self._save(document, version)

    async def close(self) -> None:
        """Let pending autosaves finish, then write the final document."""
        if self._save_tasks:
            await asyncio.gather(*list(self._save_tasks))
        await self.save_now()
