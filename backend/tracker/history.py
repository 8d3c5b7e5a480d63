from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from tracker.constants import (
    DIRECTION_REDO,
    DIRECTION_UNDO,
    DM_ONLY_PAGES,
    MAX_HISTORY,
    PAGES,
    ROLE_DM,
)
from tracker.errors import NoHistoryError, PermissionDenied, UnknownPage
from tracker.models import HistoryEntry
from tracker.snapshots import extract, extract_combat, merge

if TYPE_CHECKING:
    from tracker.state import StateStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class HistoryManager:
    """Per-page bounded undo/redo over scoped snapshots.

    Each page's pair of stacks is independent. Recording a new entry clears
    that page's redo stack; undo and redo move a fresh snapshot of the
    current state onto the opposite stack before merging, so either
    direction can be replayed repeatedly.
    """

    def __init__(self, store: "StateStore", max_history: int = MAX_HISTORY) -> None:
        self.store = store
        self.max_history = max(1, int(max_history))

    def check_access(self, page: object, role: str) -> str:
        if not isinstance(page, str) or page not in PAGES:
            raise UnknownPage(page)
        if page in DM_ONLY_PAGES and role != ROLE_DM:
            raise PermissionDenied(f"{page} history is DM only")
        return page

    def snapshot(self, page: str, description: str) -> HistoryEntry:
        state = self.store.state
        return HistoryEntry(
            characters=extract(page, state.characters),
            combat_state=extract_combat(page, state.combat_state),
            description=description,
            timestamp=_now_ms(),
        )

    def _push(self, stack: list[HistoryEntry], entry: HistoryEntry) -> None:
        stack.append(entry)
        overflow = len(stack) - self.max_history
        if overflow > 0:
            del stack[:overflow]

    def record_entry(self, page: object, description: str, role: str) -> HistoryEntry:
        page = self.check_access(page, role)
        entry = self.snapshot(page, description)
        state = self.store.state
        self._push(state.history[page], entry)
        state.redo[page].clear()
        self.store.prune_graveyard()
        logger.debug("History saved on %s: %s", page, description)
        return entry

    def undo(self, page: object, role: str) -> HistoryEntry:
        page = self.check_access(page, role)
        return self._replay(page, DIRECTION_UNDO)

    def redo(self, page: object, role: str) -> HistoryEntry:
        page = self.check_access(page, role)
        return self._replay(page, DIRECTION_REDO)

    def _replay(self, page: str, direction: str) -> HistoryEntry:
        state = self.store.state
        if direction == DIRECTION_UNDO:
            source, target = state.history[page], state.redo[page]
        else:
            source, target = state.redo[page], state.history[page]
        if not source:
            raise NoHistoryError(page, direction)
        entry = source[-1]
        self._push(target, self.snapshot(page, entry.description))
        source.pop()
        merge(
            page,
            state,
            entry.characters,
            entry.combat_state,
            graveyard=self.store.graveyard,
        )
        self.store.prune_graveyard()
        logger.info("Applied %s on %s: %s", direction, page, entry.description)
        return entry

    def depth(self, page: str) -> tuple[int, int]:
        state = self.store.state
        return len(state.history[page]), len(state.redo[page])
