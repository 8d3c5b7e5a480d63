from __future__ import annotations

from typing import Any, Optional

from tracker.constants import CHARACTER_MONSTER, CHARACTER_PLAYER, DM_ONLY_PAGES, ROLE_DM
from tracker.models import Character, GameState, HistoryEntry, clone_character


def is_visible_to_players(character: Character) -> bool:
    kind = character.get("type")
    if kind == CHARACTER_PLAYER:
        return True
    return kind == CHARACTER_MONSTER and character.get("revealedToPlayers") is True


def filter_characters(characters: list[Character]) -> list[Character]:
    return [c for c in characters if is_visible_to_players(c)]


def _reveal_lookup(characters: list[Character]) -> dict[Any, bool]:
    return {c.get("id"): is_visible_to_players(c) for c in characters}


def _snapshot_visible(scoped: Character, revealed: dict[Any, bool]) -> bool:
    # Scoped snapshots carry no reveal flag, so the canonical record decides.
    if scoped.get("type") == CHARACTER_PLAYER:
        return True
    if scoped.get("type") != CHARACTER_MONSTER:
        return False
    return revealed.get(scoped.get("id"), False)


def filter_history(
    entries: list[HistoryEntry], revealed: dict[Any, bool]
) -> list[HistoryEntry]:
    filtered: list[HistoryEntry] = []
    for entry in entries:
        visible = entry.clone()
        visible.characters = [c for c in visible.characters if _snapshot_visible(c, revealed)]
        filtered.append(visible)
    return filtered


def project(state: GameState, role: str) -> GameState:
    """Role-appropriate view of the canonical document.

    The DM gets the canonical object itself. Everyone else gets a copy
    without hidden monsters anywhere, including history and redo stacks,
    and with DM-only page histories emptied.
    """
    if role == ROLE_DM:
        return state
    revealed = _reveal_lookup(state.characters)
    history = {}
    redo = {}
    for page, entries in state.history.items():
        history[page] = [] if page in DM_ONLY_PAGES else filter_history(entries, revealed)
    for page, entries in state.redo.items():
        redo[page] = [] if page in DM_ONLY_PAGES else filter_history(entries, revealed)
    return GameState(
        characters=[clone_character(c) for c in filter_characters(state.characters)],
        combat_state=state.combat_state.clone(),
        monster_database=[clone_character(m) for m in state.monster_database],
        history=history,
        redo=redo,
    )


def project_character(character: Character, role: str) -> Optional[Character]:
    if role == ROLE_DM:
        return character
    if not is_visible_to_players(character):
        return None
    return clone_character(character)


def project_characters(characters: list[Character], role: str) -> list[Character]:
    if role == ROLE_DM:
        return characters
    return [clone_character(c) for c in filter_characters(characters)]
