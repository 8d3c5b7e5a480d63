from __future__ import annotations

import copy
from typing import Any, Optional

from tracker.constants import (
    CHARACTER_MONSTER,
    IDENTITY_FIELDS,
    PAGE_COMBAT,
    PAGE_FIELDS,
    PAGE_MONSTERS,
)
from tracker.models import Character, CombatState, GameState, clone_character


def _identity(character: Character) -> Character:
    return {key: character.get(key) for key in IDENTITY_FIELDS}


def extract_character(page: str, character: Character) -> Character:
    scoped = _identity(character)
    if page == PAGE_MONSTERS and character.get("type") != CHARACTER_MONSTER:
        return scoped
    for field in PAGE_FIELDS[page]:
        if field in character:
            scoped[field] = copy.deepcopy(character[field])
    return scoped


def extract(page: str, characters: list[Character]) -> list[Character]:
    """Scoped copy of every character: identity plus the fields `page` owns."""
    return [extract_character(page, character) for character in characters]


def extract_combat(page: str, combat_state: CombatState) -> Optional[CombatState]:
    if page != PAGE_COMBAT:
        return None
    return combat_state.clone()


def _apply_owned_fields(page: str, target: Character, scoped: Character) -> None:
    for field in PAGE_FIELDS[page]:
        if field in scoped:
            target[field] = copy.deepcopy(scoped[field])


def merge(
    page: str,
    state: GameState,
    snapshot_characters: list[Character],
    snapshot_combat: Optional[CombatState],
    graveyard: Optional[dict[Any, Character]] = None,
) -> None:
    """Write a scoped snapshot back into `state` in place.

    Only fields owned by `page` and present in the snapshot are touched. The
    combat page additionally restores combat state and the character list
    itself (membership and order). `graveyard` holds the last full record of
    removed characters so a re-inserted character gets its other pages'
    fields back; it is updated with anything this merge removes.
    """
    if page == PAGE_COMBAT and snapshot_combat is not None:
        state.combat_state = snapshot_combat.clone()

    by_id: dict[Any, Character] = {}
    for scoped in snapshot_characters:
        by_id.setdefault(scoped.get("id"), scoped)

    if page != PAGE_COMBAT:
        for character in state.characters:
            scoped = by_id.get(character.get("id"))
            if scoped is not None:
                _apply_owned_fields(page, character, scoped)
        return

    current = {character.get("id"): character for character in state.characters}
    rebuilt: list[Character] = []
    seen: set[Any] = set()
    for scoped in snapshot_characters:
        character_id = scoped.get("id")
        if character_id in seen:
            continue
        seen.add(character_id)
        character = current.get(character_id)
        if character is None:
            if graveyard is not None and character_id in graveyard:
                character = graveyard.pop(character_id)
            else:
                character = _identity(scoped)
        _apply_owned_fields(page, character, scoped)
        rebuilt.append(character)

    if graveyard is not None:
        for character_id, character in current.items():
            if character_id not in seen:
                graveyard[character_id] = clone_character(character)
    state.characters = rebuilt
