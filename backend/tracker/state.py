from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from tracker.constants import PAGE_COMBAT, PAGES, ROLE_DM
from tracker.models import Character, CombatState, GameState, clone_character
from tracker.visibility import is_visible_to_players

logger = logging.getLogger(__name__)


def _parse_combat(payload: Any) -> Optional[CombatState]:
    if not isinstance(payload, dict):
        return None
    try:
        return CombatState.model_validate(payload)
    except ValidationError as exc:
        logger.info("Ignoring malformed combat state: %s", exc.errors())
        return None


def unique_characters(characters: list[Any]) -> list[Character]:
    """Drop non-mapping entries and any repeat of an id already seen."""
    result: list[Character] = []
    seen: set[Any] = set()
    for character in characters:
        if not isinstance(character, dict) or "id" not in character:
            continue
        character_id = character["id"]
        if character_id in seen:
            logger.warning("Dropping duplicate character id %r", character_id)
            continue
        seen.add(character_id)
        result.append(character)
    return result


class StateStore:
    """Owner of the canonical document and the only place it is mutated."""

    def __init__(self, state: Optional[GameState] = None) -> None:
        self.state = state or GameState()
        # Last full record of characters removed from the list, by id.
        self.graveyard: dict[Any, Character] = {}
        self._normalize()

    def _normalize(self) -> None:
        for page in PAGES:
            self.state.history.setdefault(page, [])
            self.state.redo.setdefault(page, [])
        self.state.characters = unique_characters(self.state.characters)

    def _bury_removed(self, incoming: list[Character]) -> None:
        keep = {c["id"] for c in incoming}
        for character in self.state.characters:
            if character.get("id") not in keep:
                self.graveyard[character.get("id")] = clone_character(character)
        self.prune_graveyard()

    def prune_graveyard(self) -> None:
        """Forget removed characters that no combat-page entry can bring back."""
        referenced = set()
        for stacks in (self.state.history, self.state.redo):
            for entry in stacks.get(PAGE_COMBAT, []):
                referenced.update(c.get("id") for c in entry.characters)
        for character_id in list(self.graveyard):
            if character_id not in referenced:
                del self.graveyard[character_id]

    def apply_update_state(self, payload: dict[str, Any], role: str) -> bool:
        changed = False
        characters = payload.get("characters")
        if role == ROLE_DM:
            if isinstance(characters, list):
                incoming = unique_characters(characters)
                self._bury_removed(incoming)
                self.state.characters = incoming
                changed = True
            monsters = payload.get("monsterDatabase")
            if isinstance(monsters, list):
                self.state.monster_database = [m for m in monsters if isinstance(m, dict)]
                changed = True
        elif isinstance(characters, list):
            for character in characters:
                if self._player_replace(character):
                    changed = True

        combat = _parse_combat(payload.get("combatState"))
        if combat is not None:
            self.state.combat_state = combat
            changed = True
        return changed

    def _player_replace(self, character: Any) -> bool:
        if not isinstance(character, dict) or not is_visible_to_players(character):
            return False
        index = self.state.find_index(character.get("id"))
        if index == -1 or not is_visible_to_players(self.state.characters[index]):
            return False
        self.state.characters[index] = character
        return True

    def apply_character_update(self, character: Any, role: str) -> Optional[Character]:
        """Replace a character by id. Returns the previous record, or None if not applied."""
        if not isinstance(character, dict):
            return None
        index = self.state.find_index(character.get("id"))
        if index == -1:
            return None
        previous = self.state.characters[index]
        if role != ROLE_DM and not (
            is_visible_to_players(previous) and is_visible_to_players(character)
        ):
            logger.info("Player attempted to update hidden character %r - blocked", character.get("id"))
            return None
        self.state.characters[index] = character
        return previous

    def apply_combat_update(self, payload: Any) -> Optional[CombatState]:
        combat = _parse_combat(payload)
        if combat is not None:
            self.state.combat_state = combat
        return combat

    def to_document(self) -> dict[str, Any]:
        return self.state.to_wire()

    @classmethod
    def from_document(cls, document: Optional[dict[str, Any]]) -> "StateStore":
        if not document:
            return cls()
        try:
            state = GameState.model_validate(document)
        except ValidationError as exc:
            logger.warning("Saved document is invalid, starting empty: %s", exc)
            return cls()
        return cls(state)
