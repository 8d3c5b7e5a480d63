from __future__ import annotations

import copy
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from tracker.constants import PAGES

# Characters stay plain mappings: the field set is open-ended and owned
# piecewise by pages, so only `id` and `type` are guaranteed.
Character = dict[str, Any]


def clone_character(character: Character) -> Character:
    return copy.deepcopy(character)


def clone_characters(characters: list[Character]) -> list[Character]:
    return [clone_character(c) for c in characters]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class CombatState(WireModel):
    active: bool = False
    current_turn: int = Field(0, alias="currentTurn")
    round: int = 1
    played_this_round: list[Any] = Field(default_factory=list, alias="playedThisRound")

    def clone(self) -> "CombatState":
        return self.model_copy(deep=True)


class HistoryEntry(WireModel):
    characters: list[Character] = Field(default_factory=list)
    combat_state: Optional[CombatState] = Field(None, alias="combatState")
    description: str = ""
    timestamp: int = 0

    def clone(self) -> "HistoryEntry":
        return self.model_copy(deep=True)


def _empty_stacks() -> dict[str, list[HistoryEntry]]:
    return {page: [] for page in PAGES}


class GameState(WireModel):
    characters: list[Character] = Field(default_factory=list)
    combat_state: CombatState = Field(default_factory=CombatState, alias="combatState")
    monster_database: list[dict[str, Any]] = Field(default_factory=list, alias="monsterDatabase")
    history: dict[str, list[HistoryEntry]] = Field(default_factory=_empty_stacks)
    redo: dict[str, list[HistoryEntry]] = Field(default_factory=_empty_stacks)

    def clone(self) -> "GameState":
        return self.model_copy(deep=True)

    def find_index(self, character_id: Any) -> int:
        for index, character in enumerate(self.characters):
            if character.get("id") == character_id:
                return index
        return -1


class HistoryRequest(BaseModel):
    page: str
    description: str = ""


class HistoryApplied(BaseModel):
    page: str
    description: str
    direction: str
    characters: list[Character]
    combat_state: CombatState = Field(alias="combatState")

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
