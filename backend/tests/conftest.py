"""
Shared fixtures for the sync server tests.
"""
from pathlib import Path
from typing import Any, Dict, List

import pytest

from tracker.broadcast import BroadcastRouter
from tracker.config import AppConfig
from tracker.db import MemoryGameStore
from tracker.models import CombatState, GameState
from tracker.roles import RoleRegistry
from tracker.session import SyncSession
from tracker.state import StateStore


class FakeWebSocket:
    """Collects everything the server would have sent."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    async def send_json(self, data: Dict[str, Any]) -> None:
        self.sent.append(data)

    def events(self, event_type: str) -> List[Any]:
        return [m["payload"] for m in self.sent if m["type"] == event_type]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def fighter() -> Dict[str, Any]:
    return {
        "id": "pc-1",
        "type": "player",
        "name": "Brenna",
        "currentHp": 27,
        "maxHp": 31,
        "tempHp": 0,
        "initiative": 14,
        "statusEffects": [],
        "deathSaves": {"successes": 0, "failures": 0},
        "concentration": False,
        "resources": {"secondWind": 1},
        "spellSlots": {},
        "abilities": {"str": 16, "dex": 12},
        "hitDice": {"d10": 3},
        "inventory": [{"name": "Longsword", "qty": 1}],
    }


@pytest.fixture
def wizard() -> Dict[str, Any]:
    return {
        "id": "pc-2",
        "type": "player",
        "name": "Ilsa",
        "currentHp": 14,
        "initiative": 9,
        "concentration": True,
        "spellSlots": {"1": 4, "2": 2},
        "abilities": {"int": 17},
        "inventory": [{"name": "Spellbook", "qty": 1}],
    }


@pytest.fixture
def hidden_goblin() -> Dict[str, Any]:
    return {
        "id": "m-1",
        "type": "monster",
        "name": "Goblin Boss",
        "revealedToPlayers": False,
        "currentHp": 21,
        "initiative": 17,
        "monsterAbilities": [{"name": "Redirect Attack"}],
        "inventory": [{"name": "Scimitar"}],
    }


@pytest.fixture
def revealed_wolf() -> Dict[str, Any]:
    return {
        "id": "m-2",
        "type": "monster",
        "name": "Wolf",
        "revealedToPlayers": True,
        "currentHp": 11,
        "initiative": 12,
        "monsterAbilities": [{"name": "Pack Tactics"}],
    }


@pytest.fixture
def game_state(fighter, wizard, hidden_goblin, revealed_wolf) -> GameState:
    return GameState(
        characters=[hidden_goblin, fighter, revealed_wolf, wizard],
        combat_state=CombatState(active=True, current_turn=1, round=2, played_this_round=["m-1"]),
        monster_database=[{"name": "Goblin", "cr": "1/4"}],
    )


@pytest.fixture
def store(game_state) -> StateStore:
    return StateStore(game_state)


@pytest.fixture
def persistence() -> MemoryGameStore:
    return MemoryGameStore()


@pytest.fixture
def session(store, persistence) -> SyncSession:
    roles = RoleRegistry()
    return SyncSession(store, roles, BroadcastRouter(roles), persistence=persistence)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        host="127.0.0.1",
        port=3000,
        max_history=20,
        storage="none",
        data_path=tmp_path / "game_state.json",
        mongo_uri="mongodb://localhost:27017",
        mongo_db="combat_tracker_test",
        autosave=True,
        log_level="DEBUG",
        debug_state=True,
    )
