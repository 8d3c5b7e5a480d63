"""End-to-end scenarios over the /ws endpoint."""
import pytest
from fastapi.testclient import TestClient

from tracker.db import MemoryGameStore
from tracker.main import create_app


def send(ws, event, payload=None):
    ws.send_json({"type": event, "payload": payload})


def register(ws, role):
    assert ws.receive_json()["type"] == "state-sync"
    send(ws, "register-mode", role)
    reply = ws.receive_json()
    assert reply["type"] == "state-sync"
    return reply["payload"]


def barrier(ws):
    """Round-trip an empty redo so everything sent before it has been handled."""
    send(ws, "request-redo", {"page": "inventory"})
    assert ws.receive_json()["type"] == "history-error"


@pytest.fixture
def persistence():
    return MemoryGameStore()


@pytest.fixture
def client(app_config, persistence):
    with TestClient(create_app(app_config, persistence=persistence)) as client:
        yield client


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_local_ip_lists_access_urls(client):
    data = client.get("/local_ip").json()
    assert data["urls"]["dm"].endswith("?mode=dm")
    assert data["urls"]["player"].endswith("?mode=player")


def test_reveal_monster_to_players(client):
    monster = {"id": "m1", "type": "monster", "revealedToPlayers": False, "currentHp": 10}
    with client.websocket_connect("/ws") as dm:
        register(dm, "dm")
        send(dm, "update-state", {"characters": [monster]})
        barrier(dm)

        with client.websocket_connect("/ws") as player:
            state = register(player, "player")
            assert state["characters"] == []

            send(dm, "update-state", {"characters": [dict(monster, revealedToPlayers=True)]})
            message = player.receive_json()
            assert message["type"] == "state-sync"
            [m1] = message["payload"]["characters"]
            assert m1["id"] == "m1"
            assert m1["currentHp"] == 10


def test_combat_undo_restores_hp(client):
    hero = {"id": "pc1", "type": "player", "currentHp": 20, "inventory": ["rope"]}
    with client.websocket_connect("/ws") as dm:
        register(dm, "dm")
        send(dm, "update-state", {"characters": [hero]})
        send(dm, "save-history-entry", {"page": "combat", "description": "start"})
        send(dm, "update-character", dict(hero, currentHp=4))
        send(dm, "request-undo", {"page": "combat"})

        message = dm.receive_json()
        assert message["type"] == "history-applied"
        assert message["payload"]["direction"] == "undo"
        assert message["payload"]["description"] == "start"
        assert message["payload"]["characters"][0]["currentHp"] == 20

        state = client.get("/state", params={"mode": "dm"}).json()
        assert state["characters"][0]["currentHp"] == 20
        assert len(state["redo"]["combat"]) == 1


def test_player_view_over_http_hides_monsters(client):
    with client.websocket_connect("/ws") as dm:
        register(dm, "dm")
        send(
            dm,
            "update-state",
            {
                "characters": [
                    {"id": "pc1", "type": "player"},
                    {"id": "m1", "type": "monster", "revealedToPlayers": False},
                ]
            },
        )
        send(dm, "save-history-entry", {"page": "monsters", "description": "abilities"})
        barrier(dm)

    state = client.get("/state").json()
    assert [c["id"] for c in state["characters"]] == ["pc1"]
    assert state["history"]["monsters"] == []
    dm_state = client.get("/state", params={"mode": "dm"}).json()
    assert len(dm_state["history"]["monsters"]) == 1


def test_bad_frames_are_reported(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_text("{oops")
        assert ws.receive_json() == {"type": "error", "payload": {"message": "invalid json"}}
        ws.send_json(["register-mode"])
        assert ws.receive_json()["payload"]["message"] == "invalid message"
        send(ws, "teleport", {})
        assert ws.receive_json()["payload"]["message"] == "unknown type"


def test_history_error_only_to_requester(client):
    with client.websocket_connect("/ws") as dm, client.websocket_connect("/ws") as player:
        register(dm, "dm")
        register(player, "player")
        send(player, "request-undo", {"page": "combat"})
        assert player.receive_json() == {
            "type": "history-error",
            "payload": {"message": "Nothing to undo on the combat page"},
        }
        barrier(dm)


def test_shutdown_saves_document(app_config, persistence):
    with TestClient(create_app(app_config, persistence=persistence)) as client:
        with client.websocket_connect("/ws") as ws:
            register(ws, "dm")
            send(ws, "update-combat", {"active": True, "currentTurn": 1, "round": 7})
            barrier(ws)
    assert persistence.document["combatState"]["round"] == 7


def test_startup_loads_saved_document(app_config):
    saved = {
        "characters": [{"id": "pc9", "type": "player", "currentHp": 3}],
        "combatState": {"active": True, "currentTurn": 0, "round": 4, "playedThisRound": []},
    }
    with TestClient(create_app(app_config, persistence=MemoryGameStore(saved))) as client:
        state = client.get("/state").json()
    assert state["characters"] == saved["characters"]
    assert state["combatState"]["round"] == 4


def test_dm_state_over_http_requires_debug_flag(app_config, persistence):
    app_config.debug_state = False
    with TestClient(create_app(app_config, persistence=persistence)) as client:
        with client.websocket_connect("/ws") as dm:
            register(dm, "dm")
            send(dm, "update-state", {"characters": [{"id": "m1", "type": "monster"}]})
            barrier(dm)
        response = client.get("/state", params={"mode": "dm"})
        assert response.status_code == 403
        assert client.get("/state").json()["characters"] == []
