from __future__ import annotations

import json
import logging
import socket
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from tracker.broadcast import BroadcastRouter
from tracker.config import AppConfig, load_config
from tracker.constants import EVENT_ERROR, ROLE_DM, ROLE_PLAYER
from tracker.db import open_store
from tracker.roles import RoleRegistry
from tracker.session import SyncSession
from tracker.state import StateStore
from tracker.visibility import project

logger = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parents[1]
CONFIG_PATH = APP_ROOT / "config.yaml"


def guess_lan_ip() -> str:
    ip = None
    sock = None
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.connect(("8.8.8.8", 80))
        ip = sock.getsockname()[0]
    except OSError:
        ip = None
    finally:
        if sock is not None:
            sock.close()
    if not ip:
        try:
            ip = socket.gethostbyname(socket.gethostname())
        except OSError:
            ip = "127.0.0.1"
    return ip


def access_urls(ip: str, port: int) -> dict[str, str]:
    return {
        "dm": f"http://localhost:{port}?mode=dm",
        "player": f"http://{ip}:{port}?mode=player",
        "ws": f"ws://{ip}:{port}/ws",
    }


async def build_session(config: AppConfig, persistence: Any = None) -> SyncSession:
    if persistence is None:
        persistence = await open_store(config)
    document = await persistence.load()
    if document is None:
        logger.info("No saved game state, starting empty")
    store = StateStore.from_document(document)
    roles = RoleRegistry()
    return SyncSession(
        store,
        roles,
        BroadcastRouter(roles),
        max_history=config.max_history,
        persistence=persistence,
        autosave=config.autosave,
    )


def create_app(config: Optional[AppConfig] = None, persistence: Any = None) -> FastAPI:
    config = config or load_config(CONFIG_PATH)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.config = config
        app.state.session = await build_session(config, persistence)
        yield
        await app.state.session.close()

    app = FastAPI(lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/local_ip")
    async def local_ip(request: Request) -> dict[str, Any]:
        ip = guess_lan_ip()
        port = request.url.port or app.state.config.port
        return {"ip": ip, "port": port, "urls": access_urls(ip, port)}

    @app.get("/state")
    async def get_state(mode: str = Query(default=ROLE_PLAYER)) -> dict[str, Any]:
        if mode == ROLE_DM and not app.state.config.debug_state:
            raise HTTPException(status_code=403, detail="dm view is disabled")
        session = app.state.session
        async with session.lock:
            return project(session.state, mode).to_wire()

    @app.post("/save")
    async def save_state() -> dict[str, Any]:
        ok = await app.state.session.save_now()
        return {"ok": ok}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None:
        await ws.accept()
        session: SyncSession = app.state.session
        conn = await session.connect(ws)
        try:
            while True:
                raw = await ws.receive_text()
                try:
                    data = json.loads(raw)
                except ValueError:
                    await ws.send_json({"type": EVENT_ERROR, "payload": {"message": "invalid json"}})
                    continue
                if not isinstance(data, dict):
                    await ws.send_json({"type": EVENT_ERROR, "payload": {"message": "invalid message"}})
                    continue
                await session.handle(conn, data.get("type"), data.get("payload"))
        except WebSocketDisconnect:
            pass
        finally:
            await session.disconnect(conn)

    return app


app = create_app()
