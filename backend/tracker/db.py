from __future__ import annotations

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from tracker.config import AppConfig

logger = logging.getLogger(__name__)

DOCUMENT_ID = "game-state"


class MongoGameStore:
    def __init__(self, config: AppConfig) -> None:
        self.client = AsyncIOMotorClient(config.mongo_uri, serverSelectionTimeoutMS=2000)
        self.db = self.client[config.mongo_db]
        self.states = self.db["states"]

    async def ping(self) -> None:
        await self.client.admin.command("ping")

    async def load(self) -> Optional[dict[str, Any]]:
        try:
            doc = await self.states.find_one({"_id": DOCUMENT_ID})
        except Exception:
            logger.exception("Failed to load game state from MongoDB")
            return None
        if not doc:
            return None
        doc.pop("_id", None)
        return doc

    async def save(self, document: dict[str, Any]) -> bool:
        try:
            await self.states.update_one(
                {"_id": DOCUMENT_ID},
                {"$set": document},
                upsert=True,
            )
        except Exception:
            logger.exception("Failed to save game state to MongoDB")
            return False
        return True


class FileGameStore:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    async def load(self) -> Optional[dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read %s", self.path)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: top level is not an object", self.path)
            return None
        return data

    async def save(self, document: dict[str, Any]) -> bool:
        text = json.dumps(document, ensure_ascii=False, indent=2)
        async with self._lock:
            try:
                await asyncio.to_thread(self._write, text)
            except OSError:
                logger.exception("Failed to write %s", self.path)
                return False
        return True

    def _write(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f"{self.path.name}.{uuid.uuid4().hex}.tmp")
        tmp.write_text(text, encoding="utf-8")
        tmp.replace(self.path)


class MemoryGameStore:
    def __init__(self, document: Optional[dict[str, Any]] = None) -> None:
        self.document = document
        self.saves = 0

    async def load(self) -> Optional[dict[str, Any]]:
        if self.document is None:
            return None
        return json.loads(json.dumps(self.document))

    async def save(self, document: dict[str, Any]) -> bool:
        self.document = json.loads(json.dumps(document))
        self.saves += 1
        return True


async def open_store(config: AppConfig):
    if config.storage == "none":
        return MemoryGameStore()
    if config.storage == "mongo":
        try:
            store = MongoGameStore(config)
            await store.ping()
            return store
        except Exception:
            logger.warning("MongoDB unreachable at %s, falling back to %s", config.mongo_uri, config.data_path)
    return FileGameStore(config.data_path)
