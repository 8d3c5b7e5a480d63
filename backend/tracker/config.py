from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

import yaml


@dataclass
class AppConfig:
    host: str
    port: int
    max_history: int
    storage: str
    data_path: Path
    mongo_uri: str
    mongo_db: str
    autosave: bool
    log_level: str
    debug_state: bool = False


STORAGE_BACKENDS = ("file", "mongo", "none")

DEFAULT_CONFIG = {
    "host": "0.0.0.0",
    "port": 3000,
    "max_history": 20,
    "storage": "file",
    "data_path": "data/game_state.json",
    "mongo_uri": "mongodb://localhost:27017",
    "mongo_db": "combat_tracker",
    "autosave": True,
    "log_level": "INFO",
    "debug_state": False,
}

ENV_KEY_MAP = {
    "TRACKER_HOST": "host",
    "TRACKER_PORT": "port",
    "TRACKER_MAX_HISTORY": "max_history",
    "TRACKER_STORAGE": "storage",
    "TRACKER_DATA_PATH": "data_path",
    "TRACKER_MONGO_URI": "mongo_uri",
    "TRACKER_MONGO_DB": "mongo_db",
    "TRACKER_AUTOSAVE": "autosave",
    "TRACKER_LOG_LEVEL": "log_level",
    "TRACKER_DEBUG_STATE": "debug_state",
}


def _load_dotenv(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    env: dict[str, str] = {}
    with path.open("r", encoding="utf-8") as f:
        for raw_line in f:
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("export "):
                line = line[len("export ") :].strip()
            if "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip()
            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]
            env[key] = value
    return env


def _apply_env(data: dict[str, Any], env: Any) -> None:
    for env_key, config_key in ENV_KEY_MAP.items():
        value = env.get(env_key)
        if value is None:
            continue
        value = value.strip()
        if value == "":
            continue
        data[config_key] = value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def load_config(path: Union[str, Path]) -> AppConfig:
    data: dict[str, Any] = dict(DEFAULT_CONFIG)
    cfg_path = Path(path)
    if cfg_path.exists():
        with cfg_path.open("r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError("config.yaml must be a mapping")
        data.update(loaded)
    dotenv_paths = [
        cfg_path.parent.parent / ".env",
        cfg_path.parent / ".env",
    ]
    for dotenv_path in dotenv_paths:
        _apply_env(data, _load_dotenv(dotenv_path))
    _apply_env(data, os.environ)

    storage = str(data.get("storage")).lower()
    if storage not in STORAGE_BACKENDS:
        raise ValueError(f"storage must be one of {', '.join(STORAGE_BACKENDS)}")
    data_path = Path(str(data.get("data_path")))
    if not data_path.is_absolute():
        data_path = cfg_path.parent / data_path
    return AppConfig(
        host=str(data.get("host")),
        port=int(data.get("port")),
        max_history=max(1, int(data.get("max_history"))),
        storage=storage,
        data_path=data_path,
        mongo_uri=str(data.get("mongo_uri")),
        mongo_db=str(data.get("mongo_db")),
        autosave=_as_bool(data.get("autosave")),
        log_level=str(data.get("log_level")).upper(),
        debug_state=_as_bool(data.get("debug_state")),
    )
