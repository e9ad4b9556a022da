"""claude-code-history configuration, read from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Settings:
    projects_dir: Optional[Path] = None
    host: str = "0.0.0.0"
    port: int = 8000
    server_enabled: bool = True
    max_messages_to_index: int = 15
    session_limit: int = 200
    debounce_seconds: float = 0.5
    refresh_interval: float = 30.0
    git_enabled: bool = True
    git_timeout: float = 5.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        projects_dir = os.getenv("CLAUDE_CODE_PROJECTS_DIR")
        return cls(
            projects_dir=Path(projects_dir) if projects_dir else None,
            host=os.getenv("CCHISTORY_HOST", "0.0.0.0"),
            port=_env_int("CCHISTORY_PORT", 8000),
            server_enabled=_env_bool("CCHISTORY_SERVER_ENABLED", True),
            max_messages_to_index=_env_int("CCHISTORY_MAX_MESSAGES_TO_INDEX", 15),
            session_limit=_env_int("CCHISTORY_SESSION_LIMIT", 200),
            debounce_seconds=_env_int("CCHISTORY_DEBOUNCE_MS", 500) / 1000,
            refresh_interval=_env_float("CCHISTORY_REFRESH_INTERVAL", 30.0),
            git_enabled=_env_bool("CCHISTORY_GIT_ENABLED", True),
            git_timeout=_env_float("CCHISTORY_GIT_TIMEOUT", 5.0),
            log_level=os.getenv("CCHISTORY_LOG_LEVEL", "INFO").upper(),
        )
