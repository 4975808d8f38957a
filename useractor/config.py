from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


def _env(name: str) -> str:
    return (os.getenv(name, "") or "").strip()


def _int_env(name: str, default: int) -> int:
    try:
        raw = _env(name)
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


@dataclass(frozen=True)
class HostConfig:
    db_path: str = "./data/user_actor.db"
    token_secret: str = ""
    token_ttl_seconds: int = 3600
    developer_key: Optional[str] = None
    log_level: str = "INFO"


def load_config() -> HostConfig:
    secret = _env("USER_ACTOR_TOKEN_SECRET")
    if not secret:
        # Tokens issued with this secret do not survive a restart.
        logger.warning("USER_ACTOR_TOKEN_SECRET not set; using an ephemeral signing secret")
        secret = secrets.token_urlsafe(48)

    return HostConfig(
        db_path=_env("USER_ACTOR_DB_PATH") or HostConfig.db_path,
        token_secret=secret,
        token_ttl_seconds=_int_env("USER_ACTOR_TOKEN_TTL_SECONDS", HostConfig.token_ttl_seconds),
        developer_key=_env("USER_ACTOR_DEVELOPER_KEY") or None,
        log_level=(_env("USER_ACTOR_LOG_LEVEL") or HostConfig.log_level).upper(),
    )
