"""Settings loaded from environment variables."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from loguru import logger

ENV_PREFIX = "STUDYFLOW"
DEFAULT_APP_ID = "default-app-id"
COLLECTION_TEMPLATE = "artifacts/{app_id}/public/data/study_tasks"


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _env(env, name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}")
        return default


def parse_backend_config(raw: str | None) -> dict[str, Any] | None:
    """Decode the connection descriptor; malformed JSON counts as missing."""
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error(f"Backend configuration is not valid JSON: {exc}")
        return None
    if not isinstance(value, dict):
        logger.error("Backend configuration must be a JSON object")
        return None
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    app_id: str = DEFAULT_APP_ID
    backend_config: dict[str, Any] | None = None
    auth_token: str | None = None
    host: str = "0.0.0.0"
    port: int = 8765
    log_level: str = "INFO"
    log_file: Path | None = None

    @property
    def collection_path(self) -> str:
        return COLLECTION_TEMPLATE.format(app_id=self.app_id)

    def with_overrides(self, **overrides: Any) -> Settings:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from ``STUDYFLOW_*`` environment variables."""
    env = os.environ if env is None else env
    log_file = _env(env, _k("LOG_FILE"))
    return Settings(
        app_id=_env(env, _k("APP_ID")) or DEFAULT_APP_ID,
        backend_config=parse_backend_config(_env(env, _k("BACKEND_CONFIG"))),
        auth_token=_env(env, _k("AUTH_TOKEN")),
        host=_env(env, _k("HOST")) or "0.0.0.0",
        port=_env_int(env, _k("PORT"), 8765),
        log_level=(_env(env, _k("LOG_LEVEL")) or "INFO").upper(),
        log_file=Path(log_file).expanduser() if log_file else None,
    )
