"""Chat relay configuration.

Loads settings from ``chat.settings.yaml`` (non-secret configuration) and
applies environment-variable overrides on top:

  * ALLOWED_ORIGINS: comma-separated list of cross-origin sources
  * HISTORY_CAPACITY: number of recent messages replayed to new joiners
  * SESSION_MAX_AGE: session cookie lifetime in seconds
  * HOST / PORT: server bind address
  * LOG_LEVEL: root logger level

Everything here is read once at startup and treated as constant afterwards.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("chat.settings.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _check_template(template: str, **fields: Any) -> str:
    """Reject a str.format template that needs fields other than *fields*."""
    try:
        template.format(**fields)
    except (KeyError, IndexError, AttributeError) as e:
        allowed = ", ".join(sorted(fields))
        raise ValueError(
            f"template {template!r} may only reference: {allowed} ({e!r})"
        ) from e
    return template


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3001
    allowed_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"]
    )


class ChatSettings(BaseModel):
    """Presence, identity and history knobs for the broadcast engine."""
    history_capacity:     int = 50
    welcome_message:      str = "Welcome to the study room!"
    guest_number_max:     int = 9999
    guest_display_format: str = "Guest #{n}"
    guest_avatar_url:     str = "https://api.dicebear.com/7.x/bottts/svg?seed={n}"
    linked_avatar_url:    str = "https://github.com/{username}.png"

    @field_validator("history_capacity")
    @classmethod
    def _capacity_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_capacity must be >= 1")
        return v

    @field_validator("guest_number_max")
    @classmethod
    def _guest_range(cls, v: int) -> int:
        if v < 0:
            raise ValueError("guest_number_max must be >= 0")
        return v

    @field_validator("guest_display_format", "guest_avatar_url")
    @classmethod
    def _guest_template(cls, v: str) -> str:
        return _check_template(v, n=0)

    @field_validator("linked_avatar_url")
    @classmethod
    def _linked_template(cls, v: str) -> str:
        return _check_template(v, username="octocat")


class SessionSettings(BaseModel):
    cookie_name:     str = "chat_session"
    max_age_seconds: int = 24 * 60 * 60

    @field_validator("max_age_seconds")
    @classmethod
    def _max_age_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_age_seconds must be > 0")
        return v


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

# env var -> (section, key)
_ENV_OVERRIDES = {
    "HOST":             ("server", "host"),
    "PORT":             ("server", "port"),
    "HISTORY_CAPACITY": ("chat", "history_capacity"),
    "SESSION_MAX_AGE":  ("session", "max_age_seconds"),
    "LOG_LEVEL":        ("logging", "level"),
}


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay environment variables onto the raw settings dict.

    Values are left as strings; pydantic coerces them during validation.
    """
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data.setdefault(section, {})[key] = value

    origins = os.environ.get("ALLOWED_ORIGINS")
    if origins:
        data.setdefault("server", {})["allowed_origins"] = [
            o.strip() for o in origins.split(",") if o.strip()
        ]
    return data


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load ``chat.settings.yaml`` plus env overrides into an *AppConfig*."""
    path = Path(settings_path) if settings_path else SETTINGS_FILE
    data = _apply_env_overrides(_load_yaml(path))

    config = AppConfig(**data)
    logger.info(
        "Settings loaded (server=%s:%s, history_capacity=%d, origins=%s)",
        config.server.host,
        config.server.port,
        config.chat.history_capacity,
        ",".join(config.server.allowed_origins),
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config (tests only)."""
    global _config
    _config = None
