"""
Settings loader

Reads TOKEN_CONSOLE_* environment variables into an immutable Settings.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

ENV_PREFIX = "TOKEN_CONSOLE_"
BACKENDS = ("memory", "http")


class SettingsError(Exception):
    """Invalid or incomplete configuration."""


@dataclass(frozen=True)
class Settings:
    backend: str = "memory"
    api_base: str = ""
    http_timeout: float = 10.0
    allow_self_deactivation: bool = False
    max_append_attempts: int = 3
    outbox_grace_seconds: int = 300
    default_page_size: int = 20
    max_page_size: int = 100
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = field(default=("*",))


def _bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _int(name: str, value: str, minimum: int) -> int:
    try:
        parsed = int(value)
    except ValueError as e:
        raise SettingsError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}") from e
    if parsed < minimum:
        raise SettingsError(f"{ENV_PREFIX}{name} must be at least {minimum}")
    return parsed


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ

    def get(name: str) -> Optional[str]:
        value = env.get(ENV_PREFIX + name)
        return value if value not in (None, "") else None

    defaults = Settings()
    backend = (get("BACKEND") or defaults.backend).lower()
    if backend not in BACKENDS:
        raise SettingsError(f"{ENV_PREFIX}BACKEND must be one of {', '.join(BACKENDS)}")
    api_base = get("API_BASE") or ""
    if backend == "http" and not api_base:
        raise SettingsError(f"{ENV_PREFIX}API_BASE is required when BACKEND=http")

    try:
        http_timeout = float(get("HTTP_TIMEOUT") or defaults.http_timeout)
    except ValueError as e:
        raise SettingsError(f"{ENV_PREFIX}HTTP_TIMEOUT must be a number") from e

    default_page_size = _int("DEFAULT_PAGE_SIZE", get("DEFAULT_PAGE_SIZE") or str(defaults.default_page_size), 1)
    max_page_size = _int("MAX_PAGE_SIZE", get("MAX_PAGE_SIZE") or str(defaults.max_page_size), 1)
    if default_page_size > max_page_size:
        raise SettingsError(f"{ENV_PREFIX}DEFAULT_PAGE_SIZE must not exceed MAX_PAGE_SIZE")

    origins = get("CORS_ORIGINS")
    return Settings(
        backend=backend,
        api_base=api_base.rstrip("/"),
        http_timeout=http_timeout,
        allow_self_deactivation=_bool(get("ALLOW_SELF_DEACTIVATION") or "false"),
        max_append_attempts=_int("MAX_APPEND_ATTEMPTS", get("MAX_APPEND_ATTEMPTS") or str(defaults.max_append_attempts), 1),
        outbox_grace_seconds=_int("OUTBOX_GRACE_SECONDS", get("OUTBOX_GRACE_SECONDS") or str(defaults.outbox_grace_seconds), 0),
        default_page_size=default_page_size,
        max_page_size=max_page_size,
        log_level=(get("LOG_LEVEL") or defaults.log_level).upper(),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()) if origins else defaults.cors_origins,
    )
