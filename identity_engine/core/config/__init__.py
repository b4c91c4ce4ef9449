from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    rate_limit: str
    rate_limit_enabled: bool
    llm_rate_limit: str
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    cors_allow_origin_regex: str | None
    store_db_path: str
    embedding_provider: str
    embedding_model: str
    embedding_dimension: int


settings = Settings(
    api_key=_get_env("API_KEY"),
    rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    llm_rate_limit=_get_env("LLM_RATE_LIMIT", "10/minute") or "10/minute",
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ],
    ),
    cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX"),
    store_db_path=_get_env("STORE_DB_PATH", "data/identity.db") or "data/identity.db",
    embedding_provider=(_get_env("EMBEDDING_PROVIDER", "sentence-transformers") or "sentence-transformers").strip().lower(),
    embedding_model=_get_env("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
    or "sentence-transformers/all-MiniLM-L6-v2",
    embedding_dimension=_get_env_int("EMBEDDING_DIMENSION", 64),
)

if settings.embedding_provider not in {"sentence-transformers", "openai", "simple"}:
    raise RuntimeError("EMBEDDING_PROVIDER must be one of 'sentence-transformers', 'openai' or 'simple'.")

__all__ = ["Settings", "settings"]
