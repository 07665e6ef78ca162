"""
Environment-driven configuration for the ledger service.

All knobs are read once at startup through `load_ledger_settings`; parsing
errors surface as `LedgerSettingsError` instead of silently falling back so a
typo in a deployment variable cannot switch the service onto a transient store.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

SUPPORTED_BACKENDS = frozenset({"sql", "memory"})

DEFAULT_DB_FILENAME = "ledger.db"
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "data" / DEFAULT_DB_FILENAME
DB_URL_ENV_VAR = "LEDGER_DB_URL"
BACKEND_ENV_VAR = "LEDGER_STORE_BACKEND"
PROCESS_ON_STARTUP_ENV_VAR = "LEDGER_PROCESS_ON_STARTUP"
PROCESS_INTERVAL_ENV_VAR = "LEDGER_PROCESS_INTERVAL_SECONDS"
CORS_ENV_VAR = "LEDGER_CORS_ORIGINS"

DEFAULT_CORS_ORIGINS: Tuple[str, ...] = (
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
)


class LedgerSettingsError(RuntimeError):
    """Raised when ledger configuration cannot be constructed."""


@dataclass(frozen=True, slots=True)
class LedgerSettings:
    store_backend: str
    database_url: str
    process_on_startup: bool
    process_interval_seconds: float
    cors_origins: Tuple[str, ...]


def get_database_url() -> str:
    """Return the configured database URL (defaults to a SQLite file)."""
    env_url = os.getenv(DB_URL_ENV_VAR)
    if env_url:
        return env_url
    return f"sqlite:///{DEFAULT_DB_PATH}"


def load_ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        store_backend=_normalize_backend(os.getenv(BACKEND_ENV_VAR)),
        database_url=get_database_url(),
        process_on_startup=_parse_bool(os.getenv(PROCESS_ON_STARTUP_ENV_VAR), True, PROCESS_ON_STARTUP_ENV_VAR),
        process_interval_seconds=_parse_interval(os.getenv(PROCESS_INTERVAL_ENV_VAR)),
        cors_origins=_parse_origins(os.getenv(CORS_ENV_VAR)),
    )


def _normalize_backend(raw_value: Optional[str]) -> str:
    candidate = (raw_value or "").strip().lower() or "sql"
    if candidate not in SUPPORTED_BACKENDS:
        raise LedgerSettingsError(f"Unsupported store backend '{candidate}'")
    return candidate


def _parse_bool(raw_value: Optional[str], default: bool, env_key: str) -> bool:
    if raw_value is None or raw_value.strip() == "":
        return default

    lowered = raw_value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise LedgerSettingsError(f"{env_key} must be a boolean (received '{raw_value}')")


def _parse_interval(raw_value: Optional[str]) -> float:
    if raw_value is None or raw_value.strip() == "":
        return 0.0

    try:
        interval = float(raw_value)
    except ValueError as exc:
        raise LedgerSettingsError(
            f"{PROCESS_INTERVAL_ENV_VAR} must be numeric (received '{raw_value}')"
        ) from exc
    if interval < 0:
        raise LedgerSettingsError(f"{PROCESS_INTERVAL_ENV_VAR} cannot be negative")
    return interval


def _parse_origins(raw_value: Optional[str]) -> Tuple[str, ...]:
    if not raw_value:
        return DEFAULT_CORS_ORIGINS
    origins = tuple(origin.strip() for origin in raw_value.split(",") if origin.strip())
    if not origins:
        return DEFAULT_CORS_ORIGINS
    # FastAPI expects ["*"] instead of mixing '*' with explicit origins.
    if "*" in origins:
        return ("*",)
    return origins
