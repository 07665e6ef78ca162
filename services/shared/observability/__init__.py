"""
Shared observability helpers (telemetry, privacy utilities, etc.).

Services import from this package to get consistent JSON logging, request
correlation, and description hashing.
"""

from .privacy import LEDGER_SAFE_KEYS, hash_payload, redact_fields
from .telemetry import (
    CORRELATION_ID_HEADER,
    RequestContextToken,
    bind_request_context,
    configure_logging,
    ensure_request_id,
    reset_request_context,
    setup_telemetry,
    traced,
)

__all__ = [
    "LEDGER_SAFE_KEYS",
    "hash_payload",
    "redact_fields",
    "CORRELATION_ID_HEADER",
    "RequestContextToken",
    "bind_request_context",
    "configure_logging",
    "ensure_request_id",
    "reset_request_context",
    "setup_telemetry",
    "traced",
]
