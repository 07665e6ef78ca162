"""
Helpers that keep free-text ledger fields out of logs.

Expense and recurring-payment descriptions are user-authored ("Rent - flat 3B",
"Dr. Rossi visit") and are logged only as stable hashes so log lines can still
be correlated across calls.
"""

import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "[REDACTED]"

LEDGER_SAFE_KEYS = frozenset(
    {"id", "category", "amount", "date", "frequency", "start_date", "next_due_date", "is_active", "month"}
)


def hash_payload(value: Any) -> str:
    """
    Return a stable SHA-256 hash for the provided payload without leaking contents.

    Strings are encoded as UTF-8, bytes are used as-is, and other objects are
    serialized via JSON (dates and Decimals through str()).
    """

    if value is None:
        normalized = b"null"
    elif isinstance(value, bytes):
        normalized = value
    elif isinstance(value, str):
        normalized = value.encode("utf-8")
    else:
        normalized = json.dumps(value, sort_keys=True, default=str).encode("utf-8")

    return hashlib.sha256(normalized).hexdigest()


def redact_fields(payload: Mapping[str, Any], allowed_keys: Iterable[str] = LEDGER_SAFE_KEYS) -> dict[str, Any]:
    """Shallow copy keeping whitelisted keys; everything else is replaced by a marker."""
    whitelist = set(allowed_keys)
    return {key: value if key in whitelist else REDACTED for key, value in payload.items()}
