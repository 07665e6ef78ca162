"""
Shared utilities for Ledger services.

This package contains code shared across services:
- observability: Telemetry, logging, and privacy utilities
"""

from .observability import hash_payload, redact_fields, setup_telemetry

__all__ = [
    "hash_payload",
    "redact_fields",
    "setup_telemetry",
]
