"""
Pytest configuration for root-level integration tests.

Adds the ledger service src directory, the shared services package, and the
scripts directory to sys.path.
"""

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SERVICES_ROOT = REPO_ROOT / "services"

PATHS = [
    SERVICES_ROOT / "ledger-service" / "src",
    SERVICES_ROOT,
    REPO_ROOT / "scripts",
]

for path in PATHS:
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)
