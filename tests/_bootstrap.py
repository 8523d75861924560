"""Test helper that normalizes sys.path and environment defaults."""

from __future__ import annotations

import os
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


_DEFAULT_ENV_VARS: dict[str, str] = {
    "FIREBASE_API_KEY": "test-api-key",
    "FIREBASE_PROJECT_ID": "nextstep-test",
    "TOKEN_ENCRYPTION_SECRET": "test-secret",
    "LOCAL_STORAGE_PATH": str(PROJECT_ROOT / "data" / "test_local_storage.db"),
}

for key, value in _DEFAULT_ENV_VARS.items():
    os.environ.setdefault(key, value)
