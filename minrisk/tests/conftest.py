from __future__ import annotations

import os
from pathlib import Path
import tempfile

# Point settings at a throwaway SQLite store and fake providers before any minrisk import.
_TEST_DB_PATH = Path(tempfile.gettempdir()) / f"minrisk-tests-{os.getpid()}.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_PATH}"
os.environ["DB_PROCEDURES_ENABLED"] = "false"
os.environ["IDENTITY_PROVIDER"] = "fake"
os.environ["LLM_PROVIDER"] = "fake"
os.environ["APP_URL"] = "https://app.example.test"
os.environ.pop("IDENTITY_JWT_SECRET", None)

import pytest  # noqa: E402

from minrisk.core.config import get_settings  # noqa: E402


@pytest.fixture(autouse=True)
def reset_settings_cache():
    # Tests that monkeypatch env vars must not leak cached settings into later tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def pytest_sessionfinish(session, exitstatus) -> None:
    _TEST_DB_PATH.unlink(missing_ok=True)
