"""Pytest configuration shared across the suite."""

import pytest

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from nextstep.clients.local_storage import LocalStorage, SessionStorage


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def local_storage(tmp_path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "local_storage.db"))


@pytest.fixture
def session_storage() -> SessionStorage:
    return SessionStorage()
