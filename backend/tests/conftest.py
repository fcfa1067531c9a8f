from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from mock_server.api.deps import get_gateway
from mock_server.core.config import Settings
from mock_server.core.gateway import Gateway, build_gateway
from mock_server.core.store import MemoryStore
from mock_server.main import app
from tests.utils.clock import FakeClock


def make_settings(storage_dir: Path, **overrides: Any) -> Settings:
    """Isolated settings: temp storage, memory store, no .env, no rate limits."""
    values: dict[str, Any] = {
        "STORAGE_DIR": storage_dir,
        "STORE_BACKEND": "memory",
        "ENVIRONMENT": "local",
        "RATE_LIMIT_ENABLED": False,
        "AUTH_ENABLED": True,
        "AUTH_METHOD": "none",
        "SENTRY_DSN": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)  # type: ignore[call-arg]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def make_gateway(
    tmp_path: Path, store: MemoryStore, clock: FakeClock
) -> Callable[..., Gateway]:
    def _make(
        transport: httpx.BaseTransport | None = None, **overrides: Any
    ) -> Gateway:
        return build_gateway(
            make_settings(tmp_path, **overrides),
            store=store,
            clock=clock,
            http_transport=transport,
        )

    return _make


@pytest.fixture
def gateway(make_gateway: Callable[..., Gateway]) -> Gateway:
    return make_gateway()


@pytest.fixture
def make_client(
    make_gateway: Callable[..., Gateway],
) -> Generator[Callable[..., TestClient], None, None]:
    """TestClient factory; each call rebuilds the gateway with the given settings."""

    def _make(
        transport: httpx.BaseTransport | None = None, **overrides: Any
    ) -> TestClient:
        gw = make_gateway(transport=transport, **overrides)
        app.dependency_overrides[get_gateway] = lambda: gw
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()
