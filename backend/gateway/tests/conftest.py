import os
from collections.abc import Generator

# Settings are read at import time
os.environ.setdefault("ALIYUN_APP_ID", "test-app")
os.environ.setdefault("ALIYUN_API_KEY", "test-key")
os.environ.setdefault("ALIYUN_BASE_URL", "https://bailian.test")

import httpx
import pytest
from fastapi.testclient import TestClient

from gateway.api.deps import get_forwarder
from gateway.core.config import settings
from gateway.main import app
from gateway.providers.bailian import BailianForwarder
from gateway.tests.utils.backend import FakeBackend


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def client(backend: FakeBackend) -> Generator[TestClient, None, None]:
    forwarder = BailianForwarder.from_settings(
        settings, transport=httpx.MockTransport(backend.handle)
    )
    app.dependency_overrides[get_forwarder] = lambda: forwarder
    yield TestClient(app)
    app.dependency_overrides.clear()
