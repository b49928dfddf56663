"""
Shared fixtures.

The storage doubles here stand in for Filebase. They record every call,
so tests can assert that a rejected request never reached storage.
"""

import asyncio
from typing import Callable, Optional

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import get_settings, get_storage_client
from src.config.settings import Settings
from src.infrastructure.storage.client import StorageError
from src.main import create_app


class FakeClock:
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class ScriptedStorage:
    """
    Storage double whose metadata answers come from a script.

    Each lookup consumes the next entry; the last entry repeats once the
    script runs out. An entry that is an exception is raised instead of
    returned. resolver, when given, answers by key instead.
    """

    def __init__(
        self,
        script: Optional[list] = None,
        resolver: Optional[Callable[[str], dict]] = None,
        put_error: Optional[Exception] = None,
    ) -> None:
        self._script = list(script or [{}])
        self._resolver = resolver
        self._put_error = put_error
        self.put_calls: list[dict] = []
        self.metadata_calls: list[tuple[str, str]] = []

    @property
    def calls(self) -> int:
        return len(self.put_calls) + len(self.metadata_calls)

    async def put_object(self, bucket, key, data, content_type, metadata=None):
        self.put_calls.append({
            "bucket": bucket,
            "key": key,
            "data": data,
            "content_type": content_type,
            "metadata": metadata,
        })
        if self._put_error is not None:
            raise self._put_error

    async def get_object_metadata(self, bucket, key):
        self.metadata_calls.append((bucket, key))

        if self._resolver is not None:
            return self._resolver(key)

        index = min(len(self.metadata_calls) - 1, len(self._script) - 1)
        answer = self._script[index]
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings with a short CID budget so API tests run fast."""
    return Settings(
        environment="test",
        api_key="test-key",
        file_server_url="http://files.local",
        filebase_bucket="uploads",
        filebase_access_key="access",
        filebase_secret_key="secret",
        max_file_size_mb=1,
        cid_max_wait_seconds=0.3,
        cid_max_attempts=None,
        cid_poll_initial_delay_seconds=0.01,
        cid_poll_max_delay_seconds=0.05,
    )


@pytest.fixture
def make_storage() -> type[ScriptedStorage]:
    """Factory for storage doubles with a custom script."""
    return ScriptedStorage


@pytest.fixture
def storage() -> ScriptedStorage:
    return ScriptedStorage(script=[{"cid": "bafyfirst"}])


@pytest.fixture
def app(settings, storage):
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_storage_client] = lambda: storage
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def missing_object_error() -> StorageError:
    return StorageError("Metadata lookup failed: An error occurred (404) when calling the HeadObject operation: Not Found")
