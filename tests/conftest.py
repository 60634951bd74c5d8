"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from video_relay.core.config import Settings
from video_relay.core.database import Database
from video_relay.main import create_app
from video_relay.provider.client import ProviderClient
from video_relay.tasks.mongo_store import MongoTaskStore
from video_relay.tasks.store import MemoryTaskStore

PROVIDER_BASE_URL = "https://provider.test"
APP_TOKEN = "test-app-token"
TTL_SECONDS = 3600


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """
    In-process stand-in for the generation provider, served through
    ``httpx.MockTransport``.
    """

    def __init__(self):
        self.create_calls: List[dict] = []
        self.create_headers: List[httpx.Headers] = []
        self.create_response: Optional[Callable[[dict], httpx.Response]] = None
        self.create_delay: Callable[[dict], float] = lambda payload: 0.0
        self.files: Dict[str, bytes] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self._counter = 0

    def next_task_id(self) -> str:
        self._counter += 1
        return f"prov-{self._counter}"

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if request.method == "POST" and url == f"{PROVIDER_BASE_URL}/api/v1/jobs/createTask":
            payload = json.loads(request.content)
            self.create_calls.append(payload)
            self.create_headers.append(request.headers)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                await asyncio.sleep(self.create_delay(payload))
            finally:
                self.in_flight -= 1
            if self.create_response is not None:
                return self.create_response(payload)
            return httpx.Response(200, json={"code": 200, "msg": "success", "data": {"taskId": self.next_task_id()}})

        if request.method == "GET" and url in self.files:
            return httpx.Response(200, content=self.files[url])

        return httpx.Response(404, text="not found")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock) -> MemoryTaskStore:
    return MemoryTaskStore(TTL_SECONDS, clock=clock)


def build_mongo_store(clock: FakeClock) -> MongoTaskStore:
    """MongoTaskStore over an in-memory Motor-compatible client, already started."""
    database = Database("mongodb://localhost:27017", "video_relay_test", client=AsyncMongoMockClient())
    store = MongoTaskStore(database, TTL_SECONDS, clock=clock)
    asyncio.run(store.start())
    return store


@pytest.fixture()
def mongo_store(clock) -> MongoTaskStore:
    return build_mongo_store(clock)


@pytest.fixture()
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def provider(fake_provider) -> ProviderClient:
    return ProviderClient(
        api_key="provider-key",
        base_url=PROVIDER_BASE_URL,
        timeout_seconds=5,
        download_timeout_seconds=5,
        transport=httpx.MockTransport(fake_provider.handler),
    )


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        APP_TOKEN=APP_TOKEN,
        PROVIDER_API_KEY="provider-key",
        PROVIDER_BASE_URL=PROVIDER_BASE_URL,
        PUBLIC_BASE_URL="https://relay.test",
        FILES_DIR=str(tmp_path / "files"),
        STORE_BACKEND="memory",
        TASK_TTL_SECONDS=TTL_SECONDS,
        _env_file=None,
    )


@pytest.fixture()
def auth_headers() -> dict:
    return {"X-APP-TOKEN": APP_TOKEN}


@pytest.fixture()
def make_client(settings, store, provider):
    """Build a TestClient; keyword overrides are applied to the settings."""
    clients = []

    def _make(**overrides) -> TestClient:
        app_settings = settings.model_copy(update=overrides) if overrides else settings
        client = TestClient(create_app(app_settings, store=store, provider=provider))
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture()
def client(make_client) -> TestClient:
    return make_client()
