"""Unit test conftest — no network; the remote is an httpx.MockTransport."""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from imgsearch_console.client import RemoteClient
from imgsearch_console.intake import FileIntake
from imgsearch_console.notifications import NotificationCenter
from imgsearch_console.types import SelectedFile

ResponseItem = httpx.Response | Exception | Callable[[httpx.Request], Any]


@dataclass
class Gate:
    """Holds requests for one path until released, to stage late responses."""

    arrived: asyncio.Event = field(default_factory=asyncio.Event)
    release: asyncio.Event = field(default_factory=asyncio.Event)


class ScriptedRemote:
    """Routes requests to queued responses; the last queued response repeats."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[ResponseItem]] = {}
        self._gates: dict[str, Gate] = {}
        self.transport = httpx.MockTransport(self._handle)

    def on(self, method: str, path: str, *responses: ResponseItem) -> None:
        self._routes[(method.upper(), path)] = list(responses)

    def gate(self, path: str) -> Gate:
        gate = Gate()
        self._gates[path] = gate
        return gate

    def calls(self, path: str | None = None) -> int:
        if path is None:
            return len(self.requests)
        return sum(1 for r in self.requests if r.url.path == path)

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        gate = self._gates.get(request.url.path)
        if gate is not None:
            gate.arrived.set()
            await gate.release.wait()

        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, text=f"no route for {request.method} {request.url.path}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(item) and not isinstance(item, (httpx.Response, Exception)):
            item = item(request)
        if isinstance(item, Exception):
            raise item
        return item


class CountingPreviewStore:
    """Preview store double that counts revocations per handle."""

    def __init__(self) -> None:
        self.created: list[str] = []
        self.revoked: Counter[str] = Counter()

    def create(self, file: SelectedFile) -> str:
        url = f"preview:{len(self.created)}:{file.name}"
        self.created.append(url)
        return url

    def revoke(self, url: str) -> None:
        self.revoked[url] += 1

    @property
    def live(self) -> list[str]:
        return [u for u in self.created if self.revoked[u] == 0]


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def connect_error(message: str = "connection refused") -> Callable[[httpx.Request], Exception]:
    return lambda request: httpx.ConnectError(message, request=request)


@pytest.fixture
def remote() -> ScriptedRemote:
    return ScriptedRemote()


@pytest.fixture
async def client(remote: ScriptedRemote, base_url: str):
    c = RemoteClient(base_url, transport=remote.transport)
    yield c
    await c.aclose()


@pytest.fixture
async def unconfigured_client(remote: ScriptedRemote):
    c = RemoteClient(None, transport=remote.transport)
    yield c
    await c.aclose()


@pytest.fixture
def notifications() -> NotificationCenter:
    return NotificationCenter(ttl_seconds=3.0)


@pytest.fixture
def preview_store() -> CountingPreviewStore:
    return CountingPreviewStore()


@pytest.fixture
def intake(preview_store: CountingPreviewStore) -> FileIntake:
    return FileIntake(preview_store=preview_store)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def connect_error_factory():
    return connect_error
