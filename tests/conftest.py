from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from menu_chat_core import ClientConfig, MenuCriticClient, MenuFile
from session_controller import SessionController

BACKEND_URL = "http://backend.test"


class FakeBackend:
    """Routes requests by path to per-test handlers and records what was sent."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Callable[[httpx.Request], Any]] = {}

    def route(self, path: str, handler: Callable[[httpx.Request], Any]) -> None:
        self.routes[path] = handler

    def reply(self, path: str, status_code: int = 200, **body: Any) -> None:
        self.routes[path] = lambda request: httpx.Response(status_code, json=body)

    def fail(self, path: str, exc: Exception) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc

        self.routes[path] = handler

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, json={"error": f"no route for {request.url.path}"})
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(backend_url=BACKEND_URL)


@pytest.fixture
def auth_config() -> ClientConfig:
    return ClientConfig(backend_url=BACKEND_URL, auth_enabled=True)


@pytest.fixture
def client(config: ClientConfig, backend: FakeBackend) -> MenuCriticClient:
    return MenuCriticClient(config, transport=httpx.MockTransport(backend))


@pytest.fixture
def controller(client: MenuCriticClient) -> SessionController:
    return SessionController(client)


@pytest.fixture
def menu_file() -> MenuFile:
    return MenuFile(
        name="menu.txt",
        content=b"Burger 12.00\nFries 4.50\nMilkshake 6.00\n",
        content_type="text/plain",
    )
