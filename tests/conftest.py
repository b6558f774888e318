"""
tests/conftest.py -- Shared fixtures for authflow tests.

The auth backend is faked with httpx.MockTransport, so ApiClient runs its
real request/decoding code without a network. Redis is replaced by
MemoryStorage, which implements the same async get/set/delete contract.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from authflow.api_client import ApiClient
from authflow.storage import MemoryStorage

BASE_URL = "http://api.test"

Handler = Callable[[httpx.Request], Any]


class FakeBackend:
    """Route table keyed by (method, path). Unrouted requests get a 404."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.calls: List[httpx.Request] = []

    def on(self, method: str, path: str, status: int = 200, json_body: Any = None, handler: Optional[Handler] = None):
        if handler is None:
            def handler(request: httpx.Request, _status=status, _body=json_body):
                return httpx.Response(_status, json=_body)
        self.routes[(method.upper(), path)] = handler

    async def _dispatch(self, request: httpx.Request):
        self.calls.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "not found"})
        response = handler(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._dispatch)

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.calls if r.url.path == path]

    @staticmethod
    def body(request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content or b"{}")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def client(backend: FakeBackend) -> ApiClient:
    return ApiClient(BASE_URL, timeout_sec=2.0, transport=backend.transport())


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()
