"""Shared pytest fixtures for infravision tests.

HTTP traffic is served by `httpx.MockTransport`; the event channel is a scripted
in-memory object handed out by an injected connector.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError

from infravision.core.models import AssetRole, ImageAsset
from infravision.core.store import ProjectStore
from infravision.image.encoding import encode_data_url

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
RESULT_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x01" * 16


# ============================================================================
# Event channel fakes
# ============================================================================


class FakeChannel:
    """Scripted event channel.

    Items are returned in order: dicts are JSON-encoded, str/bytes are returned
    as-is, exceptions are raised. An exhausted script behaves like a dropped
    connection.
    """

    def __init__(self, messages: list[Any], events: list | None = None) -> None:
        self._messages = list(messages)
        self._events = events if events is not None else []
        self.close_calls = 0

    async def recv(self) -> str | bytes:
        if not self._messages:
            raise ConnectionClosedError(None, None)
        item = self._messages.pop(0)
        self._events.append(("WS", "recv"))
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, dict):
            return json.dumps(item)
        return item

    async def close(self) -> None:
        self.close_calls += 1
        self._events.append(("WS", "close"))


class FakeConnector:
    """Connector returning one prepared channel and recording the URL used."""

    def __init__(self, channel: FakeChannel, events: list | None = None, error: Exception | None = None) -> None:
        self.channel = channel
        self.urls: list[str] = []
        self._events = events if events is not None else []
        self._error = error

    async def __call__(self, url: str) -> FakeChannel:
        self.urls.append(url)
        self._events.append(("WS", "connect"))
        if self._error is not None:
            raise self._error
        return self.channel


def completion_messages(prompt_id: str = "p-1") -> list[dict]:
    return [
        {"type": "status", "data": {"status": {"exec_info": {"queue_remaining": 1}}}},
        {"type": "execution_start", "data": {"prompt_id": prompt_id}},
        {"type": "progress", "data": {"value": 5, "max": 25, "prompt_id": prompt_id}},
        {
            "type": "executed",
            "data": {
                "node": "9",
                "prompt_id": prompt_id,
                "output": {
                    "images": [
                        {"filename": "Infravision_00001_.png", "subfolder": "", "type": "output"}
                    ]
                },
            },
        },
    ]


# ============================================================================
# Backend fakes
# ============================================================================


class ComfyBackend:
    """In-memory stand-in for the graph-execution HTTP API."""

    def __init__(
        self,
        events: list | None = None,
        stats_status: int = 200,
        upload_status: int = 200,
        prompt_status: int = 200,
        view_status: int = 200,
        unreachable: bool = False,
    ) -> None:
        self.events = events if events is not None else []
        self.stats_status = stats_status
        self.upload_status = upload_status
        self.prompt_status = prompt_status
        self.view_status = view_status
        self.unreachable = unreachable
        self.submitted: list[dict] = []
        self.uploads: list[bytes] = []
        self.view_params: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.events.append((request.method, path))

        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)

        if path == "/system_stats":
            return httpx.Response(self.stats_status, json={"system": {"os": "posix"}})
        if path == "/upload/image":
            self.uploads.append(request.content)
            return httpx.Response(
                self.upload_status,
                json={"name": "base_uploaded.png", "subfolder": "", "type": "input"},
            )
        if path == "/prompt":
            self.submitted.append(json.loads(request.content))
            return httpx.Response(
                self.prompt_status,
                json={"prompt_id": "p-1", "number": 0, "node_errors": {}},
            )
        if path == "/view":
            self.view_params.append(dict(request.url.params))
            return httpx.Response(
                self.view_status,
                content=RESULT_BYTES,
                headers={"content-type": "image/png"},
            )
        return httpx.Response(404, text="not found")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ============================================================================
# Model fixtures
# ============================================================================


@pytest.fixture
def png_data_url() -> str:
    return encode_data_url(PNG_BYTES)


@pytest.fixture
def base_asset(png_data_url: str) -> ImageAsset:
    return ImageAsset(id="base1", content=png_data_url, role=AssetRole.BASE)


@pytest.fixture
def store() -> ProjectStore:
    return ProjectStore(name="Test project")


@pytest.fixture
def events() -> list:
    return []
