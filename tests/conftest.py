"""Shared fixtures: a scripted stand-in for aiohttp.ClientSession."""

import json
from typing import Any, List, Optional
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from kohi.commands import CommandRegistry
from kohi.image_cache import ImageCache
from kohi.transport import MessengerTransport

GRAPH_URL = "https://graph.test/v23.0"


class FakeResponse:
    """Async context manager mimicking aiohttp.ClientResponse."""

    def __init__(self, status: int = 200, payload: Any = None, body: bytes = b""):
        self.status = status
        self._payload = payload
        self._body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self, content_type=None):
        if self._payload is None:
            return json.loads(self._body or b"null")
        return self._payload

    async def text(self):
        if self._payload is not None:
            return json.dumps(self._payload)
        return self._body.decode()

    async def read(self):
        return self._body

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(MagicMock(), (), status=self.status)


class FakeSession:
    """Records every request and answers from per-URL queues.

    ``queue(fragment, *responses)`` registers answers for URLs that
    contain *fragment*; an Exception instance in the queue is raised
    instead of answered. Anything unmatched gets ``200 {}``.
    """

    def __init__(self):
        self.calls: List[dict] = []
        self._routes: List[tuple] = []

    def queue(self, fragment: str, *responses):
        self._routes.append((fragment, list(responses)))

    def _answer(self, method: str, url: str, kwargs: dict):
        self.calls.append({"method": method, "url": url, **kwargs})
        for fragment, pending in self._routes:
            if fragment in url and pending:
                response = pending.pop(0)
                if isinstance(response, BaseException):
                    raise response
                return response
        return FakeResponse(200, {})

    def post(self, url, **kwargs):
        return self._answer("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._answer("GET", url, kwargs)

    # --- inspection helpers ---

    def posted_json(self, endpoint: str = "me/messages") -> List[dict]:
        return [c.get("json") for c in self.calls if c["url"].endswith(endpoint)]

    def sent_messages(self) -> List[dict]:
        """Send API message payloads, typing indicators excluded."""
        return [p for p in self.posted_json() if p and "message" in p]

    def typing_actions(self) -> List[str]:
        return [p["sender_action"] for p in self.posted_json() if p and "sender_action" in p]


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def transport(fake_session):
    return MessengerTransport(fake_session, api_url=GRAPH_URL, timeout=5)


@pytest.fixture
def image_cache():
    return ImageCache()


@pytest.fixture
def mock_transport():
    """Transport double for router tests: records send/send_text calls."""
    mock = MagicMock(spec=MessengerTransport)
    mock.send = AsyncMock(return_value=[])
    mock.send_text = AsyncMock(return_value=[])
    return mock


def make_event(sender: Optional[str] = "U1", text: Optional[str] = None, **message_fields) -> dict:
    """A page ``messaging`` event with a text message."""
    message = dict(message_fields)
    if text is not None:
        message["text"] = text
    event = {"recipient": {"id": "PAGE"}, "timestamp": 1, "message": message}
    if sender is not None:
        event["sender"] = {"id": sender}
    return event


def make_postback(payload: Optional[str], sender: Optional[str] = "U1") -> dict:
    event = {"recipient": {"id": "PAGE"}, "timestamp": 1, "postback": {"title": "x"}}
    if payload is not None:
        event["postback"]["payload"] = payload
    if sender is not None:
        event["sender"] = {"id": sender}
    return event


def static_registry(*commands) -> CommandRegistry:
    return CommandRegistry.from_commands(commands)
