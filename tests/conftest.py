"""
Pytest configuration for Podio Push Relay tests.
"""
import json
import os
from typing import Any, Dict, List

import httpx
import pytest

# Set test environment variables
os.environ["BUS_ADAPTER"] = "memory"
os.environ["PODIO_PUSH_SECRET"] = "test-secret"
os.environ["APP_BASE_URL"] = "https://relay.test"
os.environ["DEBUG"] = "true"

from podio_relay.bayeux import MemoryBroker
from podio_relay.services.event_relay import EventRelay
from podio_relay.services.subscription_manager import SubscriptionManager

AVA_URL = "http://ava.test/topic"
DEBUG_URL = "http://debug.test/hook"
PUSH_SECRET = "test-secret"


class RecordingTransport:
    """httpx transport double that records every forwarded request."""

    def __init__(self, failing: tuple = (), status_codes: Dict[str, int] | None = None):
        self.failing = set(failing)
        self.status_codes = status_codes or {}
        self.calls: List[Dict[str, Any]] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in self.failing:
            raise httpx.ConnectError("Connection refused", request=request)
        self.calls.append({
            "url": url,
            "json": json.loads(request.content),
            "content_type": request.headers.get("content-type"),
        })
        return httpx.Response(self.status_codes.get(url, 200), json={"ok": True})

    def calls_to(self, url: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["url"] == url]


@pytest.fixture
def recorder():
    return RecordingTransport()


@pytest.fixture
async def relay(recorder):
    """Relay forwarding to two targets through the recording transport."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder.handle))
    relay = EventRelay([AVA_URL, DEBUG_URL], http_client=http_client)
    relay.start()
    yield relay
    await relay.close()
    await http_client.aclose()


@pytest.fixture
def broker():
    return MemoryBroker()


@pytest.fixture
def manager(relay, broker):
    return SubscriptionManager(relay, broker.create_client, confirm_timeout=0.5)
