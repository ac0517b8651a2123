"""
Tests for the Bayeux long-polling client against a fake server.
"""
import asyncio
import json
from typing import Any, Dict, List

import httpx
import pytest

from podio_relay.bayeux import AuthExtension, BayeuxClient, SubscriptionError
from podio_relay.bayeux.client import MAX_HANDSHAKE_REJECTIONS
from podio_relay.services.subscription_manager import SubscriptionManager

URL = "https://push.test/faye"


class FakeBayeuxServer:
    """Minimal Bayeux server speaking over httpx.MockTransport."""

    def __init__(self, subscribe_successful: bool = True, handshake_status: int = 200):
        self.subscribe_successful = subscribe_successful
        self.handshake_successful = True
        self.handshake_status = handshake_status
        self.connect_advice: Dict[str, Any] | None = None
        self.handshakes = 0
        self.received: List[Dict[str, Any]] = []
        self.outbox: asyncio.Queue = asyncio.Queue()

    def messages(self, channel: str) -> List[Dict[str, Any]]:
        return [m for m in self.received if m["channel"] == channel]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        messages = json.loads(request.content)
        self.received.extend(messages)
        replies = []

        for message in messages:
            channel = message["channel"]
            reply = {"channel": channel, "id": message["id"], "successful": True}

            if channel == "/meta/handshake":
                if self.handshake_status != 200:
                    return httpx.Response(self.handshake_status)
                if not self.handshake_successful:
                    reply.update(successful=False, error="401::Authentication required")
                else:
                    self.handshakes += 1
                    reply.update(
                        clientId=f"client-{self.handshakes}",
                        version="1.0",
                        supportedConnectionTypes=["long-polling"],
                        advice={"reconnect": "retry", "interval": 0, "timeout": 50},
                    )
            elif channel == "/meta/subscribe":
                reply["subscription"] = message["subscription"]
                if not self.subscribe_successful:
                    reply.update(successful=False, error="403::Forbidden")
            elif channel == "/meta/unsubscribe":
                reply["subscription"] = message["subscription"]
            elif channel == "/meta/connect":
                try:
                    replies.append(await asyncio.wait_for(self.outbox.get(), timeout=0.05))
                except asyncio.TimeoutError:
                    pass
                if self.connect_advice is not None:
                    reply["advice"] = self.connect_advice
                    self.connect_advice = None

            replies.append(reply)

        return httpx.Response(200, json=replies)


@pytest.fixture
def server():
    return FakeBayeuxServer()


@pytest.fixture
async def client(server):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(server.handle))
    client = BayeuxClient(URL, timeout_seconds=1, retry_seconds=0.01, http_client=http_client)
    yield client
    await client.disconnect()
    await http_client.aclose()


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def _noop(channel, data):
    pass


class TestBayeuxClient:
    """Tests for BayeuxClient."""

    async def test_handshake_and_subscribe(self, client, server):
        confirmation = await client.subscribe("/task/1", _noop)
        reply = await asyncio.wait_for(confirmation, timeout=1)

        assert reply["successful"] is True
        assert client.is_connected
        assert client.client_id == "client-1"

        handshake = server.messages("/meta/handshake")[0]
        assert handshake["version"] == "1.0"
        assert "clientId" not in handshake

        subscribe = server.messages("/meta/subscribe")[0]
        assert subscribe["clientId"] == "client-1"
        assert subscribe["subscription"] == "/task/1"

    async def test_extension_only_on_own_subscribe(self, client, server):
        client.add_extension(AuthExtension("/task/1", "abc", 1700000000))

        confirmation = await client.subscribe("/task/1", _noop)
        await asyncio.wait_for(confirmation, timeout=1)
        await _wait_for(lambda: server.messages("/meta/connect"))

        for message in server.received:
            if message["channel"] == "/meta/subscribe":
                assert message["ext"] == {
                    "private_pub_signature": "abc",
                    "private_pub_timestamp": "1700000000",
                }
            else:
                assert "ext" not in message

    async def test_data_messages_delivered(self, client, server):
        received = []

        async def handler(channel, data):
            received.append((channel, data))

        confirmation = await client.subscribe("/task/1", handler)
        await asyncio.wait_for(confirmation, timeout=1)

        await server.outbox.put({"channel": "/task/1", "data": {"type": "update"}})
        await server.outbox.put({"channel": "/task/2", "data": {"type": "ignored"}})

        await _wait_for(lambda: received)
        assert received == [("/task/1", {"type": "update"})]

    async def test_rejected_subscription(self, client, server):
        server.subscribe_successful = False

        confirmation = await client.subscribe("/task/1", _noop)

        with pytest.raises(SubscriptionError):
            await asyncio.wait_for(confirmation, timeout=1)

    async def test_handshake_failure_fails_subscription(self, client, server):
        server.handshake_status = 503

        confirmation = await client.subscribe("/task/1", _noop)

        with pytest.raises(SubscriptionError):
            await asyncio.wait_for(confirmation, timeout=1)
        assert not client.is_connected

    async def test_unsubscribe_and_disconnect(self, client, server):
        confirmation = await client.subscribe("/task/1", _noop)
        await asyncio.wait_for(confirmation, timeout=1)

        await client.unsubscribe("/task/1")
        await client.disconnect()

        assert server.messages("/meta/unsubscribe")[0]["subscription"] == "/task/1"
        assert len(server.messages("/meta/disconnect")) == 1
        assert not client.is_connected

    async def test_rehandshake_resubscribes(self, client, server):
        client.add_extension(AuthExtension("/task/1", "abc", 1))
        confirmation = await client.subscribe("/task/1", _noop)
        await asyncio.wait_for(confirmation, timeout=1)

        server.connect_advice = {"reconnect": "handshake", "interval": 0}

        await _wait_for(lambda: len(server.messages("/meta/subscribe")) >= 2)
        assert server.handshakes >= 2
        resubscribe = server.messages("/meta/subscribe")[1]
        assert resubscribe["clientId"] == "client-2"
        assert resubscribe["ext"]["private_pub_signature"] == "abc"

    async def test_reconnect_none_reports_failure(self, client, server):
        failures = []

        async def on_failure(error):
            failures.append(error)

        client.on_failure = on_failure
        confirmation = await client.subscribe("/task/1", _noop)
        await asyncio.wait_for(confirmation, timeout=1)

        server.connect_advice = {"reconnect": "none"}

        await _wait_for(lambda: failures)
        assert not client.is_connected
        assert len(failures) == 1

    async def test_refused_resubscribe_reports_failure(self, client, server):
        failures = []

        async def on_failure(error):
            failures.append(error)

        client.on_failure = on_failure
        confirmation = await client.subscribe("/task/1", _noop)
        await asyncio.wait_for(confirmation, timeout=1)

        server.subscribe_successful = False
        server.connect_advice = {"reconnect": "handshake", "interval": 0}

        await _wait_for(lambda: failures)
        assert isinstance(failures[0], SubscriptionError)
        assert not client.is_connected
        assert len(server.messages("/meta/subscribe")) == 2

    async def test_repeated_handshake_refusal_reports_failure(self, client, server):
        failures = []

        async def on_failure(error):
            failures.append(error)

        client.on_failure = on_failure
        confirmation = await client.subscribe("/task/1", _noop)
        await asyncio.wait_for(confirmation, timeout=1)

        server.handshake_successful = False
        server.connect_advice = {"reconnect": "handshake", "interval": 0}

        await _wait_for(lambda: failures)
        assert len(failures) == 1
        assert not client.is_connected
        assert len(server.messages("/meta/handshake")) == 1 + MAX_HANDSHAKE_REJECTIONS

    async def test_handshake_forbidden_reports_failure(self, client, server):
        failures = []

        async def on_failure(error):
            failures.append(error)

        client.on_failure = on_failure
        confirmation = await client.subscribe("/task/1", _noop)
        await asyncio.wait_for(confirmation, timeout=1)

        server.handshake_status = 403
        server.connect_advice = {"reconnect": "handshake", "interval": 0}

        await _wait_for(lambda: failures)
        assert not client.is_connected

    async def test_transient_handshake_errors_keep_retrying(self, client, server):
        failures = []

        async def on_failure(error):
            failures.append(error)

        client.on_failure = on_failure
        confirmation = await client.subscribe("/task/1", _noop)
        await asyncio.wait_for(confirmation, timeout=1)

        server.handshake_status = 503
        server.connect_advice = {"reconnect": "handshake", "interval": 0}
        await asyncio.sleep(0.1)
        server.handshake_status = 200

        await _wait_for(lambda: len(server.messages("/meta/subscribe")) >= 2)
        assert failures == []
        assert client.client_id == "client-2"


class TestManagerWithBayeux:
    """SubscriptionManager driven by a real Bayeux client."""

    @pytest.fixture
    async def manager(self, relay, server):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(server.handle))
        manager = SubscriptionManager(
            relay,
            lambda: BayeuxClient(URL, timeout_seconds=1, retry_seconds=0.01, http_client=http_client),
            confirm_timeout=1,
        )
        yield manager
        await manager.shutdown()
        await http_client.aclose()

    async def test_lost_subscription_is_removed_and_recoverable(self, manager, server):
        result = await manager.subscribe("/task/1", "abc", 1700000000)
        assert result.status == "subscribed"

        # Signature expired: the server refuses the re-subscribe
        server.subscribe_successful = False
        server.connect_advice = {"reconnect": "handshake", "interval": 0}

        await _wait_for(lambda: not manager.list_active())

        server.subscribe_successful = True
        result = await manager.subscribe("/task/1", "fresh", 1700003600)

        assert result.status == "subscribed"
        assert manager.list_active() == {"/task/1"}
        assert server.messages("/meta/subscribe")[-1]["ext"]["private_pub_signature"] == "fresh"
