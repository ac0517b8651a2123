"""
Bayeux long-polling client.

Implements the client side of the Bayeux 1.0 protocol (as spoken by Faye and
CometD servers, including Podio's push endpoint) over httpx:

- /meta/handshake to obtain a clientId
- a background /meta/connect loop that receives data messages
- /meta/subscribe, /meta/unsubscribe and /meta/disconnect control messages

Every outbound message is passed through the attached extension before it is
sent.
"""
import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional, Set

import httpx

from .base import (
    BusClient,
    BusClientError,
    HandshakeError,
    HandshakeRejectedError,
    MessageHandler,
    SubscriptionError,
)

logger = logging.getLogger(__name__)

HANDSHAKE = "/meta/handshake"
CONNECT = "/meta/connect"
SUBSCRIBE = "/meta/subscribe"
UNSUBSCRIBE = "/meta/unsubscribe"
DISCONNECT = "/meta/disconnect"

BAYEUX_VERSION = "1.0"
CONNECTION_TYPE = "long-polling"

# Server advice used until the handshake supplies its own (milliseconds)
DEFAULT_ADVICE: Dict[str, Any] = {"reconnect": "retry", "interval": 0, "timeout": 45000}

# Consecutive handshake refusals tolerated before the client gives up
MAX_HANDSHAKE_REJECTIONS = 3


class BayeuxClient(BusClient):
    """
    Bayeux client bound to a single endpoint.

    Features:
    - Lazy handshake on first subscribe
    - Honours server advice (retry / handshake / none)
    - Re-subscribes registered channels after a re-handshake
    - Transport errors retried after ``retry_seconds``
    - Gives up when a re-subscribe is refused or the server keeps refusing
      the handshake
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        retry_seconds: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Bayeux client.

        Args:
            url: Bayeux endpoint URL (e.g. https://push.podio.com/faye)
            timeout_seconds: Timeout for handshake and control requests
            retry_seconds: Delay before reconnecting after a transport error
            http_client: Optional pre-built httpx client (closed by the caller)
        """
        super().__init__()
        self._url = url
        self._timeout = timeout_seconds
        self._retry = retry_seconds
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None

        self._client_id: Optional[str] = None
        self._advice: Dict[str, Any] = dict(DEFAULT_ADVICE)
        self._ids = itertools.count(1)
        self._handlers: Dict[str, MessageHandler] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        self._handshake_lock = asyncio.Lock()
        self._connect_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def is_connected(self) -> bool:
        """Check if a handshake has produced a live clientId."""
        return self._client_id is not None and not self._closed

    @property
    def client_id(self) -> Optional[str]:
        return self._client_id

    async def subscribe(self, channel: str, handler: MessageHandler) -> "asyncio.Future[Dict[str, Any]]":
        """
        Subscribe to a channel.

        The handshake (if needed) and the subscribe request run in the
        background; the returned future carries the outcome.
        """
        if self._closed:
            raise BusClientError(f"{self.name} is closed")

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._handlers[channel] = handler
        self._pending[channel] = future
        self._spawn(self._subscribe_flow(channel, future))
        return future

    async def unsubscribe(self, channel: str) -> None:
        """Send /meta/unsubscribe for a channel."""
        self._handlers.pop(channel, None)
        pending = self._pending.pop(channel, None)
        if pending is not None and not pending.done():
            pending.cancel()

        if not self.is_connected:
            return

        replies = await self._send({"channel": UNSUBSCRIBE, "subscription": channel})
        reply = _find_reply(replies, UNSUBSCRIBE)
        if reply is not None and not reply.get("successful"):
            raise BusClientError(f"Unsubscribe from {channel} rejected: {reply.get('error')}")
        logger.info(f"Unsubscribed from {channel}")

    async def disconnect(self) -> None:
        """Send /meta/disconnect and stop the connect loop."""
        was_connected = self.is_connected
        self._closed = True

        try:
            if was_connected:
                await self._send({"channel": DISCONNECT})
                logger.info(f"Disconnected from {self._url}")
        finally:
            self._client_id = None
            self._fail_pending(BusClientError("Client disconnected"))
            await self._stop_tasks()
            if self._owns_http:
                await self._http.aclose()

    # =========================================================================
    # Protocol
    # =========================================================================

    async def handshake(self) -> None:
        """Perform the Bayeux handshake and store the clientId."""
        self._client_id = None
        message = {
            "channel": HANDSHAKE,
            "version": BAYEUX_VERSION,
            "minimumVersion": BAYEUX_VERSION,
            "supportedConnectionTypes": [CONNECTION_TYPE],
        }

        try:
            replies = await self._send(message)
        except httpx.HTTPStatusError as e:
            if e.response.status_code < 500:
                raise HandshakeRejectedError(f"Handshake with {self._url} refused: {e}") from e
            raise HandshakeError(f"Handshake with {self._url} failed: {e}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise HandshakeError(f"Handshake with {self._url} failed: {e}") from e

        reply = _find_reply(replies, HANDSHAKE)
        if reply is None:
            raise HandshakeError(f"Handshake with {self._url} failed: no handshake reply")
        if not reply.get("successful") or not reply.get("clientId"):
            self._update_advice(reply)
            raise HandshakeRejectedError(f"Handshake with {self._url} rejected: {reply.get('error')}")

        self._update_advice(reply)
        self._client_id = reply["clientId"]
        logger.info(f"Bayeux handshake complete (clientId: {self._client_id})")

    async def _ensure_connected(self) -> None:
        async with self._handshake_lock:
            if self._client_id is None:
                await self.handshake()
            if self._connect_task is None or self._connect_task.done():
                self._connect_task = asyncio.create_task(self._connect_loop())

    async def _subscribe_flow(self, channel: str, future: asyncio.Future) -> None:
        try:
            await self._ensure_connected()
            replies = await self._send({"channel": SUBSCRIBE, "subscription": channel})
            await self._process(replies)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to subscribe to {channel}: {e}")
            self._handlers.pop(channel, None)
            if self._pending.get(channel) is future:
                self._pending.pop(channel)
            if not future.done():
                future.set_exception(SubscriptionError(f"Failed to subscribe to {channel}: {e}"))

    async def _resubscribe(self) -> None:
        """
        Re-issue subscribe requests for every registered channel.

        Raises:
            SubscriptionError: If the server refuses one of them
        """
        for channel in list(self._handlers):
            replies = await self._send({"channel": SUBSCRIBE, "subscription": channel})
            reply = _find_reply(replies, SUBSCRIBE)
            await self._process(replies)
            if reply is not None and not reply.get("successful"):
                raise SubscriptionError(f"Re-subscribe to {channel} rejected: {reply.get('error')}")

    async def _connect_loop(self) -> None:
        """Long-poll /meta/connect until closed or advised to stop."""
        rejections = 0
        while not self._closed:
            try:
                if self._client_id is None:
                    await self.handshake()
                    rejections = 0
                    try:
                        await self._resubscribe()
                    except (httpx.HTTPError, ValueError):
                        # Handshake again so the resubscribe is not skipped
                        self._client_id = None
                        raise

                replies = await self._send(
                    {"channel": CONNECT, "connectionType": CONNECTION_TYPE},
                    timeout=self._timeout + self._advice.get("timeout", 0) / 1000,
                )
                reply = await self._process(replies)
            except asyncio.CancelledError:
                raise
            except SubscriptionError as e:
                await self._give_up(e)
                return
            except HandshakeRejectedError as e:
                rejections += 1
                if self._advice.get("reconnect") == "none" or rejections >= MAX_HANDSHAKE_REJECTIONS:
                    await self._give_up(e)
                    return
                logger.warning(f"{e}, retrying in {self._retry}s")
                await asyncio.sleep(self._retry)
                continue
            except (BusClientError, httpx.HTTPError, ValueError) as e:
                logger.warning(f"Bayeux connection error, retrying in {self._retry}s: {e}")
                await asyncio.sleep(self._retry)
                continue

            reconnect = self._advice.get("reconnect", "retry")
            if reply is not None and not reply.get("successful"):
                logger.warning(f"/meta/connect unsuccessful: {reply.get('error')}")
                if "advice" not in reply:
                    reconnect = "handshake"

            if reconnect == "none":
                await self._give_up(BusClientError("Server advised not to reconnect"))
                return
            if reconnect == "handshake":
                logger.info("Server advised re-handshake")
                self._client_id = None
                continue

            interval = self._advice.get("interval", 0) / 1000
            if interval > 0:
                await asyncio.sleep(interval)

    async def _process(self, replies: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """
        Handle the messages returned by the server.

        Resolves pending subscribe futures, records advice and dispatches data
        messages to their channel handler. Returns the /meta/connect reply,
        if any.
        """
        connect_reply = None

        for message in replies:
            channel = message.get("channel", "")

            if "advice" in message:
                self._update_advice(message)

            if channel == CONNECT:
                connect_reply = message
            elif channel == SUBSCRIBE:
                self._resolve_subscribe(message)
            elif channel.startswith("/meta/"):
                continue
            elif "data" in message:
                await self._dispatch(channel, message["data"])

        return connect_reply

    def _resolve_subscribe(self, reply: Dict[str, Any]) -> None:
        subscription = reply.get("subscription")
        if isinstance(subscription, list):
            subscription = subscription[0] if subscription else None

        future = self._pending.pop(subscription, None)
        if reply.get("successful"):
            logger.info(f"Subscription to {subscription} confirmed")
            if future is not None and not future.done():
                future.set_result(reply)
            return

        logger.warning(f"Subscription to {subscription} rejected: {reply.get('error')}")
        self._handlers.pop(subscription, None)
        if future is not None and not future.done():
            future.set_exception(SubscriptionError(f"Subscription to {subscription} rejected: {reply.get('error')}"))

    async def _dispatch(self, channel: str, data: Any) -> None:
        handler = self._handlers.get(channel)
        if handler is None:
            logger.debug(f"No handler for message on {channel}")
            return
        try:
            await handler(channel, data)
        except Exception as e:
            logger.error(f"Error in message handler for {channel}: {e}")

    async def _send(self, *messages: Dict[str, Any], timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """POST a batch of messages and return the decoded replies."""
        payload = []
        for message in messages:
            message = {**message, "id": str(next(self._ids))}
            if self._client_id is not None and message["channel"] != HANDSHAKE:
                message["clientId"] = self._client_id
            payload.append(self._apply_extension(message))

        response = await self._http.post(
            self._url,
            json=payload,
            timeout=timeout if timeout is not None else self._timeout,
        )
        response.raise_for_status()

        replies = response.json()
        if isinstance(replies, dict):
            replies = [replies]
        if not isinstance(replies, list):
            raise ValueError(f"Unexpected Bayeux response: {replies!r}")
        return replies

    def _update_advice(self, message: Dict[str, Any]) -> None:
        advice = message.get("advice")
        if isinstance(advice, dict):
            self._advice.update(advice)

    # =========================================================================
    # Lifecycle helpers
    # =========================================================================

    async def _give_up(self, error: Exception) -> None:
        logger.error(f"Bayeux connection to {self._url} lost: {error}")
        self._closed = True
        self._client_id = None
        self._fail_pending(error)
        await self._notify_failure(error)

    def _fail_pending(self, error: Exception) -> None:
        for channel, future in list(self._pending.items()):
            if not future.done():
                future.set_exception(SubscriptionError(f"Subscription to {channel} aborted: {error}"))
        self._pending.clear()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _stop_tasks(self) -> None:
        current = asyncio.current_task()
        tasks = [t for t in [self._connect_task, *self._tasks] if t is not None and t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


def _find_reply(replies: List[Dict[str, Any]], channel: str) -> Optional[Dict[str, Any]]:
    for reply in replies:
        if reply.get("channel") == channel:
            return reply
    return None
