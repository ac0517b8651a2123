"""
Event relay: fans inbound events out to the forward targets.

Each target has its own queue and worker task. Envelopes are posted to a
target in the order the relay received them, while targets progress
independently: a slow or failing target never holds up the others, and no
delivery outcome is reported back to the caller.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import httpx

from ..models.schemas import InboundEvent, TargetInfo

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000


@dataclass
class ForwardTarget:
    """A downstream endpoint and its delivery state."""
    url: str
    queue: "asyncio.Queue[InboundEvent]" = field(default_factory=asyncio.Queue)
    worker: Optional[asyncio.Task] = None
    delivered: int = 0
    failed: int = 0
    dropped: int = 0

    def info(self) -> TargetInfo:
        return TargetInfo(
            url=self.url,
            delivered=self.delivered,
            failed=self.failed,
            dropped=self.dropped,
            queued=self.queue.qsize(),
        )


class EventRelay:
    """
    Forwards every inbound event to all configured targets.

    Delivery is best-effort: connection errors, timeouts and non-2xx
    responses are logged and the envelope is dropped for that target. A
    target whose queue is full drops new envelopes until it catches up.
    """

    def __init__(
        self,
        targets: Sequence[str],
        timeout_seconds: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        """
        Args:
            targets: Forward target URLs
            timeout_seconds: Per-request timeout for outbound POSTs
            http_client: Optional pre-built httpx client (closed by the caller)
            queue_size: Envelopes held per target before new ones are dropped
        """
        self._targets: Dict[str, ForwardTarget] = {}
        for url in targets:
            if url not in self._targets:
                self._targets[url] = ForwardTarget(url=url, queue=asyncio.Queue(maxsize=queue_size))
        self._timeout = timeout_seconds
        self._http = http_client
        self._owns_http = http_client is None
        self._started = False

    @property
    def targets(self) -> List[str]:
        return list(self._targets)

    def stats(self) -> List[TargetInfo]:
        return [target.info() for target in self._targets.values()]

    def start(self) -> None:
        """Start one worker task per target. Requires a running loop."""
        if self._started:
            return

        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)

        for target in self._targets.values():
            target.worker = asyncio.create_task(self._worker(target))
        self._started = True
        logger.info(f"Event relay started with {len(self._targets)} target(s)")

    def relay(self, envelope: InboundEvent) -> None:
        """
        Queue an envelope for every target.

        Returns immediately; delivery happens on the target workers.
        """
        if not self._targets:
            logger.debug("No forward targets configured, dropping event")
            return

        self.start()
        for target in self._targets.values():
            try:
                target.queue.put_nowait(envelope)
            except asyncio.QueueFull:
                target.dropped += 1
                logger.warning(f"Queue for {target.url} is full, dropping {envelope.meta.source} event")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued envelope has been attempted.

        Returns:
            True if all queues emptied within ``timeout``
        """
        if not self._started:
            return True

        joins = [target.queue.join() for target in self._targets.values()]
        try:
            await asyncio.wait_for(asyncio.gather(*joins), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("Timed out waiting for pending forwards")
            return False

    async def close(self, drain_timeout: Optional[float] = None) -> None:
        """Drain (bounded), stop the workers and release the HTTP client."""
        if self._started and drain_timeout:
            await self.drain(drain_timeout)

        workers = [t.worker for t in self._targets.values() if t.worker is not None]
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        for target in self._targets.values():
            target.worker = None

        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
        self._started = False

    async def _worker(self, target: ForwardTarget) -> None:
        while True:
            envelope = await target.queue.get()
            try:
                await self._forward(target, envelope)
            finally:
                target.queue.task_done()

    async def _forward(self, target: ForwardTarget, envelope: InboundEvent) -> None:
        try:
            response = await self._http.post(
                target.url,
                json=envelope.to_payload(),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            target.failed += 1
            logger.error(
                f"Forward to {target.url} rejected with {e.response.status_code}: {e.response.text[:200]}"
            )
        except httpx.HTTPError as e:
            target.failed += 1
            logger.error(f"Error forwarding to {target.url}: {e!r}")
        except Exception as e:
            target.failed += 1
            logger.error(f"Unexpected error forwarding to {target.url}: {e}", exc_info=True)
        else:
            target.delivered += 1
            logger.info(f"Forwarded {envelope.meta.source} event to {target.url}")
