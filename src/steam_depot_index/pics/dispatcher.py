"""
Correlation-ID keyed request table for PICS jobs.

One pump task drains the transport and routes each inbound message to
the caller waiting on its job ID. Callers suspend on an asyncio queue
per job, so a multi-part answer is simply several queue items.
"""

import asyncio
from collections import deque
from typing import Any

from steam_depot_index.errors import PicsProtocolError, PicsTimeoutError
from steam_depot_index.logger import get_logger
from steam_depot_index.pics.messages import (
    InboundMessage,
    PicsRequest,
    PicsResponse,
    ProductInfoResponse,
)
from steam_depot_index.pics.transport import PicsTransport


class PicsDispatcher:
    """
    Routes transport responses to waiting requests.

    Example:
        >>> dispatcher = PicsDispatcher(transport)
        >>> await dispatcher.start()
        >>> response = await dispatcher.request(ChangesSinceRequest(), timeout=30)
        >>> await dispatcher.stop()
    """

    def __init__(
        self,
        transport: PicsTransport,
        *,
        poll_interval: float = 0.1,
        idle_delay: float = 0.01,
        job_history: int = 1024,
    ) -> None:
        self._transport = transport
        self._poll_interval = poll_interval
        self._idle_delay = idle_delay
        self._job_history = job_history
        self._pending: dict[str, asyncio.Queue[PicsResponse]] = {}
        self._early: dict[str, list[PicsResponse]] = {}
        self._closed: set[str] = set()
        self._closed_order: deque[str] = deque()
        self._pump_task: asyncio.Task[None] | None = None
        self._logger = get_logger(__name__, component="dispatcher")

    @property
    def running(self) -> bool:
        """Whether the pump task is alive."""
        return self._pump_task is not None and not self._pump_task.done()

    @property
    def pending_jobs(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._pending)

    @property
    def remembered_jobs(self) -> int:
        """Number of finished or stray job IDs still tracked."""
        return len(self._closed) + len(self._early)

    async def start(self) -> None:
        """Start pumping inbound messages."""
        if self.running:
            return
        self._pump_task = asyncio.create_task(self._pump(), name="pics-pump")

    async def stop(self) -> None:
        """Stop the pump and forget outstanding requests."""
        if self._pump_task is not None:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None
        self._pending.clear()
        self._early.clear()
        self._closed.clear()
        self._closed_order.clear()

    async def __aenter__(self) -> "PicsDispatcher":
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()

    async def _pump(self) -> None:
        while True:
            try:
                messages = await self._transport.poll(self._poll_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.warning("Transport poll failed", error=str(e))
                messages = []
            for message in messages:
                self._dispatch(message)
            await asyncio.sleep(self._idle_delay)

    def _dispatch(self, message: InboundMessage) -> None:
        waiting = self._pending.get(message.job_id)
        if waiting is not None:
            waiting.put_nowait(message.body)
        elif message.job_id in self._closed:
            self._logger.debug("Dropping late response", job_id=message.job_id)
        else:
            # Arrived before send() handed the job ID back to the caller
            if message.job_id not in self._early and len(self._early) >= self._job_history:
                stray = next(iter(self._early))
                del self._early[stray]
                self._logger.debug("Discarding unclaimed response", job_id=stray)
            self._early.setdefault(message.job_id, []).append(message.body)

    async def _open(self, request: PicsRequest) -> str:
        if not self.running:
            raise PicsProtocolError("Dispatcher is not running")
        job_id = await self._transport.send(request)
        waiting: asyncio.Queue[PicsResponse] = asyncio.Queue()
        for body in self._early.pop(job_id, []):
            waiting.put_nowait(body)
        self._pending[job_id] = waiting
        return job_id

    def _close(self, job_id: str) -> None:
        self._pending.pop(job_id, None)
        self._early.pop(job_id, None)
        self._closed.add(job_id)
        self._closed_order.append(job_id)
        while len(self._closed_order) > self._job_history:
            self._closed.discard(self._closed_order.popleft())

    async def request(self, request: PicsRequest, timeout: float) -> PicsResponse:
        """
        Send a request and wait for its single response.

        Raises:
            PicsTimeoutError: If no response arrives within `timeout` seconds
        """
        job_id = await self._open(request)
        try:
            return await asyncio.wait_for(self._pending[job_id].get(), timeout)
        except asyncio.TimeoutError as e:
            raise PicsTimeoutError(
                f"{type(request).__name__} timed out after {timeout}s",
                job_id=job_id,
                original_error=e,
            ) from e
        finally:
            self._close(job_id)

    async def request_multi(
        self,
        request: PicsRequest,
        timeout: float,
    ) -> list[ProductInfoResponse]:
        """
        Send a request answered in parts and collect every part.

        Keeps draining until a part reports no further parts pending.
        The timeout bounds the whole exchange, not each part.

        Raises:
            PicsTimeoutError: If the last part has not arrived within `timeout` seconds
            PicsProtocolError: If a part is not a product info response
        """
        job_id = await self._open(request)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        parts: list[ProductInfoResponse] = []
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError
                part = await asyncio.wait_for(self._pending[job_id].get(), remaining)
                if not isinstance(part, ProductInfoResponse):
                    raise PicsProtocolError(
                        f"Unexpected {type(part).__name__} in multi-part response",
                        job_id=job_id,
                    )
                parts.append(part)
                if not part.response_pending:
                    return parts
        except asyncio.TimeoutError as e:
            raise PicsTimeoutError(
                f"{type(request).__name__} timed out after {timeout}s "
                f"with {len(parts)} part(s) received",
                job_id=job_id,
                original_error=e,
            ) from e
        finally:
            self._close(job_id)
