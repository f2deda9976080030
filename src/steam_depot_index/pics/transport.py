"""
Transports carrying PICS requests to Steam.

A transport only sends requests and hands back whatever responses have
arrived; correlating responses with callers is the dispatcher's job.
"""

import asyncio
import queue
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

import vdf
from pydantic import ValidationError

from steam_depot_index.errors import PicsConnectionError, PicsProtocolError
from steam_depot_index.logger import get_logger
from steam_depot_index.pics.messages import (
    AccessTokenRequest,
    AccessTokenResponse,
    ChangesSinceRequest,
    ChangesSinceResponse,
    InboundMessage,
    PicsRequest,
    PicsResponse,
    ProductInfoRequest,
    ProductInfoResponse,
)

R = TypeVar("R")


class PicsTransport(ABC):
    """
    Abstract link to the Steam connection manager.

    Subclasses must implement:
    - connect() / login_anonymous(): session bootstrap
    - send(): issue a request and return its correlation (job) ID
    - poll(): run pending network callbacks and return arrived responses
    - disconnect(): tear down the session
    """

    @abstractmethod
    async def connect(self, timeout: float) -> None:
        """Open the connection, raising PicsConnectionError on failure."""
        ...

    @abstractmethod
    async def login_anonymous(self, timeout: float) -> None:
        """Log on anonymously, raising PicsConnectionError on failure."""
        ...

    @abstractmethod
    async def send(self, request: PicsRequest) -> str:
        """Send a request and return its job ID."""
        ...

    @abstractmethod
    async def poll(self, timeout: float) -> list[InboundMessage]:
        """Wait up to `timeout` seconds for responses and return them."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Log off and close the connection."""
        ...


def decode_app_buffer(buffer: bytes) -> dict[str, Any]:
    """Decode a NUL-terminated appinfo VDF buffer into a key/value tree."""
    if not buffer:
        return {}
    text = buffer.rstrip(b"\x00").decode("utf-8", "replace")
    data = vdf.loads(text)
    return dict(data.get("appinfo", data))


class SteamClientTransport(PicsTransport):
    """
    Transport backed by the ValvePython `steam` client.

    The client is gevent based, so every call into it runs on one
    dedicated worker thread. poll() yields to the gevent hub on that
    thread, which is when job listeners fire and fill the inbox.

    Example:
        >>> transport = SteamClientTransport()
        >>> await transport.connect(timeout=30)
        >>> await transport.login_anonymous(timeout=30)
    """

    def __init__(self, client_factory: Callable[[], Any] | None = None) -> None:
        if client_factory is None:
            try:
                from steam.client import SteamClient
            except ImportError as exc:
                raise PicsConnectionError(
                    "The 'steam' package is required to talk to Steam. "
                    "Install it with 'pip install steam-depot-index[client]'.",
                    original_error=exc,
                ) from exc
            client_factory = SteamClient

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="steam-cm")
        self._client_factory = client_factory
        self._client: Any = None
        self._inbox: queue.SimpleQueue[tuple[str, Any]] = queue.SimpleQueue()
        self._listeners: dict[str, Callable[[Any], None]] = {}
        self._logger = get_logger(__name__, component="transport")

    async def _run(self, func: Callable[..., R], *args: Any) -> R:
        """Run `func` on the client thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def connect(self, timeout: float) -> None:
        def _connect() -> bool:
            self._client = self._client_factory()
            return bool(self._client.connect(retry=3))

        self._logger.info("Connecting to Steam")
        try:
            connected = await asyncio.wait_for(self._run(_connect), timeout)
        except asyncio.TimeoutError as exc:
            raise PicsConnectionError("Timed out connecting to Steam", original_error=exc) from exc
        if not connected:
            raise PicsConnectionError("Could not connect to any Steam CM server")
        self._logger.info("Connected to Steam")

    async def login_anonymous(self, timeout: float) -> None:
        from steam.enums import EResult

        self._logger.info("Logging in anonymously")
        try:
            result = await asyncio.wait_for(self._run(self._client.anonymous_login), timeout)
        except asyncio.TimeoutError as exc:
            raise PicsConnectionError("Timed out logging on to Steam", original_error=exc) from exc
        if result != EResult.OK:
            raise PicsConnectionError(f"Logon failed: {result!r}")
        self._logger.info("Logged in successfully")

    async def send(self, request: PicsRequest) -> str:
        return await self._run(self._send, request)

    def _send(self, request: PicsRequest) -> str:
        message = self._build_message(request)
        job_id: str = self._client.send_job(message)

        def _listener(msg: Any, job_id: str = job_id) -> None:
            self._inbox.put((job_id, msg))

        self._listeners[job_id] = _listener
        self._client.on(job_id, _listener)
        return job_id

    def _build_message(self, request: PicsRequest) -> Any:
        from steam.core.msg import MsgProto
        from steam.enums.emsg import EMsg

        if isinstance(request, ChangesSinceRequest):
            message = MsgProto(EMsg.ClientPICSChangesSinceRequest)
            message.body.since_change_number = request.since_change_number
            message.body.send_app_info_changes = request.send_app_changes
            message.body.send_package_info_changes = request.send_package_changes
        elif isinstance(request, AccessTokenRequest):
            message = MsgProto(EMsg.ClientPICSAccessTokenRequest)
            message.body.appids.extend(request.app_ids)
        elif isinstance(request, ProductInfoRequest):
            message = MsgProto(EMsg.ClientPICSProductInfoRequest)
            for app in request.apps:
                entry = message.body.apps.add()
                entry.appid = app.app_id
                if app.access_token:
                    entry.access_token = app.access_token
            message.body.meta_data_only = False
        else:
            raise PicsProtocolError(f"Unsupported request type: {type(request).__name__}")
        return message

    async def poll(self, timeout: float) -> list[InboundMessage]:
        raw = await self._run(self._pump, timeout)
        inbound: list[InboundMessage] = []
        for job_id, msg in raw:
            try:
                inbound.append(self._to_inbound(job_id, msg))
            except (PicsProtocolError, ValidationError) as e:
                # the caller waiting on this job runs into its timeout
                self._logger.warning("Dropping unreadable response", job_id=job_id, error=str(e))
                self._release(job_id)
        return inbound

    def _pump(self, timeout: float) -> list[tuple[str, Any]]:
        self._client.sleep(timeout)
        drained = []
        while True:
            try:
                drained.append(self._inbox.get_nowait())
            except queue.Empty:
                break
        return drained

    def _to_inbound(self, job_id: str, msg: Any) -> InboundMessage:
        body = self._parse_body(msg)
        finished = not (isinstance(body, ProductInfoResponse) and body.response_pending)
        if finished:
            self._release(job_id)
        return InboundMessage(job_id=job_id, body=body)

    def _release(self, job_id: str) -> None:
        listener = self._listeners.pop(job_id, None)
        if listener is not None:
            self._executor.submit(self._client.remove_listener, job_id, listener)

    def _parse_body(self, msg: Any) -> PicsResponse:
        from steam.enums.emsg import EMsg

        body = msg.body
        if msg.msg == EMsg.ClientPICSChangesSinceResponse:
            return ChangesSinceResponse(
                current_change_number=body.current_change_number,
                last_change_number=body.since_change_number,
                requires_full_update=body.force_full_update,
                requires_full_app_update=body.force_full_app_update,
                app_changes={change.appid: change.change_number for change in body.app_changes},
            )
        if msg.msg == EMsg.ClientPICSAccessTokenResponse:
            return AccessTokenResponse(
                app_tokens={t.appid: t.access_token for t in body.app_access_tokens},
                denied_app_ids=list(body.app_denied_tokens),
            )
        if msg.msg == EMsg.ClientPICSProductInfoResponse:
            apps: dict[int, dict[str, Any]] = {}
            for app in body.apps:
                try:
                    apps[app.appid] = decode_app_buffer(app.buffer)
                except (SyntaxError, ValueError, UnicodeError) as e:
                    self._logger.warning("Undecodable appinfo buffer", app_id=app.appid, error=str(e))
            return ProductInfoResponse(
                apps=apps,
                unknown_app_ids=list(body.unknown_appids),
                response_pending=body.response_pending,
            )
        raise PicsProtocolError(f"Unexpected response message: {msg.msg!r}")

    async def disconnect(self) -> None:
        def _disconnect() -> None:
            if self._client is None:
                return
            if self._client.logged_on:
                self._client.logout()
            self._client.disconnect()

        try:
            await self._run(_disconnect)
        finally:
            self._executor.shutdown(wait=False)
        self._logger.info("Disconnected from Steam")
