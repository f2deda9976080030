"""
PICS client: the request surface handed to the enumerator and fetcher.

Owns the transport session and the dispatcher pump for one run.
"""

from collections.abc import Iterable
from typing import Any

from steam_depot_index.config import SteamConnectionConfig, get_settings
from steam_depot_index.errors import PicsProtocolError
from steam_depot_index.logger import get_logger
from steam_depot_index.pics.dispatcher import PicsDispatcher
from steam_depot_index.pics.messages import (
    AccessTokenRequest,
    AccessTokenResponse,
    AppRequest,
    ChangesSinceRequest,
    ChangesSinceResponse,
    PicsRequest,
    PicsResponse,
    ProductInfoRequest,
    ProductInfoResponse,
)
from steam_depot_index.pics.transport import PicsTransport, SteamClientTransport


class PicsClient:
    """
    Typed PICS calls over a transport.

    Example:
        >>> async with PicsClient() as client:
        ...     changes = await client.get_changes_since(0, send_app_changes=False)
        ...     print(changes.current_change_number)
    """

    def __init__(
        self,
        transport: PicsTransport | None = None,
        *,
        config: SteamConnectionConfig | None = None,
    ) -> None:
        self._config = config or get_settings().steam
        self._transport = transport or SteamClientTransport()
        self._dispatcher = PicsDispatcher(
            self._transport,
            poll_interval=self._config.callback_poll_seconds,
        )
        self._connected = False
        self._logger = get_logger(__name__, component="pics_client")

    @property
    def dispatcher(self) -> PicsDispatcher:
        """The dispatcher routing responses for this client."""
        return self._dispatcher

    async def connect(self) -> None:
        """
        Connect, log on anonymously and start the callback pump.

        Raises:
            PicsConnectionError: If connecting or logging on fails or times out
        """
        await self._transport.connect(self._config.connect_timeout_seconds)
        self._connected = True
        try:
            await self._transport.login_anonymous(self._config.login_timeout_seconds)
        except BaseException:
            await self.close()
            raise
        await self._dispatcher.start()

    async def close(self) -> None:
        """Stop the pump and disconnect."""
        await self._dispatcher.stop()
        if self._connected:
            self._connected = False
            await self._transport.disconnect()

    async def __aenter__(self) -> "PicsClient":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _single(self, request: PicsRequest, timeout: float | None) -> PicsResponse:
        return await self._dispatcher.request(
            request,
            timeout if timeout is not None else self._config.call_timeout_seconds,
        )

    async def get_changes_since(
        self,
        since_change_number: int,
        *,
        send_app_changes: bool = True,
        send_package_changes: bool = False,
        timeout: float | None = None,
    ) -> ChangesSinceResponse:
        """Request app changes after `since_change_number`."""
        response = await self._single(
            ChangesSinceRequest(
                since_change_number=since_change_number,
                send_app_changes=send_app_changes,
                send_package_changes=send_package_changes,
            ),
            timeout,
        )
        if not isinstance(response, ChangesSinceResponse):
            raise PicsProtocolError(f"Expected ChangesSinceResponse, got {type(response).__name__}")
        return response

    async def get_access_tokens(
        self,
        app_ids: Iterable[int],
        *,
        timeout: float | None = None,
    ) -> AccessTokenResponse:
        """Request access tokens for `app_ids`."""
        response = await self._single(AccessTokenRequest(app_ids=list(app_ids)), timeout)
        if not isinstance(response, AccessTokenResponse):
            raise PicsProtocolError(f"Expected AccessTokenResponse, got {type(response).__name__}")
        return response

    async def get_product_info(
        self,
        app_ids: Iterable[int],
        *,
        tokens: dict[int, int] | None = None,
        timeout: float | None = None,
    ) -> list[ProductInfoResponse]:
        """
        Request product info for `app_ids`, attaching any known access token.

        Returns:
            Every part of the answer, in arrival order
        """
        tokens = tokens or {}
        request = ProductInfoRequest(
            apps=[AppRequest(app_id=app_id, access_token=tokens.get(app_id, 0)) for app_id in app_ids]
        )
        return await self._dispatcher.request_multi(
            request,
            timeout if timeout is not None else self._config.product_info_timeout_seconds,
        )
