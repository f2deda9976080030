"""Integration tests for the PICS dispatcher and client over the fake transport."""

import asyncio

import pytest
from fakes import FakeTransport

from steam_depot_index.config import Settings
from steam_depot_index.errors import PicsConnectionError, PicsProtocolError, PicsTimeoutError
from steam_depot_index.pics.client import PicsClient
from steam_depot_index.pics.dispatcher import PicsDispatcher
from steam_depot_index.pics.messages import (
    AccessTokenRequest,
    AccessTokenResponse,
    ChangesSinceRequest,
    ChangesSinceResponse,
    InboundMessage,
    ProductInfoRequest,
    ProductInfoResponse,
)


async def settle(rounds: int = 5) -> None:
    """Give the pump task a few turns of the event loop."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FlakyTransport(FakeTransport):
    """Fails the first poll."""

    def __init__(self) -> None:
        super().__init__()
        self.poll_failures = 1

    async def poll(self, timeout: float) -> list[InboundMessage]:
        if self.poll_failures:
            self.poll_failures -= 1
            raise ConnectionResetError("socket closed")
        return await super().poll(timeout)


class TestDispatcher:
    """Tests for correlation-ID routing."""

    @pytest.mark.asyncio
    async def test_single_response(self, transport: FakeTransport) -> None:
        transport.on(
            ChangesSinceRequest,
            lambda request: [ChangesSinceResponse(current_change_number=10)],
        )

        async with PicsDispatcher(transport, poll_interval=0, idle_delay=0) as dispatcher:
            response = await dispatcher.request(ChangesSinceRequest(), timeout=1.0)
            assert dispatcher.pending_jobs == 0

        assert isinstance(response, ChangesSinceResponse)
        assert response.current_change_number == 10

    @pytest.mark.asyncio
    async def test_concurrent_requests_routed_by_job(self, transport: FakeTransport) -> None:
        """Each caller receives the response to its own job."""
        transport.on(
            ChangesSinceRequest,
            lambda request: [
                ChangesSinceResponse(
                    current_change_number=request.since_change_number + 1,
                    last_change_number=request.since_change_number,
                )
            ],
        )

        async with PicsDispatcher(transport, poll_interval=0, idle_delay=0) as dispatcher:
            responses = await asyncio.gather(
                *(
                    dispatcher.request(ChangesSinceRequest(since_change_number=n), timeout=1.0)
                    for n in (100, 200, 300)
                )
            )

        assert [r.last_change_number for r in responses] == [100, 200, 300]  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_multi_part_collected_in_order(self, transport: FakeTransport) -> None:
        transport.on(
            ProductInfoRequest,
            lambda request: [
                ProductInfoResponse(apps={10: {"common": {"name": "A"}}}, response_pending=True),
                ProductInfoResponse(apps={20: {"common": {"name": "B"}}}, response_pending=True),
                ProductInfoResponse(unknown_app_ids=[30]),
            ],
        )

        async with PicsDispatcher(transport, poll_interval=0, idle_delay=0) as dispatcher:
            parts = await dispatcher.request_multi(ProductInfoRequest(), timeout=1.0)

        assert [list(part.apps) for part in parts] == [[10], [20], []]
        assert parts[-1].unknown_app_ids == [30]

    @pytest.mark.asyncio
    async def test_timeout(self, transport: FakeTransport) -> None:
        transport.on(ChangesSinceRequest, lambda request: [])

        async with PicsDispatcher(transport, poll_interval=0, idle_delay=0) as dispatcher:
            with pytest.raises(PicsTimeoutError) as exc_info:
                await dispatcher.request(ChangesSinceRequest(), timeout=0.05)
            assert dispatcher.pending_jobs == 0

        assert exc_info.value.job_id == "job_1"

    @pytest.mark.asyncio
    async def test_multi_part_timeout_bounds_whole_exchange(
        self, transport: FakeTransport
    ) -> None:
        """A first part flagged pending with no follow-up times out."""
        transport.on(
            ProductInfoRequest,
            lambda request: [ProductInfoResponse(response_pending=True)],
        )

        async with PicsDispatcher(transport, poll_interval=0, idle_delay=0) as dispatcher:
            with pytest.raises(PicsTimeoutError, match="1 part"):
                await dispatcher.request_multi(ProductInfoRequest(), timeout=0.05)

    @pytest.mark.asyncio
    async def test_wrong_part_type(self, transport: FakeTransport) -> None:
        transport.on(ProductInfoRequest, lambda request: [AccessTokenResponse()])

        async with PicsDispatcher(transport, poll_interval=0, idle_delay=0) as dispatcher:
            with pytest.raises(PicsProtocolError):
                await dispatcher.request_multi(ProductInfoRequest(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_early_response_buffered(self, transport: FakeTransport) -> None:
        """A response that beats send() to the table is not lost."""
        transport.on(ChangesSinceRequest, lambda request: [])

        async with PicsDispatcher(transport, poll_interval=0, idle_delay=0) as dispatcher:
            transport.deliver("job_1", ChangesSinceResponse(current_change_number=42))
            await settle()
            response = await dispatcher.request(ChangesSinceRequest(), timeout=1.0)

        assert response == ChangesSinceResponse(current_change_number=42)

    @pytest.mark.asyncio
    async def test_late_response_dropped(self, transport: FakeTransport) -> None:
        """A response for a finished job does not leak into a new one."""
        transport.on(
            ChangesSinceRequest,
            lambda request: [ChangesSinceResponse(current_change_number=1)],
        )

        async with PicsDispatcher(transport, poll_interval=0, idle_delay=0) as dispatcher:
            await dispatcher.request(ChangesSinceRequest(), timeout=1.0)
            transport.deliver("job_1", ChangesSinceResponse(current_change_number=999))
            await settle()
            second = await dispatcher.request(ChangesSinceRequest(), timeout=1.0)
            assert dispatcher.pending_jobs == 0

        assert second.current_change_number == 1  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_finished_jobs_history_bounded(self, transport: FakeTransport) -> None:
        transport.on(
            ChangesSinceRequest,
            lambda request: [ChangesSinceResponse(current_change_number=1)],
        )

        async with PicsDispatcher(
            transport, poll_interval=0, idle_delay=0, job_history=2
        ) as dispatcher:
            for _ in range(5):
                await dispatcher.request(ChangesSinceRequest(), timeout=1.0)
            assert dispatcher.remembered_jobs == 2

    @pytest.mark.asyncio
    async def test_unclaimed_responses_bounded(self, transport: FakeTransport) -> None:
        transport.on(ChangesSinceRequest, lambda request: [])

        async with PicsDispatcher(
            transport, poll_interval=0, idle_delay=0, job_history=2
        ) as dispatcher:
            for n in range(1, 6):
                transport.deliver(f"stray_{n}", ChangesSinceResponse(current_change_number=n))
            await settle()
            assert dispatcher.remembered_jobs == 2

            # the newest unclaimed answers are the ones kept
            transport.deliver("job_1", ChangesSinceResponse(current_change_number=42))
            await settle()
            response = await dispatcher.request(ChangesSinceRequest(), timeout=1.0)

        assert response == ChangesSinceResponse(current_change_number=42)

    @pytest.mark.asyncio
    async def test_not_running(self, transport: FakeTransport) -> None:
        dispatcher = PicsDispatcher(transport)

        with pytest.raises(PicsProtocolError):
            await dispatcher.request(ChangesSinceRequest(), timeout=1.0)
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_pump_survives_poll_error(self) -> None:
        transport = FlakyTransport()
        transport.on(
            ChangesSinceRequest,
            lambda request: [ChangesSinceResponse(current_change_number=5)],
        )

        async with PicsDispatcher(transport, poll_interval=0, idle_delay=0) as dispatcher:
            await settle()
            response = await dispatcher.request(ChangesSinceRequest(), timeout=1.0)
            assert dispatcher.running

        assert transport.poll_failures == 0
        assert response.current_change_number == 5  # type: ignore[union-attr]


class TestPicsClient:
    """Tests for the typed client surface."""

    @pytest.mark.asyncio
    async def test_connect_logs_on_and_starts_pump(
        self, transport: FakeTransport, settings: Settings
    ) -> None:
        async with PicsClient(transport, config=settings.steam) as client:
            assert transport.connected
            assert transport.logged_in
            assert client.dispatcher.running

        assert not transport.connected
        assert not client.dispatcher.running

    @pytest.mark.asyncio
    async def test_connect_failure(self, transport: FakeTransport, settings: Settings) -> None:
        transport.fail_connect = True
        client = PicsClient(transport, config=settings.steam)

        with pytest.raises(PicsConnectionError):
            await client.connect()
        assert not client.dispatcher.running

    @pytest.mark.asyncio
    async def test_login_failure_disconnects(
        self, transport: FakeTransport, settings: Settings
    ) -> None:
        transport.fail_login = True
        client = PicsClient(transport, config=settings.steam)

        with pytest.raises(PicsConnectionError, match="Logon failed"):
            await client.connect()
        assert not transport.connected
        assert not client.dispatcher.running

    @pytest.mark.asyncio
    async def test_product_info_attaches_tokens(
        self, transport: FakeTransport, pics_client: PicsClient
    ) -> None:
        parts = await pics_client.get_product_info([10, 20], tokens={20: 987654321})

        assert len(parts) == 1
        request = transport.requests_of(ProductInfoRequest)[0]
        assert [(app.app_id, app.access_token) for app in request.apps] == [
            (10, 0),
            (20, 987654321),
        ]

    @pytest.mark.asyncio
    async def test_access_tokens(self, transport: FakeTransport, pics_client: PicsClient) -> None:
        transport.on(
            AccessTokenRequest,
            lambda request: [AccessTokenResponse(app_tokens={10: 1}, denied_app_ids=[20])],
        )

        response = await pics_client.get_access_tokens([10, 20])

        assert response.app_tokens == {10: 1}
        assert response.denied_app_ids == [20]
        assert transport.requests_of(AccessTokenRequest)[0].app_ids == [10, 20]

    @pytest.mark.asyncio
    async def test_unexpected_response_type(
        self, transport: FakeTransport, pics_client: PicsClient
    ) -> None:
        transport.on(ChangesSinceRequest, lambda request: [AccessTokenResponse()])

        with pytest.raises(PicsProtocolError):
            await pics_client.get_changes_since(0)
