"""Tests for mDNS receiver discovery."""

import asyncio
from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from avrdeck.api.discovery import (
    RECEIVER_SERVICE_TYPE,
    ReceiverNameResolver,
    ReceiverServiceListener,
    SessionState,
    ZeroconfDiscoverySession,
)
from fakes import settle


@pytest.fixture
def mock_zeroconf() -> Iterator[tuple[MagicMock, MagicMock]]:
    """Patch AsyncZeroconf and AsyncServiceBrowser so no sockets are opened."""
    with (
        patch("avrdeck.api.discovery.AsyncZeroconf") as zc_cls,
        patch("avrdeck.api.discovery.AsyncServiceBrowser") as browser_cls,
    ):
        zc_cls.return_value.async_close = AsyncMock()
        browser_cls.return_value.async_cancel = AsyncMock()
        yield zc_cls, browser_cls


@pytest.fixture
def service_info() -> Iterator[MagicMock]:
    """Patch AsyncServiceInfo; lookups answer with one address by default."""
    with patch("avrdeck.api.discovery.AsyncServiceInfo") as info_cls:
        info = info_cls.return_value
        info.async_request = AsyncMock(return_value=True)
        info.parsed_addresses.return_value = ["192.168.1.77"]
        info.properties = {}
        yield info


@pytest.fixture
def session(
    mock_zeroconf: tuple[MagicMock, MagicMock],  # noqa: ARG001
) -> ZeroconfDiscoverySession:
    """Return a session on patched zeroconf."""
    return ZeroconfDiscoverySession()


class TestReceiverServiceListener:
    """Tests for ReceiverServiceListener."""

    def test_add_service_starts_lookup(self) -> None:
        """Announcements are handed to the session for lookup."""
        session = MagicMock()
        mock_zc = MagicMock()

        ReceiverServiceListener(session).add_service(mock_zc, RECEIVER_SERVICE_TYPE, "AVR")

        session.lookup_service.assert_called_once_with(mock_zc, RECEIVER_SERVICE_TYPE, "AVR")

    def test_update_service_looks_up_again(self) -> None:
        """Updates are handled like new announcements."""
        session = MagicMock()
        ReceiverServiceListener(session).update_service(MagicMock(), RECEIVER_SERVICE_TYPE, "AVR")
        session.lookup_service.assert_called_once()

    def test_remove_service_is_harmless(self) -> None:
        """Removal does not report anything."""
        session = MagicMock()
        ReceiverServiceListener(session).remove_service(MagicMock(), RECEIVER_SERVICE_TYPE, "AVR")
        session.lookup_service.assert_not_called()
        session.report_address.assert_not_called()


class TestServiceLookup:
    """Tests for resolving announced services."""

    @pytest.mark.asyncio
    async def test_uses_txt_name(
        self, session: ZeroconfDiscoverySession, service_info: MagicMock
    ) -> None:
        """The TXT friendly name wins over the instance name."""
        service_info.properties = {b"name": b"Living Room"}
        observed: list[str] = []
        session.address_observed.connect(observed.append)
        session.start_searching()

        session.lookup_service(MagicMock(), RECEIVER_SERVICE_TYPE, f"AVR-X.{RECEIVER_SERVICE_TYPE}")
        await settle()

        assert observed == ["192.168.1.77"]
        assert session.known_names == {"192.168.1.77": "Living Room"}
        service_info.async_request.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_strips_service_suffix(
        self, session: ZeroconfDiscoverySession, service_info: MagicMock  # noqa: ARG002
    ) -> None:
        """Without a TXT name the instance name is used without its suffix."""
        session.start_searching()

        session.lookup_service(MagicMock(), RECEIVER_SERVICE_TYPE, f"AVR-X.{RECEIVER_SERVICE_TYPE}")
        await settle()

        assert session.known_names == {"192.168.1.77": "AVR-X"}

    @pytest.mark.asyncio
    async def test_unanswered_lookup_ignored(
        self, session: ZeroconfDiscoverySession, service_info: MagicMock
    ) -> None:
        """A service that does not answer is ignored."""
        service_info.async_request.return_value = False
        observed: list[str] = []
        session.address_observed.connect(observed.append)
        session.start_searching()

        session.lookup_service(MagicMock(), RECEIVER_SERVICE_TYPE, "AVR")
        await settle()

        assert observed == []

    @pytest.mark.asyncio
    async def test_no_addresses_ignored(
        self, session: ZeroconfDiscoverySession, service_info: MagicMock
    ) -> None:
        """A service without addresses is ignored."""
        service_info.parsed_addresses.return_value = []
        observed: list[str] = []
        session.address_observed.connect(observed.append)
        session.start_searching()

        session.lookup_service(MagicMock(), RECEIVER_SERVICE_TYPE, "AVR")
        await settle()

        assert observed == []

    @pytest.mark.asyncio
    async def test_lookup_ignored_when_not_searching(
        self, session: ZeroconfDiscoverySession, service_info: MagicMock
    ) -> None:
        """Announcements arriving outside a search are not looked up."""
        session.lookup_service(MagicMock(), RECEIVER_SERVICE_TYPE, "AVR")
        await settle()

        service_info.async_request.assert_not_awaited()


class TestZeroconfDiscoverySession:
    """Tests for ZeroconfDiscoverySession."""

    def test_initial_state(self) -> None:
        """A new session is created but not searching."""
        session = ZeroconfDiscoverySession()
        assert session.state is SessionState.CREATED
        assert not session.is_destroyed

    @pytest.mark.asyncio
    async def test_start_creates_browser(
        self, session: ZeroconfDiscoverySession, mock_zeroconf: tuple[MagicMock, MagicMock]
    ) -> None:
        """Starting opens zeroconf and browses the service type."""
        zc_cls, browser_cls = mock_zeroconf

        session.start_searching()

        assert session.state is SessionState.SEARCHING
        zc_cls.assert_called_once()
        assert browser_cls.call_args.args[0] is zc_cls.return_value.zeroconf
        assert browser_cls.call_args.args[1] == RECEIVER_SERVICE_TYPE
        assert isinstance(browser_cls.call_args.kwargs["listener"], ReceiverServiceListener)

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(
        self, session: ZeroconfDiscoverySession, mock_zeroconf: tuple[MagicMock, MagicMock]
    ) -> None:
        """A second start while searching does nothing."""
        _, browser_cls = mock_zeroconf

        session.start_searching()
        session.start_searching()

        assert browser_cls.call_count == 1

    @pytest.mark.asyncio
    async def test_stop_and_restart_reuses_zeroconf(
        self, session: ZeroconfDiscoverySession, mock_zeroconf: tuple[MagicMock, MagicMock]
    ) -> None:
        """Stopping cancels the browser; restarting keeps the zeroconf instance."""
        zc_cls, browser_cls = mock_zeroconf

        session.start_searching()
        session.stop_searching()
        await settle()
        assert session.state is SessionState.STOPPED
        browser_cls.return_value.async_cancel.assert_awaited_once()

        session.start_searching()
        assert session.state is SessionState.SEARCHING
        assert zc_cls.call_count == 1
        assert browser_cls.call_count == 2

    @pytest.mark.asyncio
    async def test_aclose_closes_zeroconf(
        self, session: ZeroconfDiscoverySession, mock_zeroconf: tuple[MagicMock, MagicMock]
    ) -> None:
        """aclose cancels the browser, closes zeroconf and ends the session."""
        zc_cls, browser_cls = mock_zeroconf
        session.start_searching()

        await session.aclose()
        session.start_searching()

        assert session.is_destroyed
        browser_cls.return_value.async_cancel.assert_awaited_once()
        zc_cls.return_value.async_close.assert_awaited_once()
        assert browser_cls.call_count == 1

    @pytest.mark.asyncio
    async def test_destroy_without_start(
        self, session: ZeroconfDiscoverySession, mock_zeroconf: tuple[MagicMock, MagicMock]
    ) -> None:
        """Destroying an unused session opens nothing."""
        zc_cls, _ = mock_zeroconf

        await session.aclose()

        assert session.is_destroyed
        zc_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_aclose_cancels_lookups(
        self, session: ZeroconfDiscoverySession, service_info: MagicMock
    ) -> None:
        """Lookups still in flight are cancelled on close."""
        observed: list[str] = []
        session.address_observed.connect(observed.append)
        never = asyncio.Event()

        async def hang(*args: object) -> bool:
            await never.wait()
            return True

        service_info.async_request.side_effect = hang
        session.start_searching()
        session.lookup_service(MagicMock(), RECEIVER_SERVICE_TYPE, "AVR")
        await settle()

        await session.aclose()

        assert observed == []

    @pytest.mark.asyncio
    async def test_socket_error_destroys_session(
        self, session: ZeroconfDiscoverySession, mock_zeroconf: tuple[MagicMock, MagicMock]
    ) -> None:
        """A socket error while starting leaves the session destroyed."""
        zc_cls, _ = mock_zeroconf
        zc_cls.side_effect = OSError("no multicast")

        session.start_searching()

        assert session.is_destroyed

    @pytest.mark.asyncio
    async def test_report_address_emits_while_searching(
        self, session: ZeroconfDiscoverySession
    ) -> None:
        """Reported addresses are emitted while searching."""
        observed: list[str] = []
        session.address_observed.connect(observed.append)
        session.start_searching()

        session.report_address("192.168.1.77", "Living Room")

        assert observed == ["192.168.1.77"]
        assert session.known_names == {"192.168.1.77": "Living Room"}

    @pytest.mark.asyncio
    async def test_no_emit_after_stop(self, session: ZeroconfDiscoverySession) -> None:
        """Reports after stopping are dropped."""
        observed: list[str] = []
        session.address_observed.connect(observed.append)
        session.start_searching()
        session.stop_searching()

        session.report_address("192.168.1.77")

        assert observed == []

    def test_report_before_start_remembers_name(self) -> None:
        """Before searching nothing is emitted but the name is remembered."""
        session = ZeroconfDiscoverySession()
        observed: list[str] = []
        session.address_observed.connect(observed.append)

        session.report_address("192.168.1.77", "Den")

        assert observed == []
        assert session.known_names == {"192.168.1.77": "Den"}


class TestReceiverNameResolver:
    """Tests for ReceiverNameResolver."""

    @pytest.mark.asyncio
    async def test_announced_name_wins(self) -> None:
        """Names announced to the attached session are used first."""
        session = ZeroconfDiscoverySession()
        session.report_address("192.168.1.77", "Living Room")
        resolver = ReceiverNameResolver()
        resolver.attach(session)

        with patch("socket.gethostbyaddr") as lookup:
            assert await resolver.resolve_display_name("192.168.1.77") == "Living Room"
        lookup.assert_not_called()

    @pytest.mark.asyncio
    async def test_reverse_lookup_short_name(self) -> None:
        """Reverse DNS names lose their domain part."""
        resolver = ReceiverNameResolver()
        with patch(
            "socket.gethostbyaddr",
            return_value=("denon-avr.local", [], ["192.168.1.77"]),
        ):
            assert await resolver.resolve_display_name("192.168.1.77") == "denon-avr"

    @pytest.mark.asyncio
    async def test_reverse_lookup_failure(self) -> None:
        """Lookup failures resolve to None."""
        resolver = ReceiverNameResolver()
        with patch("socket.gethostbyaddr", side_effect=OSError("not found")):
            assert await resolver.resolve_display_name("192.168.1.77") is None
