"""mDNS/Zeroconf discovery of AV receivers.

A ZeroconfDiscoverySession browses for receiver announcements and emits the
address of every receiver it sees. Sessions can be stopped and restarted;
once destroyed they are finished and must be replaced.

Everything runs on the asyncio loop through zeroconf's asyncio API.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Coroutine
from enum import Enum
from typing import Any

from PySide6.QtCore import QObject, Signal
from zeroconf import ServiceListener, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

logger = logging.getLogger(__name__)

# Service type announced by HEOS-capable receivers
RECEIVER_SERVICE_TYPE = "_heos-audio._tcp.local."

# How long to wait for a service's address records (milliseconds)
SERVICE_INFO_TIMEOUT_MS = 3000


class SessionState(Enum):
    """Lifecycle of a discovery session."""

    CREATED = "created"
    SEARCHING = "searching"
    STOPPED = "stopped"
    DESTROYED = "destroyed"


def _service_display_name(name: str, service_type: str) -> str:
    """Strip the service type suffix from an mDNS instance name."""
    suffix = f".{service_type}"
    if name.endswith(suffix):
        name = name[: -len(suffix)]
    return name


def _announced_name(info: AsyncServiceInfo, name: str, service_type: str) -> str:
    """Prefer the friendly name from TXT properties, fall back to the instance name."""
    if info.properties:
        name_bytes = info.properties.get(b"name")
        if name_bytes:
            return name_bytes.decode("utf-8", errors="replace")
    return _service_display_name(name, service_type)


class ReceiverServiceListener(ServiceListener):
    """Listener for receiver mDNS announcements.

    Called on the event loop by AsyncServiceBrowser; the service lookup
    itself is left to the session.
    """

    def __init__(self, session: ZeroconfDiscoverySession) -> None:
        self._session = session

    def add_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        """Handle a new announcement."""
        self._session.lookup_service(zc, type_, name)

    def remove_service(self, zc: Zeroconf, type_: str, name: str) -> None:  # noqa: ARG002
        """Handle service removal (discovered lists only grow between restarts)."""
        logger.debug("Receiver service removed: %s", name)

    def update_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        """Handle service update (look it up again to refresh info)."""
        self.add_service(zc, type_, name)


class ZeroconfDiscoverySession(QObject):
    """One discovery session over mDNS.

    Transitions:
        CREATED -> SEARCHING (start_searching)
        SEARCHING -> STOPPED (stop_searching)
        STOPPED -> SEARCHING (start_searching)
        any -> DESTROYED (destroy, or a socket error while starting)

    All methods must be called on the event loop. Closing the browser and
    the zeroconf instance is asynchronous; ``aclose`` waits for it.

    Signals:
        address_observed: Emitted with a receiver address while searching.

    Example:
        session = ZeroconfDiscoverySession()
        session.address_observed.connect(lambda a: print(f"Found {a}"))
        session.start_searching()
        ...
        await session.aclose()
    """

    address_observed = Signal(str)

    def __init__(self, service_type: str = RECEIVER_SERVICE_TYPE) -> None:
        super().__init__()
        self._service_type = service_type
        self._state = SessionState.CREATED
        self._aiozc: AsyncZeroconf | None = None
        self._browser: AsyncServiceBrowser | None = None
        self._known_names: dict[str, str] = {}
        self._lookups: set[asyncio.Task[None]] = set()
        self._shutdowns: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SessionState:
        """Return the session state."""
        return self._state

    @property
    def is_destroyed(self) -> bool:
        """Return True once the session can no longer be used."""
        return self._state is SessionState.DESTROYED

    @property
    def known_names(self) -> dict[str, str]:
        """Return names announced so far, keyed by address."""
        return dict(self._known_names)

    def start_searching(self) -> None:
        """Start browsing; no-op while searching or once destroyed."""
        if self._state in (SessionState.SEARCHING, SessionState.DESTROYED):
            return

        try:
            if self._aiozc is None:
                self._aiozc = AsyncZeroconf()
            self._browser = AsyncServiceBrowser(
                self._aiozc.zeroconf, self._service_type, listener=ReceiverServiceListener(self)
            )
        except OSError as e:
            logger.warning("Could not start receiver discovery: %s", e)
            self.destroy()
            return

        self._state = SessionState.SEARCHING
        logger.debug("Started mDNS discovery for %s", self._service_type)

    def stop_searching(self) -> None:
        """Stop browsing but keep the session reusable."""
        if self._state is not SessionState.SEARCHING:
            return
        browser, self._browser = self._browser, None
        self._cancel_lookups()
        if browser is not None:
            self._track_shutdown(browser.async_cancel())
        self._state = SessionState.STOPPED
        logger.debug("Stopped mDNS discovery")

    def destroy(self) -> None:
        """Release sockets; the session is unusable afterwards."""
        if self._state is SessionState.DESTROYED:
            return
        browser, self._browser = self._browser, None
        aiozc, self._aiozc = self._aiozc, None
        self._cancel_lookups()
        if browser is not None or aiozc is not None:
            self._track_shutdown(self._shutdown(browser, aiozc))
        self._state = SessionState.DESTROYED

    async def aclose(self) -> None:
        """Destroy the session and wait until its sockets are closed."""
        self.destroy()
        pending = self._lookups | self._shutdowns
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def lookup_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        """Resolve an announced service in the background and report it."""
        if self._state is not SessionState.SEARCHING:
            return
        task = asyncio.ensure_future(self._lookup(zc, type_, name))
        self._lookups.add(task)
        task.add_done_callback(self._lookups.discard)

    async def _lookup(self, zc: Zeroconf, type_: str, name: str) -> None:
        info = AsyncServiceInfo(type_, name)
        if not await info.async_request(zc, SERVICE_INFO_TIMEOUT_MS):
            logger.debug("Could not get info for service: %s", name)
            return

        addresses = info.parsed_addresses()
        if not addresses:
            logger.debug("No addresses found for service: %s", name)
            return
        self.report_address(addresses[0], _announced_name(info, name, type_))

    def report_address(self, address: str, name: str = "") -> None:
        """Record an announced receiver and emit it while searching.

        Args:
            address: Receiver IP address.
            name: Announced name, may be empty.
        """
        if name:
            self._known_names[address] = name
        if self._state is SessionState.SEARCHING:
            self.address_observed.emit(address)

    def _cancel_lookups(self) -> None:
        for task in self._lookups:
            task.cancel()

    def _track_shutdown(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.ensure_future(coro)
        self._shutdowns.add(task)
        task.add_done_callback(self._shutdowns.discard)

    @staticmethod
    async def _shutdown(browser: AsyncServiceBrowser | None, aiozc: AsyncZeroconf | None) -> None:
        if browser is not None:
            await browser.async_cancel()
        if aiozc is not None:
            await aiozc.async_close()


class ReceiverNameResolver:
    """Resolves a display name for a discovered receiver address.

    Names announced over mDNS by the attached session win; otherwise a
    reverse DNS lookup is tried.
    """

    def __init__(self) -> None:
        self._session: ZeroconfDiscoverySession | None = None

    def attach(self, session: ZeroconfDiscoverySession) -> None:
        """Use names announced to session from now on."""
        self._session = session

    async def resolve_display_name(self, address: str) -> str | None:
        """Return a display name for address, or None if unknown.

        Args:
            address: Receiver IP address.

        Returns:
            Display name, or None when nothing better than the address exists.
        """
        if self._session is not None:
            announced = self._session.known_names.get(address)
            if announced:
                return announced

        loop = asyncio.get_running_loop()
        try:
            hostname, _aliases, _addrs = await loop.run_in_executor(
                None, socket.gethostbyaddr, address
            )
        except OSError as e:
            logger.debug("Reverse lookup failed for %s: %s", address, e)
            return None

        # Drop the domain part ("denon-avr.local" -> "denon-avr")
        short_name = hostname.split(".", 1)[0]
        return short_name or None

