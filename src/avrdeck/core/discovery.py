"""Coordinates receiver discovery for the property inspector.

Owns the single discovery session and the list of receivers discovered since
discovery last (re)started.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

from PySide6.QtCore import QObject, Signal

from avrdeck.models.discovered import DiscoveredReceiver, no_selection_item

logger = logging.getLogger(__name__)


class DiscoverySession(Protocol):
    """What the coordinator needs from a discovery session."""

    address_observed: Any  # Signal(str)

    @property
    def is_destroyed(self) -> bool: ...

    def start_searching(self) -> None: ...

    def stop_searching(self) -> None: ...

    def destroy(self) -> None: ...

    async def aclose(self) -> None: ...


class NameResolver(Protocol):
    """Async display-name lookup for a receiver address."""

    async def resolve_display_name(self, address: str) -> str | None: ...


class SearchState(Enum):
    """Coordinator state."""

    IDLE = "idle"
    SEARCHING = "searching"
    SESSION_DESTROYED = "session_destroyed"


class DiscoveryCoordinator(QObject):
    """Starts/stops discovery and collects discovered receivers.

    Addresses are de-duplicated: an address that is already listed with a
    resolved name, or whose name is still being resolved, is ignored.

    Signals:
        receivers_changed: Emitted with the list of DiscoveredReceiver after
            every addition or rename.

    Example:
        coordinator = DiscoveryCoordinator(ZeroconfDiscoverySession, resolver)
        coordinator.receivers_changed.connect(send_list)
        coordinator.start_searching()
    """

    receivers_changed = Signal(object)  # list[DiscoveredReceiver]

    def __init__(
        self,
        session_factory: Callable[[], DiscoverySession],
        resolver: NameResolver,
    ) -> None:
        """Initialize the coordinator.

        Args:
            session_factory: Builds a fresh discovery session.
            resolver: Resolves display names for observed addresses.
        """
        super().__init__()
        self._session_factory = session_factory
        self._resolver = resolver
        self._session: DiscoverySession | None = None
        self._state = SearchState.IDLE
        self._receivers: list[DiscoveredReceiver] = []
        self._pending: set[str] = set()
        self._generation = 0
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SearchState:
        """Return the coordinator state."""
        if self._session is not None and self._session.is_destroyed:
            return SearchState.SESSION_DESTROYED
        return self._state

    @property
    def session(self) -> DiscoverySession | None:
        """Return the current session, if one was created."""
        return self._session

    @property
    def receivers(self) -> list[DiscoveredReceiver]:
        """Return receivers discovered since the last start, in discovery order."""
        return list(self._receivers)

    def start_searching(self) -> None:
        """Start discovery, replacing a destroyed session.

        Clears previously discovered receivers. No-op while already searching.
        The session itself is started on the next loop iteration, after its
        signal is connected.
        """
        session = self._session
        if self.state is SearchState.SEARCHING and session is not None:
            return

        if session is None or session.is_destroyed:
            if session is not None:
                logger.debug("Discovery session destroyed, creating a new one")
                session.address_observed.disconnect(self._on_address_observed)
            session = self._session_factory()
            session.address_observed.connect(self._on_address_observed)
            self._session = session

        self._receivers.clear()
        self._pending.clear()
        self._generation += 1
        self._state = SearchState.SEARCHING

        # Give the loop a chance to set up sockets before searching
        asyncio.get_running_loop().call_soon(self._start_session, session)

    def _start_session(self, session: DiscoverySession) -> None:
        if session is not self._session or self._state is not SearchState.SEARCHING:
            return
        session.start_searching()
        logger.debug("Receiver discovery started")

    def stop_searching(self) -> None:
        """Stop discovery; the session is kept for a later restart."""
        if self._session is None:
            return
        self._session.stop_searching()
        self._state = SearchState.IDLE
        logger.debug("Receiver discovery stopped")

    def get_discovered_list(self) -> list[dict[str, str]]:
        """Return dropdown items for the inspector.

        Returns:
            The "Select a receiver" sentinel followed by one item per receiver,
            or an empty list if nothing has been discovered.
        """
        if not self._receivers:
            return []
        return [no_selection_item(), *(r.as_item() for r in self._receivers)]

    def _find(self, address: str) -> int | None:
        for index, receiver in enumerate(self._receivers):
            if receiver.address == address:
                return index
        return None

    def _on_address_observed(self, address: str) -> None:
        if address in self._pending:
            return
        index = self._find(address)
        if index is not None and self._receivers[index].has_resolved_name:
            return

        self._pending.add(address)
        task = asyncio.ensure_future(self._resolve(address, self._generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _resolve(self, address: str, generation: int) -> None:
        try:
            name = await self._resolver.resolve_display_name(address)
        except Exception:
            logger.warning("Name resolution failed for %s", address, exc_info=True)
            name = None

        if generation != self._generation:
            # Discovery restarted meanwhile; the new session reports it again
            return
        self._pending.discard(address)

        receiver = DiscoveredReceiver(name=name or address, address=address)
        index = self._find(address)
        if index is None:
            self._receivers.append(receiver)
            logger.info("Discovered receiver %s at %s", receiver.name, address)
        elif receiver.has_resolved_name:
            self._receivers[index] = receiver
        else:
            return
        self.receivers_changed.emit(self.receivers)

    async def aclose(self) -> None:
        """Cancel pending name lookups and close the session."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._session is not None:
            await self._session.aclose()
        self._state = SearchState.IDLE
