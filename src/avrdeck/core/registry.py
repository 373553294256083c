"""Registry owning one live connection per receiver host."""

import asyncio
import logging
from collections.abc import Callable

from avrdeck.api.connection import ReceiverConnection
from avrdeck.models.receiver import ReceiverEvent

logger = logging.getLogger(__name__)

# Type aliases for injected collaborators
ConnectionFactory = Callable[[str, str], ReceiverConnection]
EventHandler = Callable[[ReceiverEvent], None]


class ConnectionRegistry:
    """Owns ReceiverConnections keyed by host.

    At most one connection exists per host. Concurrent first references to
    the same host share a single in-flight creation, and a new connection to
    a host is only built once the previous one has finished closing.

    Example:
        registry = ConnectionRegistry(ReceiverConnection)
        registry.set_event_handler(controller.on_receiver_event)
        conn = await registry.get_or_create("192.168.1.50", "Living Room")
    """

    def __init__(self, factory: ConnectionFactory) -> None:
        """Initialize the registry.

        Args:
            factory: Builds an unopened connection from (host, name_hint).
        """
        self._factory = factory
        self._on_event: EventHandler | None = None
        self._connections: dict[str, ReceiverConnection] = {}
        self._creating: dict[str, asyncio.Future[ReceiverConnection | None]] = {}
        self._closing: dict[str, asyncio.Future[None]] = {}

    def set_event_handler(self, on_event: EventHandler | None) -> None:
        """Set the handler receiving every event of every connection.

        Args:
            on_event: Event handler, or None to drop events.
        """
        self._on_event = on_event

    @property
    def hosts(self) -> list[str]:
        """Return hosts with a live connection."""
        return list(self._connections)

    def __contains__(self, host: object) -> bool:
        return host in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def get(self, host: str) -> ReceiverConnection | None:
        """Return the connection for host without creating one."""
        return self._connections.get(host)

    async def get_or_create(self, host: str, name_hint: str = "") -> ReceiverConnection | None:
        """Return the connection for host, creating and opening it if needed.

        Args:
            host: Receiver host (the deduplication key).
            name_hint: Display name used only when a new connection is built.

        Returns:
            The shared connection, or None if it could not be created.

        Raises:
            ValueError: If host is empty.
        """
        if not host:
            raise ValueError("Receiver host must not be empty")

        while True:
            existing = self._connections.get(host)
            if existing is not None:
                return existing

            pending = self._creating.get(host)
            if pending is not None:
                return await asyncio.shield(pending)

            closing = self._closing.get(host)
            if closing is None:
                break
            await asyncio.shield(closing)

        future: asyncio.Future[ReceiverConnection | None] = (
            asyncio.get_running_loop().create_future()
        )
        self._creating[host] = future
        connection: ReceiverConnection | None = None
        try:
            connection = await self._create(host, name_hint)
        finally:
            del self._creating[host]
            future.set_result(connection)
        return connection

    async def _create(self, host: str, name_hint: str) -> ReceiverConnection | None:
        logger.info("Creating new receiver connection to %s.", host)
        try:
            connection = self._factory(host, name_hint)
        except Exception:
            logger.exception("Could not create connection to %s", host)
            return None

        connection.event_occurred.connect(self._dispatch)
        try:
            await connection.open()
        except Exception:
            logger.exception("Could not open connection to %s", host)
            connection.event_occurred.disconnect(self._dispatch)
            return None

        self._connections[host] = connection
        return connection

    def _dispatch(self, event: ReceiverEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)

    async def release(self, host: str) -> bool:
        """Close and forget the connection for host.

        Args:
            host: Receiver host.

        Returns:
            True if a connection was removed.
        """
        connection = self._connections.pop(host, None)
        if connection is None:
            return False
        logger.info("Closing receiver connection to %s.", host)
        closed: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._closing[host] = closed
        try:
            await connection.close()
        finally:
            connection.event_occurred.disconnect(self._dispatch)
            del self._closing[host]
            closed.set_result(None)
        return True

    async def close_all(self) -> None:
        """Close every connection (shutdown)."""
        for host in list(self._connections):
            await self.release(host)
