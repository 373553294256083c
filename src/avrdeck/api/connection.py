"""Live TCP session to a network AV receiver.

One ReceiverConnection exists per receiver host. It keeps the socket open,
reconnects with exponential backoff, tracks a human-readable status text and
reports everything through a single ``event_occurred`` signal carrying a
ReceiverEvent.

Decoding the receiver's telemetry lines is left to the protocol layer; state
reported by that layer is applied with ``apply_state``.
"""

import asyncio
import logging
from contextlib import suppress
from dataclasses import replace

from PySide6.QtCore import QObject, Signal

from avrdeck.models.receiver import ReceiverEvent, ReceiverEventKind, ReceiverState

logger = logging.getLogger(__name__)

DEFAULT_PORT = 23
MAX_RECONNECT_DELAY = 30.0

STATUS_CONNECTING = "Connecting…"
STATUS_CONNECTED = "Connected."
STATUS_CLOSED = "Connection closed."

# Receivers terminate messages with a carriage return
_LINE_TERMINATOR = b"\r"

_STATE_EVENTS = {
    "power": ReceiverEventKind.POWER_CHANGED,
    "volume": ReceiverEventKind.VOLUME_CHANGED,
    "muted": ReceiverEventKind.MUTE_CHANGED,
}


class ReceiverConnection(QObject):
    """Persistent session to one receiver.

    Example:
        conn = ReceiverConnection("192.168.1.50", "Living Room")
        conn.event_occurred.connect(lambda ev: print(ev.kind, ev.status_msg))
        await conn.open()
        ...
        await conn.close()
    """

    event_occurred = Signal(object)  # ReceiverEvent

    def __init__(
        self,
        host: str,
        name: str = "",
        port: int = DEFAULT_PORT,
        reconnect_delay: float = 2.0,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the connection (does not touch the network).

        Args:
            host: Receiver hostname or IP address.
            name: Display name hint, may be empty.
            port: TCP control port.
            reconnect_delay: Initial delay between reconnect attempts in seconds.
            timeout: Connect timeout in seconds.

        Raises:
            ValueError: If host is empty.
        """
        super().__init__()
        if not host:
            raise ValueError("Receiver host must not be empty")
        self._host = host
        self._name = name
        self._port = port
        self._reconnect_delay = reconnect_delay
        self._timeout = timeout
        self._status_msg = STATUS_CONNECTING
        self._state = ReceiverState()
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._task: asyncio.Task[None] | None = None
        self._should_run = False

    @property
    def host(self) -> str:
        """Return receiver host."""
        return self._host

    @property
    def name(self) -> str:
        """Return display name, falling back to host."""
        return self._name or self._host

    @property
    def port(self) -> int:
        """Return receiver control port."""
        return self._port

    @property
    def status_msg(self) -> str:
        """Return the current status text."""
        return self._status_msg

    @property
    def state(self) -> ReceiverState:
        """Return the last known receiver state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Return True while the socket is open."""
        return self._writer is not None and not self._writer.is_closing()

    @property
    def is_open(self) -> bool:
        """Return True between open() and close()."""
        return self._task is not None and not self._task.done()

    async def open(self) -> None:
        """Start the background connection loop.

        Returns immediately; progress is reported through events.
        """
        if self.is_open:
            return
        self._should_run = True
        self._set_status(STATUS_CONNECTING)
        self._task = asyncio.create_task(self._connection_loop())

    async def close(self) -> None:
        """Stop reconnecting and close the socket."""
        self._should_run = False
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self._close_socket()
        self._set_status(STATUS_CLOSED, ReceiverEventKind.CLOSED)

    async def send_command(self, command: str) -> None:
        """Send a raw command line to the receiver.

        Args:
            command: Command text without terminator.

        Raises:
            ConnectionError: If not connected.
        """
        if not self.is_connected or self._writer is None:
            raise ConnectionError(f"Not connected to {self._host}")
        self._writer.write(command.encode("ascii") + _LINE_TERMINATOR)
        await asyncio.wait_for(self._writer.drain(), timeout=self._timeout)

    def apply_state(self, **changes: object) -> None:
        """Merge reported state and emit one event per changed field.

        Args:
            **changes: Any of power, volume, muted, source.

        Raises:
            TypeError: If an unknown field is passed.
        """
        new_state = replace(self._state, **changes)  # type: ignore[arg-type]
        old_state = self._state
        self._state = new_state
        for field_name, kind in _STATE_EVENTS.items():
            if getattr(old_state, field_name) != getattr(new_state, field_name):
                self._emit(kind)

    def _set_status(
        self, status_msg: str, kind: ReceiverEventKind = ReceiverEventKind.STATUS
    ) -> None:
        self._status_msg = status_msg
        self._emit(kind)

    def _emit(self, kind: ReceiverEventKind) -> None:
        self.event_occurred.emit(ReceiverEvent(kind, self._host, self._status_msg))

    async def _connection_loop(self) -> None:
        """Connect, read until the socket drops, then retry with backoff."""
        delay = self._reconnect_delay

        while self._should_run:
            try:
                self._reader, self._writer = await asyncio.wait_for(
                    asyncio.open_connection(self._host, self._port),
                    timeout=self._timeout,
                )
                logger.info("Connected to receiver %s:%d", self._host, self._port)
                self._set_status(STATUS_CONNECTED, ReceiverEventKind.CONNECTED)
                delay = self._reconnect_delay

                await self._read_loop()

                await self._close_socket()
                if not self._should_run:
                    break
                self._set_status(
                    f"Connection lost, retrying in {delay:.0f}s.", ReceiverEventKind.CLOSED
                )
            except (OSError, ConnectionError, TimeoutError) as e:
                await self._close_socket()
                logger.warning("Connection to %s failed: %s", self._host, e)
                self._set_status(f"Could not connect, retrying in {delay:.0f}s.")

            await asyncio.sleep(delay)
            delay = min(delay * 2, MAX_RECONNECT_DELAY)
            if self._should_run:
                self._set_status(STATUS_CONNECTING)

    async def _read_loop(self) -> None:
        if self._reader is None:
            return
        while self._should_run:
            try:
                line = await self._reader.readuntil(_LINE_TERMINATOR)
            except asyncio.IncompleteReadError:
                # Receiver closed the connection
                break
            except asyncio.LimitOverrunError as e:
                logger.debug("Discarding oversized message from %s: %s", self._host, e)
                await self._reader.read(e.consumed)
                continue
            self._handle_line(line.rstrip(_LINE_TERMINATOR).decode("ascii", errors="replace"))

    def _handle_line(self, line: str) -> None:
        logger.debug("%s <- %s", self._host, line)

    async def _close_socket(self) -> None:
        if self._writer:
            try:
                self._writer.close()
                await asyncio.wait_for(self._writer.wait_closed(), timeout=1.0)
            except (OSError, TimeoutError):
                pass
            self._writer = None
        self._reader = None
