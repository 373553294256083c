"""Receiver-side models: connection events and live receiver state."""

from dataclasses import dataclass
from enum import Enum


class ReceiverEventKind(str, Enum):
    """Kinds of events a receiver connection can emit.

    Values match the event names used on the control-surface side.
    """

    STATUS = "status"
    CONNECTED = "connected"
    CLOSED = "closed"
    POWER_CHANGED = "powerChanged"
    VOLUME_CHANGED = "volumeChanged"
    MUTE_CHANGED = "muteChanged"

    @property
    def is_status_bearing(self) -> bool:
        """Return True if the event carries a new status text."""
        return self in _STATUS_BEARING


_STATUS_BEARING = frozenset(
    {ReceiverEventKind.STATUS, ReceiverEventKind.CONNECTED, ReceiverEventKind.CLOSED}
)


@dataclass(frozen=True, slots=True)
class ReceiverEvent:
    """An event emitted by a receiver connection.

    Attributes:
        kind: What happened.
        host: Host of the connection that emitted the event.
        status_msg: The connection's status text at emission time.
    """

    kind: ReceiverEventKind
    host: str
    status_msg: str = ""


@dataclass(frozen=True, slots=True)
class ReceiverState:
    """Last known state of a receiver.

    None means the value has not been reported yet.

    Attributes:
        power: Whether the receiver is powered on.
        volume: Master volume as reported by the receiver.
        muted: Whether master output is muted.
        source: Currently selected input source.
    """

    power: bool | None = None
    volume: float | None = None
    muted: bool | None = None
    source: str | None = None

    @property
    def is_known(self) -> bool:
        """Return True once any value has been reported."""
        return any(v is not None for v in (self.power, self.volume, self.muted, self.source))
