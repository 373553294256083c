"""Channel from the plugin to the property inspector."""

import logging
from typing import Any

from PySide6.QtCore import QObject, Signal

logger = logging.getLogger(__name__)


class InspectorChannel(QObject):
    """Tracks the focused control and carries messages to its inspector.

    Only one inspector is open at a time; the control it belongs to is the
    "current" control.

    Signals:
        message_sent: Emitted with (control_id, payload) for every message.
    """

    message_sent = Signal(str, object)

    def __init__(self) -> None:
        super().__init__()
        self._current: str | None = None

    @property
    def current_control_id(self) -> str | None:
        """Return the control whose inspector is open, if any."""
        return self._current

    def set_current(self, control_id: str | None) -> None:
        """Set (or clear with None) the focused control."""
        self._current = control_id

    def send_to_property_inspector(self, payload: dict[str, Any]) -> bool:
        """Send a message to the open inspector.

        Args:
            payload: JSON-serializable message.

        Returns:
            True if an inspector was open to receive it.
        """
        if self._current is None:
            logger.debug("No inspector open, dropping %s", payload.get("event"))
            return False
        self.message_sent.emit(self._current, payload)
        return True
