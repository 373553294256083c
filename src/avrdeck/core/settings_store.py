"""Per-control settings persisted in QSettings.

Each control on the surface owns a small settings dict (receiver host, name
and the inspector status text). The store is async so callers treat every
read/write as a suspension point, like any other call across the control
surface boundary. Every write is also announced so the host can mirror it
into the surface's own settings.
"""

import logging

from PySide6.QtCore import QObject, QSettings, Signal

from avrdeck.models.settings import ActionSettings

logger = logging.getLogger(__name__)

_GROUP = "actions"


class ActionSettingsStore(QObject):
    """Settings store keyed by control id.

    Keys are laid out as ``actions/<control_id>/<field>``.

    Signals:
        settings_changed: Emitted with (control_id, ActionSettings) after
            every write.

    Example:
        store = ActionSettingsStore(QSettings("AVRDeck", "AVRDeck"))
        settings = await store.get_settings("ctx-1")
        await store.set_settings("ctx-1", settings.with_status("Connected."))
    """

    settings_changed = Signal(str, object)  # control_id, ActionSettings

    def __init__(self, settings: QSettings) -> None:
        """Initialize the store.

        Args:
            settings: QSettings backend shared with ConfigManager.
        """
        super().__init__()
        self._settings = settings

    @staticmethod
    def _key(control_id: str, field: str) -> str:
        if not control_id:
            raise ValueError("Control id must not be empty")
        return f"{_GROUP}/{control_id}/{field}"

    async def get_settings(self, control_id: str) -> ActionSettings:
        """Return the stored settings for a control (empty if none).

        Args:
            control_id: Control instance id.
        """
        return ActionSettings.from_dict(
            {
                field: self._settings.value(self._key(control_id, field), "", str)
                for field in ("host", "name", "statusMsg")
            }
        )

    async def set_settings(self, control_id: str, settings: ActionSettings) -> None:
        """Persist settings for a control and announce the change.

        Args:
            control_id: Control instance id.
            settings: Settings to store.
        """
        for field, value in settings.to_dict().items():
            self._settings.setValue(self._key(control_id, field), value)
        logger.debug("Settings for %s: %s", control_id, settings)
        self.settings_changed.emit(control_id, settings)
