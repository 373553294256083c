"""Plugin-wide configuration using QSettings for persistent storage."""

import logging
from enum import Enum

from PySide6.QtCore import QSettings

from avrdeck.api.discovery import RECEIVER_SERVICE_TYPE

logger = logging.getLogger(__name__)

# Connections
_KEY_KEEP_WARM = "connections/keep_warm"
_KEY_PORT = "connections/port"
_KEY_RECONNECT_DELAY = "connections/reconnect_delay"

# Status propagation
_KEY_STATUS_SCOPE = "status/scope"

# Discovery
_KEY_SERVICE_TYPE = "discovery/service_type"


class StatusScope(str, Enum):
    """Which controls receive a connection's status updates."""

    FOCUSED = "focused"  # only the control whose inspector is open
    BOUND = "bound"  # every control bound to the receiver


class ConfigManager:
    """Wrapper around QSettings for type-safe config access.

    QSettings stores config in platform-specific locations:
    - Windows: HKEY_CURRENT_USER\\Software\\AVRDeck\\AVRDeck
    - macOS: ~/Library/Preferences/com.AVRDeck.AVRDeck.plist
    - Linux: ~/.config/AVRDeck/AVRDeck.conf

    Example:
        config = ConfigManager()
        if config.get_keep_warm():
            ...
    """

    def __init__(
        self,
        organization: str = "AVRDeck",
        application: str = "AVRDeck",
        settings: QSettings | None = None,
    ) -> None:
        """Initialize the config manager.

        Args:
            organization: Organization name for QSettings.
            application: Application name for QSettings.
            settings: Existing QSettings to use instead (e.g. an ini file in tests).
        """
        self._settings = settings if settings is not None else QSettings(organization, application)

    @property
    def settings(self) -> QSettings:
        """Return the underlying QSettings instance."""
        return self._settings

    # -- Connection settings ---------------------------------------------------

    def get_keep_warm(self) -> bool:
        """Return whether connections outlive their last bound control.

        Returns:
            True to keep connections open for the process lifetime (default).
        """
        return bool(self._settings.value(_KEY_KEEP_WARM, True, bool))

    def set_keep_warm(self, enabled: bool) -> None:
        """Enable or disable keeping unused connections open.

        Args:
            enabled: Whether to keep connections warm.
        """
        self._settings.setValue(_KEY_KEEP_WARM, enabled)

    def get_receiver_port(self) -> int:
        """Return the receiver control port.

        Returns:
            Port number (default 23).
        """
        value = self._settings.value(_KEY_PORT, 23, int)
        return max(1, min(65535, int(value)))  # type: ignore[arg-type]

    def set_receiver_port(self, port: int) -> None:
        """Set the receiver control port.

        Args:
            port: Port number (1-65535).
        """
        self._settings.setValue(_KEY_PORT, max(1, min(65535, port)))

    def get_reconnect_delay(self) -> int:
        """Return the initial reconnect delay in seconds.

        Returns:
            Delay in seconds (default 2).
        """
        value = self._settings.value(_KEY_RECONNECT_DELAY, 2, int)
        return max(1, min(30, int(value)))  # type: ignore[arg-type]

    def set_reconnect_delay(self, seconds: int) -> None:
        """Set the initial reconnect delay.

        Args:
            seconds: Delay in seconds (1-30).
        """
        self._settings.setValue(_KEY_RECONNECT_DELAY, max(1, min(30, seconds)))

    # -- Status settings -------------------------------------------------------

    def get_status_scope(self) -> StatusScope:
        """Return which controls receive status updates.

        Returns:
            StatusScope, default FOCUSED.
        """
        value = self._settings.value(_KEY_STATUS_SCOPE, StatusScope.FOCUSED.value, str)
        try:
            return StatusScope(value)
        except ValueError:
            logger.warning("Ignoring invalid status scope: %r", value)
            return StatusScope.FOCUSED

    def set_status_scope(self, scope: StatusScope) -> None:
        """Set which controls receive status updates.

        Args:
            scope: New scope.
        """
        self._settings.setValue(_KEY_STATUS_SCOPE, StatusScope(scope).value)

    # -- Discovery settings ----------------------------------------------------

    def get_service_type(self) -> str:
        """Return the mDNS service type browsed for receivers."""
        value = self._settings.value(_KEY_SERVICE_TYPE, RECEIVER_SERVICE_TYPE, str)
        return str(value) if value else RECEIVER_SERVICE_TYPE

    def set_service_type(self, service_type: str) -> None:
        """Set the mDNS service type browsed for receivers.

        Args:
            service_type: Fully-qualified service type, e.g. "_heos-audio._tcp.local.".
        """
        self._settings.setValue(_KEY_SERVICE_TYPE, service_type)

    # -- General settings ------------------------------------------------------

    def clear(self) -> None:
        """Clear all settings (useful for testing or reset)."""
        self._settings.clear()

    def sync(self) -> None:
        """Force settings to be written to disk."""
        self._settings.sync()
