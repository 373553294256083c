"""Core orchestration layer.

This module binds surface controls to shared receiver connections and runs
receiver discovery for the property inspector.

Classes:
    ConnectionRegistry: One connection per receiver host.
    AssociationTable: Control id -> host bindings.
    DiscoveryCoordinator: Discovery session and discovered receivers.
    LifecycleController: Reacts to control and inspector lifecycle events.
    ConfigManager: QSettings wrapper for plugin configuration.
    ActionSettingsStore: QSettings-backed per-control settings.
    InspectorChannel: Messages to the open property inspector.
"""

from avrdeck.core.associations import AssociationTable
from avrdeck.core.config import ConfigManager, StatusScope
from avrdeck.core.controller import LifecycleController
from avrdeck.core.discovery import DiscoveryCoordinator, SearchState
from avrdeck.core.inspector import InspectorChannel
from avrdeck.core.registry import ConnectionRegistry
from avrdeck.core.settings_store import ActionSettingsStore

__all__ = [
    "ActionSettingsStore",
    "AssociationTable",
    "ConfigManager",
    "ConnectionRegistry",
    "DiscoveryCoordinator",
    "InspectorChannel",
    "LifecycleController",
    "SearchState",
    "StatusScope",
]
