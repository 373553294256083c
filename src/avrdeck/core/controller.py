"""LifecycleController - binds surface controls to shared receiver connections.

The controller receives control and inspector lifecycle notifications from
the control surface and orchestrates the connection registry, the
association table and discovery. It is also the single dispatch point for
events from every receiver connection.

    willAppear        -> ConnectionRegistry.get_or_create -> AssociationTable.bind
    willDisappear     -> AssociationTable.unbind
    inspector appear  -> DiscoveryCoordinator.start_searching
    inspector vanish  -> DiscoveryCoordinator.stop_searching
    receiver events   -> statusMsg write-back
"""

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from PySide6.QtCore import QObject, Signal

from avrdeck.api.connection import ReceiverConnection
from avrdeck.core.associations import AssociationTable
from avrdeck.core.config import StatusScope
from avrdeck.core.discovery import DiscoveryCoordinator
from avrdeck.core.inspector import InspectorChannel
from avrdeck.core.registry import ConnectionRegistry
from avrdeck.core.settings_store import ActionSettingsStore
from avrdeck.models.discovered import DiscoveredReceiver
from avrdeck.models.receiver import ReceiverEvent
from avrdeck.models.settings import ActionSettings

logger = logging.getLogger(__name__)

EVENT_USER_CHOSE_RECEIVER = "userChoseReceiver"
EVENT_GET_DISCOVERED_RECEIVERS = "getDiscoveredReceivers"

STATUS_NO_RECEIVER = "No receiver selected."


class LifecycleController(QObject):
    """Glues many surface controls to a small set of receiver connections.

    The registry and association table are injected so several independent
    controllers can coexist (e.g. in tests). The constructor routes every
    registry connection event to ``on_receiver_event``.

    All operations on one control id run under that control's lock, in
    arrival order.

    Signals:
        receiver_state_changed: Emitted with (host, ReceiverEvent) for power,
            volume and mute changes, for the rendering layer.

    Example:
        controller = LifecycleController(
            ConnectionRegistry(ReceiverConnection), AssociationTable(),
            discovery, settings_store, inspector,
        )
        await controller.on_will_appear("ctx-1", {"host": "192.168.1.50"})
    """

    receiver_state_changed = Signal(str, object)

    def __init__(
        self,
        registry: ConnectionRegistry,
        associations: AssociationTable,
        discovery: DiscoveryCoordinator,
        settings_store: ActionSettingsStore,
        inspector: InspectorChannel,
        status_scope: StatusScope = StatusScope.FOCUSED,
        keep_warm: bool = True,
    ) -> None:
        """Initialize the controller.

        Args:
            registry: Shared connection registry.
            associations: Control -> host bindings.
            discovery: Discovery coordinator for the inspector.
            settings_store: Per-control persisted settings.
            inspector: Channel to the open property inspector.
            status_scope: Which controls receive status updates.
            keep_warm: Keep connections open after their last control unbinds.
        """
        super().__init__()
        self._registry = registry
        self._associations = associations
        self._discovery = discovery
        self._settings = settings_store
        self._inspector = inspector
        self._status_scope = status_scope
        self._keep_warm = keep_warm
        self._control_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()
        self._status_tasks: set[asyncio.Future[None]] = set()

        self._registry.set_event_handler(self.on_receiver_event)
        self._discovery.receivers_changed.connect(self._on_receivers_changed)

    @property
    def registry(self) -> ConnectionRegistry:
        """Return the connection registry."""
        return self._registry

    @property
    def associations(self) -> AssociationTable:
        """Return the association table."""
        return self._associations

    @property
    def settings_store(self) -> ActionSettingsStore:
        """Return the per-control settings store."""
        return self._settings

    @asynccontextmanager
    async def _lock_for(self, control_id: str) -> AsyncIterator[None]:
        """Hold the control's lock; it is dropped once no one holds or awaits it."""
        lock = self._control_locks.get(control_id)
        if lock is None:
            lock = self._control_locks[control_id] = asyncio.Lock()
        self._lock_users[control_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[control_id] -= 1
            if not self._lock_users[control_id]:
                del self._lock_users[control_id]
                del self._control_locks[control_id]

    # -- Inspector lifecycle ---------------------------------------------------

    async def on_property_inspector_did_appear(self, control_id: str) -> None:
        """Start discovery and show the bound receiver's status.

        Args:
            control_id: Control whose inspector opened.
        """
        logger.debug("Inspector appeared for %s", control_id)
        self._inspector.set_current(control_id)
        self._discovery.start_searching()

        connection = await self.get_connection_for_control(control_id)
        if connection is not None:
            await self.set_status_message(control_id, connection.status_msg)

    async def on_property_inspector_did_disappear(self, control_id: str) -> None:
        """Stop discovery and clear the control's status text.

        Args:
            control_id: Control whose inspector closed.
        """
        logger.debug("Inspector disappeared for %s", control_id)
        self._discovery.stop_searching()
        if self._inspector.current_control_id == control_id:
            self._inspector.set_current(None)
        await self.set_status_message(control_id, "")

    async def get_connection_for_control(self, control_id: str) -> ReceiverConnection | None:
        """Return the connection a control reads from, if any.

        The association table wins; a control that has not been bound yet
        falls back to the host stored in its settings.
        """
        host = self._associations.host_of(control_id)
        if host is None:
            settings = await self._settings.get_settings(control_id)
            host = settings.host
        return self._registry.get(host) if host else None

    # -- Control lifecycle -----------------------------------------------------

    async def on_will_appear(
        self, control_id: str, settings: Mapping[str, object] | None = None
    ) -> None:
        """Bind a control that is about to be shown to its receiver.

        Args:
            control_id: Control instance id.
            settings: Settings delivered with the event (read from the store if None).
        """
        logger.debug("willAppear for control %s", control_id)
        async with self._lock_for(control_id):
            stored = await self._settings.get_settings(control_id)
            if settings is None:
                action_settings = stored
            else:
                action_settings = ActionSettings.from_dict(settings).with_status(stored.status_msg)
            if not action_settings.host:
                return
            if action_settings != stored:
                await self._settings.set_settings(control_id, action_settings)

            host = action_settings.host
            if self._associations.host_of(control_id) == host and host in self._registry:
                return
            await self._bind(control_id, action_settings)

    async def on_will_disappear(self, control_id: str) -> None:
        """Unbind a control that is leaving the surface.

        The connection stays open while other controls use it, and
        afterwards too unless keep_warm is off.
        """
        logger.debug("willDisappear for control %s", control_id)
        async with self._lock_for(control_id):
            host = self._associations.unbind(control_id)
        if host is not None:
            await self._release_if_unused(host)

    # -- Inspector messages ----------------------------------------------------

    async def on_send_to_plugin(self, control_id: str, payload: Mapping[str, Any]) -> None:
        """Handle a message from the property inspector.

        Args:
            control_id: Control whose inspector sent the message.
            payload: Message with an "event" key.
        """
        event = payload.get("event")
        if event == EVENT_USER_CHOSE_RECEIVER:
            await self.connect_receiver(control_id, payload.get("settings"))
        elif event == EVENT_GET_DISCOVERED_RECEIVERS:
            self.send_discovered_receivers()
        else:
            logger.warning("Received unknown event: %s", event)

    async def connect_receiver(
        self, control_id: str, settings: Mapping[str, object] | None = None
    ) -> ReceiverConnection | None:
        """Bind a control to the receiver named in settings.

        Supersedes any previous binding of the control. Settings that arrive
        with the request are persisted.

        Args:
            control_id: Control instance id.
            settings: Settings from the inspector, or None to use stored ones.

        Returns:
            The bound connection, or None if nothing was bound.
        """
        async with self._lock_for(control_id):
            stored = await self._settings.get_settings(control_id)
            if settings is None:
                action_settings = stored
            else:
                action_settings = ActionSettings.from_dict(settings).with_status(
                    stored.status_msg
                )
                await self._settings.set_settings(control_id, action_settings)
            return await self._bind(control_id, action_settings)

    def send_discovered_receivers(self) -> None:
        """Send the discovered receiver list to the inspector, if non-empty."""
        items = self._discovery.get_discovered_list()
        if not items:
            return
        self._inspector.send_to_property_inspector(
            {"event": EVENT_GET_DISCOVERED_RECEIVERS, "items": items}
        )

    def _on_receivers_changed(self, receivers: list[DiscoveredReceiver]) -> None:  # noqa: ARG002
        self.send_discovered_receivers()

    # -- Binding ---------------------------------------------------------------

    async def _bind(
        self, control_id: str, settings: ActionSettings
    ) -> ReceiverConnection | None:
        """Get or create the connection and associate the control with it.

        Must run under the control's lock.
        """
        if not settings.host:
            await self.set_status_message(control_id, STATUS_NO_RECEIVER)
            return None

        connection = await self._registry.get_or_create(settings.host, settings.name)
        if connection is None:
            await self.set_status_message(control_id, f"Could not connect to {settings.host}.")
            return None

        previous = self._associations.bind(control_id, connection.host)
        await self.set_status_message(control_id, connection.status_msg)
        if previous is not None and previous != connection.host:
            await self._release_if_unused(previous)
        return connection

    async def _release_if_unused(self, host: str) -> None:
        if self._keep_warm or self._associations.count_for(host) > 0:
            return
        await self._registry.release(host)

    # -- Receiver events -------------------------------------------------------

    def on_receiver_event(self, event: ReceiverEvent) -> None:
        """Dispatch an event from any receiver connection.

        Status-bearing events update the status text of the controls selected
        by the status scope. Power, volume and mute changes are forwarded via
        receiver_state_changed and never touch status text.
        """
        if not event.kind.is_status_bearing:
            logger.debug("%s from %s", event.kind.value, event.host)
            self.receiver_state_changed.emit(event.host, event)
            return

        connection = self._registry.get(event.host)
        status_msg = connection.status_msg if connection is not None else event.status_msg
        for control_id in self._status_targets(event.host):
            task = asyncio.ensure_future(self.set_status_message(control_id, status_msg))
            self._status_tasks.add(task)
            task.add_done_callback(self._status_tasks.discard)
            task.add_done_callback(_log_task_error)

    def _status_targets(self, host: str) -> list[str]:
        if self._status_scope is StatusScope.BOUND:
            return self._associations.controls_for(host)
        current = self._inspector.current_control_id
        if current is not None and self._associations.host_of(current) == host:
            return [current]
        return []

    async def set_status_message(self, control_id: str, status_msg: str) -> None:
        """Write the status text into a control's persisted settings.

        Args:
            control_id: Control instance id.
            status_msg: New status text (empty to clear).
        """
        settings = await self._settings.get_settings(control_id)
        if settings.status_msg == status_msg:
            return
        await self._settings.set_settings(control_id, settings.with_status(status_msg))

    async def shutdown(self) -> None:
        """Stop discovery and close all connections."""
        await self._discovery.aclose()
        await self._registry.close_all()


def _log_task_error(task: "asyncio.Future[None]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Status update failed: %s", exc, exc_info=exc)
