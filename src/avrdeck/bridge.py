"""JSON-lines bridge between the control-surface host and the controller.

The host writes one JSON event per line::

    {"event": "willAppear", "context": "ctx-1", "payload": {"settings": {...}}}

Messages for the property inspector and settings changes (status text
included) are written back as::

    {"event": "sendToPropertyInspector", "context": "ctx-1", "payload": {...}}
    {"event": "setSettings", "context": "ctx-1", "payload": {"host": ..., "statusMsg": ...}}

Each event is handled in its own task so slow lookups never block the
stream; per-control ordering is kept by the controller.
"""

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from typing import Any

from avrdeck.core.controller import LifecycleController
from avrdeck.core.inspector import InspectorChannel
from avrdeck.models.settings import ActionSettings

logger = logging.getLogger(__name__)


class EventBridge:
    """Feeds host events into a LifecycleController.

    Example:
        bridge = EventBridge(controller, inspector, write=print)
        await bridge.run(reader)
    """

    def __init__(
        self,
        controller: LifecycleController,
        inspector: InspectorChannel,
        write: Callable[[str], None],
    ) -> None:
        """Initialize the bridge.

        Args:
            controller: Controller receiving the events.
            inspector: Channel whose messages are forwarded to the host.
                Settings written through the controller's store are forwarded too.
            write: Writes one serialized line to the host.
        """
        self._controller = controller
        self._write = write
        self._tasks: set[asyncio.Task[None]] = set()
        inspector.message_sent.connect(self._on_message_sent)
        controller.settings_store.settings_changed.connect(self._on_settings_changed)

    def _on_message_sent(self, control_id: str, payload: dict[str, Any]) -> None:
        message = {"event": "sendToPropertyInspector", "context": control_id, "payload": payload}
        self._write(json.dumps(message))

    def _on_settings_changed(self, control_id: str, settings: ActionSettings) -> None:
        message = {"event": "setSettings", "context": control_id, "payload": settings.to_dict()}
        self._write(json.dumps(message))

    def handle_line(self, line: str) -> asyncio.Task[None] | None:
        """Parse one line and schedule its handling.

        Args:
            line: Raw line from the host.

        Returns:
            The task handling the event, or None if the line was skipped.
        """
        line = line.strip()
        if not line:
            return None
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("Ignoring malformed event line: %s", e)
            return None
        if not isinstance(message, dict) or "event" not in message:
            logger.warning("Ignoring event without a name: %r", message)
            return None

        task = asyncio.ensure_future(self.dispatch(message))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: "asyncio.Task[None]") -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Event handler failed", exc_info=task.exception())

    async def dispatch(self, message: Mapping[str, Any]) -> None:
        """Route one decoded event to the controller.

        Args:
            message: Event dict with "event", "context" and optional "payload".
        """
        event = message.get("event")
        control_id = str(message.get("context") or "")
        payload = message.get("payload") or {}
        if not isinstance(payload, Mapping):
            payload = {}

        if not control_id:
            logger.warning("Ignoring %s event without context", event)
            return

        if event == "willAppear":
            await self._controller.on_will_appear(control_id, payload.get("settings"))
        elif event == "willDisappear":
            await self._controller.on_will_disappear(control_id)
        elif event == "propertyInspectorDidAppear":
            await self._controller.on_property_inspector_did_appear(control_id)
        elif event == "propertyInspectorDidDisappear":
            await self._controller.on_property_inspector_did_disappear(control_id)
        elif event == "sendToPlugin":
            await self._controller.on_send_to_plugin(control_id, payload)
        else:
            logger.warning("Received unknown event: %s", event)

    async def run(self, reader: asyncio.StreamReader) -> None:
        """Handle events until the host closes the stream.

        Args:
            reader: Stream carrying newline-delimited JSON.
        """
        while True:
            line = await reader.readline()
            if not line:
                break
            self.handle_line(line.decode("utf-8", errors="replace"))
        await self.drain()

    async def drain(self) -> None:
        """Wait for all in-flight event handlers."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
