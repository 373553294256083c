"""Data models for receivers, discovery results and control settings."""

from avrdeck.models.discovered import NO_SELECTION_LABEL, DiscoveredReceiver, no_selection_item
from avrdeck.models.receiver import ReceiverEvent, ReceiverEventKind, ReceiverState
from avrdeck.models.settings import ActionSettings

__all__ = [
    "ActionSettings",
    "DiscoveredReceiver",
    "NO_SELECTION_LABEL",
    "ReceiverEvent",
    "ReceiverEventKind",
    "ReceiverState",
    "no_selection_item",
]
