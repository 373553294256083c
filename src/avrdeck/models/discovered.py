"""Discovered receiver model."""

from dataclasses import dataclass

# Leading entry of every list sent to the inspector
NO_SELECTION_LABEL = "Select a receiver"


@dataclass(frozen=True)
class DiscoveredReceiver:
    """A receiver seen on the local network.

    Attributes:
        name: Display name, or the address when no name could be resolved.
        address: IP address of the receiver.
    """

    name: str
    address: str

    @property
    def has_resolved_name(self) -> bool:
        """Return True if the name differs from the raw address."""
        return bool(self.name) and self.name != self.address

    def as_item(self) -> dict[str, str]:
        """Return the inspector dropdown item for this receiver."""
        return {"label": self.name or self.address, "value": self.address}


def no_selection_item() -> dict[str, str]:
    """Return the sentinel item that heads the discovered list."""
    return {"label": NO_SELECTION_LABEL, "value": ""}
