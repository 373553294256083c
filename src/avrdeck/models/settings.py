"""Per-control persisted settings."""

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Self


@dataclass(frozen=True)
class ActionSettings:
    """Settings persisted for one control on the surface.

    Attributes:
        host: Address of the receiver this control drives (empty if unset).
        name: Receiver name chosen in the inspector (empty if unset).
        status_msg: Status text shown in the inspector.
    """

    host: str = ""
    name: str = ""
    status_msg: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, object] | None) -> Self:
        """Build settings from a wire-format dict.

        Unknown keys are ignored and non-string values are stringified.

        Args:
            data: Dict using the camelCase wire keys, or None.

        Returns:
            Parsed ActionSettings.
        """
        if not data:
            return cls()
        host = data.get("host")
        name = data.get("name")
        status = data.get("statusMsg")
        return cls(
            host=str(host).strip() if host else "",
            name=str(name) if name else "",
            status_msg=str(status) if status else "",
        )

    def to_dict(self) -> dict[str, str]:
        """Return the wire-format dict for these settings."""
        return {"host": self.host, "name": self.name, "statusMsg": self.status_msg}

    def with_status(self, status_msg: str) -> Self:
        """Return a copy with status_msg changed.

        Args:
            status_msg: New status text.

        Returns:
            New ActionSettings with updated status.
        """
        return replace(self, status_msg=status_msg)
