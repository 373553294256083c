"""Mapping from control instances to the receiver host they are bound to."""

import logging
from collections import Counter

logger = logging.getLogger(__name__)


class AssociationTable:
    """Control id -> host bindings.

    A control is bound to at most one host; many controls may share a host.
    Holds host keys only, never connections.
    """

    def __init__(self) -> None:
        self._hosts: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._hosts)

    def __contains__(self, control_id: object) -> bool:
        return control_id in self._hosts

    def bind(self, control_id: str, host: str) -> str | None:
        """Bind a control to host, replacing any previous binding.

        Args:
            control_id: Control instance id.
            host: Receiver host.

        Returns:
            The host the control was previously bound to, if any.

        Raises:
            ValueError: If control_id or host is empty.
        """
        if not control_id or not host:
            raise ValueError("Control id and host must not be empty")
        previous = self._hosts.get(control_id)
        self._hosts[control_id] = host
        if previous != host:
            logger.debug("Bound %s to %s (was %s)", control_id, host, previous)
        return previous

    def unbind(self, control_id: str) -> str | None:
        """Remove the binding for a control; no-op if unbound.

        Returns:
            The host the control was bound to, if any.
        """
        host = self._hosts.pop(control_id, None)
        if host is not None:
            logger.debug("Unbound %s from %s", control_id, host)
        return host

    def lookup_by_control(self, control_id: str) -> str | None:
        """Return the host a control is bound to, or None."""
        return self._hosts.get(control_id)

    host_of = lookup_by_control

    def controls_for(self, host: str) -> list[str]:
        """Return ids of controls bound to host, in binding order."""
        return [cid for cid, h in self._hosts.items() if h == host]

    def count_for(self, host: str) -> int:
        """Return how many controls are bound to host."""
        return Counter(self._hosts.values())[host]
