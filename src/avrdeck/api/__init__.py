"""Network collaborators: receiver sessions and receiver discovery.

Classes:
    ReceiverConnection: Persistent TCP session to one receiver.
    ZeroconfDiscoverySession: mDNS browser emitting receiver addresses.
    ReceiverNameResolver: Display-name lookup for discovered addresses.
"""

from avrdeck.api.connection import ReceiverConnection
from avrdeck.api.discovery import (
    RECEIVER_SERVICE_TYPE,
    ReceiverNameResolver,
    SessionState,
    ZeroconfDiscoverySession,
)

__all__ = [
    "RECEIVER_SERVICE_TYPE",
    "ReceiverConnection",
    "ReceiverNameResolver",
    "SessionState",
    "ZeroconfDiscoverySession",
]
