"""Main entry point for the AVRDeck plugin process."""

import argparse
import asyncio
import logging
import sys

from avrdeck.api.connection import ReceiverConnection
from avrdeck.api.discovery import ReceiverNameResolver, ZeroconfDiscoverySession
from avrdeck.bridge import EventBridge
from avrdeck.core.associations import AssociationTable
from avrdeck.core.config import ConfigManager, StatusScope
from avrdeck.core.controller import LifecycleController
from avrdeck.core.discovery import DiscoveryCoordinator
from avrdeck.core.inspector import InspectorChannel
from avrdeck.core.registry import ConnectionRegistry
from avrdeck.core.settings_store import ActionSettingsStore

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="avrdeck",
        description="AVRDeck - AV receiver controls for a control surface",
    )
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument(
        "--port", type=int, default=None, help="receiver control port (default: from config)"
    )
    parser.add_argument(
        "--status-scope",
        choices=[s.value for s in StatusScope],
        default=None,
        help="which controls receive receiver status updates",
    )
    return parser.parse_args(argv)


def build_controller(
    config: ConfigManager, port: int | None = None, status_scope: StatusScope | None = None
) -> tuple[LifecycleController, InspectorChannel]:
    """Wire the controller and its collaborators from configuration.

    Args:
        config: Plugin configuration.
        port: Receiver port override.
        status_scope: Status scope override.

    Returns:
        Tuple of (controller, inspector channel).
    """
    receiver_port = port if port is not None else config.get_receiver_port()
    reconnect_delay = float(config.get_reconnect_delay())
    service_type = config.get_service_type()
    resolver = ReceiverNameResolver()

    def make_connection(host: str, name: str) -> ReceiverConnection:
        return ReceiverConnection(host, name, port=receiver_port, reconnect_delay=reconnect_delay)

    def make_session() -> ZeroconfDiscoverySession:
        session = ZeroconfDiscoverySession(service_type)
        resolver.attach(session)
        return session

    inspector = InspectorChannel()
    controller = LifecycleController(
        ConnectionRegistry(make_connection),
        AssociationTable(),
        DiscoveryCoordinator(make_session, resolver),
        ActionSettingsStore(config.settings),
        inspector,
        status_scope=status_scope or config.get_status_scope(),
        keep_warm=config.get_keep_warm(),
    )
    return controller, inspector


async def _open_stdin() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    return reader


def _write_line(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


async def run(args: argparse.Namespace) -> None:
    """Run the plugin until the host closes stdin."""
    config = ConfigManager()
    scope = StatusScope(args.status_scope) if args.status_scope else None
    controller, inspector = build_controller(config, args.port, scope)
    bridge = EventBridge(controller, inspector, _write_line)

    try:
        await bridge.run(await _open_stdin())
    finally:
        await controller.shutdown()
        config.sync()


def main(argv: list[str] | None = None) -> int:
    """Run the AVRDeck plugin.

    Returns:
        Exit code (0 for success).
    """
    args = parse_args(argv)

    # stdout belongs to the host bridge, log to stderr
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
