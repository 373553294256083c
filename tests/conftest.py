"""Test fixtures for avrdeck tests."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from PySide6.QtCore import QCoreApplication, QSettings

from avrdeck.core.associations import AssociationTable
from avrdeck.core.config import ConfigManager, StatusScope
from avrdeck.core.controller import LifecycleController
from avrdeck.core.discovery import DiscoveryCoordinator
from avrdeck.core.inspector import InspectorChannel
from avrdeck.core.registry import ConnectionRegistry
from avrdeck.core.settings_store import ActionSettingsStore
from fakes import FakeConnection, FakeResolver, FakeSession


@pytest.fixture(scope="session")
def qapp_cls() -> type[QCoreApplication]:
    """Run pytest-qt on a QCoreApplication (no display needed)."""
    return QCoreApplication


@pytest.fixture
def qsettings(tmp_path: Path) -> QSettings:
    """Return QSettings backed by a throwaway ini file."""
    return QSettings(str(tmp_path / "avrdeck.ini"), QSettings.Format.IniFormat)


@pytest.fixture
def config(qsettings: QSettings) -> ConfigManager:
    """Return a ConfigManager on the throwaway settings."""
    return ConfigManager(settings=qsettings)


@pytest.fixture
def settings_store(qsettings: QSettings) -> ActionSettingsStore:
    """Return an ActionSettingsStore on the throwaway settings."""
    return ActionSettingsStore(qsettings)


@pytest.fixture
def connection_factory() -> MagicMock:
    """Return a factory mock that builds FakeConnections."""
    return MagicMock(side_effect=lambda host, name: FakeConnection(host, name))


@pytest.fixture
def sessions() -> list[FakeSession]:
    """Collects every session the coordinator creates."""
    return []


@pytest.fixture
def session_factory(sessions: list[FakeSession]) -> MagicMock:
    """Return a factory mock that builds and records FakeSessions."""

    def make() -> FakeSession:
        session = FakeSession()
        sessions.append(session)
        return session

    return MagicMock(side_effect=make)


@pytest.fixture
def resolver() -> FakeResolver:
    """Return a resolver knowing the living room receiver."""
    return FakeResolver({"192.168.1.77": "Living Room"})


@pytest.fixture
def coordinator(session_factory: MagicMock, resolver: FakeResolver) -> DiscoveryCoordinator:
    """Return a DiscoveryCoordinator on fakes."""
    return DiscoveryCoordinator(session_factory, resolver)


@pytest.fixture
def inspector() -> InspectorChannel:
    """Return an InspectorChannel."""
    return InspectorChannel()


@pytest.fixture
def sent_messages(inspector: InspectorChannel) -> list[tuple[str, dict]]:
    """Collects everything sent to the inspector."""
    messages: list[tuple[str, dict]] = []
    inspector.message_sent.connect(lambda cid, payload: messages.append((cid, payload)))
    return messages


def make_controller(
    connection_factory: MagicMock,
    coordinator: DiscoveryCoordinator,
    settings_store: ActionSettingsStore,
    inspector: InspectorChannel,
    **kwargs: object,
) -> LifecycleController:
    """Build a controller with a fresh registry and association table."""
    return LifecycleController(
        ConnectionRegistry(connection_factory),
        AssociationTable(),
        coordinator,
        settings_store,
        inspector,
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.fixture
def controller(
    connection_factory: MagicMock,
    coordinator: DiscoveryCoordinator,
    settings_store: ActionSettingsStore,
    inspector: InspectorChannel,
) -> Generator[LifecycleController, None, None]:
    """Return a LifecycleController with focused status scope."""
    yield make_controller(
        connection_factory, coordinator, settings_store, inspector,
        status_scope=StatusScope.FOCUSED,
    )
