"""Pytest configuration and fixtures."""
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from poolrota.io.roster_loader import StaticDirectory
from poolrota.models.config import RotationConfig
from poolrota.models.personnel import Guard
from poolrota.models.topology import DEFAULT_TOPOLOGY, Topology
from poolrota.services.orchestrator import RotationService
from poolrota.store.backends import MemoryBackend, SQLiteBackend
from poolrota.store.frame_store import FrameStore
from poolrota.utils.structured_logging import configure_structlog


@pytest.fixture(autouse=True, scope="session")
def _structlog_through_stdlib():
    """Route structlog events through stdlib logging so caplog sees them."""
    configure_structlog(json_output=True)


@pytest.fixture(autouse=True)
def _reset_poolrota_handlers():
    """Drop handlers installed by setup_logging so they never outlive a test."""
    yield
    logger = logging.getLogger("poolrota")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


class FixedClock:
    """Settable clock for store and service tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, iso: str) -> None:
        self.now = datetime.fromisoformat(iso.replace("Z", "+00:00"))


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 7, 1, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def topology() -> Topology:
    return DEFAULT_TOPOLOGY


@pytest.fixture
def ring_topology() -> Topology:
    """Two sections of two seats, no rest seats; A.1 -> A.2 and B.1 -> B.2."""
    return Topology.from_layout(
        [{"id": "1.1"}, {"id": "1.2"}, {"id": "2.1"}, {"id": "2.2"}],
        [{"from": "1.1", "to": "1.2"}, {"from": "2.1", "to": "2.2"}],
    )


@pytest.fixture
def guards():
    """Roster of fifteen adults plus one minor."""
    roster = [Guard(id=f"g-{i:02d}", name=f"Guard {i}", dob="1990-01-01") for i in range(1, 16)]
    roster.append(Guard(id="minor-1", name="Zoé Martin", dob="2010-05-05"))
    return roster


@pytest.fixture
def directory(guards):
    return StaticDirectory(guards)


@pytest.fixture
def memory_store(clock):
    return FrameStore(MemoryBackend(), clock=clock)


@pytest.fixture
def sqlite_store(tmp_path, clock):
    return FrameStore(SQLiteBackend(tmp_path / "rotation.db", timeout=1.0), clock=clock)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path, clock):
    """Frame store over each backend."""
    if request.param == "memory":
        backend = MemoryBackend()
    else:
        backend = SQLiteBackend(tmp_path / "rotation.db", timeout=1.0)
    return FrameStore(backend, clock=clock)


@pytest.fixture
def config(tmp_path):
    return RotationConfig(db_path=tmp_path / "rotation.db", log_file=None)


@pytest.fixture
def service(memory_store, directory, config):
    return RotationService(memory_store, directory, DEFAULT_TOPOLOGY, config)
