"""Pytest configuration and shared fixtures."""

import os
from typing import Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from lifesignal_relay.bootstrap import RelayComponents, build_relay
from lifesignal_relay.cache.state_cache import StateCache
from lifesignal_relay.config import RelayConfig, load_config, reset_config
from lifesignal_relay.db.database import Database
from lifesignal_relay.ledger.memory_impl import MemoryAutomationLedger, MemoryRegistryLedger
from lifesignal_relay.relay.reconciliation import ReconciliationEngine
from lifesignal_relay.store.journal import EventJournal
from lifesignal_relay.utils.logging_config import initialize_logging

from tests.helpers.scenario import CONTACT_1, CONTACT_2, FAST_ENV, OWNER, SEVEN_DAYS, FakeClock


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Console-only logging for the whole session."""
    os.environ["RELAY_LOG_TO_FILE"] = "0"
    initialize_logging(level="DEBUG", log_to_file=False)
    yield


@pytest.fixture(autouse=True)
def clean_config():
    """Never let a cached process-wide config leak between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock) -> MemoryRegistryLedger:
    return MemoryRegistryLedger(clock=clock, poll_interval=0.005)


@pytest.fixture
def automation(clock) -> MemoryAutomationLedger:
    return MemoryAutomationLedger(clock=clock, poll_interval=0.005)


@pytest.fixture
def cache(clock) -> StateCache:
    return StateCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """In-memory journal database with the schema created."""
    db = Database("sqlite://")
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def journal(database) -> EventJournal:
    return EventJournal(database)


@pytest.fixture
def engine(registry, automation, cache) -> ReconciliationEngine:
    return ReconciliationEngine(registry, automation, cache, max_retries=2, retry_delay=0.001)


@pytest.fixture
def relay_config() -> RelayConfig:
    return load_config(FAST_ENV)


@pytest.fixture
def components(relay_config, registry, automation, database) -> RelayComponents:
    """A fully wired relay on the in-memory ledgers, not yet started."""
    return build_relay(relay_config, registry=registry, automation=automation, database=database)


@pytest_asyncio.fixture
async def running_relay(components):
    """A started relay, closed after the test."""
    await components.supervisor.start()
    yield components
    await components.supervisor.close()


@pytest.fixture
def client(components) -> Generator[TestClient, None, None]:
    """Control surface client on a relay that has not been started."""
    from lifesignal_relay.main import create_app

    app = create_app(components)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def registered_owner(registry) -> str:
    """OWNER registered with a seven-day grace interval and two verified voting contacts."""
    registry.register_owner(OWNER, "John", "Doe", SEVEN_DAYS)
    for contact in (CONTACT_1, CONTACT_2):
        registry.add_contact(OWNER, contact, has_voting_right=True)
        registry.verify_contact(OWNER, contact)
    return OWNER

