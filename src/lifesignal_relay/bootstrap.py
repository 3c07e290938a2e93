"""Wire ledger clients, cache, journal, engine, router and supervisor together."""

from dataclasses import dataclass
from typing import Optional, Tuple

from .cache.state_cache import StateCache
from .config import RelayConfig
from .core.enums import LedgerSide
from .db.database import Database
from .ledger.interfaces import AutomationLedger, RegistryLedger
from .relay.reconciliation import ReconciliationEngine
from .relay.router import EventRouter
from .relay.supervisor import RelaySupervisor
from .store.journal import EventJournal
from .utils.logging_config import get_logger

logger = get_logger('main')


@dataclass
class RelayComponents:
    """Everything a running relay is made of."""

    config: RelayConfig
    registry: RegistryLedger
    automation: AutomationLedger
    cache: StateCache
    database: Database
    journal: EventJournal
    engine: ReconciliationEngine
    router: EventRouter
    supervisor: RelaySupervisor


def create_ledgers(config: RelayConfig) -> Tuple[RegistryLedger, AutomationLedger]:
    """Instantiate the ledger clients for the configured backend."""
    monitoring = config.monitoring
    if config.backend == "memory":
        from .ledger.memory_impl import create_memory_ledgers

        logger.warning("Using in-memory ledgers; nothing is written to a real chain")
        return create_memory_ledgers(poll_interval=monitoring.event_polling_interval)

    from .ledger.web3_impl import Web3AutomationLedger, Web3RegistryLedger

    return (
        Web3RegistryLedger(config.registry, monitoring),
        Web3AutomationLedger(config.automation, monitoring),
    )


def build_relay(
    config: RelayConfig,
    registry: Optional[RegistryLedger] = None,
    automation: Optional[AutomationLedger] = None,
    database: Optional[Database] = None,
) -> RelayComponents:
    """
    Build a relay from configuration.

    Ledger clients and the database can be supplied to substitute
    emulators or an in-memory journal.
    """
    if registry is None or automation is None:
        registry, automation = create_ledgers(config)

    if database is None:
        database = Database(config.database.url, echo=config.database.echo)
    database.init_schema()

    monitoring = config.monitoring
    cache = StateCache(ttl_seconds=monitoring.cache_ttl)
    journal = EventJournal(database)
    engine = ReconciliationEngine(
        registry,
        automation,
        cache,
        max_retries=monitoring.max_retries,
        retry_delay=monitoring.retry_delay,
    )
    router = EventRouter(engine, journal, queue_size=monitoring.event_queue_size)
    supervisor = RelaySupervisor(
        registry,
        automation,
        cache,
        engine,
        router,
        journal=journal,
        monitoring=monitoring,
        expected_chain_ids={
            LedgerSide.REGISTRY: config.registry.chain_id,
            LedgerSide.AUTOMATION: config.automation.chain_id,
        },
    )

    return RelayComponents(
        config=config,
        registry=registry,
        automation=automation,
        cache=cache,
        database=database,
        journal=journal,
        engine=engine,
        router=router,
        supervisor=supervisor,
    )
