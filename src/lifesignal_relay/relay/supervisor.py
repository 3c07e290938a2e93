"""Relay lifecycle: connection checks, subscriptions and periodic upkeep."""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from ..cache.state_cache import StateCache
from ..config import MonitoringConfig
from ..core.enums import AUTOMATION_EVENT_KINDS, REGISTRY_EVENT_KINDS, LedgerSide
from ..domain.errors import ConfigError, RelayError
from ..domain.models import normalize_address
from ..ledger.interfaces import AutomationLedger, LedgerClient, RegistryLedger
from ..ledger.subscription import EventSubscription
from ..store.journal import EventJournal, JournalError
from ..utils.logging_config import get_logger, log_exception
from .reconciliation import ReconciliationEngine
from .router import EventRouter

logger = get_logger('supervisor')


@dataclass
class LedgerHealth:
    """Result of the latest health probe of one ledger."""

    healthy: bool = False
    block_number: Optional[int] = None
    chain_id: Optional[int] = None
    last_checked: Optional[float] = None
    consecutive_failures: int = 0
    total_failures: int = 0
    last_error: Optional[str] = None


class RelaySupervisor:
    """
    Owns the relay's running state.

    ``start`` verifies both ledgers, opens the subscriptions (resuming from
    journal checkpoints when there are any) and starts the periodic health
    check and cache eviction. ``stop`` undoes all of it. Both are idempotent.
    """

    def __init__(
        self,
        registry: RegistryLedger,
        automation: AutomationLedger,
        cache: StateCache,
        engine: ReconciliationEngine,
        router: EventRouter,
        journal: Optional[EventJournal] = None,
        monitoring: Optional[MonitoringConfig] = None,
        expected_chain_ids: Optional[Dict[LedgerSide, Optional[int]]] = None,
    ):
        self.registry = registry
        self.automation = automation
        self.cache = cache
        self.engine = engine
        self.router = router
        self.journal = journal
        self.monitoring = monitoring or MonitoringConfig()
        self.expected_chain_ids = expected_chain_ids or {}

        self.health: Dict[LedgerSide, LedgerHealth] = {
            LedgerSide.REGISTRY: LedgerHealth(),
            LedgerSide.AUTOMATION: LedgerHealth(),
        }
        self._periodic_tasks: List[asyncio.Task] = []
        self._running = False
        self._started_at: Optional[float] = None
        self._lifecycle_lock = asyncio.Lock()
        self.evicted_total = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def clients(self) -> Dict[LedgerSide, LedgerClient]:
        return {LedgerSide.REGISTRY: self.registry, LedgerSide.AUTOMATION: self.automation}

    async def start(self) -> None:
        """
        Start relaying.

        Raises:
            RelayError: A ledger is unreachable or on the wrong chain
        """
        async with self._lifecycle_lock:
            if self._running:
                logger.warning("Relay already running; start ignored")
                return

            logger.info("Starting relay")
            await self._verify_connections()
            await self._check_relay_authorization()

            subscriptions = {
                LedgerSide.REGISTRY: self._open_subscription(self.registry, REGISTRY_EVENT_KINDS),
                LedgerSide.AUTOMATION: self._open_subscription(self.automation, AUTOMATION_EVENT_KINDS),
            }
            self.router.start(subscriptions)

            self._periodic_tasks = [
                asyncio.create_task(
                    self._periodic("health-check", self.monitoring.health_check_interval, self.health_check),
                    name="health-check",
                ),
                asyncio.create_task(
                    self._periodic("cache-eviction", self.monitoring.cache_eviction_interval, self.evict_cache),
                    name="cache-eviction",
                ),
            ]
            self._running = True
            self._started_at = time.monotonic()
            logger.info("Relay started")

    async def stop(self) -> None:
        """Stop periodic tasks and the router, letting in-flight handlers finish."""
        async with self._lifecycle_lock:
            if not self._running:
                logger.warning("Relay not running; stop ignored")
                return

            logger.info("Stopping relay")
            for task in self._periodic_tasks:
                task.cancel()
            await asyncio.gather(*self._periodic_tasks, return_exceptions=True)
            self._periodic_tasks = []

            await self.router.stop()
            self._running = False
            self._started_at = None
            logger.info("Relay stopped")

    async def close(self) -> None:
        """Stop if running and release ledger connections."""
        if self._running:
            await self.stop()
        for client in self.clients.values():
            await client.close()

    async def _verify_connections(self) -> None:
        for side, client in self.clients.items():
            health = self.health[side]
            try:
                block_number = await client.get_block_number()
                chain_id = await client.get_chain_id()
            except RelayError as e:
                self._mark_unhealthy(side, e)
                logger.error(f"Cannot reach {side.value} ledger: {e}")
                raise

            expected = self.expected_chain_ids.get(side)
            if expected is not None and chain_id != expected:
                raise ConfigError(f"{side.value} ledger reports chain id {chain_id}, expected {expected}")

            health.healthy = True
            health.block_number = block_number
            health.chain_id = chain_id
            health.last_checked = time.time()
            health.consecutive_failures = 0
            logger.info(
                f"{side.value} ledger connected: chain={chain_id} block={block_number} signer={client.signer_address}"
            )

    async def _check_relay_authorization(self) -> None:
        try:
            relay_address = await self.automation.get_relay_address()
        except RelayError as e:
            logger.warning(f"Could not read automation relay address: {e}")
            return
        if normalize_address(relay_address) != normalize_address(self.automation.signer_address):
            logger.warning(
                f"Automation contract accepts writes from {relay_address}, "
                f"but this relay signs as {self.automation.signer_address}"
            )

    def _open_subscription(self, client: LedgerClient, kinds) -> EventSubscription:
        side = client.side
        from_block = None
        if self.journal is not None:
            try:
                checkpoint = self.journal.get_checkpoint(side)
            except JournalError as e:
                logger.error(f"Could not read {side.value} checkpoint, starting at head: {e}")
                checkpoint = None
            if checkpoint is not None:
                from_block = checkpoint + 1
                logger.info(f"Resuming {side.value} subscription from block {from_block}")

        # No checkpoint: start right after the head seen while verifying the connection
        head = self.health[side].block_number
        if from_block is None and head is not None:
            from_block = head + 1

        def on_checkpoint(block_number: int) -> None:
            self.router.mark_scanned(side, block_number)

        return client.subscribe(kinds, from_block=from_block, on_checkpoint=on_checkpoint)

    async def _periodic(self, name: str, interval: float, action: Callable[[], Awaitable[object]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await action()
            except Exception as e:
                log_exception('supervisor', e, {"task": name})

    def _mark_unhealthy(self, side: LedgerSide, error: Exception) -> None:
        health = self.health[side]
        health.healthy = False
        health.last_checked = time.time()
        health.consecutive_failures += 1
        health.total_failures += 1
        health.last_error = f"{type(error).__name__}: {error}"

    async def health_check(self) -> Dict[str, LedgerHealth]:
        """Probe both ledgers. Failures are recorded, never raised."""
        for side, client in self.clients.items():
            try:
                block_number = await client.get_block_number()
            except RelayError as e:
                self._mark_unhealthy(side, e)
                logger.warning(
                    f"Health check failed for {side.value} "
                    f"({self.health[side].consecutive_failures} in a row): {e}"
                )
                continue

            health = self.health[side]
            health.healthy = True
            health.block_number = block_number
            health.last_checked = time.time()
            health.consecutive_failures = 0
            health.last_error = None
            logger.debug(f"{side.value} healthy at block {block_number}")
        return {side.value: health for side, health in self.health.items()}

    async def evict_cache(self) -> int:
        evicted = await self.cache.evict_expired()
        self.evicted_total += evicted
        if evicted:
            logger.info(f"Evicted {evicted} stale cache entries")
        return evicted

    def uptime(self) -> Optional[float]:
        if self._started_at is None:
            return None
        return time.monotonic() - self._started_at

    def status(self) -> Dict[str, object]:
        return {
            "running": self._running,
            "uptime_seconds": self.uptime(),
            "cache_size": self.cache.size(),
            "cache_evicted_total": self.evicted_total,
            "signers": {side.value: client.signer_address for side, client in self.clients.items()},
            "health": {side.value: asdict(health) for side, health in self.health.items()},
            "router": self.router.status(),
        }
