#!/usr/bin/env python3
"""
Relay Flow Simulator for LifeSignal

Plays the full owner lifecycle against the in-memory ledgers with the real
router, reconciliation engine and supervisor in between:

1. Owner registers on the registry ledger -> relay mirrors the owner
2. Two verified contacts vote the owner deceased -> relay mirrors, then
   starts the grace period on the automation ledger
3. Owner sends a heartbeat -> relay records a ping
4. Automation timer processes the grace period -> relay observes the outcome

Usage:
  python tools/simulate_flow.py                  # Owner pings in time (outcome: alive)
  python tools/simulate_flow.py --no-heartbeat   # Owner stays silent (outcome: dead)
"""

import argparse
import asyncio
import sys
import time
from typing import Callable

from lifesignal_relay.bootstrap import build_relay
from lifesignal_relay.config import load_config
from lifesignal_relay.db.database import Database
from lifesignal_relay.ledger.memory_impl import MemoryAutomationLedger, MemoryRegistryLedger
from lifesignal_relay.utils.logging_config import initialize_logging

OWNER = "0x000000000000000000000000000000000000000a"
CONTACT_1 = "0x00000000000000000000000000000000000000c1"
CONTACT_2 = "0x00000000000000000000000000000000000000c2"
SEVEN_DAYS = 7 * 24 * 60 * 60


class SimulatedClock:
    """Wall clock the simulation can fast-forward."""

    def __init__(self):
        self.now = time.time()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def wait_until(predicate: Callable[[], bool], description: str, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise TimeoutError(f"Timed out waiting for: {description}")
        await asyncio.sleep(0.01)


def write_names(ledger: MemoryAutomationLedger):
    return [call.function for call in ledger.write_log]


async def simulate(send_heartbeat: bool, grace_interval: int) -> bool:
    clock = SimulatedClock()
    registry = MemoryRegistryLedger(clock=clock)
    automation = MemoryAutomationLedger(clock=clock)
    config = load_config({"RELAY_LEDGER_BACKEND": "memory", "RELAY_RETRY_DELAY": "0.05"})
    components = build_relay(config, registry=registry, automation=automation, database=Database("sqlite://"))

    outcomes = []
    components.engine.add_outcome_listener(outcomes.append)

    await components.supervisor.start()
    print("🚀 Relay started on in-memory ledgers")

    try:
        print(f"\n👤 Registering owner {OWNER} (grace interval {grace_interval}s)")
        registry.register_owner(OWNER, "John", "Doe", grace_interval)
        await wait_until(lambda: "updateOwnerData" in write_names(automation), "owner mirror")
        mirror = await automation.get_owner_data(OWNER)
        print(f"   mirror: graceInterval={mirror.grace_interval} isDeceased={mirror.is_deceased} exists={mirror.exists}")

        print("\n🗳️  Contacts vote the owner deceased")
        for contact in (CONTACT_1, CONTACT_2):
            registry.add_contact(OWNER, contact, has_voting_right=True)
            registry.verify_contact(OWNER, contact)
        registry.declare_death(OWNER, CONTACT_1)
        registry.cast_vote(OWNER, CONTACT_2, True)
        await wait_until(lambda: "startGracePeriod" in write_names(automation), "grace period start")
        grace = await automation.get_grace_period_info(OWNER)
        print(f"   grace period started at {grace.start_time}")

        if send_heartbeat:
            print("\n💓 Owner sends a heartbeat")
            registry.send_heartbeat(OWNER)
            await wait_until(lambda: "recordPing" in write_names(automation), "ping")
            grace = await automation.get_grace_period_info(OWNER)
            print(f"   hasPinged={grace.has_pinged}")

        print("\n⏱️  Grace period elapses")
        clock.advance(grace_interval + 1)
        automation.process_grace_periods()
        await wait_until(lambda: bool(outcomes), "grace period outcome")
        outcome = outcomes[0]
        print(f"   outcome for {outcome.owner}: {'DEAD' if outcome.is_dead else 'ALIVE'}")

        print("\n📜 Automation ledger writes, in order:")
        for call in automation.write_log:
            print(f"   {call.describe()}")

        expected = ["updateOwnerData", "updateOwnerData", "startGracePeriod"]
        if send_heartbeat:
            expected.append("recordPing")
        passed = write_names(automation) == expected and outcome.is_dead is not send_heartbeat
        print(f"\n{'✅' if passed else '❌'} Flow {'matches' if passed else 'does not match'} the expected sequence")
        return passed
    finally:
        await components.supervisor.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Simulate a full LifeSignal relay flow in memory")
    parser.add_argument("--no-heartbeat", action="store_true", help="Owner never pings during the grace period")
    parser.add_argument("--grace-interval", type=int, default=SEVEN_DAYS, help="Grace interval in seconds")
    parser.add_argument("--verbose", action="store_true", help="Show relay logs on the console")
    args = parser.parse_args()

    initialize_logging(level="DEBUG" if args.verbose else "WARNING", log_to_file=False)
    passed = asyncio.run(simulate(not args.no_heartbeat, args.grace_interval))
    return 0 if passed else 1


if __name__ == "__main__":
    sys.exit(main())
