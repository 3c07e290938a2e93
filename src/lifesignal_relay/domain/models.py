"""Ledger read models and write descriptors.

Values mirror the contract return tuples one-to-one. Integers keep their
full 256-bit range as Python ints; conversion to decimal strings happens
only at the HTTP boundary.
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_address(address: str) -> str:
    """Validate a hex account address and return its lower-case form.

    Raises:
        ValueError: If the value is not a 20-byte hex address
    """
    if not isinstance(address, str) or not _ADDRESS_RE.match(address.strip()):
        raise ValueError(f"Invalid ledger address: {address!r}")
    return address.strip().lower()


class LedgerModel(BaseModel):
    """Base class for immutable ledger read models."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class OwnerInfo(LedgerModel):
    """Registry ledger ``getOwnerInfo`` result."""

    first_name: str
    last_name: str
    last_heartbeat: int
    grace_interval: int
    is_deceased: bool
    exists: bool

    def to_record(self, now: Optional[float] = None) -> "OwnerRecord":
        return OwnerRecord(
            grace_interval_seconds=self.grace_interval,
            is_deceased=self.is_deceased,
            exists=self.exists,
            last_update=time.time() if now is None else now,
        )


class DeathDeclarationStatus(LedgerModel):
    """Registry ledger ``getDeathDeclarationStatus`` result."""

    is_active: bool
    start_time: int
    votes_for: int
    votes_against: int
    total_voting_contacts: int
    consensus_reached: bool


class ContactInfo(LedgerModel):
    """Registry ledger ``getContactInfo`` result."""

    has_voting_right: bool
    is_verified: bool
    exists: bool


class AutomationOwnerData(LedgerModel):
    """Automation ledger ``getOwnerData`` result (the mirror)."""

    grace_interval: int
    is_deceased: bool
    exists: bool
    last_update: int


class GracePeriodRecord(LedgerModel):
    """Automation ledger ``getGracePeriodInfo`` result."""

    start_time: int
    has_pinged: bool
    processed: bool
    grace_interval: int
    is_deceased: bool

    @property
    def is_running(self) -> bool:
        return self.start_time > 0 and not self.processed


@dataclass
class OwnerRecord:
    """Cached protocol state of one owner, as last read from the registry."""

    grace_interval_seconds: int
    is_deceased: bool
    exists: bool
    last_update: float = field(default_factory=time.time)

    def matches_mirror(self, mirror: AutomationOwnerData) -> bool:
        """Check whether the automation ledger already holds this state."""
        return (
            mirror.grace_interval == self.grace_interval_seconds
            and mirror.is_deceased == self.is_deceased
            and mirror.exists == self.exists
        )


@dataclass(frozen=True)
class ContractCall:
    """A write call on one of the ledger contracts."""

    function: str
    args: Tuple[Any, ...] = ()

    def describe(self) -> str:
        rendered = ", ".join(str(arg) for arg in self.args)
        return f"{self.function}({rendered})"


@dataclass(frozen=True)
class Receipt:
    """Confirmed transaction receipt."""

    ledger: str
    function: str
    tx_hash: str
    block_number: int
    gas_used: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ledger": self.ledger,
            "function": self.function,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
        }
