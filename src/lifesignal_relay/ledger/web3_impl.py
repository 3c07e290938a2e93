"""JSON-RPC ledger clients built on web3.py.

Transport and contract exceptions are translated into the relay's error
taxonomy here; nothing above this module sees a web3 exception.
"""

import re
from typing import Any, Dict, List, Optional, Sequence

from eth_account import Account
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from ..config import LedgerConfig, MonitoringConfig
from ..core.enums import EventKind
from ..domain.errors import RevertedError, RpcError, TransactionTimeoutError
from ..domain.events import BaseEvent
from ..domain.models import (
    AutomationOwnerData,
    ContactInfo,
    ContractCall,
    DeathDeclarationStatus,
    GracePeriodRecord,
    OwnerInfo,
    Receipt,
)
from .abi import (
    GRACE_PERIOD_AUTOMATION_ABI,
    LIFE_SIGNAL_REGISTRY_ABI,
    event_from_log_args,
    event_signature,
)
from .interfaces import AutomationLedger, RegistryLedger

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def _revert_reason(exc: ContractLogicError) -> str:
    return getattr(exc, "message", None) or str(exc) or "execution reverted"


class Web3LedgerMixin:
    """Shared web3 plumbing for both contract clients."""

    abi: List[Dict[str, Any]] = []

    def _setup_web3(self, config: LedgerConfig, monitoring: MonitoringConfig) -> None:
        self.config = config
        self.tx_timeout = monitoring.tx_timeout
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url))
        self._account = Account.from_key(config.private_key)
        self.contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(config.contract_address), abi=self.abi
        )
        self._chain_id: Optional[int] = None

        self._topic_to_kind: Dict[str, EventKind] = {}
        for entry in self.abi:
            if entry["type"] == "event":
                topic = AsyncWeb3.to_hex(AsyncWeb3.keccak(text=event_signature(self.abi, entry["name"])))
                self._topic_to_kind[topic] = EventKind(entry["name"])

        self.logger.info(
            f"{self.side.value} ledger client initialized: rpc={config.rpc_url} "
            f"contract={config.contract_address} relay={self._account.address}"
        )

    @property
    def signer_address(self) -> str:
        return self._account.address

    async def _read(self, function: str, *args: Any) -> Any:
        """Call a view function, translating transport failures."""
        converted = [self._convert_arg(arg) for arg in args]
        try:
            return await getattr(self.contract.functions, function)(*converted).call()
        except ContractLogicError as e:
            raise RevertedError(_revert_reason(e), function) from e
        except Exception as e:
            self.logger.error(f"Failed to call {function} on {self.side.value}: {e}")
            raise RpcError(f"{function} failed: {e}", ledger=self.side.value) from e

    @staticmethod
    def _convert_arg(arg: Any) -> Any:
        if isinstance(arg, str) and _ADDRESS_RE.match(arg):
            return AsyncWeb3.to_checksum_address(arg)
        return arg

    async def get_block_number(self) -> int:
        try:
            return await self.w3.eth.block_number
        except Exception as e:
            raise RpcError(f"eth_blockNumber failed: {e}", ledger=self.side.value) from e

    async def get_chain_id(self) -> int:
        if self._chain_id is None:
            try:
                self._chain_id = await self.w3.eth.chain_id
            except Exception as e:
                raise RpcError(f"eth_chainId failed: {e}", ledger=self.side.value) from e
        return self._chain_id

    async def fetch_events(
        self, from_block: int, to_block: int, kinds: Sequence[EventKind]
    ) -> List[BaseEvent]:
        wanted = {topic: kind for topic, kind in self._topic_to_kind.items() if kind in kinds}
        if not wanted:
            return []

        try:
            logs = await self.w3.eth.get_logs({
                "address": self.contract.address,
                "fromBlock": from_block,
                "toBlock": to_block,
                "topics": [list(wanted)],
            })
        except Exception as e:
            raise RpcError(
                f"eth_getLogs {from_block}-{to_block} failed: {e}", ledger=self.side.value
            ) from e

        events: List[BaseEvent] = []
        for log in logs:
            topic = AsyncWeb3.to_hex(log["topics"][0])
            kind = wanted.get(topic)
            if kind is None:
                continue
            try:
                decoded = getattr(self.contract.events, kind.value)().process_log(log)
            except Exception as e:
                # A log we cannot decode is a contract/ABI mismatch, not a transport issue
                self.logger.error(f"Undecodable {kind.value} log in block {log.get('blockNumber')}: {e}")
                continue
            events.append(
                event_from_log_args(
                    kind,
                    self.side,
                    dict(decoded["args"]),
                    tx_hash=AsyncWeb3.to_hex(decoded["transactionHash"]),
                    block_number=decoded["blockNumber"],
                    log_index=decoded["logIndex"],
                )
            )
        return events

    async def _send_transaction(self, call: ContractCall) -> Receipt:
        args = [self._convert_arg(arg) for arg in call.args]
        function = getattr(self.contract.functions, call.function)(*args)

        # Everything up to a successful broadcast is safe to retry
        try:
            nonce = await self.w3.eth.get_transaction_count(self._account.address, "pending")
            tx = await function.build_transaction({
                "from": self._account.address,
                "nonce": nonce,
                "chainId": await self.get_chain_id(),
            })
            signed = self._account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise RevertedError(_revert_reason(e), call.function) from e
        except RpcError:
            raise
        except Exception as e:
            raise RpcError(f"{call.function} not sent: {e}", ledger=self.side.value) from e

        tx_hex = AsyncWeb3.to_hex(tx_hash)
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
        except TimeExhausted as e:
            raise TransactionTimeoutError(
                f"{call.function} not confirmed within {self.tx_timeout}s", tx_hash=tx_hex
            ) from e
        except Exception as e:
            raise TransactionTimeoutError(
                f"{call.function} confirmation unknown: {e}", tx_hash=tx_hex
            ) from e

        if receipt["status"] == 0:
            raise RevertedError(f"transaction {tx_hex} reverted on-chain", call.function)

        return Receipt(
            ledger=self.side.value,
            function=call.function,
            tx_hash=tx_hex,
            block_number=receipt["blockNumber"],
            gas_used=receipt.get("gasUsed", 0),
        )

    async def close(self) -> None:
        provider = self.w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()


class Web3RegistryLedger(Web3LedgerMixin, RegistryLedger):
    """Registry ledger client (LifeSignalRegistry contract)."""

    abi = LIFE_SIGNAL_REGISTRY_ABI

    def __init__(self, config: LedgerConfig, monitoring: MonitoringConfig):
        super().__init__(
            poll_interval=monitoring.event_polling_interval,
            max_block_range=monitoring.max_block_range,
            stream_backoff_base=monitoring.retry_delay,
            stream_backoff_max=monitoring.stream_backoff_max,
        )
        self._setup_web3(config, monitoring)

    async def get_owner_info(self, owner: str) -> OwnerInfo:
        first, last, last_heartbeat, grace_interval, is_deceased, exists = await self._read("getOwnerInfo", owner)
        return OwnerInfo(
            first_name=first,
            last_name=last,
            last_heartbeat=last_heartbeat,
            grace_interval=grace_interval,
            is_deceased=is_deceased,
            exists=exists,
        )

    async def get_death_declaration_status(self, owner: str) -> DeathDeclarationStatus:
        result = await self._read("getDeathDeclarationStatus", owner)
        return DeathDeclarationStatus(
            is_active=result[0],
            start_time=result[1],
            votes_for=result[2],
            votes_against=result[3],
            total_voting_contacts=result[4],
            consensus_reached=result[5],
        )

    async def get_contact_info(self, owner: str, contact: str) -> ContactInfo:
        has_voting_right, is_verified, exists = await self._read("getContactInfo", owner, contact)
        return ContactInfo(has_voting_right=has_voting_right, is_verified=is_verified, exists=exists)

    async def get_contact_list(self, owner: str) -> List[str]:
        return list(await self._read("getContactList", owner))

    async def has_voted(self, owner: str, voter: str) -> bool:
        return bool(await self._read("hasVoted", owner, voter))

    async def get_vote(self, owner: str, voter: str) -> bool:
        return bool(await self._read("getVote", owner, voter))


class Web3AutomationLedger(Web3LedgerMixin, AutomationLedger):
    """Automation ledger client (GracePeriodAutomation contract)."""

    abi = GRACE_PERIOD_AUTOMATION_ABI

    def __init__(self, config: LedgerConfig, monitoring: MonitoringConfig):
        super().__init__(
            poll_interval=monitoring.event_polling_interval,
            max_block_range=monitoring.max_block_range,
            stream_backoff_base=monitoring.retry_delay,
            stream_backoff_max=monitoring.stream_backoff_max,
        )
        self._setup_web3(config, monitoring)

    async def get_owner_data(self, owner: str) -> AutomationOwnerData:
        grace_interval, is_deceased, exists, last_update = await self._read("getOwnerData", owner)
        return AutomationOwnerData(
            grace_interval=grace_interval,
            is_deceased=is_deceased,
            exists=exists,
            last_update=last_update,
        )

    async def get_grace_period_info(self, owner: str) -> GracePeriodRecord:
        start_time, has_pinged, processed, grace_interval, is_deceased = await self._read(
            "getGracePeriodInfo", owner
        )
        return GracePeriodRecord(
            start_time=start_time,
            has_pinged=has_pinged,
            processed=processed,
            grace_interval=grace_interval,
            is_deceased=is_deceased,
        )

    async def get_relay_address(self) -> str:
        return await self._read("relayAddress")

