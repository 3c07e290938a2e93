"""Error taxonomy shared by the ledger clients, the relay and the API."""

from typing import Optional


class RelayError(Exception):
    """Base exception for relay operations."""

    pass


class ConfigError(RelayError):
    """Configuration is missing or malformed. Fatal at startup."""

    pass


class RpcError(RelayError):
    """Transport-level ledger failure. Nothing was broadcast; retryable."""

    def __init__(self, message: str, ledger: Optional[str] = None):
        super().__init__(message)
        self.ledger = ledger


class RevertedError(RelayError):
    """The contract rejected the call."""

    def __init__(self, reason: str, function: Optional[str] = None):
        super().__init__(f"{function or 'call'} reverted: {reason}")
        self.reason = reason
        self.function = function


class TransactionTimeoutError(RelayError):
    """Transaction was sent but not confirmed in time; outcome unknown."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class StreamError(RelayError):
    """An event subscription lost its connection."""

    def __init__(self, message: str, ledger: Optional[str] = None):
        super().__init__(message)
        self.ledger = ledger


class OwnerNotFoundError(RelayError):
    """The owner never registered on the registry ledger."""

    def __init__(self, address: str):
        super().__init__(f"Owner {address} is not registered")
        self.address = address
