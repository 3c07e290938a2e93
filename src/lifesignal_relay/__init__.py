"""LifeSignal cross-ledger relay."""

__version__ = "1.0.0"
