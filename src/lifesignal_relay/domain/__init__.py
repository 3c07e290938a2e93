"""Domain layer for the LifeSignal relay.

Ledger read models, domain events and the error taxonomy. This layer has
no dependencies on ledger transports or persistence.
"""
