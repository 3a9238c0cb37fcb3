"""Storage layer for disputes and the stake ledger."""

from .base import Store, Transaction, dispute_lock, stake_lock, submission_lock
from .memory import MemoryStore, MemoryTransaction

__all__ = [
    "MemoryStore",
    "MemoryTransaction",
    "Store",
    "Transaction",
    "dispute_lock",
    "stake_lock",
    "submission_lock",
]
