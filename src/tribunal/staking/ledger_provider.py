"""Ledger-only staking provider.

Funds never leave the platform's books: the stake state machine and the
append-only ledger are the whole record. Used where custody is handled
off-platform or in development.
"""

from __future__ import annotations

from ..core.money import Allocation
from .models import Stake
from .provider import StakingProvider


class LedgerStakingProvider(StakingProvider):
    """Stake provider that only records ledger entries."""

    name = "ledger"

    def _lock_funds(self, stake: Stake) -> str | None:
        return None

    def _release_funds(self, stake: Stake) -> str | None:
        return None

    def _distribute_funds(
        self, stake: Stake, allocation: Allocation, requester_address: str | None
    ) -> str | None:
        return None

    def check_allowance(self, worker_address: str, amount: int) -> bool:
        # Nothing is pulled from the worker's wallet
        return True
