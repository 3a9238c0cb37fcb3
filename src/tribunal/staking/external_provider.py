"""Externally settled staking provider.

Funds are custodied by a ``FundsGateway``. Ledger entries carry the
gateway's transaction reference so each movement can be reconciled
against the gateway's own records.
"""

from __future__ import annotations

import logging

from ..core.config import StakingPolicy
from ..core.exceptions import SettlementError
from ..core.money import Allocation
from ..storage.base import Store
from .calculator import DEFAULT_POLICY
from .gateway import FundsGateway
from .models import PLATFORM_ACCOUNT, Stake
from .provider import StakingProvider

logger = logging.getLogger(__name__)


class ExternalStakingProvider(StakingProvider):
    """Stake provider that moves funds through a gateway."""

    name = "external"

    def __init__(self, store: Store, gateway: FundsGateway, policy: StakingPolicy = DEFAULT_POLICY):
        super().__init__(store, policy)
        self.gateway = gateway

    def _lock_funds(self, stake: Stake) -> str | None:
        if not stake.worker_address:
            raise SettlementError(
                f"Worker {stake.worker_id} has no wallet address",
                provider=self.name,
                operation="lock",
            )
        try:
            return self.gateway.lock(stake.id, stake.task_id, stake.worker_address, stake.amount)
        except SettlementError:
            logger.error(f"Funds lock failed for stake {stake.id}; stake left pending")
            raise

    def _release_funds(self, stake: Stake) -> str | None:
        return self.gateway.release(stake.id, stake.worker_address, stake.amount)

    def _distribute_funds(
        self, stake: Stake, allocation: Allocation, requester_address: str | None
    ) -> str | None:
        if allocation.requester > 0 and not requester_address:
            raise SettlementError(
                "Requester wallet address is required to receive a slash share",
                provider=self.name,
                operation="distribute",
            )
        payouts = [
            {"role": "worker_return", "address": stake.worker_address, "amount": allocation.worker},
            {"role": "requester_share", "address": requester_address, "amount": allocation.requester},
            {"role": "platform_share", "address": PLATFORM_ACCOUNT, "amount": allocation.platform},
        ]
        return self.gateway.distribute(stake.id, [p for p in payouts if p["amount"] > 0])

    def check_allowance(self, worker_address: str, amount: int) -> bool:
        try:
            return self.gateway.allowance(worker_address) >= amount
        except SettlementError as e:
            logger.warning(f"Allowance check failed for {worker_address}: {e}")
            return False

    def close(self) -> None:
        self.gateway.close()
