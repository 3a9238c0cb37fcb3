# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Settlement interface for stakes.

``StakingProvider`` owns the stake state machine and the ledger writes.
Subclasses decide how funds actually move by implementing the
``_lock_funds`` / ``_release_funds`` / ``_distribute_funds`` hooks:

- LedgerStakingProvider: bookkeeping only, no external movement.
- ExternalStakingProvider: each movement goes through a funds gateway.

Every terminal transition (release, slash, partial slash) is one unit of
work: the stake status change, its ledger entries and, for a full slash,
the worker's strike increment commit together or not at all. The funds
hook runs before that unit of work while the stake lock is held, so a
failed movement leaves the stake untouched.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime

from ..core.config import StakingPolicy
from ..core.exceptions import ConflictError, NotFoundError, ValidationException
from ..core.money import BPS_DENOMINATOR, Allocation, allocate, validate_bps
from ..storage.base import Store, stake_lock
from .calculator import DEFAULT_POLICY, calculate_required_stake
from .models import (
    PLATFORM_ACCOUNT,
    LedgerDirection,
    LedgerEntry,
    LedgerEntryType,
    Stake,
    StakeQuote,
    StakeResult,
    StakeStatus,
)

logger = logging.getLogger(__name__)


class StakingProvider(ABC):
    """Base class for stake settlement backends."""

    name = "abstract"

    def __init__(self, store: Store, policy: StakingPolicy = DEFAULT_POLICY):
        self.store = store
        self.policy = policy

    # ------------------------------------------------------------------
    # Funds movement hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _lock_funds(self, stake: Stake) -> str | None:
        """Take the stake into custody. Returns a transaction reference."""

    @abstractmethod
    def _release_funds(self, stake: Stake) -> str | None:
        """Return the full stake to the worker."""

    @abstractmethod
    def _distribute_funds(
        self, stake: Stake, allocation: Allocation, requester_address: str | None
    ) -> str | None:
        """Pay out a slashed stake according to ``allocation``."""

    @abstractmethod
    def check_allowance(self, worker_address: str, amount: int) -> bool:
        """Whether the worker has authorised at least ``amount`` for staking."""

    def close(self) -> None:
        """Release any held resources."""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def calculate_required_stake(
        self, bounty_amount: int, strike_count: int = 0, reputation: float = 0.0
    ) -> StakeQuote:
        return calculate_required_stake(bounty_amount, strike_count, reputation, self.policy)

    def get_stake(self, task_id: str, worker_id: str) -> Stake | None:
        return self.store.get_stake(task_id, worker_id)

    def get_strike_count(self, worker_id: str) -> int:
        return self.store.get_strikes(worker_id)

    def _require_held(self, task_id: str, worker_id: str) -> Stake:
        stake = self.store.get_stake(task_id, worker_id)
        if stake is None:
            raise NotFoundError("Stake", f"{task_id}:{worker_id}")
        if stake.status != StakeStatus.HELD:
            raise ConflictError(
                f"Stake is {stake.status.value}, expected held",
                existing_id=stake.id,
            )
        return stake

    def _entry(
        self,
        stake: Stake,
        entry_type: LedgerEntryType,
        amount: int,
        direction: LedgerDirection,
        counterparty_id: str,
        wallet_address: str | None = None,
        tx_ref: str | None = None,
        **metadata,
    ) -> LedgerEntry:
        return LedgerEntry(
            task_id=stake.task_id,
            entry_type=entry_type,
            amount=amount,
            direction=direction,
            counterparty_id=counterparty_id,
            currency=self.policy.currency,
            wallet_address=wallet_address,
            tx_ref=tx_ref,
            metadata={"stake_id": stake.id, "provider": self.name, **metadata},
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_stake(
        self,
        task_id: str,
        worker_id: str,
        bounty_amount: int,
        reputation: float = 0.0,
        worker_address: str | None = None,
    ) -> StakeResult:
        """Create and hold the stake for a task claim.

        A stake left ``pending`` by an earlier failed funds lock is retried;
        any other existing stake is a conflict.

        Raises:
            ConflictError: If a stake already exists for the task and worker.
            SettlementError: If the funds lock fails (stake stays pending).
        """
        key = stake_lock(task_id, worker_id)
        with self.store.lock(key):
            with self.store.transaction(key) as tx:
                stake = tx.get_stake(task_id, worker_id)
                if stake is not None and stake.status != StakeStatus.PENDING:
                    raise ConflictError(
                        f"Stake already exists for task {task_id}",
                        existing_id=stake.id,
                    )
                if stake is None:
                    strikes = tx.get_strikes(worker_id)
                    quote = self.calculate_required_stake(bounty_amount, strikes, reputation)
                    stake = Stake(
                        task_id=task_id,
                        worker_id=worker_id,
                        amount=quote.amount,
                        bounty_amount=bounty_amount,
                        stake_bps=quote.stake_bps,
                        strike_count_at_creation=strikes,
                        reputation_at_creation=reputation,
                        worker_address=worker_address,
                        provider=self.name,
                    )
                    tx.insert_stake(stake)

            tx_ref = self._lock_funds(stake)

            with self.store.transaction(key) as tx:
                stake.status = StakeStatus.HELD
                stake.held_at = datetime.now(UTC)
                stake.provider_ref = tx_ref
                tx.update_stake(stake, expected_status=StakeStatus.PENDING)
                entry = self._entry(
                    stake,
                    LedgerEntryType.STAKE,
                    stake.amount,
                    LedgerDirection.CREDIT,
                    worker_id,
                    wallet_address=worker_address,
                    tx_ref=tx_ref,
                    stake_bps=stake.stake_bps,
                    strike_count=stake.strike_count_at_creation,
                    reputation=stake.reputation_at_creation,
                )
                tx.append_ledger(entry)

        logger.info(
            f"Stake held for task {task_id} worker {worker_id}: "
            f"{stake.amount} minor units ({stake.stake_bps} bps) via {self.name}"
        )
        return StakeResult(success=True, stake=stake, tx_ref=tx_ref, entries=[entry])

    def release_stake(self, task_id: str, worker_id: str) -> StakeResult:
        """Return a held stake to the worker in full."""
        key = stake_lock(task_id, worker_id)
        with self.store.lock(key):
            stake = self._require_held(task_id, worker_id)
            tx_ref = self._release_funds(stake)

            with self.store.transaction(key) as tx:
                stake.status = StakeStatus.RELEASED
                stake.released_at = datetime.now(UTC)
                stake.worker_return = stake.amount
                tx.update_stake(stake, expected_status=StakeStatus.HELD)
                entry = self._entry(
                    stake,
                    LedgerEntryType.STAKE_RELEASE,
                    stake.amount,
                    LedgerDirection.DEBIT,
                    worker_id,
                    wallet_address=stake.worker_address,
                    tx_ref=tx_ref,
                )
                tx.append_ledger(entry)

        logger.info(f"Stake released for task {task_id} worker {worker_id}: {stake.amount} minor units")
        return StakeResult(success=True, stake=stake, tx_ref=tx_ref, entries=[entry])

    def slash_stake(
        self,
        task_id: str,
        worker_id: str,
        requester_id: str,
        reason: str = "dispute_loss",
        requester_share_bps: int | None = None,
        requester_address: str | None = None,
    ) -> StakeResult:
        """Forfeit a held stake to requester and platform; records a strike."""
        if requester_share_bps is None:
            requester_share_bps = self.policy.slash_requester_share_bps
        validate_bps(requester_share_bps, "requester_share_bps")
        return self._settle_slash(
            task_id,
            worker_id,
            requester_id,
            worker_return_bps=0,
            requester_share_bps=requester_share_bps,
            reason=reason,
            requester_address=requester_address,
            entry_type=LedgerEntryType.STAKE_SLASH,
            add_strike=True,
        )

    def partial_slash(
        self,
        task_id: str,
        worker_id: str,
        requester_id: str,
        worker_return_bps: int,
        requester_share_bps: int,
        reason: str = "partial_resolution",
        requester_address: str | None = None,
    ) -> StakeResult:
        """Split a held stake between worker, requester and platform.

        Raises:
            ValidationException: If the shares exceed 10000 bps.
        """
        validate_bps(worker_return_bps, "worker_return_bps")
        validate_bps(requester_share_bps, "requester_share_bps")
        if worker_return_bps + requester_share_bps > BPS_DENOMINATOR:
            raise ValidationException(
                "Worker return and requester share cannot exceed 100%",
                field="worker_return_bps",
                value=worker_return_bps + requester_share_bps,
            )
        return self._settle_slash(
            task_id,
            worker_id,
            requester_id,
            worker_return_bps=worker_return_bps,
            requester_share_bps=requester_share_bps,
            reason=reason,
            requester_address=requester_address,
            entry_type=LedgerEntryType.STAKE_PARTIAL_SLASH,
            add_strike=False,
        )

    def _settle_slash(
        self,
        task_id: str,
        worker_id: str,
        requester_id: str,
        worker_return_bps: int,
        requester_share_bps: int,
        reason: str,
        requester_address: str | None,
        entry_type: LedgerEntryType,
        add_strike: bool,
    ) -> StakeResult:
        key = stake_lock(task_id, worker_id)
        with self.store.lock(key):
            stake = self._require_held(task_id, worker_id)
            allocation = allocate(stake.amount, worker_return_bps, requester_share_bps)
            tx_ref = self._distribute_funds(stake, allocation, requester_address)

            entries: list[LedgerEntry] = []
            shares = (
                (allocation.worker, worker_id, stake.worker_address, "worker_return"),
                (allocation.requester, requester_id, requester_address, "requester_share"),
                (allocation.platform, PLATFORM_ACCOUNT, None, "platform_share"),
            )
            for amount, counterparty, address, role in shares:
                if amount <= 0:
                    continue
                entries.append(
                    self._entry(
                        stake,
                        entry_type,
                        amount,
                        LedgerDirection.DEBIT,
                        counterparty,
                        wallet_address=address,
                        tx_ref=tx_ref,
                        role=role,
                        reason=reason,
                        worker_return_bps=worker_return_bps,
                        requester_share_bps=requester_share_bps,
                    )
                )

            with self.store.transaction(key) as tx:
                stake.status = StakeStatus.SLASHED
                stake.slashed_at = datetime.now(UTC)
                stake.slash_reason = reason
                stake.worker_return = allocation.worker
                stake.requester_share = allocation.requester
                stake.platform_share = allocation.platform
                tx.update_stake(stake, expected_status=StakeStatus.HELD)
                for entry in entries:
                    tx.append_ledger(entry)
                if add_strike:
                    strikes = tx.increment_strikes(worker_id)

        if add_strike:
            logger.warning(
                f"Stake slashed for task {task_id} worker {worker_id} ({reason}): "
                f"requester {allocation.requester}, platform {allocation.platform}; "
                f"worker now has {strikes} strike(s)"
            )
        else:
            logger.info(
                f"Stake partially slashed for task {task_id} worker {worker_id} ({reason}): "
                f"worker {allocation.worker}, requester {allocation.requester}, "
                f"platform {allocation.platform}"
            )
        return StakeResult(success=True, stake=stake, tx_ref=tx_ref, entries=entries)
