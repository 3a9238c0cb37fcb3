"""Data models for the stake ledger.

Stakes move ``pending -> held -> released | slashed`` exactly once. Ledger
entries are append-only and never mutated; together they let an auditor
rebuild every movement of a stake.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class StakeStatus(StrEnum):
    PENDING = "pending"
    HELD = "held"
    RELEASED = "released"
    SLASHED = "slashed"

    @property
    def is_terminal(self) -> bool:
        return self in (StakeStatus.RELEASED, StakeStatus.SLASHED)


class LedgerEntryType(StrEnum):
    STAKE = "stake"
    STAKE_RELEASE = "stake_release"
    STAKE_SLASH = "stake_slash"
    STAKE_PARTIAL_SLASH = "stake_partial_slash"
    APPEAL_STAKE = "appeal_stake"
    APPEAL_STAKE_RETURN = "appeal_stake_return"
    APPEAL_STAKE_FORFEIT = "appeal_stake_forfeit"


class LedgerDirection(StrEnum):
    CREDIT = "credit"  # funds taken into custody
    DEBIT = "debit"  # funds paid out of custody


PLATFORM_ACCOUNT = "platform"


@dataclass
class Stake:
    """Collateral a worker posts against a claimed task."""

    task_id: str
    worker_id: str
    amount: int
    bounty_amount: int
    stake_bps: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: StakeStatus = StakeStatus.PENDING
    strike_count_at_creation: int = 0
    reputation_at_creation: float = 0.0
    worker_address: str | None = None
    provider: str = "ledger"
    provider_ref: str | None = None
    worker_return: int = 0
    requester_share: int = 0
    platform_share: int = 0
    slash_reason: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    held_at: datetime | None = None
    released_at: datetime | None = None
    slashed_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.task_id, self.worker_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "worker_id": self.worker_id,
            "amount": self.amount,
            "bounty_amount": self.bounty_amount,
            "stake_bps": self.stake_bps,
            "status": self.status.value,
            "strike_count_at_creation": self.strike_count_at_creation,
            "reputation_at_creation": self.reputation_at_creation,
            "worker_address": self.worker_address,
            "provider": self.provider,
            "provider_ref": self.provider_ref,
            "worker_return": self.worker_return,
            "requester_share": self.requester_share,
            "platform_share": self.platform_share,
            "slash_reason": self.slash_reason,
            "created_at": self.created_at.isoformat(),
            "held_at": self.held_at.isoformat() if self.held_at else None,
            "released_at": self.released_at.isoformat() if self.released_at else None,
            "slashed_at": self.slashed_at.isoformat() if self.slashed_at else None,
        }


@dataclass
class LedgerEntry:
    """One append-only money movement."""

    task_id: str
    entry_type: LedgerEntryType
    amount: int
    direction: LedgerDirection
    counterparty_id: str
    currency: str = "USDC"
    wallet_address: str | None = None
    tx_ref: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "entry_type": self.entry_type.value,
            "amount": self.amount,
            "direction": self.direction.value,
            "counterparty_id": self.counterparty_id,
            "currency": self.currency,
            "wallet_address": self.wallet_address,
            "tx_ref": self.tx_ref,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class StakeQuote:
    """Calculated stake requirement for a task claim."""

    bounty_amount: int
    stake_bps: int
    amount: int
    strike_count: int
    reputation: float
    reason: str

    @property
    def percentage(self) -> float:
        return self.stake_bps / 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "bounty_amount": self.bounty_amount,
            "stake_bps": self.stake_bps,
            "percentage": self.percentage,
            "amount": self.amount,
            "strike_count": self.strike_count,
            "reputation": self.reputation,
            "reason": self.reason,
        }


@dataclass
class StakeResult:
    """Outcome of a stake operation."""

    success: bool
    stake: Stake | None = None
    tx_ref: str | None = None
    error: str | None = None
    entries: list[LedgerEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "stake": self.stake.to_dict() if self.stake else None,
            "tx_ref": self.tx_ref,
            "error": self.error,
            "entries": [e.to_dict() for e in self.entries],
        }
