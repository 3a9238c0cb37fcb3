"""Tests for the stake state machine on the ledger-only provider."""

from __future__ import annotations

import pytest

from tribunal.core.exceptions import ConflictError, NotFoundError, ValidationException
from tribunal.staking.ledger_provider import LedgerStakingProvider
from tribunal.staking.models import (
    PLATFORM_ACCOUNT,
    LedgerDirection,
    LedgerEntryType,
    StakeStatus,
)

BOUNTY = 100_000_000


@pytest.fixture
def held(provider):
    """A 10 USDC stake held against a 100 USDC bounty."""
    return provider.create_stake("task-1", "worker-1", BOUNTY, reputation=95.0, worker_address="0xworker").stake


# ============================================================================
# Creation
# ============================================================================


class TestCreateStake:
    def test_creates_held_stake(self, provider, store):
        result = provider.create_stake("task-1", "worker-1", BOUNTY, reputation=95.0, worker_address="0xworker")

        assert result.success
        assert result.stake.status == StakeStatus.HELD
        assert result.stake.amount == 10_000_000
        assert result.stake.held_at is not None
        assert store.get_stake("task-1", "worker-1").status == StakeStatus.HELD

    def test_writes_credit_entry(self, provider, store, held):
        entries = store.list_ledger("task-1")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.entry_type == LedgerEntryType.STAKE
        assert entry.direction == LedgerDirection.CREDIT
        assert entry.amount == 10_000_000
        assert entry.counterparty_id == "worker-1"
        assert entry.metadata["stake_id"] == held.id
        assert entry.metadata["provider"] == "ledger"

    def test_strikes_raise_stake(self, provider, store):
        with store.transaction() as tx:
            tx.increment_strikes("worker-1")
        stake = provider.create_stake("task-1", "worker-1", BOUNTY, reputation=95.0).stake
        assert stake.stake_bps == 1200
        assert stake.strike_count_at_creation == 1

    def test_duplicate_conflicts(self, provider, held):
        with pytest.raises(ConflictError):
            provider.create_stake("task-1", "worker-1", BOUNTY)

    def test_allowance_always_true(self, provider):
        assert provider.check_allowance("0xanything", 10**18)


# ============================================================================
# Release
# ============================================================================


class TestReleaseStake:
    def test_release_returns_full_amount(self, provider, store, held):
        result = provider.release_stake("task-1", "worker-1")

        assert result.stake.status == StakeStatus.RELEASED
        assert result.stake.worker_return == 10_000_000
        release = store.list_ledger("task-1")[-1]
        assert release.entry_type == LedgerEntryType.STAKE_RELEASE
        assert release.direction == LedgerDirection.DEBIT
        assert release.amount == 10_000_000

    def test_release_twice_conflicts(self, provider, held):
        provider.release_stake("task-1", "worker-1")
        with pytest.raises(ConflictError, match="released"):
            provider.release_stake("task-1", "worker-1")

    def test_release_missing(self, provider):
        with pytest.raises(NotFoundError):
            provider.release_stake("task-9", "worker-1")

    def test_release_leaves_strikes(self, provider, store, held):
        provider.release_stake("task-1", "worker-1")
        assert store.get_strikes("worker-1") == 0


# ============================================================================
# Slashing
# ============================================================================


class TestSlashStake:
    def test_full_slash_splits_and_strikes(self, provider, store, held):
        result = provider.slash_stake("task-1", "worker-1", "requester-1", requester_address="0xrequester")

        assert result.stake.status == StakeStatus.SLASHED
        assert result.stake.worker_return == 0
        assert result.stake.requester_share == 5_000_000
        assert result.stake.platform_share == 5_000_000
        assert store.get_strikes("worker-1") == 1

        slash_entries = [e for e in store.list_ledger("task-1") if e.entry_type == LedgerEntryType.STAKE_SLASH]
        assert {e.counterparty_id: e.amount for e in slash_entries} == {
            "requester-1": 5_000_000,
            PLATFORM_ACCOUNT: 5_000_000,
        }
        assert all(e.direction == LedgerDirection.DEBIT for e in slash_entries)

    def test_custom_requester_share(self, provider, held):
        result = provider.slash_stake("task-1", "worker-1", "requester-1", requester_share_bps=10_000)
        assert result.stake.requester_share == 10_000_000
        assert result.stake.platform_share == 0
        assert len(result.entries) == 1

    def test_slash_after_release_conflicts(self, provider, store, held):
        provider.release_stake("task-1", "worker-1")
        with pytest.raises(ConflictError):
            provider.slash_stake("task-1", "worker-1", "requester-1")
        assert store.get_strikes("worker-1") == 0

    def test_invalid_share(self, provider, held):
        with pytest.raises(ValidationException):
            provider.slash_stake("task-1", "worker-1", "requester-1", requester_share_bps=12_000)


class TestPartialSlash:
    def test_three_way_split(self, provider, store):
        provider.create_stake("task-1", "worker-1", 200_000_000, reputation=95.0)

        result = provider.partial_slash("task-1", "worker-1", "requester-1", 3000, 3500)

        assert result.stake.status == StakeStatus.SLASHED
        assert (result.stake.worker_return, result.stake.requester_share, result.stake.platform_share) == (
            6_000_000,
            7_000_000,
            7_000_000,
        )
        entries = [e for e in store.list_ledger("task-1") if e.entry_type == LedgerEntryType.STAKE_PARTIAL_SLASH]
        assert sum(e.amount for e in entries) == 20_000_000
        assert {e.metadata["role"] for e in entries} == {"worker_return", "requester_share", "platform_share"}

    def test_no_strike(self, provider, store, held):
        provider.partial_slash("task-1", "worker-1", "requester-1", 5000, 2500)
        assert store.get_strikes("worker-1") == 0

    def test_shares_over_100_percent(self, provider, held):
        with pytest.raises(ValidationException):
            provider.partial_slash("task-1", "worker-1", "requester-1", 6000, 5000)

    def test_ledger_balances(self, provider, store, held):
        provider.partial_slash("task-1", "worker-1", "requester-1", 3333, 3333)

        entries = store.list_ledger("task-1")
        credits = sum(e.amount for e in entries if e.direction == LedgerDirection.CREDIT)
        debits = sum(e.amount for e in entries if e.direction == LedgerDirection.DEBIT)
        assert credits == debits == 10_000_000


class TestProviderQueries:
    def test_get_stake_and_strikes(self, provider, held):
        assert provider.get_stake("task-1", "worker-1").id == held.id
        assert provider.get_strike_count("worker-1") == 0

    def test_name(self, store):
        assert LedgerStakingProvider(store).name == "ledger"
