"""Stake ledger: sizing, custody and settlement of worker stakes.

Submodules:
- calculator: stake rate and amount for a claim
- models: Stake, LedgerEntry, StakeQuote, StakeResult
- provider: StakingProvider base with the stake state machine
- ledger_provider / external_provider: settlement backends
- gateway: HTTP client for the external funds gateway
- lifecycle: claim/release helpers outside disputes
- factory: provider selection from configuration
"""

from .calculator import calculate_required_stake, calculate_stake_bps
from .external_provider import ExternalStakingProvider
from .factory import create_staking_provider
from .gateway import FundsGateway, HttpFundsGateway
from .ledger_provider import LedgerStakingProvider
from .lifecycle import claim_task_stake, quote_task_stake, release_task_stake
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
from .provider import StakingProvider

__all__ = [
    "PLATFORM_ACCOUNT",
    "ExternalStakingProvider",
    "FundsGateway",
    "HttpFundsGateway",
    "LedgerDirection",
    "LedgerEntry",
    "LedgerEntryType",
    "LedgerStakingProvider",
    "Stake",
    "StakeQuote",
    "StakeResult",
    "StakeStatus",
    "StakingProvider",
    "calculate_required_stake",
    "calculate_stake_bps",
    "claim_task_stake",
    "create_staking_provider",
    "quote_task_stake",
    "release_task_stake",
]
