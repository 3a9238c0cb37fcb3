"""Core configuration - centralized config for the tribunal package.

All environment-based configuration should flow through this module.
This provides a single source of truth and consistent defaults.

Usage:
    from tribunal.core.config import get_config
    config = get_config()

    # Access settings
    policy = config.dispute_policy
    log_level = config.log_level

The engine itself never reads the global: services receive the frozen
``StakingPolicy`` / ``DisputePolicy`` values built here.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class StakingPolicy:
    """Stake sizing and slashing parameters, all in basis points."""

    base_stake_bps: int = 1500
    min_stake_bps: int = 500
    max_stake_bps: int = 3000
    strike_increment_bps: int = 200
    high_reputation_threshold: float = 90.0
    reputation_discount_bps: int = 500
    slash_requester_share_bps: int = 5000
    currency: str = "USDC"


@dataclass(frozen=True)
class DisputePolicy:
    """Timing, jury and appeal parameters for the tier engine."""

    evidence_window_hours: int = 48
    tier1_review_minutes: int = 5
    tier2_duration_hours: int = 48
    tier3_duration_hours: int = 72
    appeal_window_hours: int = 72
    appeal_stake_bps: int = 1000
    jury_size: int = 5
    jury_min_reliability: float = 90.0
    jury_min_accepted_tasks: int = 5
    jury_pool_multiplier: int = 3
    max_evidence_per_party: int = 10
    tie_break_outcome: str = "worker_wins"
    jury_no_quorum_policy: str = "escalate"
    insufficient_jurors_fallback: str = "tier3"


class CoreSettings(BaseSettings):
    """Core configuration settings for Tribunal.

    Settings can be configured via environment variables with the
    TRIBUNAL_ prefix.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="TRIBUNAL_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="TRIBUNAL_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="TRIBUNAL_LOG_FILE",
    )

    # ==========================================================================
    # MONEY SETTINGS
    # ==========================================================================

    currency: str = Field(
        default="USDC",
        description="Currency code written on ledger entries",
        validation_alias="TRIBUNAL_CURRENCY",
    )
    currency_decimals: int = Field(
        default=6,
        description="Decimal places of the currency's minor unit",
        validation_alias="TRIBUNAL_CURRENCY_DECIMALS",
    )

    # ==========================================================================
    # STAKING SETTINGS
    # ==========================================================================

    staking_provider: str = Field(
        default="ledger",
        description="Settlement backend: 'ledger' or 'external'",
        validation_alias="TRIBUNAL_STAKING_PROVIDER",
    )
    base_stake_bps: int = Field(
        default=1500,
        description="Base stake as basis points of the bounty",
        validation_alias="TRIBUNAL_BASE_STAKE_BPS",
    )
    min_stake_bps: int = Field(
        default=500,
        description="Lower clamp for the stake rate",
        validation_alias="TRIBUNAL_MIN_STAKE_BPS",
    )
    max_stake_bps: int = Field(
        default=3000,
        description="Upper clamp for the stake rate",
        validation_alias="TRIBUNAL_MAX_STAKE_BPS",
    )
    strike_increment_bps: int = Field(
        default=200,
        description="Stake increase per recorded strike",
        validation_alias="TRIBUNAL_STRIKE_INCREMENT_BPS",
    )
    high_reputation_threshold: float = Field(
        default=90.0,
        description="Reputation at or above which the discount applies",
        validation_alias="TRIBUNAL_HIGH_REPUTATION_THRESHOLD",
    )
    reputation_discount_bps: int = Field(
        default=500,
        description="Stake discount for high-reputation workers",
        validation_alias="TRIBUNAL_REPUTATION_DISCOUNT_BPS",
    )
    slash_requester_share_bps: int = Field(
        default=5000,
        description="Requester share of a full slash",
        validation_alias="TRIBUNAL_SLASH_REQUESTER_SHARE_BPS",
    )
    settlement_gateway_url: str = Field(
        default="",
        description="Base URL of the funds gateway (external provider only)",
        validation_alias="TRIBUNAL_SETTLEMENT_GATEWAY_URL",
    )
    settlement_gateway_token: str = Field(
        default="",
        description="Bearer token for the funds gateway",
        validation_alias="TRIBUNAL_SETTLEMENT_GATEWAY_TOKEN",
    )
    settlement_gateway_timeout: float = Field(
        default=10.0,
        description="Funds gateway request timeout in seconds",
        validation_alias="TRIBUNAL_SETTLEMENT_GATEWAY_TIMEOUT",
    )

    # ==========================================================================
    # DISPUTE SETTINGS
    # ==========================================================================

    evidence_window_hours: int = Field(
        default=48,
        description="Hours parties have to submit evidence after opening",
        validation_alias="TRIBUNAL_EVIDENCE_WINDOW_HOURS",
    )
    tier1_review_minutes: int = Field(
        default=5,
        description="Review window after an automated score is recorded",
        validation_alias="TRIBUNAL_TIER1_REVIEW_MINUTES",
    )
    tier2_duration_hours: int = Field(
        default=48,
        description="Jury voting window",
        validation_alias="TRIBUNAL_TIER2_DURATION_HOURS",
    )
    tier3_duration_hours: int = Field(
        default=72,
        description="Admin appeal window before the prior decision is upheld",
        validation_alias="TRIBUNAL_TIER3_DURATION_HOURS",
    )
    appeal_window_hours: int = Field(
        default=72,
        description="Hours after a jury decision during which the loser may appeal",
        validation_alias="TRIBUNAL_APPEAL_WINDOW_HOURS",
    )
    appeal_stake_bps: int = Field(
        default=1000,
        description="Minimum appeal stake as basis points of the bounty",
        validation_alias="TRIBUNAL_APPEAL_STAKE_BPS",
    )
    jury_size: int = Field(
        default=5,
        description="Jurors seated per dispute",
        validation_alias="TRIBUNAL_JURY_SIZE",
    )
    jury_min_reliability: float = Field(
        default=90.0,
        description="Minimum reliability score for jury eligibility",
        validation_alias="TRIBUNAL_JURY_MIN_RELIABILITY",
    )
    jury_min_accepted_tasks: int = Field(
        default=5,
        description="Minimum accepted tasks for jury eligibility",
        validation_alias="TRIBUNAL_JURY_MIN_ACCEPTED_TASKS",
    )
    jury_pool_multiplier: int = Field(
        default=3,
        description="Candidate pool size as a multiple of the jury size",
        validation_alias="TRIBUNAL_JURY_POOL_MULTIPLIER",
    )
    max_evidence_per_party: int = Field(
        default=10,
        description="Evidence items each party may submit",
        validation_alias="TRIBUNAL_MAX_EVIDENCE_PER_PARTY",
    )
    tie_break_outcome: str = Field(
        default="worker_wins",
        description="Outcome of a tied weighted jury vote",
        validation_alias="TRIBUNAL_TIE_BREAK_OUTCOME",
    )
    jury_no_quorum_policy: str = Field(
        default="escalate",
        description="When no juror voted by the deadline: 'escalate', 'worker_wins' or 'requester_wins'",
        validation_alias="TRIBUNAL_JURY_NO_QUORUM_POLICY",
    )
    insufficient_jurors_fallback: str = Field(
        default="tier3",
        description="When a jury cannot be seated: 'tier3' (admin review) or 'none'",
        validation_alias="TRIBUNAL_INSUFFICIENT_JURORS_FALLBACK",
    )

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def staking_policy(self) -> StakingPolicy:
        """Build the frozen staking policy."""
        return StakingPolicy(
            base_stake_bps=self.base_stake_bps,
            min_stake_bps=self.min_stake_bps,
            max_stake_bps=self.max_stake_bps,
            strike_increment_bps=self.strike_increment_bps,
            high_reputation_threshold=self.high_reputation_threshold,
            reputation_discount_bps=self.reputation_discount_bps,
            slash_requester_share_bps=self.slash_requester_share_bps,
            currency=self.currency,
        )

    @property
    def dispute_policy(self) -> DisputePolicy:
        """Build the frozen dispute policy."""
        return DisputePolicy(
            evidence_window_hours=self.evidence_window_hours,
            tier1_review_minutes=self.tier1_review_minutes,
            tier2_duration_hours=self.tier2_duration_hours,
            tier3_duration_hours=self.tier3_duration_hours,
            appeal_window_hours=self.appeal_window_hours,
            appeal_stake_bps=self.appeal_stake_bps,
            jury_size=self.jury_size,
            jury_min_reliability=self.jury_min_reliability,
            jury_min_accepted_tasks=self.jury_min_accepted_tasks,
            jury_pool_multiplier=self.jury_pool_multiplier,
            max_evidence_per_party=self.max_evidence_per_party,
            tie_break_outcome=self.tie_break_outcome,
            jury_no_quorum_policy=self.jury_no_quorum_policy,
            insufficient_jurors_fallback=self.insufficient_jurors_fallback,
        )

    @property
    def gateway_config(self) -> dict:
        """Get funds gateway connection parameters."""
        return {
            "base_url": self.settlement_gateway_url,
            "token": self.settlement_gateway_token,
            "timeout": self.settlement_gateway_timeout,
        }


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Returns:
        The singleton CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
