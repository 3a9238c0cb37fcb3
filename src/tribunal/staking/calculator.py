"""Stake sizing for task claims.

Stake rate in basis points of the bounty:
- Base: 1500 bps (15%)
- +200 bps per recorded strike
- -500 bps when reputation is at least 90
- Clamped to [500, 3000] bps (5%..30%)

Amount = floor(bounty * bps / 10000) in minor units.
"""

from __future__ import annotations

from ..core.config import StakingPolicy
from ..core.exceptions import ValidationException
from ..core.money import bps_of
from .models import StakeQuote

DEFAULT_POLICY = StakingPolicy()


def _unclamped_bps(strike_count: int, reputation: float, policy: StakingPolicy) -> int:
    bps = policy.base_stake_bps + max(0, strike_count) * policy.strike_increment_bps
    if reputation >= policy.high_reputation_threshold:
        bps -= policy.reputation_discount_bps
    return bps


def calculate_stake_bps(
    strike_count: int,
    reputation: float,
    policy: StakingPolicy = DEFAULT_POLICY,
) -> int:
    """Stake rate for a worker, clamped to the policy bounds."""
    bps = _unclamped_bps(strike_count, reputation, policy)
    return max(policy.min_stake_bps, min(policy.max_stake_bps, bps))


def calculate_required_stake(
    bounty_amount: int,
    strike_count: int = 0,
    reputation: float = 0.0,
    policy: StakingPolicy = DEFAULT_POLICY,
) -> StakeQuote:
    """Calculate the stake a worker must post to claim a task.

    Args:
        bounty_amount: Task bounty in minor units.
        strike_count: Worker's recorded strikes.
        reputation: Worker's reliability score (0-100).
        policy: Stake sizing parameters.

    Returns:
        StakeQuote with the rate, amount and a readable reason.
    """
    if bounty_amount < 0:
        raise ValidationException("Bounty must not be negative", field="bounty_amount", value=bounty_amount)

    bps = calculate_stake_bps(strike_count, reputation, policy)

    reasons = [f"base {policy.base_stake_bps} bps"]
    if strike_count > 0:
        reasons.append(f"+{strike_count * policy.strike_increment_bps} bps for {strike_count} strike(s)")
    if reputation >= policy.high_reputation_threshold:
        reasons.append(f"-{policy.reputation_discount_bps} bps for reputation {reputation:g}")
    if bps != _unclamped_bps(strike_count, reputation, policy):
        reasons.append(f"clamped to {bps} bps")

    return StakeQuote(
        bounty_amount=bounty_amount,
        stake_bps=bps,
        amount=bps_of(bounty_amount, bps),
        strike_count=strike_count,
        reputation=reputation,
        reason=", ".join(reasons),
    )
