"""Money arithmetic in integer minor units.

Every amount held by the engine is an ``int`` count of the currency's
minor unit (micro-USDC by default). ``Decimal`` appears only at the edges:
when callers hand in human amounts and when amounts are rendered.

Basis-point shares always round down; whatever is left after the explicit
shares goes to the platform, so splits are exact.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import NamedTuple

from .exceptions import ValidationException

BPS_DENOMINATOR = 10_000
DEFAULT_DECIMALS = 6


class Allocation(NamedTuple):
    """An amount divided between worker, requester and platform."""

    worker: int
    requester: int
    platform: int

    @property
    def total(self) -> int:
        return self.worker + self.requester + self.platform


def to_minor(amount: Decimal | str | int, decimals: int = DEFAULT_DECIMALS) -> int:
    """Convert a human amount (e.g. ``Decimal("20.00")``) to minor units."""
    try:
        value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
    except InvalidOperation as e:
        raise ValidationException(f"Invalid amount: {amount}", field="amount", value=amount) from e
    if not value.is_finite():
        raise ValidationException("Amount must be finite", field="amount", value=amount)
    scaled = (value * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    if scaled < 0:
        raise ValidationException("Amount must not be negative", field="amount", value=amount)
    return int(scaled)


def from_minor(minor: int, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Convert minor units back to a ``Decimal`` amount."""
    return Decimal(minor).scaleb(-decimals)


def validate_bps(bps: int, field: str = "bps") -> int:
    if not isinstance(bps, int) or isinstance(bps, bool):
        raise ValidationException("Basis points must be an integer", field=field, value=bps)
    if bps < 0 or bps > BPS_DENOMINATOR:
        raise ValidationException(f"{field} must be between 0 and {BPS_DENOMINATOR}", field=field, value=bps)
    return bps


def bps_of(amount: int, bps: int) -> int:
    """Floor of ``amount * bps / 10000``."""
    validate_bps(bps)
    return amount * bps // BPS_DENOMINATOR


def percent_of(amount: int, percent: int) -> int:
    """Floor of ``amount * percent / 100``."""
    if percent < 0 or percent > 100:
        raise ValidationException("Percentage must be between 0 and 100", field="percent", value=percent)
    return amount * percent // 100


def meets_bps_minimum(amount: int, base: int, bps: int) -> bool:
    """Whether ``amount`` is at least ``bps`` basis points of ``base``.

    Compared by cross-multiplication so no rounding is involved.
    """
    return amount * BPS_DENOMINATOR >= base * bps


def allocate(amount: int, worker_bps: int, requester_bps: int) -> Allocation:
    """Split ``amount`` by basis points, remainder to the platform.

    Raises:
        ValidationException: If a share is out of range or the shares
            exceed the whole.
    """
    validate_bps(worker_bps, "worker_return_bps")
    validate_bps(requester_bps, "requester_share_bps")
    if worker_bps + requester_bps > BPS_DENOMINATOR:
        raise ValidationException(
            "Worker return and requester share cannot exceed 100%",
            field="worker_return_bps",
            value=worker_bps + requester_bps,
        )
    worker = bps_of(amount, worker_bps)
    requester = bps_of(amount, requester_bps)
    return Allocation(worker=worker, requester=requester, platform=amount - worker - requester)
