"""Deadline sweep: advances disputes whose time windows have lapsed.

Nothing in the engine runs on a timer. A scheduler (cron, a worker loop,
an admin command) calls ``process_dispute_deadlines`` periodically and
each step picks up the disputes that are due:

1. Tier 1 disputes past the evidence deadline with no score -> score.
2. Scored Tier 1 disputes past ``tier1_deadline`` -> resolve or escalate.
3. Tier 2 voting past its deadline -> finalize the jury.
4. Tier 3 appeals past their deadline -> uphold the appealed decision.
5. Resolved disputes past ``settlement_due_at`` -> settle the stake.
6. Open settlement remediations -> retry.

Each dispute is handled on its own; a failure is logged, recorded in
``errors`` and the sweep moves on.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..core.exceptions import TribunalException
from ..core.logging import correlation_context
from .enums import DisputeStatus
from .models import Dispute
from .state_machine import PRE_REVIEW_STATUSES

if TYPE_CHECKING:
    from ..storage.base import Store
    from .service import DisputeService

logger = logging.getLogger(__name__)


@dataclass
class DeadlineSweepResult:
    """Counts of disputes advanced by one sweep."""

    tier1_scored: int = 0
    tier1_processed: int = 0
    tier2_finalized: int = 0
    tier3_expired: int = 0
    settlements_finalized: int = 0
    remediations_retried: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False

    @property
    def total(self) -> int:
        return (
            self.tier1_scored
            + self.tier1_processed
            + self.tier2_finalized
            + self.tier3_expired
            + self.settlements_finalized
            + self.remediations_retried
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier1_scored": self.tier1_scored,
            "tier1_processed": self.tier1_processed,
            "tier2_finalized": self.tier2_finalized,
            "tier3_expired": self.tier3_expired,
            "settlements_finalized": self.settlements_finalized,
            "remediations_retried": self.remediations_retried,
            "errors": self.errors,
            "dry_run": self.dry_run,
        }

    def __str__(self) -> str:
        status = " (dry run)" if self.dry_run else ""
        return (
            f"deadline sweep{status}: tier1_scored={self.tier1_scored}, "
            f"tier1_processed={self.tier1_processed}, tier2_finalized={self.tier2_finalized}, "
            f"tier3_expired={self.tier3_expired}, settlements_finalized={self.settlements_finalized}, "
            f"remediations_retried={self.remediations_retried}, errors={len(self.errors)}"
        )


def _past(deadline: datetime | None, now: datetime) -> bool:
    return deadline is not None and now > deadline


def _left_status(store: Store, dispute_id: str, status: DisputeStatus) -> bool:
    current = store.get_dispute(dispute_id)
    return current is not None and current.status != status


def _run(
    result: DeadlineSweepResult,
    step: str,
    dispute_id: str,
    action: Callable[[], Any],
) -> tuple[bool, Any]:
    """Run one item under its own correlation ID, recording a failure instead of raising.

    Returns:
        (succeeded, value returned by the action)
    """
    with correlation_context():
        try:
            return True, action()
        except TribunalException as exc:
            logger.warning(f"Deadline sweep {step} failed for dispute {dispute_id}: {exc.message}")
            result.errors.append({"step": step, "dispute_id": dispute_id, "error": exc.message})
        except Exception as exc:
            logger.exception(f"Unexpected error in deadline sweep {step} for dispute {dispute_id}")
            result.errors.append({"step": step, "dispute_id": dispute_id, "error": str(exc)})
    return False, None


def process_dispute_deadlines(
    service: DisputeService,
    now: datetime | None = None,
    dry_run: bool = False,
) -> DeadlineSweepResult:
    """Advance every dispute whose deadline has passed.

    Args:
        service: The dispute service to act through
        now: Reference time for picking due disputes (defaults to the
            service clock)
        dry_run: If True, only count what would be processed

    Returns:
        DeadlineSweepResult with per-step counts and any errors
    """
    now = now or service.clock()
    result = DeadlineSweepResult(dry_run=dry_run)
    store = service.store
    # Failures recorded by this sweep wait for the next one
    open_remediations = store.list_remediations()

    # 1. Score Tier 1 disputes once evidence collection has closed
    pending: list[Dispute] = store.list_disputes(PRE_REVIEW_STATUSES)
    for dispute in pending:
        if dispute.auto_score_result is not None or not _past(dispute.evidence_deadline, now):
            continue
        if dry_run or _run(result, "tier1_score", dispute.id, lambda d=dispute: service.start_tier1(d.id))[0]:
            result.tier1_scored += 1

    # 2. Act on scores whose review window has lapsed
    for dispute in store.list_disputes([DisputeStatus.TIER1_REVIEW]):
        if not _past(dispute.tier1_deadline, now):
            continue
        if dry_run or _run(result, "tier1_process", dispute.id, lambda d=dispute: service.process_tier1(d.id))[0]:
            result.tier1_processed += 1

    # 3. Close juries whose voting deadline has passed
    for dispute in store.list_disputes([DisputeStatus.TIER2_VOTING]):
        if not _past(dispute.tier2_deadline, now):
            continue
        if dry_run:
            result.tier2_finalized += 1
            continue
        ok, _ = _run(
            result, "tier2_finalize", dispute.id, lambda d=dispute: service.check_jury_voting_complete(d.id)
        )
        # A no-quorum jury hands off to admin review without a resolution
        if ok and _left_status(store, dispute.id, DisputeStatus.TIER2_VOTING):
            result.tier2_finalized += 1

    # 4. Uphold appealed decisions nobody ruled on in time
    for dispute in store.list_disputes([DisputeStatus.TIER3_APPEAL]):
        if not _past(dispute.tier3_deadline, now) or dispute.appealed_decision is None:
            continue
        if dry_run:
            result.tier3_expired += 1
            continue
        ok, expired = _run(
            result, "tier3_expire", dispute.id, lambda d=dispute: service.expire_admin_appeal(d.id)
        )
        if ok and expired is not None:
            result.tier3_expired += 1

    # 5. Settle jury decisions whose appeal window closed without an appeal
    for dispute in store.list_disputes([DisputeStatus.RESOLVED]):
        if dispute.settled_at is not None or not _past(dispute.settlement_due_at, now):
            continue
        if dry_run:
            result.settlements_finalized += 1
            continue
        ok, settled = _run(result, "settlement", dispute.id, lambda d=dispute: service.finalize_settlement(d.id))
        if ok and settled:
            result.settlements_finalized += 1

    # 6. Retry failed settlements
    for remediation in open_remediations:
        if dry_run:
            result.remediations_retried += 1
            continue
        ok, retried = _run(
            result,
            "remediation",
            remediation.dispute_id,
            lambda r=remediation: service.executor.retry_remediation(r),
        )
        if ok and retried:
            result.remediations_retried += 1

    if result.total or result.errors:
        logger.info(str(result))
    return result
