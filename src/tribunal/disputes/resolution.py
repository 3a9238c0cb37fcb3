# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Apply a final dispute outcome.

The executor records the decision (dispute fields, tier history, audit
entry and any appeal-stake ledger movement) as one unit of work, updates
the submission and task through the task directory, settles the worker's
stake and publishes ``DisputeResolved``.

Settlement is a separate step on purpose: once the decision commits it
stands, and a failed settlement becomes a remediation item retried by the
deadline sweep. Jury decisions are appealable, so their settlement waits
until the appeal window closes.

Stake mapping:
- accept_pay:    release the full stake
- reject_refund: slash, requester share 50%, remainder to the platform
- strike:        as reject_refund, tagged as a strike
- partial_pay p: worker gets p% back, requester half of the rest
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ..core.exceptions import ConflictError, NotFoundError, SettlementError, ValidationException
from ..core.interfaces import EventPublisher, TaskDirectory, WalletResolver
from ..core.logging import AuditLogger, audit_logger
from ..core.money import BPS_DENOMINATOR, percent_of
from ..staking.models import (
    PLATFORM_ACCOUNT,
    LedgerDirection,
    LedgerEntry,
    LedgerEntryType,
    StakeResult,
)
from ..staking.provider import StakingProvider
from ..storage.base import Store, Transaction, dispute_lock
from .enums import AuditAction, DisputeOutcome, ResolutionType
from .models import (
    AuditLogEntry,
    Dispute,
    DisputeResolved,
    ResolutionRecord,
    SettlementRemediation,
)
from .state_machine import TierStateMachine

logger = logging.getLogger(__name__)


def determine_resolution_type(outcome: DisputeOutcome, split_percentage: int | None = None) -> ResolutionType:
    """``partial_pay`` for a split strictly between 0 and 100, else by outcome."""
    if split_percentage is not None and 0 < split_percentage < 100:
        return ResolutionType.PARTIAL_PAY
    if outcome == DisputeOutcome.WORKER_WINS:
        return ResolutionType.ACCEPT_PAY
    return ResolutionType.REJECT_REFUND


def validate_split(split_percentage: int | None) -> None:
    if split_percentage is None:
        return
    if not isinstance(split_percentage, int) or isinstance(split_percentage, bool):
        raise ValidationException("Split percentage must be an integer", field="split_percentage", value=split_percentage)
    if not 0 <= split_percentage <= 100:
        raise ValidationException("Split percentage must be between 0 and 100", field="split_percentage", value=split_percentage)


def bounty_split(bounty_amount: int, resolution_type: ResolutionType, split_percentage: int) -> tuple[int, int]:
    """(worker, requester) shares of the bounty."""
    if resolution_type == ResolutionType.ACCEPT_PAY:
        return bounty_amount, 0
    if resolution_type == ResolutionType.PARTIAL_PAY:
        worker = percent_of(bounty_amount, split_percentage)
        return worker, bounty_amount - worker
    return 0, bounty_amount


def partial_slash_shares(split_percentage: int) -> tuple[int, int]:
    """(worker_return_bps, requester_share_bps) for a partial payout."""
    worker_return_bps = split_percentage * 100
    return worker_return_bps, (BPS_DENOMINATOR - worker_return_bps) // 2


@dataclass
class ResolutionOutcome:
    """What happened when a decision was applied."""

    dispute: Dispute
    record: ResolutionRecord
    event: DisputeResolved
    settlement: StakeResult | None = None
    settlement_deferred: bool = False
    remediation: SettlementRemediation | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "dispute": self.dispute.to_dict(),
            "record": self.record.model_dump(mode="json"),
            "event": self.event.model_dump(mode="json"),
            "settlement": self.settlement.to_dict() if self.settlement else None,
            "settlement_deferred": self.settlement_deferred,
            "remediation": self.remediation.to_dict() if self.remediation else None,
        }


class ResolutionExecutor:
    """Finalizes disputes and hands settlement to the staking provider."""

    def __init__(
        self,
        store: Store,
        tasks: TaskDirectory,
        provider: StakingProvider,
        wallets: WalletResolver,
        events: EventPublisher,
        state_machine: TierStateMachine,
        audit: AuditLogger = audit_logger,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.tasks = tasks
        self.provider = provider
        self.wallets = wallets
        self.events = events
        self.state_machine = state_machine
        self.audit = audit
        self.clock = clock or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # Audit helper
    # ------------------------------------------------------------------

    def record_audit(
        self,
        tx: Transaction,
        dispute_id: str,
        action: str,
        actor_id: str | None,
        details: dict[str, Any] | None = None,
        level: int = logging.INFO,
    ) -> None:
        sanitized = self.audit.log_action(dispute_id, action, actor_id, details, level=level)
        tx.append_audit(AuditLogEntry(dispute_id=dispute_id, action=action, actor_id=actor_id, details=sanitized))

    # ------------------------------------------------------------------
    # Resolve
    # ------------------------------------------------------------------

    def resolve(
        self,
        dispute_id: str,
        outcome: DisputeOutcome,
        reason: str,
        resolver_id: str | None = None,
        split_percentage: int | None = None,
        resolution_type: ResolutionType | None = None,
        comment: str | None = None,
        appealable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> ResolutionOutcome:
        """Record a final decision and settle.

        Raises:
            NotFoundError: If the dispute does not exist.
            ConflictError: If the dispute is already resolved.
            ValidationException: If the split is out of range.
        """
        validate_split(split_percentage)
        resolution_type = resolution_type or determine_resolution_type(outcome, split_percentage)
        if resolution_type == ResolutionType.PARTIAL_PAY:
            if split_percentage is None:
                raise ValidationException("Partial pay requires a split percentage", field="split_percentage")
            split = split_percentage
        else:
            split = 100 if resolution_type == ResolutionType.ACCEPT_PAY else 0

        now = self.clock()
        with self.store.transaction(dispute_lock(dispute_id)) as tx:
            dispute = tx.get_dispute(dispute_id)
            if dispute is None:
                raise NotFoundError("Dispute", dispute_id)
            tier = dispute.current_tier
            appealed = dispute.appealed_decision if tier == 3 else None

            record = self.state_machine.record_resolution(
                dispute,
                outcome,
                resolution_type,
                split,
                now=now,
                reason=reason,
                resolver_id=resolver_id,
                comment=comment,
                details=details,
                appealable=appealable,
            )
            if appealed is not None and dispute.escalation_stake:
                self._settle_appeal_stake(tx, dispute, reversed_=appealed.outcome != outcome)
            tx.update_dispute(dispute)
            self.record_audit(
                tx,
                dispute.id,
                f"tier{tier}_resolved",
                resolver_id,
                {
                    "outcome": outcome.value,
                    "resolution_type": resolution_type.value,
                    "split_percentage": split,
                    "reason": reason,
                    **(details or {}),
                },
            )

        logger.info(
            f"Dispute {dispute.id} resolved at tier {tier}: {outcome.value} ({resolution_type.value})"
        )
        self._update_task_state(dispute, outcome, resolution_type)

        settlement: StakeResult | None = None
        remediation: SettlementRemediation | None = None
        if appealable:
            with self.store.transaction(dispute_lock(dispute.id)) as tx:
                self.record_audit(
                    tx,
                    dispute.id,
                    AuditAction.SETTLEMENT_DEFERRED.value,
                    None,
                    {"settlement_due_at": dispute.settlement_due_at.isoformat()},
                )
        else:
            settlement, remediation = self.settle(dispute.id)

        worker_amount, requester_amount = bounty_split(dispute.bounty_amount, resolution_type, split)
        event = DisputeResolved(
            dispute_id=dispute.id,
            task_id=dispute.task_id,
            submission_id=dispute.submission_id,
            worker_id=dispute.worker_id,
            requester_id=dispute.requester_id,
            tier=tier,
            outcome=outcome,
            resolution_type=resolution_type,
            split_percentage=split,
            bounty_amount=dispute.bounty_amount,
            worker_amount=worker_amount,
            requester_amount=requester_amount,
            currency=self.provider.policy.currency,
            resolver_id=resolver_id,
            resolved_at=now,
            settlement_deferred=appealable,
            settlement=settlement.to_dict() if settlement else None,
        )
        self._publish(event)

        current = self.store.get_dispute(dispute.id) or dispute
        return ResolutionOutcome(
            dispute=current,
            record=record,
            event=event,
            settlement=settlement,
            settlement_deferred=appealable,
            remediation=remediation,
        )

    def _settle_appeal_stake(self, tx: Transaction, dispute: Dispute, reversed_: bool) -> None:
        """Return the appeal stake on a reversal, forfeit it otherwise."""
        if reversed_:
            entry_type = LedgerEntryType.APPEAL_STAKE_RETURN
            counterparty = dispute.appellant_id
            address = self.wallets.primary_wallet(dispute.appellant_id)
        else:
            entry_type = LedgerEntryType.APPEAL_STAKE_FORFEIT
            counterparty = PLATFORM_ACCOUNT
            address = None
        tx.append_ledger(
            LedgerEntry(
                task_id=dispute.task_id,
                entry_type=entry_type,
                amount=dispute.escalation_stake,
                direction=LedgerDirection.DEBIT,
                counterparty_id=counterparty,
                currency=self.provider.policy.currency,
                wallet_address=address,
                metadata={"dispute_id": dispute.id, "appellant_id": dispute.appellant_id},
            )
        )

    def _update_task_state(
        self, dispute: Dispute, outcome: DisputeOutcome, resolution_type: ResolutionType
    ) -> None:
        if resolution_type == ResolutionType.PARTIAL_PAY:
            submission_status = "resolved"
        elif outcome == DisputeOutcome.WORKER_WINS:
            submission_status = "accepted"
        else:
            submission_status = "rejected"
        try:
            self.tasks.update_submission_status(dispute.submission_id, submission_status)
            if resolution_type == ResolutionType.ACCEPT_PAY:
                self.tasks.update_task_status(dispute.task_id, "accepted")
        except Exception as exc:
            logger.error(f"Failed to update task state for dispute {dispute.id}: {exc}")

    def _publish(self, event: DisputeResolved) -> None:
        try:
            self.events.publish(event)
        except Exception as exc:
            logger.error(f"Failed to publish resolution event for dispute {event.dispute_id}: {exc}")

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def _apply_settlement(self, dispute: Dispute) -> StakeResult:
        requester_address = self.wallets.primary_wallet(dispute.requester_id)
        resolution_type = dispute.resolution_type

        if resolution_type == ResolutionType.ACCEPT_PAY:
            return self.provider.release_stake(dispute.task_id, dispute.worker_id)
        if resolution_type == ResolutionType.PARTIAL_PAY:
            worker_return_bps, requester_share_bps = partial_slash_shares(dispute.split_percentage)
            return self.provider.partial_slash(
                dispute.task_id,
                dispute.worker_id,
                dispute.requester_id,
                worker_return_bps=worker_return_bps,
                requester_share_bps=requester_share_bps,
                reason="partial_resolution",
                requester_address=requester_address,
            )
        reason = "dispute_loss_strike" if resolution_type == ResolutionType.STRIKE else "dispute_loss"
        return self.provider.slash_stake(
            dispute.task_id,
            dispute.worker_id,
            dispute.requester_id,
            reason=reason,
            requester_address=requester_address,
        )

    def settle(
        self,
        dispute_id: str,
        remediation: SettlementRemediation | None = None,
    ) -> tuple[StakeResult | None, SettlementRemediation | None]:
        """Settle the stake for a resolved dispute.

        Holds the dispute lock so an appeal cannot land mid-settlement.

        Returns:
            (stake result or None when there was nothing to move,
             open remediation item or None on success)
        """
        with self.store.lock(dispute_lock(dispute_id)):
            dispute = self.store.get_dispute(dispute_id)
            if dispute is None:
                raise NotFoundError("Dispute", dispute_id)
            if not dispute.is_resolved:
                raise ConflictError("Only resolved disputes can be settled", existing_id=dispute_id)
            if dispute.settled_at is not None:
                return None, None

            stake = self.provider.get_stake(dispute.task_id, dispute.worker_id)
            result: StakeResult | None = None
            try:
                if stake is None:
                    logger.info(f"Dispute {dispute_id}: task {dispute.task_id} has no stake to settle")
                elif stake.status.is_terminal:
                    logger.warning(
                        f"Dispute {dispute_id}: stake {stake.id} already {stake.status.value}, skipping settlement"
                    )
                else:
                    result = self._apply_settlement(dispute)
            except (SettlementError, ConflictError, NotFoundError) as exc:
                return None, self._record_failure(dispute, exc, remediation)
            except Exception as exc:
                logger.exception(f"Dispute {dispute_id}: unexpected settlement error")
                return None, self._record_failure(dispute, exc, remediation)

            now = self.clock()
            with self.store.transaction(dispute_lock(dispute_id)) as tx:
                dispute.settled_at = now
                dispute.settlement_due_at = None
                tx.update_dispute(dispute)
                if remediation is not None:
                    remediation.resolved = True
                    remediation.last_attempt_at = now
                    tx.put_remediation(remediation)
                self.record_audit(
                    tx,
                    dispute_id,
                    AuditAction.SETTLEMENT_COMPLETED.value,
                    None,
                    {
                        "resolution_type": dispute.resolution_type.value,
                        "tx_ref": result.tx_ref if result else None,
                        "stake_status": result.stake.status.value if result and result.stake else None,
                    },
                )
            return result, None

    def _record_failure(
        self,
        dispute: Dispute,
        exc: Exception,
        remediation: SettlementRemediation | None,
    ) -> SettlementRemediation:
        now = self.clock()
        if remediation is None:
            remediation = next(
                (r for r in self.store.list_remediations() if r.dispute_id == dispute.id), None
            )
        if remediation is None:
            remediation = SettlementRemediation(
                dispute_id=dispute.id,
                task_id=dispute.task_id,
                worker_id=dispute.worker_id,
                resolution_type=dispute.resolution_type,
                split_percentage=dispute.split_percentage or 0,
                error=str(exc),
                created_at=now,
                last_attempt_at=now,
            )
        else:
            remediation.attempts += 1
            remediation.error = str(exc)
            remediation.last_attempt_at = now

        logger.error(
            f"Settlement failed for dispute {dispute.id} (attempt {remediation.attempts}): {exc}"
        )
        with self.store.transaction(dispute_lock(dispute.id)) as tx:
            tx.put_remediation(remediation)
            self.record_audit(
                tx,
                dispute.id,
                AuditAction.SETTLEMENT_FAILED.value,
                None,
                {"error": str(exc), "attempts": remediation.attempts},
                level=logging.ERROR,
            )
        return remediation

    def retry_remediation(self, remediation: SettlementRemediation) -> bool:
        """Retry one failed settlement. Returns True once settled."""
        _, still_open = self.settle(remediation.dispute_id, remediation=remediation)
        return still_open is None
