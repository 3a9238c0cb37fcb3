# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Dispute service: the entry point callers use.

Contains the DisputeService class that wires the scoring engine, jury
selector, tier state machine and resolution executor to storage and the
collaborator directories. Every mutating operation runs under the
dispute's lock inside a unit of work.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from ..core.config import DisputePolicy
from ..core.exceptions import (
    ConflictError,
    InsufficientJurorsError,
    NotFoundError,
    PermissionDeniedError,
    ValidationException,
)
from ..core.interfaces import EventPublisher, ReputationDirectory, TaskDirectory, WalletResolver
from ..core.logging import AuditLogger, audit_logger, correlated
from ..staking.models import LedgerDirection, LedgerEntry, LedgerEntryType
from ..staking.provider import StakingProvider
from ..storage.base import Store, Transaction, dispute_lock, submission_lock
from .enums import (
    AuditAction,
    DisputeOutcome,
    DisputeStatus,
    JuryVote,
    Recommendation,
    ResolutionType,
)
from .jury import JurySelector, JuryTally, tally_votes
from .models import (
    AuditLogEntry,
    AutoScoreResult,
    Dispute,
    DisputeEvidence,
    DisputeJuror,
    TierTransition,
)
from .resolution import ResolutionExecutor, ResolutionOutcome
from .scoring import AutoScoreEngine
from .state_machine import TierStateMachine

logger = logging.getLogger(__name__)

EVIDENCE_KINDS = ("text", "photo", "video", "document", "link")


@dataclass
class VoteReceipt:
    """Result of casting a jury vote."""

    juror: DisputeJuror
    tally: JuryTally
    resolution: ResolutionOutcome | None = None


class DisputeService:
    """Service for opening, escalating and resolving disputes."""

    def __init__(
        self,
        store: Store,
        tasks: TaskDirectory,
        reputation: ReputationDirectory,
        wallets: WalletResolver,
        events: EventPublisher,
        provider: StakingProvider,
        policy: DisputePolicy | None = None,
        scoring: AutoScoreEngine | None = None,
        audit: AuditLogger = audit_logger,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.tasks = tasks
        self.reputation = reputation
        self.wallets = wallets
        self.provider = provider
        self.policy = policy or DisputePolicy()
        self.scoring = scoring or AutoScoreEngine()
        self.audit = audit
        self.clock = clock or (lambda: datetime.now(UTC))

        self.state_machine = TierStateMachine(self.policy)
        self.jury = JurySelector(reputation, self.policy)
        self.executor = ResolutionExecutor(
            store,
            tasks,
            provider,
            wallets,
            events,
            self.state_machine,
            audit=audit,
            clock=self.clock,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, tx: Transaction, dispute_id: str) -> Dispute:
        dispute = tx.get_dispute(dispute_id)
        if dispute is None:
            raise NotFoundError("Dispute", dispute_id)
        return dispute

    def _audit(
        self,
        tx: Transaction,
        dispute_id: str,
        action: AuditAction | str,
        actor_id: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.executor.record_audit(
            tx, dispute_id, action.value if isinstance(action, AuditAction) else action, actor_id, details
        )

    @property
    def tie_break(self) -> DisputeOutcome:
        return DisputeOutcome(self.policy.tie_break_outcome)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_dispute(self, dispute_id: str) -> Dispute:
        dispute = self.store.get_dispute(dispute_id)
        if dispute is None:
            raise NotFoundError("Dispute", dispute_id)
        return dispute

    def get_tier_history(self, dispute_id: str) -> list[TierTransition]:
        return self.get_dispute(dispute_id).tier_history

    def get_audit_log(self, dispute_id: str) -> list[AuditLogEntry]:
        self.get_dispute(dispute_id)
        return self.store.list_audit(dispute_id)

    def list_evidence(self, dispute_id: str) -> list[DisputeEvidence]:
        self.get_dispute(dispute_id)
        return self.store.list_evidence(dispute_id)

    def get_jury_status(self, dispute_id: str) -> dict[str, Any]:
        """Voting progress. Per-side results are shown once the jury has decided."""
        dispute = self.get_dispute(dispute_id)
        jurors = self.store.list_jurors(dispute_id)
        tally = tally_votes(jurors)
        status: dict[str, Any] = {
            "dispute_id": dispute_id,
            "status": dispute.status.value,
            "total_jurors": tally.total_jurors,
            "votes_cast": tally.votes_cast,
            "deadline": dispute.tier2_deadline.isoformat() if dispute.tier2_deadline else None,
            "jurors": [
                {"juror_id": j.juror_id, "weight": str(j.weight), "has_voted": j.has_voted}
                for j in jurors
            ],
        }
        if dispute.current_tier >= 2 and dispute.status != DisputeStatus.TIER2_VOTING:
            status["results"] = tally.to_dict()
        return status

    def get_jury_pool_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """Open Tier 2 disputes the user sits on, with their voting state."""
        pool = []
        for dispute_id in self.store.disputes_for_juror(user_id):
            dispute = self.store.get_dispute(dispute_id)
            if dispute is None or dispute.status != DisputeStatus.TIER2_VOTING:
                continue
            juror = next(j for j in self.store.list_jurors(dispute_id) if j.juror_id == user_id)
            pool.append(
                {
                    "dispute_id": dispute_id,
                    "task_id": dispute.task_id,
                    "deadline": dispute.tier2_deadline.isoformat() if dispute.tier2_deadline else None,
                    "has_voted": juror.has_voted,
                    "weight": str(juror.weight),
                }
            )
        pool.sort(key=lambda item: item["deadline"] or "")
        return pool

    # ------------------------------------------------------------------
    # Opening and evidence
    # ------------------------------------------------------------------

    @correlated
    def open_dispute(self, submission_id: str, actor_id: str, reason: str = "") -> Dispute:
        """Open a dispute on a rejected submission.

        Raises:
            NotFoundError: If the submission or its task is unknown.
            PermissionDeniedError: If the actor is not the submission's worker.
            ConflictError: If the submission is not rejected or already disputed.
        """
        submission = self.tasks.get_submission(submission_id)
        if submission is None:
            raise NotFoundError("Submission", submission_id)
        task = self.tasks.get_task(submission.task_id)
        if task is None:
            raise NotFoundError("Task", submission.task_id)
        if actor_id != submission.worker_id:
            raise PermissionDeniedError("Only the submitting worker can open a dispute", actor_id=actor_id)
        if submission.status != "rejected":
            raise ConflictError(
                f"Only rejected submissions can be disputed (status: {submission.status})",
                existing_id=submission_id,
            )

        now = self.clock()
        with self.store.transaction(submission_lock(submission_id)) as tx:
            existing = tx.find_open_dispute(submission_id)
            if existing is not None:
                raise ConflictError("A dispute is already open for this submission", existing_id=existing.id)
            dispute = Dispute(
                submission_id=submission_id,
                task_id=task.id,
                worker_id=submission.worker_id,
                requester_id=task.requester_id,
                bounty_amount=task.bounty_amount,
                opened_by=actor_id,
                reason=reason,
                opened_at=now,
                evidence_deadline=now + timedelta(hours=self.policy.evidence_window_hours),
            )
            tx.insert_dispute(dispute)
            self._audit(tx, dispute.id, AuditAction.OPENED, actor_id, {"reason": reason})

        self.tasks.update_submission_status(submission_id, "disputed")
        logger.info(f"Dispute {dispute.id} opened on submission {submission_id} by {actor_id}")
        return dispute

    @correlated
    def submit_evidence(
        self,
        dispute_id: str,
        actor_id: str,
        description: str,
        kind: str = "text",
        storage_key: str | None = None,
        sha256: str | None = None,
        mime_type: str | None = None,
    ) -> DisputeEvidence:
        """Attach evidence metadata from one of the parties."""
        if kind not in EVIDENCE_KINDS:
            raise ValidationException(f"Unknown evidence kind: {kind}", field="kind", value=kind)
        if not description.strip():
            raise ValidationException("Evidence description is required", field="description")

        now = self.clock()
        with self.store.transaction(dispute_lock(dispute_id)) as tx:
            dispute = self._load(tx, dispute_id)
            if not dispute.is_party(actor_id):
                raise PermissionDeniedError("Only dispute parties can submit evidence", actor_id=actor_id)
            if dispute.is_resolved:
                raise ConflictError("Cannot add evidence to a resolved dispute", existing_id=dispute_id)
            if dispute.evidence_deadline is not None and now > dispute.evidence_deadline:
                raise ConflictError("Evidence deadline has passed", existing_id=dispute_id)

            submitted = [e for e in tx.list_evidence(dispute_id) if e.submitted_by == actor_id]
            if len(submitted) >= self.policy.max_evidence_per_party:
                raise ValidationException(
                    f"Maximum of {self.policy.max_evidence_per_party} evidence items per party",
                    field="evidence",
                    value=len(submitted),
                )

            evidence = DisputeEvidence(
                dispute_id=dispute_id,
                submitted_by=actor_id,
                description=description,
                kind=kind,
                storage_key=storage_key,
                sha256=sha256,
                mime_type=mime_type,
                created_at=now,
            )
            tx.add_evidence(evidence)
            if dispute.status == DisputeStatus.OPENED:
                dispute.status = DisputeStatus.EVIDENCE_PENDING
                tx.update_dispute(dispute)
            self._audit(
                tx,
                dispute_id,
                AuditAction.EVIDENCE_ADDED,
                actor_id,
                {"evidence_id": evidence.id, "kind": kind},
            )
        return evidence

    # ------------------------------------------------------------------
    # Tier 1
    # ------------------------------------------------------------------

    @correlated
    def start_tier1(self, dispute_id: str) -> AutoScoreResult:
        """Run automated scoring; returns the stored result if one exists."""
        with self.store.lock(dispute_lock(dispute_id)):
            existing = self.get_dispute(dispute_id)
            if existing.auto_score_result is not None:
                return existing.auto_score_result

            submission = self.tasks.get_submission(existing.submission_id)
            if submission is None:
                raise NotFoundError("Submission", existing.submission_id)
            task = self.tasks.get_task(existing.task_id)
            if task is None:
                raise NotFoundError("Task", existing.task_id)

            now = self.clock()
            result = self.scoring.score(task, submission, now=now)
            with self.store.transaction(dispute_lock(dispute_id)) as tx:
                dispute = self._load(tx, dispute_id)
                self.state_machine.record_auto_score(dispute, result, now)
                tx.update_dispute(dispute)
                self._audit(
                    tx,
                    dispute_id,
                    AuditAction.TIER1_AUTO_SCORE,
                    None,
                    {
                        "total_score": result.total_score,
                        "recommendation": result.recommendation.value,
                    },
                )
        return result

    @correlated
    def process_tier1(self, dispute_id: str) -> Dispute:
        """Act on the Tier 1 result.

        Without a stored score this only scores, leaving the review window
        open. With one, the recommendation either resolves the dispute or
        seats a jury. If no jury can be seated and the fallback is
        ``tier3``, the dispute goes to admin review instead.
        """
        dispute = self.get_dispute(dispute_id)
        if dispute.current_tier != 1 or dispute.is_resolved:
            raise ConflictError(f"Dispute {dispute_id} is not in Tier 1", existing_id=dispute_id)

        if dispute.auto_score_result is None:
            self.start_tier1(dispute_id)
            return self.get_dispute(dispute_id)

        recommendation = dispute.auto_score_result.recommendation
        if recommendation == Recommendation.ESCALATE:
            try:
                return self.escalate_to_tier2(dispute_id, reason="auto_score_inconclusive")
            except InsufficientJurorsError as exc:
                if self.policy.insufficient_jurors_fallback != "tier3":
                    raise
                return self.send_to_admin_review(
                    dispute_id, reason="insufficient_jurors", details=exc.details
                )

        outcome = DisputeOutcome(recommendation.value)
        self.executor.resolve(
            dispute_id,
            outcome,
            reason="tier1_auto_score",
            details={"total_score": dispute.auto_score_result.total_score},
        )
        return self.get_dispute(dispute_id)

    @correlated
    def escalate_to_tier2(
        self,
        dispute_id: str,
        actor_id: str | None = None,
        reason: str = "manual_escalation",
        override: bool = False,
    ) -> Dispute:
        """Seat a jury and open Tier 2 voting.

        Raises:
            ConflictError: If the dispute is not in Tier 1 or the evidence
                deadline has not passed for a party escalation.
            InsufficientJurorsError: If no full jury can be seated. The
                dispute is left unchanged.
        """
        now = self.clock()
        with self.store.transaction(dispute_lock(dispute_id)) as tx:
            dispute = self._load(tx, dispute_id)
            self.state_machine.check_tier2_escalation(dispute, now, actor_id, override)
            seated = [j.juror_id for j in tx.list_jurors(dispute_id)]
            jurors = self.jury.select(dispute, seated=seated)

            self.state_machine.escalate_to_tier2(
                dispute,
                now,
                reason=reason,
                actor_id=actor_id,
                override=override,
                details={"juror_ids": [j.juror_id for j in jurors]},
            )
            tx.add_jurors(jurors)
            tx.update_dispute(dispute)
            self._audit(
                tx,
                dispute_id,
                AuditAction.ESCALATED_TO_TIER2,
                actor_id,
                {"reason": reason, "juror_count": len(jurors), "override": override},
            )

        logger.info(f"Dispute {dispute_id} escalated to Tier 2 with {len(jurors)} jurors")
        return dispute

    # ------------------------------------------------------------------
    # Tier 2
    # ------------------------------------------------------------------

    @correlated
    def cast_jury_vote(
        self,
        dispute_id: str,
        juror_id: str,
        vote: JuryVote | str,
        reason: str | None = None,
    ) -> VoteReceipt:
        """Record a juror's vote and finalize the jury if it is complete.

        Raises:
            NotFoundError: If the dispute does not exist or the caller is
                not seated on it.
            ConflictError: If voting is closed or the juror already voted.
        """
        try:
            vote = JuryVote(vote)
        except ValueError as exc:
            raise ValidationException(f"Invalid vote: {vote}", field="vote", value=vote) from exc

        now = self.clock()
        with self.store.lock(dispute_lock(dispute_id)):
            with self.store.transaction(dispute_lock(dispute_id)) as tx:
                dispute = self._load(tx, dispute_id)
                if dispute.status != DisputeStatus.TIER2_VOTING or dispute.current_tier != 2:
                    raise ConflictError("Dispute is not in jury voting", existing_id=dispute_id)
                if dispute.tier2_deadline is not None and now > dispute.tier2_deadline:
                    raise ConflictError("Voting deadline has passed", existing_id=dispute_id)

                juror = next((j for j in tx.list_jurors(dispute_id) if j.juror_id == juror_id), None)
                if juror is None:
                    raise NotFoundError("Juror", juror_id)
                if juror.has_voted:
                    raise ConflictError("Juror has already voted", existing_id=juror_id)

                tx.record_vote(dispute_id, juror_id, vote, reason, now)
                self._audit(tx, dispute_id, AuditAction.JURY_VOTE_CAST, juror_id, {"vote": vote.value})

            juror.vote, juror.reason, juror.voted_at = vote, reason, now
            resolution = self.check_jury_voting_complete(dispute_id)
            tally = tally_votes(self.store.list_jurors(dispute_id))

        return VoteReceipt(juror=juror, tally=tally, resolution=resolution)

    @correlated
    def check_jury_voting_complete(self, dispute_id: str) -> ResolutionOutcome | None:
        """Finalize Tier 2 if every juror voted or the deadline passed.

        The tally is recomputed from all stored votes. When no juror cast a
        decisive vote, ``jury_no_quorum_policy`` decides: ``escalate`` sends
        the dispute to admin review, otherwise it names the outcome.
        """
        with self.store.lock(dispute_lock(dispute_id)):
            dispute = self.get_dispute(dispute_id)
            if dispute.status != DisputeStatus.TIER2_VOTING:
                return None

            tally = tally_votes(self.store.list_jurors(dispute_id))
            deadline_passed = dispute.tier2_deadline is not None and self.clock() > dispute.tier2_deadline
            if not tally.all_voted and not deadline_passed:
                return None

            if tally.worker_votes + tally.requester_votes == 0:
                no_quorum = self.policy.jury_no_quorum_policy
                logger.warning(f"Dispute {dispute_id}: jury closed with no decisive votes ({no_quorum})")
                if no_quorum == "escalate":
                    self.send_to_admin_review(dispute_id, reason="jury_no_quorum", details=tally.to_dict())
                    return None
                outcome = DisputeOutcome(no_quorum)
            else:
                outcome = tally.outcome(self.tie_break)

            return self.executor.resolve(
                dispute_id,
                outcome,
                reason="jury_decision" if tally.all_voted else "jury_deadline",
                appealable=True,
                details={"tally": tally.to_dict()},
            )

    # ------------------------------------------------------------------
    # Tier 3
    # ------------------------------------------------------------------

    @correlated
    def escalate_to_tier3(
        self,
        dispute_id: str,
        appellant_id: str,
        appeal_stake: int,
        reason: str = "appeal",
    ) -> Dispute:
        """Appeal a jury decision to admin review.

        The appeal stake (at least 10% of the bounty by default) is taken
        into custody and returned only if the decision is reversed.
        """
        now = self.clock()
        with self.store.transaction(dispute_lock(dispute_id)) as tx:
            dispute = self._load(tx, dispute_id)
            transition = self.state_machine.appeal(dispute, appellant_id, appeal_stake, now, reason)
            tx.append_ledger(
                LedgerEntry(
                    task_id=dispute.task_id,
                    entry_type=LedgerEntryType.APPEAL_STAKE,
                    amount=appeal_stake,
                    direction=LedgerDirection.CREDIT,
                    counterparty_id=appellant_id,
                    currency=self.provider.policy.currency,
                    wallet_address=self.wallets.primary_wallet(appellant_id),
                    metadata={"dispute_id": dispute_id},
                )
            )
            tx.update_dispute(dispute)
            self._audit(
                tx,
                dispute_id,
                AuditAction.ESCALATED_TO_TIER3,
                appellant_id,
                {
                    "reason": reason,
                    "appeal_stake": appeal_stake,
                    "superseded_outcome": transition.superseded.outcome.value,
                },
            )

        logger.info(f"Dispute {dispute_id} appealed to Tier 3 by {appellant_id}")
        return dispute

    @correlated
    def send_to_admin_review(
        self,
        dispute_id: str,
        reason: str,
        actor_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> Dispute:
        """Move an undecided dispute straight to Tier 3."""
        now = self.clock()
        with self.store.transaction(dispute_lock(dispute_id)) as tx:
            dispute = self._load(tx, dispute_id)
            self.state_machine.escalate_to_admin(dispute, now, reason, actor_id, details)
            tx.update_dispute(dispute)
            self._audit(tx, dispute_id, AuditAction.ESCALATED_TO_TIER3, actor_id, {"reason": reason, **(details or {})})
        logger.warning(f"Dispute {dispute_id} sent to admin review: {reason}")
        return dispute

    @correlated
    def resolve_admin_appeal(
        self,
        dispute_id: str,
        admin_id: str,
        reverse_decision: bool,
        reason: str = "",
    ) -> ResolutionOutcome:
        """Uphold or reverse the appealed jury decision."""
        with self.store.lock(dispute_lock(dispute_id)):
            dispute = self.get_dispute(dispute_id)
            if dispute.status != DisputeStatus.TIER3_APPEAL:
                raise ConflictError("Dispute is not awaiting an appeal decision", existing_id=dispute_id)
            previous = dispute.appealed_decision
            if previous is None:
                raise ConflictError(
                    "Dispute has no appealed decision; resolve it directly",
                    existing_id=dispute_id,
                )
            outcome = previous.outcome.opposite if reverse_decision else previous.outcome
            return self.executor.resolve(
                dispute_id,
                outcome,
                reason=reason or ("appeal_upheld" if reverse_decision else "decision_upheld"),
                resolver_id=admin_id,
                comment=reason or None,
                details={
                    "reversed": reverse_decision,
                    "previous_outcome": previous.outcome.value,
                },
            )

    @correlated
    def expire_admin_appeal(self, dispute_id: str) -> ResolutionOutcome | None:
        """Uphold the appealed decision once the Tier 3 window has lapsed.

        Returns None when the window is still open or there is no appealed
        decision to fall back on (the dispute waits for an admin).
        """
        with self.store.lock(dispute_lock(dispute_id)):
            dispute = self.get_dispute(dispute_id)
            if dispute.status != DisputeStatus.TIER3_APPEAL:
                return None
            if dispute.tier3_deadline is None or self.clock() <= dispute.tier3_deadline:
                return None
            previous = dispute.appealed_decision
            if previous is None:
                logger.warning(f"Dispute {dispute_id}: Tier 3 expired with no prior decision, awaiting admin")
                return None
            return self.executor.resolve(
                dispute_id,
                previous.outcome,
                reason="tier3_deadline_expired",
                details={"reversed": False, "previous_outcome": previous.outcome.value},
            )

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    @correlated
    def resolve_by_admin(
        self,
        dispute_id: str,
        admin_id: str,
        resolution_type: ResolutionType | str,
        worker_payout_percent: int | None = None,
        comment: str | None = None,
    ) -> ResolutionOutcome:
        """Resolve any open dispute directly.

        ``partial_pay`` needs a worker payout between 1 and 99 percent.
        ``strike`` is a refund to the requester recorded as a strike.
        """
        try:
            resolution_type = ResolutionType(resolution_type)
        except ValueError as exc:
            raise ValidationException(
                f"Unknown resolution type: {resolution_type}", field="resolution_type", value=resolution_type
            ) from exc

        split: int | None = None
        if resolution_type == ResolutionType.PARTIAL_PAY:
            if worker_payout_percent is None:
                raise ValidationException(
                    "worker_payout_percent is required for partial_pay", field="worker_payout_percent"
                )
            if not isinstance(worker_payout_percent, int) or not 0 < worker_payout_percent < 100:
                raise ValidationException(
                    "worker_payout_percent must be between 1 and 99",
                    field="worker_payout_percent",
                    value=worker_payout_percent,
                )
            split = worker_payout_percent
            outcome = DisputeOutcome.WORKER_WINS if split >= 50 else DisputeOutcome.REQUESTER_WINS
        elif resolution_type == ResolutionType.ACCEPT_PAY:
            outcome = DisputeOutcome.WORKER_WINS
        else:
            outcome = DisputeOutcome.REQUESTER_WINS

        return self.executor.resolve(
            dispute_id,
            outcome,
            reason="admin_resolution",
            resolver_id=admin_id,
            split_percentage=split,
            resolution_type=resolution_type,
            comment=comment,
        )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    @correlated
    def finalize_settlement(self, dispute_id: str) -> bool:
        """Settle a jury decision whose appeal window has closed.

        Returns True if the stake was settled (or had nothing to settle).
        """
        dispute = self.get_dispute(dispute_id)
        if not dispute.is_resolved or dispute.settled_at is not None:
            return False
        if dispute.settlement_due_at is not None and self.clock() <= dispute.settlement_due_at:
            return False
        _, remediation = self.executor.settle(dispute_id)
        return remediation is None

    @correlated
    def retry_settlements(self) -> int:
        """Retry every open remediation item. Returns how many succeeded."""
        settled = 0
        for remediation in self.store.list_remediations():
            if self.executor.retry_remediation(remediation):
                settled += 1
        return settled
