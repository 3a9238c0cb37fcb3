"""Tier state machine for disputes.

    opened / evidence_pending
            │ auto score recorded
            ▼
      tier1_review ──────────────► resolved (tier 1, final)
            │ escalate                ▲
            ▼                         │
      tier2_voting ──────────────► resolved (tier 2, appealable)
            │ no jury / no quorum      │ loser appeals
            ▼                         ▼
      tier3_appeal ◄──────────────────┘
            │ admin decision or expiry
            ▼
        resolved (tier 3, final)

The machine mutates an in-memory ``Dispute`` and appends the matching
tier-history record. It never touches storage: callers load the dispute
inside a unit of work and persist it with a version check, so a
concurrent transition surfaces as ``ConflictError`` at commit.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..core.config import DisputePolicy
from ..core.exceptions import ConflictError, PermissionDeniedError, ValidationException
from ..core.money import meets_bps_minimum
from .enums import DisputeOutcome, DisputeStatus, ResolutionType
from .models import (
    AppealTransition,
    AutoScoreResult,
    Dispute,
    EscalationTransition,
    ResolutionRecord,
)

logger = logging.getLogger(__name__)

PRE_REVIEW_STATUSES = (DisputeStatus.OPENED, DisputeStatus.EVIDENCE_PENDING)
TIER1_STATUSES = (*PRE_REVIEW_STATUSES, DisputeStatus.TIER1_REVIEW)


class TierStateMachine:
    """Guards and applies tier transitions."""

    def __init__(self, policy: DisputePolicy):
        self.policy = policy

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @staticmethod
    def _require_tier(dispute: Dispute, tier: int, statuses: tuple[DisputeStatus, ...]) -> None:
        if dispute.current_tier != tier or dispute.status not in statuses:
            raise ConflictError(
                f"Dispute {dispute.id} is {dispute.status.value} at tier {dispute.current_tier}",
                existing_id=dispute.id,
            )

    # ------------------------------------------------------------------
    # Tier 1
    # ------------------------------------------------------------------

    def record_auto_score(self, dispute: Dispute, result: AutoScoreResult, now: datetime) -> None:
        self._require_tier(dispute, 1, TIER1_STATUSES)
        if dispute.auto_score_result is not None:
            raise ConflictError("Dispute already has an automated score", existing_id=dispute.id)
        dispute.auto_score_result = result
        dispute.tier1_deadline = now + timedelta(minutes=self.policy.tier1_review_minutes)
        dispute.status = DisputeStatus.TIER1_REVIEW

    def check_tier2_escalation(
        self,
        dispute: Dispute,
        now: datetime,
        actor_id: str | None = None,
        override: bool = False,
    ) -> None:
        """Raise unless the dispute may move to jury voting.

        Automatic escalation (no actor) needs a stored score. A party may
        escalate once the evidence deadline has passed; ``override`` lifts
        that wait for administrators.
        """
        self._require_tier(dispute, 1, TIER1_STATUSES)

        if actor_id is None:
            if dispute.auto_score_result is None:
                raise ConflictError("Tier 1 has no automated score to act on", existing_id=dispute.id)
        elif not override:
            if not dispute.is_party(actor_id):
                raise PermissionDeniedError("Only dispute parties can escalate", actor_id=actor_id)
            if dispute.evidence_deadline is not None and now <= dispute.evidence_deadline:
                raise ConflictError(
                    "Cannot escalate until the evidence deadline has passed",
                    existing_id=dispute.id,
                )

    def escalate_to_tier2(
        self,
        dispute: Dispute,
        now: datetime,
        reason: str,
        actor_id: str | None = None,
        override: bool = False,
        details: dict | None = None,
    ) -> EscalationTransition:
        """Move a Tier 1 dispute to jury voting."""
        self.check_tier2_escalation(dispute, now, actor_id, override)
        transition = EscalationTransition(
            from_tier=1,
            to_tier=2,
            reason=reason,
            actor_id=actor_id,
            timestamp=now,
            details=details or {},
        )
        dispute.current_tier = 2
        dispute.status = DisputeStatus.TIER2_VOTING
        dispute.tier2_deadline = now + timedelta(hours=self.policy.tier2_duration_hours)
        dispute.tier_history.append(transition)
        return transition

    # ------------------------------------------------------------------
    # Tier 3
    # ------------------------------------------------------------------

    def escalate_to_admin(
        self,
        dispute: Dispute,
        now: datetime,
        reason: str,
        actor_id: str | None = None,
        details: dict | None = None,
    ) -> EscalationTransition:
        """Hand an undecided dispute straight to administrative review."""
        if dispute.is_resolved or dispute.current_tier >= 3:
            raise ConflictError(
                f"Dispute {dispute.id} cannot be sent to admin review from {dispute.status.value}",
                existing_id=dispute.id,
            )
        transition = EscalationTransition(
            from_tier=dispute.current_tier,
            to_tier=3,
            reason=reason,
            actor_id=actor_id,
            timestamp=now,
            details=details or {},
        )
        dispute.current_tier = 3
        dispute.status = DisputeStatus.TIER3_APPEAL
        dispute.tier3_deadline = now + timedelta(hours=self.policy.tier3_duration_hours)
        dispute.tier_history.append(transition)
        return transition

    def appeal(
        self,
        dispute: Dispute,
        appellant_id: str,
        appeal_stake: int,
        now: datetime,
        reason: str,
    ) -> AppealTransition:
        """Reopen a resolved Tier 2 dispute for admin review.

        Raises:
            ConflictError: If the dispute is not a resolved Tier 2 decision
                or the appeal window has closed.
            PermissionDeniedError: If the appellant is not the losing party.
            ValidationException: If the stake is below the minimum.
        """
        if not dispute.is_resolved or dispute.current_tier != 2:
            raise ConflictError("Only resolved Tier 2 disputes can be appealed", existing_id=dispute.id)
        if dispute.appeal_deadline is None:
            raise ConflictError("This decision is not open to appeal", existing_id=dispute.id)
        if now > dispute.appeal_deadline:
            raise ConflictError("The appeal window has closed", existing_id=dispute.id)
        if dispute.settled_at is not None:
            raise ConflictError("The jury decision has already been settled", existing_id=dispute.id)

        role = dispute.role_of(appellant_id)
        if role is None:
            raise PermissionDeniedError("Only dispute parties can appeal", actor_id=appellant_id)
        if role != dispute.losing_party:
            raise PermissionDeniedError("Only the losing party can appeal", actor_id=appellant_id)

        if not meets_bps_minimum(appeal_stake, dispute.bounty_amount, self.policy.appeal_stake_bps):
            raise ValidationException(
                f"Appeal stake must be at least {self.policy.appeal_stake_bps / 100:g}% of the bounty",
                field="appeal_stake",
                value=appeal_stake,
            )

        superseded = self.current_decision(dispute)
        transition = AppealTransition(
            from_tier=2,
            to_tier=3,
            reason=reason,
            actor_id=appellant_id,
            timestamp=now,
            appellant_id=appellant_id,
            appeal_stake=appeal_stake,
            superseded=superseded,
        )

        dispute.current_tier = 3
        dispute.status = DisputeStatus.TIER3_APPEAL
        dispute.tier3_deadline = now + timedelta(hours=self.policy.tier3_duration_hours)
        dispute.escalation_stake = appeal_stake
        dispute.appellant_id = appellant_id
        dispute.outcome = None
        dispute.resolution_type = None
        dispute.split_percentage = None
        dispute.resolution_comment = None
        dispute.resolver_id = None
        dispute.resolved_at = None
        dispute.appeal_deadline = None
        dispute.settlement_due_at = None
        dispute.tier_history.append(transition)
        return transition

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @staticmethod
    def current_decision(dispute: Dispute) -> ResolutionRecord:
        """The resolution record matching the dispute's current decision."""
        for entry in reversed(dispute.tier_history):
            if isinstance(entry, ResolutionRecord):
                return entry
        raise ConflictError("Dispute has no recorded decision", existing_id=dispute.id)

    def record_resolution(
        self,
        dispute: Dispute,
        outcome: DisputeOutcome,
        resolution_type: ResolutionType,
        split_percentage: int,
        now: datetime,
        reason: str,
        resolver_id: str | None = None,
        comment: str | None = None,
        details: dict | None = None,
        appealable: bool = False,
    ) -> ResolutionRecord:
        if dispute.is_resolved:
            raise ConflictError(f"Dispute {dispute.id} is already resolved", existing_id=dispute.id)

        record = ResolutionRecord(
            from_tier=dispute.current_tier,
            to_tier=dispute.current_tier,
            reason=reason,
            actor_id=resolver_id,
            timestamp=now,
            details=details or {},
            outcome=outcome,
            resolution_type=resolution_type,
            split_percentage=split_percentage,
        )
        dispute.status = DisputeStatus.RESOLVED
        dispute.outcome = outcome
        dispute.resolution_type = resolution_type
        dispute.split_percentage = split_percentage
        dispute.resolution_comment = comment
        dispute.resolver_id = resolver_id
        dispute.resolved_at = now
        if appealable:
            # Settlement waits for the appeal window
            dispute.appeal_deadline = now + timedelta(hours=self.policy.appeal_window_hours)
            dispute.settlement_due_at = dispute.appeal_deadline
        dispute.tier_history.append(record)
        return record
