"""Enums for the dispute engine.

Contains the enumeration types used for dispute state, outcomes,
jury votes and tier-history records.
"""

from enum import Enum


class DisputeStatus(str, Enum):
    """Lifecycle status of a dispute."""
    OPENED = "opened"                  # Filed, no evidence yet
    EVIDENCE_PENDING = "evidence_pending"  # Evidence being collected
    TIER1_REVIEW = "tier1_review"      # Automated score recorded
    TIER2_VOTING = "tier2_voting"      # Jury seated and voting
    TIER3_APPEAL = "tier3_appeal"      # Awaiting admin decision
    RESOLVED = "resolved"              # Final (or appealable) decision recorded

    @property
    def is_open(self) -> bool:
        return self is not DisputeStatus.RESOLVED


class DisputeOutcome(str, Enum):
    """Which party a decision favours."""
    WORKER_WINS = "worker_wins"
    REQUESTER_WINS = "requester_wins"

    @property
    def opposite(self) -> "DisputeOutcome":
        if self is DisputeOutcome.WORKER_WINS:
            return DisputeOutcome.REQUESTER_WINS
        return DisputeOutcome.WORKER_WINS


class Recommendation(str, Enum):
    """Tier 1 automated recommendation."""
    WORKER_WINS = "worker_wins"
    REQUESTER_WINS = "requester_wins"
    ESCALATE = "escalate"


class ResolutionType(str, Enum):
    """How a resolution settles money."""
    ACCEPT_PAY = "accept_pay"        # Worker paid, stake released
    REJECT_REFUND = "reject_refund"  # Requester refunded, stake slashed
    PARTIAL_PAY = "partial_pay"      # Bounty split, stake partially slashed
    STRIKE = "strike"                # Reject with an explicit strike on the worker

    @property
    def favours_worker(self) -> bool:
        return self is ResolutionType.ACCEPT_PAY


class JuryVote(str, Enum):
    """A juror's ballot."""
    WORKER = "worker"
    REQUESTER = "requester"
    ABSTAIN = "abstain"


class PartyRole(str, Enum):
    """Role of an actor in a dispute."""
    WORKER = "worker"
    REQUESTER = "requester"


class AuditAction(str, Enum):
    """Actions written to the dispute audit log."""
    OPENED = "opened"
    EVIDENCE_ADDED = "evidence_added"
    TIER1_AUTO_SCORE = "tier1_auto_score"
    ESCALATED_TO_TIER2 = "escalated_to_tier2"
    JURY_VOTE_CAST = "jury_vote_cast"
    ESCALATED_TO_TIER3 = "escalated_to_tier3"
    SETTLEMENT_DEFERRED = "settlement_deferred"
    SETTLEMENT_COMPLETED = "settlement_completed"
    SETTLEMENT_FAILED = "settlement_failed"
