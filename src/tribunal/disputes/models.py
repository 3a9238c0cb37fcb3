"""Data models for the dispute engine.

Mutable records (disputes, jurors, evidence, audit entries) are
dataclasses with ``to_dict``. Structured payloads that outlive a release
(automated scores, tier-history records, the resolution event) are frozen
pydantic models carrying a ``schema_version`` so stored history stays
readable as the format evolves.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .enums import (
    DisputeOutcome,
    DisputeStatus,
    JuryVote,
    PartyRole,
    Recommendation,
    ResolutionType,
)

SCHEMA_VERSION = 1

CheckName = Literal[
    "verification_score",
    "artefact_count",
    "location_check",
    "timing_check",
    "image_quality",
]


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Automated scoring
# ============================================================================


class AutoScoreCheck(BaseModel):
    """One weighted Tier 1 check."""

    model_config = ConfigDict(frozen=True)

    name: CheckName
    passed: bool
    score: float = Field(ge=0, le=100)
    weight: int = Field(gt=0)
    details: str = ""


class AutoScoreResult(BaseModel):
    """Structured Tier 1 result stored on the dispute."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = SCHEMA_VERSION
    total_score: float = Field(ge=0, le=100)
    checks: list[AutoScoreCheck]
    recommendation: Recommendation
    timestamp: datetime

    def check(self, name: str) -> AutoScoreCheck | None:
        return next((c for c in self.checks if c.name == name), None)


# ============================================================================
# Tier history
# ============================================================================


class _Transition(BaseModel):
    model_config = ConfigDict(frozen=True)

    schema_version: int = SCHEMA_VERSION
    from_tier: int = Field(ge=1, le=3)
    to_tier: int = Field(ge=1, le=3)
    reason: str
    actor_id: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
    details: dict[str, Any] = Field(default_factory=dict)


class EscalationTransition(_Transition):
    """Movement to a higher tier."""

    kind: Literal["escalation"] = "escalation"


class ResolutionRecord(_Transition):
    """A decision taken at ``from_tier`` (``to_tier`` is the same tier)."""

    kind: Literal["resolution"] = "resolution"
    outcome: DisputeOutcome
    resolution_type: ResolutionType
    split_percentage: int = Field(ge=0, le=100)


class AppealTransition(_Transition):
    """Tier 2 to Tier 3 appeal, carrying the decision it reopens."""

    kind: Literal["appeal"] = "appeal"
    appellant_id: str
    appeal_stake: int = Field(ge=0)
    superseded: ResolutionRecord


TierTransition = Annotated[
    EscalationTransition | ResolutionRecord | AppealTransition,
    Field(discriminator="kind"),
]

tier_history_adapter: TypeAdapter[list[TierTransition]] = TypeAdapter(list[TierTransition])


# ============================================================================
# Disputes
# ============================================================================


@dataclass
class Dispute:
    """A disagreement over a rejected submission."""

    submission_id: str
    task_id: str
    worker_id: str
    requester_id: str
    bounty_amount: int
    opened_by: str
    reason: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: DisputeStatus = DisputeStatus.OPENED
    current_tier: int = 1
    tier_history: list[TierTransition] = field(default_factory=list)
    auto_score_result: AutoScoreResult | None = None

    evidence_deadline: datetime | None = None
    tier1_deadline: datetime | None = None
    tier2_deadline: datetime | None = None
    tier3_deadline: datetime | None = None
    appeal_deadline: datetime | None = None

    escalation_stake: int | None = None
    appellant_id: str | None = None

    outcome: DisputeOutcome | None = None
    resolution_type: ResolutionType | None = None
    split_percentage: int | None = None
    resolution_comment: str | None = None
    resolver_id: str | None = None

    settlement_due_at: datetime | None = None
    settled_at: datetime | None = None

    opened_at: datetime = field(default_factory=_utcnow)
    resolved_at: datetime | None = None
    version: int = 0

    @property
    def is_resolved(self) -> bool:
        return self.status == DisputeStatus.RESOLVED

    def role_of(self, user_id: str) -> PartyRole | None:
        if user_id == self.worker_id:
            return PartyRole.WORKER
        if user_id == self.requester_id:
            return PartyRole.REQUESTER
        return None

    def is_party(self, user_id: str) -> bool:
        return self.role_of(user_id) is not None

    @property
    def appealed_decision(self) -> ResolutionRecord | None:
        """The decision reopened by the most recent appeal, if any."""
        for entry in reversed(self.tier_history):
            if isinstance(entry, AppealTransition):
                return entry.superseded
        return None

    @property
    def losing_party(self) -> PartyRole | None:
        """Party a recorded decision went against."""
        if self.outcome is None:
            return None
        if self.resolution_type == ResolutionType.ACCEPT_PAY:
            return PartyRole.REQUESTER
        return PartyRole.WORKER

    def to_dict(self) -> dict[str, Any]:
        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "task_id": self.task_id,
            "worker_id": self.worker_id,
            "requester_id": self.requester_id,
            "bounty_amount": self.bounty_amount,
            "opened_by": self.opened_by,
            "reason": self.reason,
            "status": self.status.value,
            "current_tier": self.current_tier,
            "tier_history": tier_history_adapter.dump_python(self.tier_history, mode="json"),
            "auto_score_result": self.auto_score_result.model_dump(mode="json") if self.auto_score_result else None,
            "evidence_deadline": iso(self.evidence_deadline),
            "tier1_deadline": iso(self.tier1_deadline),
            "tier2_deadline": iso(self.tier2_deadline),
            "tier3_deadline": iso(self.tier3_deadline),
            "appeal_deadline": iso(self.appeal_deadline),
            "escalation_stake": self.escalation_stake,
            "appellant_id": self.appellant_id,
            "outcome": self.outcome.value if self.outcome else None,
            "resolution_type": self.resolution_type.value if self.resolution_type else None,
            "split_percentage": self.split_percentage,
            "resolution_comment": self.resolution_comment,
            "resolver_id": self.resolver_id,
            "settlement_due_at": iso(self.settlement_due_at),
            "settled_at": iso(self.settled_at),
            "opened_at": iso(self.opened_at),
            "resolved_at": iso(self.resolved_at),
            "version": self.version,
        }


@dataclass
class DisputeJuror:
    """A juror seated on a dispute. ``weight`` never changes once seated."""

    dispute_id: str
    juror_id: str
    weight: Decimal
    reliability_at_selection: float = 0.0
    vote: JuryVote | None = None
    reason: str | None = None
    selected_at: datetime = field(default_factory=_utcnow)
    voted_at: datetime | None = None

    @property
    def has_voted(self) -> bool:
        return self.vote is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "dispute_id": self.dispute_id,
            "juror_id": self.juror_id,
            "weight": str(self.weight),
            "reliability_at_selection": self.reliability_at_selection,
            "vote": self.vote.value if self.vote else None,
            "reason": self.reason,
            "selected_at": self.selected_at.isoformat(),
            "voted_at": self.voted_at.isoformat() if self.voted_at else None,
        }


@dataclass
class DisputeEvidence:
    """Evidence metadata submitted by a party. File storage lives elsewhere."""

    dispute_id: str
    submitted_by: str
    description: str
    kind: str = "text"
    storage_key: str | None = None
    sha256: str | None = None
    mime_type: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "dispute_id": self.dispute_id,
            "submitted_by": self.submitted_by,
            "description": self.description,
            "kind": self.kind,
            "storage_key": self.storage_key,
            "sha256": self.sha256,
            "mime_type": self.mime_type,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class AuditLogEntry:
    """Append-only record of an action taken on a dispute."""

    dispute_id: str
    action: str
    actor_id: str | None
    details: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "dispute_id": self.dispute_id,
            "action": self.action,
            "actor_id": self.actor_id,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class SettlementRemediation:
    """A settlement that failed after its decision was recorded."""

    dispute_id: str
    task_id: str
    worker_id: str
    resolution_type: ResolutionType
    split_percentage: int
    error: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    attempts: int = 1
    resolved: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    last_attempt_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "dispute_id": self.dispute_id,
            "task_id": self.task_id,
            "worker_id": self.worker_id,
            "resolution_type": self.resolution_type.value,
            "split_percentage": self.split_percentage,
            "error": self.error,
            "attempts": self.attempts,
            "resolved": self.resolved,
            "created_at": self.created_at.isoformat(),
            "last_attempt_at": self.last_attempt_at.isoformat(),
        }


# ============================================================================
# Events
# ============================================================================


class DisputeResolved(BaseModel):
    """Published whenever a dispute reaches a decision."""

    model_config = ConfigDict(frozen=True)

    event_type: Literal["dispute.resolved"] = "dispute.resolved"
    schema_version: int = SCHEMA_VERSION
    dispute_id: str
    task_id: str
    submission_id: str
    worker_id: str
    requester_id: str
    tier: int
    outcome: DisputeOutcome
    resolution_type: ResolutionType
    split_percentage: int
    bounty_amount: int
    worker_amount: int
    requester_amount: int
    currency: str
    resolver_id: str | None = None
    resolved_at: datetime
    settlement_deferred: bool = False
    settlement: dict[str, Any] | None = None
