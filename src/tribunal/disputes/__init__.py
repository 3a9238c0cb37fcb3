"""Multi-tier dispute resolution.

A rejected submission can be disputed by its worker. The dispute moves
through up to three tiers:
- Tier 1: automated scoring of the submission against the task
- Tier 2: a weighted jury of high-reliability users
- Tier 3: administrative review of an appealed jury decision

Submodules:
- constants: scoring weights, thresholds and jury constants
- enums: dispute status, outcomes, votes and audit actions
- models: Dispute, jurors, evidence, tier history and events
- scoring: AutoScoreEngine (Tier 1)
- jury: JurySelector and vote tally (Tier 2)
- state_machine: TierStateMachine guards and transitions
- resolution: ResolutionExecutor and stake settlement
- service: DisputeService, the entry point for callers
- deadlines: periodic deadline sweep
"""

from .constants import JuryConstants, ScoringConstants
from .deadlines import DeadlineSweepResult, process_dispute_deadlines
from .enums import (
    AuditAction,
    DisputeOutcome,
    DisputeStatus,
    JuryVote,
    PartyRole,
    Recommendation,
    ResolutionType,
)
from .jury import JurySelector, JuryTally, juror_weight, selection_ticket, tally_votes
from .models import (
    AppealTransition,
    AuditLogEntry,
    AutoScoreCheck,
    AutoScoreResult,
    Dispute,
    DisputeEvidence,
    DisputeJuror,
    DisputeResolved,
    EscalationTransition,
    ResolutionRecord,
    SettlementRemediation,
    TierTransition,
)
from .resolution import (
    ResolutionExecutor,
    ResolutionOutcome,
    bounty_split,
    determine_resolution_type,
    partial_slash_shares,
)
from .scoring import AutoScoreEngine, haversine_distance_m, recommend
from .service import DisputeService, VoteReceipt
from .state_machine import TierStateMachine

__all__ = [
    # Constants
    "JuryConstants",
    "ScoringConstants",
    # Enums
    "AuditAction",
    "DisputeOutcome",
    "DisputeStatus",
    "JuryVote",
    "PartyRole",
    "Recommendation",
    "ResolutionType",
    # Models
    "AppealTransition",
    "AuditLogEntry",
    "AutoScoreCheck",
    "AutoScoreResult",
    "Dispute",
    "DisputeEvidence",
    "DisputeJuror",
    "DisputeResolved",
    "EscalationTransition",
    "ResolutionRecord",
    "SettlementRemediation",
    "TierTransition",
    # Tier 1
    "AutoScoreEngine",
    "haversine_distance_m",
    "recommend",
    # Tier 2
    "JurySelector",
    "JuryTally",
    "juror_weight",
    "selection_ticket",
    "tally_votes",
    # Transitions and resolution
    "TierStateMachine",
    "ResolutionExecutor",
    "ResolutionOutcome",
    "bounty_split",
    "determine_resolution_type",
    "partial_slash_shares",
    # Service
    "DisputeService",
    "VoteReceipt",
    "DeadlineSweepResult",
    "process_dispute_deadlines",
]
