# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Tier 2 jury selection, weighting and tally.

Selection is deterministic so anyone can re-derive a jury from the
dispute id and the candidate pool:

1. Take the eligible pool (reliability >= 90, >= 5 accepted tasks, not a
   party, not already seated) capped at ``jury_pool_multiplier * jury_size``
   candidates, best reliability first.
2. Rank the pool by SHA-256(domain || dispute_id || 0x00 || candidate_id)
   and seat the lowest ``jury_size`` tickets.

Juror weight is ``1.0 + (min(reliability, 100) - 90) / 50``, fixed at
seating. The tally is always recomputed from every stored vote.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Collection, Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ..core.config import DisputePolicy
from ..core.exceptions import InsufficientJurorsError
from ..core.interfaces import JurorCandidate, ReputationDirectory
from .constants import JuryConstants
from .enums import DisputeOutcome, JuryVote
from .models import Dispute, DisputeJuror

logger = logging.getLogger(__name__)


def juror_weight(reliability: float) -> Decimal:
    """Voting weight for a juror of the given reliability (1.0 to 1.2)."""
    capped = min(Decimal(str(reliability)), Decimal(JuryConstants.RELIABILITY_CEILING))
    weight = Decimal(JuryConstants.BASE_WEIGHT) + (capped - JuryConstants.RELIABILITY_FLOOR) / JuryConstants.RELIABILITY_SPAN
    return weight.quantize(Decimal(JuryConstants.WEIGHT_PRECISION))


def selection_ticket(dispute_id: str, candidate_id: str) -> bytes:
    """Reproducible ranking ticket for a candidate on a dispute."""
    data = JuryConstants.SELECTION_DOMAIN + dispute_id.encode() + b"\x00" + candidate_id.encode()
    return hashlib.sha256(data).digest()


@dataclass
class JuryTally:
    """Weighted vote counts for a jury."""

    total_jurors: int
    votes_cast: int
    worker_votes: int
    requester_votes: int
    abstain_votes: int
    worker_weight: Decimal
    requester_weight: Decimal

    @property
    def all_voted(self) -> bool:
        return self.total_jurors > 0 and self.votes_cast >= self.total_jurors

    def outcome(self, tie_break: DisputeOutcome = DisputeOutcome.WORKER_WINS) -> DisputeOutcome:
        """Side with the greater total weight; a tie goes to ``tie_break``."""
        if self.worker_weight > self.requester_weight:
            return DisputeOutcome.WORKER_WINS
        if self.requester_weight > self.worker_weight:
            return DisputeOutcome.REQUESTER_WINS
        return tie_break

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_jurors": self.total_jurors,
            "votes_cast": self.votes_cast,
            "worker_votes": self.worker_votes,
            "requester_votes": self.requester_votes,
            "abstain_votes": self.abstain_votes,
            "worker_weight": str(self.worker_weight),
            "requester_weight": str(self.requester_weight),
        }


def tally_votes(jurors: Iterable[DisputeJuror]) -> JuryTally:
    jurors = list(jurors)
    worker = [j for j in jurors if j.vote == JuryVote.WORKER]
    requester = [j for j in jurors if j.vote == JuryVote.REQUESTER]
    abstain = [j for j in jurors if j.vote == JuryVote.ABSTAIN]
    return JuryTally(
        total_jurors=len(jurors),
        votes_cast=len(worker) + len(requester) + len(abstain),
        worker_votes=len(worker),
        requester_votes=len(requester),
        abstain_votes=len(abstain),
        worker_weight=sum((j.weight for j in worker), Decimal(0)),
        requester_weight=sum((j.weight for j in requester), Decimal(0)),
    )


class JurySelector:
    """Seats juries from the reputation directory."""

    def __init__(self, reputation: ReputationDirectory, policy: DisputePolicy):
        self.reputation = reputation
        self.policy = policy

    @property
    def pool_size(self) -> int:
        return self.policy.jury_size * self.policy.jury_pool_multiplier

    def is_eligible(self, candidate: JurorCandidate, dispute: Dispute, seated: Collection[str] = ()) -> bool:
        return (
            candidate.reliability_score >= self.policy.jury_min_reliability
            and candidate.accepted_tasks >= self.policy.jury_min_accepted_tasks
            and not dispute.is_party(candidate.user_id)
            and candidate.user_id not in seated
        )

    def candidate_pool(self, dispute: Dispute, seated: Collection[str] = ()) -> list[JurorCandidate]:
        """Eligible candidates, best reliability first, capped at the pool size."""
        exclude = {dispute.worker_id, dispute.requester_id, *seated}
        candidates = self.reputation.find_jury_candidates(
            min_reliability=self.policy.jury_min_reliability,
            min_accepted_tasks=self.policy.jury_min_accepted_tasks,
            exclude=exclude,
            limit=self.pool_size,
        )
        eligible = [c for c in candidates if self.is_eligible(c, dispute, seated)]
        eligible.sort(key=lambda c: (-c.reliability_score, c.user_id))
        return eligible[: self.pool_size]

    def select(self, dispute: Dispute, seated: Collection[str] = ()) -> list[DisputeJuror]:
        """Choose the jury for a dispute.

        Raises:
            InsufficientJurorsError: If fewer than ``jury_size`` candidates
                are eligible.
        """
        pool = self.candidate_pool(dispute, seated)
        if len(pool) < self.policy.jury_size:
            logger.warning(
                f"Dispute {dispute.id}: only {len(pool)} eligible jurors, need {self.policy.jury_size}"
            )
            raise InsufficientJurorsError(self.policy.jury_size, len(pool))

        ranked = sorted(pool, key=lambda c: selection_ticket(dispute.id, c.user_id))
        chosen = ranked[: self.policy.jury_size]
        return [
            DisputeJuror(
                dispute_id=dispute.id,
                juror_id=c.user_id,
                weight=juror_weight(c.reliability_score),
                reliability_at_selection=c.reliability_score,
            )
            for c in chosen
        ]
