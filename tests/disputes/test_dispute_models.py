"""Tests for dispute data models."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from tribunal.disputes.enums import DisputeOutcome, JuryVote, PartyRole, ResolutionType
from tribunal.disputes.models import (
    AppealTransition,
    Dispute,
    DisputeJuror,
    EscalationTransition,
    ResolutionRecord,
    tier_history_adapter,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _dispute(**overrides) -> Dispute:
    values = {
        "id": "dispute-1",
        "submission_id": "sub-1",
        "task_id": "task-1",
        "worker_id": "worker-1",
        "requester_id": "requester-1",
        "bounty_amount": 100_000_000,
        "opened_by": "worker-1",
        "opened_at": NOW,
    }
    values.update(overrides)
    return Dispute(**values)


def _record(outcome=DisputeOutcome.REQUESTER_WINS) -> ResolutionRecord:
    return ResolutionRecord(
        from_tier=2,
        to_tier=2,
        reason="jury_decision",
        timestamp=NOW,
        outcome=outcome,
        resolution_type=ResolutionType.REJECT_REFUND,
        split_percentage=0,
    )


class TestDispute:
    def test_roles(self):
        dispute = _dispute()
        assert dispute.role_of("worker-1") == PartyRole.WORKER
        assert dispute.role_of("requester-1") == PartyRole.REQUESTER
        assert dispute.role_of("juror-a") is None
        assert not dispute.is_party("juror-a")

    def test_losing_party(self):
        assert _dispute().losing_party is None
        won = _dispute(outcome=DisputeOutcome.WORKER_WINS, resolution_type=ResolutionType.ACCEPT_PAY)
        assert won.losing_party == PartyRole.REQUESTER
        lost = _dispute(outcome=DisputeOutcome.REQUESTER_WINS, resolution_type=ResolutionType.REJECT_REFUND)
        assert lost.losing_party == PartyRole.WORKER

    def test_appealed_decision_is_latest_appeal(self):
        dispute = _dispute()
        assert dispute.appealed_decision is None

        dispute.tier_history = [
            EscalationTransition(from_tier=1, to_tier=2, reason="auto_score_inconclusive", timestamp=NOW),
            _record(),
            AppealTransition(
                from_tier=2,
                to_tier=3,
                reason="appeal",
                timestamp=NOW,
                appellant_id="worker-1",
                appeal_stake=10_000_000,
                superseded=_record(),
            ),
        ]
        assert dispute.appealed_decision.outcome == DisputeOutcome.REQUESTER_WINS

    def test_to_dict(self):
        dispute = _dispute(outcome=DisputeOutcome.WORKER_WINS, resolution_type=ResolutionType.ACCEPT_PAY)
        dispute.tier_history = [_record(DisputeOutcome.WORKER_WINS)]

        data = dispute.to_dict()

        assert data["status"] == "opened"
        assert data["outcome"] == "worker_wins"
        assert data["resolution_type"] == "accept_pay"
        assert data["opened_at"] == "2026-03-02T12:00:00+00:00"
        assert data["settled_at"] is None
        assert data["tier_history"][0]["kind"] == "resolution"
        assert data["tier_history"][0]["outcome"] == "worker_wins"


class TestTierHistory:
    def test_json_round_trip_keeps_types(self):
        history = [
            EscalationTransition(from_tier=1, to_tier=2, reason="auto_score_inconclusive", timestamp=NOW),
            _record(),
            AppealTransition(
                from_tier=2,
                to_tier=3,
                reason="appeal",
                timestamp=NOW,
                appellant_id="worker-1",
                appeal_stake=10_000_000,
                superseded=_record(),
            ),
        ]

        restored = tier_history_adapter.validate_json(tier_history_adapter.dump_json(history))

        assert [type(t) for t in restored] == [EscalationTransition, ResolutionRecord, AppealTransition]
        assert restored == history
        assert restored[2].superseded.outcome == DisputeOutcome.REQUESTER_WINS


class TestDisputeJuror:
    def test_to_dict(self):
        juror = DisputeJuror("dispute-1", "juror-a", Decimal("1.1000"), 95.0, vote=JuryVote.WORKER, selected_at=NOW)

        data = juror.to_dict()

        assert juror.has_voted
        assert data["weight"] == "1.1000"
        assert data["vote"] == "worker"
        assert data["voted_at"] is None
