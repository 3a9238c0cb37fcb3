"""Tests for DisputeService - the full dispute lifecycle.

Tests cover:
- Opening disputes and collecting evidence
- Tier 1 automated resolution and escalation
- Tier 2 jury voting, no-quorum handling and deadlines
- Tier 3 appeals, admin review and expiry
- Direct admin resolution and deferred settlement
"""

from __future__ import annotations

import io
import json
import logging
from unittest.mock import MagicMock

import pytest

from tribunal.core.config import DisputePolicy
from tribunal.core.exceptions import (
    ConflictError,
    InsufficientJurorsError,
    NotFoundError,
    PermissionDeniedError,
    SettlementError,
    ValidationException,
)
from tribunal.core.logging import JSONFormatter, correlation_context
from tribunal.disputes.enums import DisputeOutcome, DisputeStatus, JuryVote, Recommendation, ResolutionType
from tribunal.disputes.models import AppealTransition, EscalationTransition, ResolutionRecord
from tribunal.disputes.service import DisputeService
from tribunal.staking.models import PLATFORM_ACCOUNT, LedgerDirection, LedgerEntryType, StakeStatus

WORKER = "worker-1"
REQUESTER = "requester-1"
ADMIN = "admin-1"

WORKER_MAJORITY = {
    "juror-a": JuryVote.WORKER,
    "juror-b": JuryVote.WORKER,
    "juror-c": JuryVote.WORKER,
    "juror-d": JuryVote.REQUESTER,
    "juror-e": JuryVote.REQUESTER,
}
REQUESTER_MAJORITY = {
    "juror-a": JuryVote.REQUESTER,
    "juror-b": JuryVote.REQUESTER,
    "juror-c": JuryVote.REQUESTER,
    "juror-d": JuryVote.WORKER,
    "juror-e": JuryVote.WORKER,
}


def _vote_all(service, dispute_id, votes):
    receipt = None
    for juror_id, vote in votes.items():
        receipt = service.cast_jury_vote(dispute_id, juror_id, vote)
    return receipt


@pytest.fixture
def make_service(store, collaborators, provider, clock):
    """Build a service with policy overrides."""

    def _make(**policy_overrides):
        return DisputeService(
            store,
            collaborators.tasks,
            collaborators.reputation,
            collaborators.wallets,
            collaborators.events,
            provider,
            policy=DisputePolicy(**policy_overrides),
            clock=clock,
        )

    return _make


@pytest.fixture
def escalated(service, open_dispute, jury_pool):
    """A dispute scored 50 and sent to a five-member jury."""
    dispute = open_dispute(verification_score=50.0, artefacts=[])
    service.process_tier1(dispute.id)
    return service.process_tier1(dispute.id)


@pytest.fixture
def worker_verdict(service, escalated):
    """Jury decision for the worker, still inside the appeal window."""
    _vote_all(service, escalated.id, WORKER_MAJORITY)
    return service.get_dispute(escalated.id)


# ============================================================================
# Opening
# ============================================================================


class TestOpenDispute:
    def test_open(self, service, open_dispute, tasks, now):
        dispute = open_dispute()

        assert dispute.status == DisputeStatus.OPENED
        assert dispute.current_tier == 1
        assert dispute.worker_id == WORKER
        assert dispute.requester_id == REQUESTER
        assert dispute.bounty_amount == 100_000_000
        assert dispute.evidence_deadline == now.replace(day=4)
        assert tasks.get_submission("sub-1").status == "disputed"
        assert [e.action for e in service.get_audit_log(dispute.id)] == ["opened"]

    def test_only_worker_can_open(self, service, make_submission):
        make_submission()
        with pytest.raises(PermissionDeniedError):
            service.open_dispute("sub-1", REQUESTER)

    def test_only_rejected_submissions(self, service, make_submission):
        make_submission(status="accepted")
        with pytest.raises(ConflictError, match="rejected"):
            service.open_dispute("sub-1", WORKER)

    def test_unknown_submission(self, service):
        with pytest.raises(NotFoundError):
            service.open_dispute("missing", WORKER)

    def test_second_open_conflicts(self, service, open_dispute, tasks):
        open_dispute()
        tasks.update_submission_status("sub-1", "rejected")

        with pytest.raises(ConflictError, match="already open"):
            service.open_dispute("sub-1", WORKER)

    def test_get_unknown_dispute(self, service):
        with pytest.raises(NotFoundError):
            service.get_dispute("missing")
        with pytest.raises(NotFoundError):
            service.get_audit_log("missing")


# ============================================================================
# Evidence
# ============================================================================


class TestSubmitEvidence:
    def test_first_evidence_moves_to_pending(self, service, open_dispute):
        dispute = open_dispute()

        evidence = service.submit_evidence(
            dispute.id, WORKER, "Photo of the finished wall", kind="photo", sha256="ab" * 32
        )

        assert evidence.kind == "photo"
        assert service.get_dispute(dispute.id).status == DisputeStatus.EVIDENCE_PENDING
        assert [e.id for e in service.list_evidence(dispute.id)] == [evidence.id]
        assert service.get_audit_log(dispute.id)[-1].action == "evidence_added"

    def test_both_parties_may_submit(self, service, open_dispute):
        dispute = open_dispute()
        service.submit_evidence(dispute.id, WORKER, "worker side")
        service.submit_evidence(dispute.id, REQUESTER, "requester side")
        assert len(service.list_evidence(dispute.id)) == 2

    def test_non_party_denied(self, service, open_dispute):
        dispute = open_dispute()
        with pytest.raises(PermissionDeniedError):
            service.submit_evidence(dispute.id, "stranger", "hello")

    def test_after_deadline(self, service, open_dispute, clock):
        dispute = open_dispute()
        clock.advance(hours=49)
        with pytest.raises(ConflictError, match="deadline"):
            service.submit_evidence(dispute.id, WORKER, "late")

    def test_invalid_kind_and_description(self, service, open_dispute):
        dispute = open_dispute()
        with pytest.raises(ValidationException):
            service.submit_evidence(dispute.id, WORKER, "x", kind="hologram")
        with pytest.raises(ValidationException):
            service.submit_evidence(dispute.id, WORKER, "   ")

    def test_per_party_limit(self, make_service, open_dispute):
        service = make_service(max_evidence_per_party=2)
        dispute = open_dispute()
        service.submit_evidence(dispute.id, WORKER, "one")
        service.submit_evidence(dispute.id, WORKER, "two")

        with pytest.raises(ValidationException, match="Maximum of 2"):
            service.submit_evidence(dispute.id, WORKER, "three")
        service.submit_evidence(dispute.id, REQUESTER, "requester still may")


# ============================================================================
# Tier 1
# ============================================================================


class TestTier1:
    def test_first_process_only_scores(self, service, open_dispute):
        dispute = open_dispute(verification_score=50.0)

        processed = service.process_tier1(dispute.id)

        assert processed.status == DisputeStatus.TIER1_REVIEW
        assert processed.auto_score_result.total_score == 85.0
        assert service.get_audit_log(dispute.id)[-1].action == "tier1_auto_score"

    def test_start_tier1_is_idempotent(self, service, open_dispute):
        dispute = open_dispute()
        first = service.start_tier1(dispute.id)
        assert service.start_tier1(dispute.id) == first
        assert [e.action for e in service.get_audit_log(dispute.id)].count("tier1_auto_score") == 1

    def test_high_score_resolves_for_worker(self, service, open_dispute, store, tasks, events):
        dispute = open_dispute(verification_score=50.0)
        service.process_tier1(dispute.id)

        resolved = service.process_tier1(dispute.id)

        assert resolved.outcome == DisputeOutcome.WORKER_WINS
        assert resolved.resolution_type == ResolutionType.ACCEPT_PAY
        assert resolved.settled_at is not None
        assert store.get_stake("task-1", WORKER).status == StakeStatus.RELEASED
        assert tasks.get_submission("sub-1").status == "accepted"
        assert events.events[-1].worker_amount == 100_000_000
        assert events.events[-1].tier == 1

    def test_low_score_resolves_for_requester(self, service, open_dispute, store):
        dispute = open_dispute(verification_score=0.0, artefacts=[], late=True)
        service.process_tier1(dispute.id)

        resolved = service.process_tier1(dispute.id)

        assert resolved.outcome == DisputeOutcome.REQUESTER_WINS
        assert resolved.resolution_type == ResolutionType.REJECT_REFUND
        assert store.get_stake("task-1", WORKER).status == StakeStatus.SLASHED
        assert store.get_strikes(WORKER) == 1

    def test_tier1_decision_is_final(self, service, open_dispute):
        dispute = open_dispute(verification_score=0.0, artefacts=[], late=True)
        service.process_tier1(dispute.id)
        service.process_tier1(dispute.id)

        with pytest.raises(ConflictError):
            service.escalate_to_tier3(dispute.id, WORKER, 10_000_000)
        with pytest.raises(ConflictError):
            service.process_tier1(dispute.id)

    def test_inconclusive_escalates_to_jury(self, service, escalated):
        assert escalated.status == DisputeStatus.TIER2_VOTING
        assert escalated.current_tier == 2
        assert escalated.auto_score_result.recommendation == Recommendation.ESCALATE

        transition = escalated.tier_history[-1]
        assert isinstance(transition, EscalationTransition)
        assert transition.reason == "auto_score_inconclusive"
        assert sorted(transition.details["juror_ids"]) == ["juror-a", "juror-b", "juror-c", "juror-d", "juror-e"]

    def test_insufficient_jurors_goes_to_admin(self, service, open_dispute):
        dispute = open_dispute(verification_score=50.0, artefacts=[])
        service.process_tier1(dispute.id)

        result = service.process_tier1(dispute.id)

        assert result.status == DisputeStatus.TIER3_APPEAL
        assert result.tier_history[-1].reason == "insufficient_jurors"
        assert result.tier_history[-1].details == {"required": 5, "available": 0}

    def test_insufficient_jurors_without_fallback(self, make_service, open_dispute):
        service = make_service(insufficient_jurors_fallback="none")
        dispute = open_dispute(verification_score=50.0, artefacts=[])
        service.process_tier1(dispute.id)

        with pytest.raises(InsufficientJurorsError):
            service.process_tier1(dispute.id)
        assert service.get_dispute(dispute.id).status == DisputeStatus.TIER1_REVIEW


class TestManualEscalation:
    def test_party_waits_for_evidence_deadline(self, service, open_dispute, jury_pool):
        dispute = open_dispute()
        with pytest.raises(ConflictError, match="evidence deadline"):
            service.escalate_to_tier2(dispute.id, actor_id=WORKER)

    def test_party_escalates_after_deadline(self, service, open_dispute, jury_pool, clock):
        dispute = open_dispute()
        clock.advance(hours=49)

        escalated = service.escalate_to_tier2(dispute.id, actor_id=REQUESTER)

        assert escalated.status == DisputeStatus.TIER2_VOTING
        assert len(service.store.list_jurors(dispute.id)) == 5

    def test_admin_override(self, service, open_dispute, jury_pool):
        dispute = open_dispute()
        escalated = service.escalate_to_tier2(dispute.id, actor_id=ADMIN, reason="admin", override=True)
        assert escalated.current_tier == 2

    def test_manual_escalation_without_jurors_raises(self, service, open_dispute):
        dispute = open_dispute()
        with pytest.raises(InsufficientJurorsError):
            service.escalate_to_tier2(dispute.id, actor_id=ADMIN, override=True)
        assert service.get_dispute(dispute.id).current_tier == 1


# ============================================================================
# Tier 2
# ============================================================================


class TestJuryVoting:
    def test_weighted_majority_for_worker(self, service, escalated, store, events):
        receipt = _vote_all(service, escalated.id, WORKER_MAJORITY)

        assert receipt.resolution is not None
        dispute = receipt.resolution.dispute
        assert dispute.outcome == DisputeOutcome.WORKER_WINS
        assert dispute.current_tier == 2
        assert receipt.tally.worker_weight > receipt.tally.requester_weight
        assert str(receipt.tally.worker_weight) == "3.3000"
        assert str(receipt.tally.requester_weight) == "2.0000"

        assert receipt.resolution.settlement_deferred
        assert dispute.settled_at is None
        assert store.get_stake("task-1", WORKER).status == StakeStatus.HELD

        record = dispute.tier_history[-1]
        assert isinstance(record, ResolutionRecord)
        assert record.reason == "jury_decision"
        assert record.details["tally"]["votes_cast"] == 5

    def test_vote_before_completion(self, service, escalated):
        receipt = service.cast_jury_vote(escalated.id, "juror-a", "worker", reason="photos line up")

        assert receipt.resolution is None
        assert receipt.juror.vote == JuryVote.WORKER
        assert receipt.tally.votes_cast == 1
        assert service.get_dispute(escalated.id).status == DisputeStatus.TIER2_VOTING

    def test_double_vote(self, service, escalated):
        service.cast_jury_vote(escalated.id, "juror-a", JuryVote.WORKER)
        with pytest.raises(ConflictError):
            service.cast_jury_vote(escalated.id, "juror-a", JuryVote.REQUESTER)

    def test_non_juror(self, service, escalated):
        with pytest.raises(NotFoundError):
            service.cast_jury_vote(escalated.id, "juror-z", JuryVote.WORKER)

    def test_invalid_vote(self, service, escalated):
        with pytest.raises(ValidationException):
            service.cast_jury_vote(escalated.id, "juror-a", "maybe")

    def test_vote_outside_tier2(self, service, open_dispute):
        dispute = open_dispute()
        with pytest.raises(ConflictError):
            service.cast_jury_vote(dispute.id, "juror-a", JuryVote.WORKER)

    def test_vote_after_deadline(self, service, escalated, clock):
        clock.advance(hours=49)
        with pytest.raises(ConflictError, match="deadline"):
            service.cast_jury_vote(escalated.id, "juror-a", JuryVote.WORKER)

    def test_tie_goes_to_worker(self, make_service, escalated):
        service = make_service()
        votes = {
            "juror-a": JuryVote.WORKER,
            "juror-b": JuryVote.REQUESTER,
            "juror-c": JuryVote.ABSTAIN,
            "juror-d": JuryVote.WORKER,
            "juror-e": JuryVote.REQUESTER,
        }
        receipt = _vote_all(service, escalated.id, votes)
        assert receipt.resolution.dispute.outcome == DisputeOutcome.WORKER_WINS

    def test_tie_break_configurable(self, make_service, escalated):
        service = make_service(tie_break_outcome="requester_wins")
        votes = {
            "juror-a": JuryVote.WORKER,
            "juror-b": JuryVote.REQUESTER,
            "juror-c": JuryVote.ABSTAIN,
            "juror-d": JuryVote.WORKER,
            "juror-e": JuryVote.REQUESTER,
        }
        receipt = _vote_all(service, escalated.id, votes)
        assert receipt.resolution.dispute.outcome == DisputeOutcome.REQUESTER_WINS


class TestJuryDeadline:
    def test_deadline_finalizes_with_cast_votes(self, service, escalated, clock):
        service.cast_jury_vote(escalated.id, "juror-d", JuryVote.REQUESTER)
        clock.advance(hours=49)

        outcome = service.check_jury_voting_complete(escalated.id)

        assert outcome.dispute.outcome == DisputeOutcome.REQUESTER_WINS
        assert outcome.record.reason == "jury_deadline"

    def test_not_complete_before_deadline(self, service, escalated):
        service.cast_jury_vote(escalated.id, "juror-a", JuryVote.WORKER)
        assert service.check_jury_voting_complete(escalated.id) is None

    def test_no_votes_escalates_to_admin(self, service, escalated, clock):
        clock.advance(hours=49)

        assert service.check_jury_voting_complete(escalated.id) is None

        dispute = service.get_dispute(escalated.id)
        assert dispute.status == DisputeStatus.TIER3_APPEAL
        assert dispute.tier_history[-1].reason == "jury_no_quorum"

    def test_all_abstain_escalates(self, service, escalated):
        receipt = _vote_all(service, escalated.id, {j: JuryVote.ABSTAIN for j in WORKER_MAJORITY})

        assert receipt.resolution is None
        assert service.get_dispute(escalated.id).status == DisputeStatus.TIER3_APPEAL

    def test_no_quorum_policy_names_outcome(self, make_service, escalated, clock):
        service = make_service(jury_no_quorum_policy="requester_wins")
        clock.advance(hours=49)

        outcome = service.check_jury_voting_complete(escalated.id)

        assert outcome.dispute.outcome == DisputeOutcome.REQUESTER_WINS


class TestJuryViews:
    def test_status_hides_results_while_voting(self, service, escalated):
        service.cast_jury_vote(escalated.id, "juror-a", JuryVote.WORKER)

        status = service.get_jury_status(escalated.id)

        assert status["status"] == "tier2_voting"
        assert status["total_jurors"] == 5
        assert status["votes_cast"] == 1
        assert "results" not in status
        voted = {j["juror_id"]: j["has_voted"] for j in status["jurors"]}
        assert voted["juror-a"] is True
        assert voted["juror-b"] is False
        weights = {j["juror_id"]: j["weight"] for j in status["jurors"]}
        assert weights["juror-a"] == "1.1000"
        assert weights["juror-d"] == "1.0000"

    def test_status_shows_results_after_decision(self, service, worker_verdict):
        status = service.get_jury_status(worker_verdict.id)
        assert status["results"]["worker_votes"] == 3
        assert status["results"]["requester_votes"] == 2

    def test_jury_pool_for_user(self, service, escalated):
        pool = service.get_jury_pool_for_user("juror-a")
        assert len(pool) == 1
        assert pool[0]["dispute_id"] == escalated.id
        assert pool[0]["has_voted"] is False

        service.cast_jury_vote(escalated.id, "juror-a", JuryVote.WORKER)
        assert service.get_jury_pool_for_user("juror-a")[0]["has_voted"] is True

    def test_jury_pool_empty_after_decision(self, service, worker_verdict):
        assert service.get_jury_pool_for_user("juror-a") == []
        assert service.get_jury_pool_for_user("nobody") == []


# ============================================================================
# Settlement of jury decisions
# ============================================================================


class TestDeferredSettlement:
    def test_finalize_waits_for_appeal_window(self, service, worker_verdict, clock, store):
        assert not service.finalize_settlement(worker_verdict.id)

        clock.advance(hours=73)
        assert service.finalize_settlement(worker_verdict.id)

        assert store.get_stake("task-1", WORKER).status == StakeStatus.RELEASED
        assert service.get_dispute(worker_verdict.id).settled_at is not None
        assert not service.finalize_settlement(worker_verdict.id)

    def test_no_appeal_after_settlement(self, service, worker_verdict, clock):
        clock.advance(hours=73)
        service.finalize_settlement(worker_verdict.id)
        with pytest.raises(ConflictError):
            service.escalate_to_tier3(worker_verdict.id, REQUESTER, 10_000_000)

    def test_finalize_unresolved(self, service, escalated):
        assert not service.finalize_settlement(escalated.id)


# ============================================================================
# Tier 3
# ============================================================================


class TestAppeals:
    def test_appeal_stake_below_minimum(self, service, worker_verdict):
        with pytest.raises(ValidationException):
            service.escalate_to_tier3(worker_verdict.id, REQUESTER, 5_000_000)
        assert service.get_dispute(worker_verdict.id).status == DisputeStatus.RESOLVED

    def test_winner_cannot_appeal(self, service, worker_verdict):
        with pytest.raises(PermissionDeniedError):
            service.escalate_to_tier3(worker_verdict.id, WORKER, 10_000_000)

    def test_appeal_takes_stake(self, service, worker_verdict, store):
        appealed = service.escalate_to_tier3(worker_verdict.id, REQUESTER, 10_000_000, reason="juror bias")

        assert appealed.status == DisputeStatus.TIER3_APPEAL
        assert appealed.appellant_id == REQUESTER
        assert isinstance(appealed.tier_history[-1], AppealTransition)
        assert appealed.appealed_decision.outcome == DisputeOutcome.WORKER_WINS

        entry = store.list_ledger("task-1")[-1]
        assert entry.entry_type == LedgerEntryType.APPEAL_STAKE
        assert entry.direction == LedgerDirection.CREDIT
        assert entry.amount == 10_000_000
        assert entry.wallet_address == "0xrequester"

    def test_reversal_returns_appeal_stake(self, service, worker_verdict, store):
        service.escalate_to_tier3(worker_verdict.id, REQUESTER, 10_000_000)

        outcome = service.resolve_admin_appeal(worker_verdict.id, ADMIN, reverse_decision=True, reason="GPS spoofed")

        assert outcome.dispute.outcome == DisputeOutcome.REQUESTER_WINS
        assert outcome.dispute.current_tier == 3
        assert outcome.dispute.resolver_id == ADMIN
        assert outcome.dispute.settled_at is not None
        assert store.get_stake("task-1", WORKER).status == StakeStatus.SLASHED

        entry = next(e for e in store.list_ledger("task-1") if e.entry_type == LedgerEntryType.APPEAL_STAKE_RETURN)
        assert entry.counterparty_id == REQUESTER
        assert entry.direction == LedgerDirection.DEBIT
        assert entry.amount == 10_000_000

    def test_upheld_forfeits_appeal_stake(self, service, worker_verdict, store):
        service.escalate_to_tier3(worker_verdict.id, REQUESTER, 10_000_000)

        outcome = service.resolve_admin_appeal(worker_verdict.id, ADMIN, reverse_decision=False)

        assert outcome.dispute.outcome == DisputeOutcome.WORKER_WINS
        assert outcome.record.reason == "decision_upheld"
        assert store.get_stake("task-1", WORKER).status == StakeStatus.RELEASED

        entry = next(e for e in store.list_ledger("task-1") if e.entry_type == LedgerEntryType.APPEAL_STAKE_FORFEIT)
        assert entry.counterparty_id == PLATFORM_ACCOUNT

    def test_worker_appeals_requester_verdict(self, service, escalated, store):
        _vote_all(service, escalated.id, REQUESTER_MAJORITY)
        service.escalate_to_tier3(escalated.id, WORKER, 10_000_000)

        outcome = service.resolve_admin_appeal(escalated.id, ADMIN, reverse_decision=True)

        assert outcome.dispute.outcome == DisputeOutcome.WORKER_WINS
        assert store.get_strikes(WORKER) == 0

    def test_expired_appeal_upholds(self, service, worker_verdict, clock):
        service.escalate_to_tier3(worker_verdict.id, REQUESTER, 10_000_000)
        assert service.expire_admin_appeal(worker_verdict.id) is None

        clock.advance(hours=73)
        outcome = service.expire_admin_appeal(worker_verdict.id)

        assert outcome.dispute.outcome == DisputeOutcome.WORKER_WINS
        assert outcome.record.reason == "tier3_deadline_expired"
        assert outcome.dispute.resolver_id is None

    def test_admin_review_without_prior_decision(self, service, open_dispute, clock):
        dispute = open_dispute()
        service.send_to_admin_review(dispute.id, reason="manual_flag", actor_id=ADMIN)

        with pytest.raises(ConflictError, match="no appealed decision"):
            service.resolve_admin_appeal(dispute.id, ADMIN, reverse_decision=True)

        clock.advance(hours=73)
        assert service.expire_admin_appeal(dispute.id) is None
        assert service.get_dispute(dispute.id).status == DisputeStatus.TIER3_APPEAL

    def test_resolve_appeal_requires_tier3(self, service, worker_verdict):
        with pytest.raises(ConflictError):
            service.resolve_admin_appeal(worker_verdict.id, ADMIN, reverse_decision=True)

    def test_history_records_every_step(self, service, worker_verdict):
        service.escalate_to_tier3(worker_verdict.id, REQUESTER, 10_000_000)
        service.resolve_admin_appeal(worker_verdict.id, ADMIN, reverse_decision=True)

        kinds = [t.kind for t in service.get_tier_history(worker_verdict.id)]
        assert kinds == ["escalation", "resolution", "appeal", "resolution"]


# ============================================================================
# Admin resolution
# ============================================================================


class TestResolveByAdmin:
    def test_partial_pay(self, service, open_dispute, store, tasks):
        dispute = open_dispute()

        outcome = service.resolve_by_admin(dispute.id, ADMIN, "partial_pay", worker_payout_percent=60, comment="half done")

        assert outcome.dispute.outcome == DisputeOutcome.WORKER_WINS
        assert outcome.dispute.resolution_type == ResolutionType.PARTIAL_PAY
        assert outcome.dispute.split_percentage == 60
        assert outcome.dispute.resolution_comment == "half done"
        assert outcome.event.worker_amount == 60_000_000
        assert outcome.event.requester_amount == 40_000_000
        assert store.get_stake("task-1", WORKER).worker_return == 6_000_000
        assert tasks.get_submission("sub-1").status == "resolved"

    def test_partial_pay_below_half_favours_requester(self, service, open_dispute):
        dispute = open_dispute()
        outcome = service.resolve_by_admin(dispute.id, ADMIN, ResolutionType.PARTIAL_PAY, worker_payout_percent=30)
        assert outcome.dispute.outcome == DisputeOutcome.REQUESTER_WINS

    @pytest.mark.parametrize("percent", [None, 0, 100, 150])
    def test_partial_pay_percent_bounds(self, service, open_dispute, percent):
        dispute = open_dispute()
        with pytest.raises(ValidationException):
            service.resolve_by_admin(dispute.id, ADMIN, "partial_pay", worker_payout_percent=percent)

    def test_strike(self, service, open_dispute, store):
        dispute = open_dispute()
        outcome = service.resolve_by_admin(dispute.id, ADMIN, "strike")

        assert outcome.dispute.outcome == DisputeOutcome.REQUESTER_WINS
        assert store.get_strikes(WORKER) == 1
        assert store.get_stake("task-1", WORKER).slash_reason == "dispute_loss_strike"

    def test_accept_pay_during_jury(self, service, escalated):
        outcome = service.resolve_by_admin(escalated.id, ADMIN, "accept_pay")
        assert outcome.dispute.outcome == DisputeOutcome.WORKER_WINS
        assert outcome.record.reason == "admin_resolution"
        assert not outcome.settlement_deferred

    def test_unknown_type(self, service, open_dispute):
        dispute = open_dispute()
        with pytest.raises(ValidationException):
            service.resolve_by_admin(dispute.id, ADMIN, "coin_flip")

    def test_resolved_dispute(self, service, open_dispute):
        dispute = open_dispute()
        service.resolve_by_admin(dispute.id, ADMIN, "accept_pay")
        with pytest.raises(ConflictError):
            service.resolve_by_admin(dispute.id, ADMIN, "strike")


# ============================================================================
# Settlement retries
# ============================================================================


class TestRetrySettlements:
    def test_retry_after_gateway_recovers(self, service, open_dispute, provider, store, monkeypatch):
        dispute = open_dispute()
        monkeypatch.setattr(provider, "release_stake", MagicMock(side_effect=SettlementError("gateway down")))
        service.resolve_by_admin(dispute.id, ADMIN, "accept_pay")

        assert service.retry_settlements() == 0
        assert store.list_remediations()[0].attempts == 2

        monkeypatch.undo()
        assert service.retry_settlements() == 1
        assert store.list_remediations() == []
        assert store.get_stake("task-1", WORKER).status == StakeStatus.RELEASED


# ============================================================================
# Correlation IDs
# ============================================================================


@pytest.fixture
def json_log():
    """Capture tribunal log records as parsed JSON lines."""
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    tribunal_logger = logging.getLogger("tribunal")
    level = tribunal_logger.level
    tribunal_logger.addHandler(handler)
    tribunal_logger.setLevel(logging.INFO)

    def lines():
        records = [json.loads(line) for line in stream.getvalue().splitlines()]
        stream.seek(0)
        stream.truncate()
        return records

    yield lines
    tribunal_logger.removeHandler(handler)
    tribunal_logger.setLevel(level)


class TestCorrelation:
    def test_one_id_per_operation(self, service, open_dispute, json_log):
        first = open_dispute()
        second = open_dispute(task_id="task-2", submission_id="sub-2")
        json_log()

        service.resolve_by_admin(first.id, ADMIN, "accept_pay")
        first_ids = {line.get("correlation_id") for line in json_log()}
        service.resolve_by_admin(second.id, ADMIN, "reject_refund")
        second_ids = {line.get("correlation_id") for line in json_log()}

        assert len(first_ids) == 1
        assert len(second_ids) == 1
        assert None not in first_ids | second_ids
        assert first_ids != second_ids

    def test_outer_id_is_kept(self, service, open_dispute, json_log):
        dispute = open_dispute()
        json_log()

        with correlation_context("admin-request-9"):
            service.resolve_by_admin(dispute.id, ADMIN, "accept_pay")

        lines = json_log()
        assert lines
        assert {line["correlation_id"] for line in lines} == {"admin-request-9"}
