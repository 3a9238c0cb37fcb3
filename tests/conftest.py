"""Global test fixtures for the Tribunal test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from tribunal.core.collaborators import (
    InMemoryReputationDirectory,
    InMemoryTaskDirectory,
    RecordingEventPublisher,
    StaticWalletResolver,
)
from tribunal.core.config import clear_config_cache
from tribunal.core.interfaces import ArtefactRecord, JurorCandidate, SubmissionRecord, TaskRecord
from tribunal.disputes.service import DisputeService
from tribunal.staking.ledger_provider import LedgerStakingProvider
from tribunal.storage.memory import MemoryStore

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

TASK_LAT = 40.7128
TASK_LON = -74.0060

WORKER = "worker-1"
REQUESTER = "requester-1"
ADMIN = "admin-1"

# 100 USDC in micro-units
BOUNTY = 100_000_000


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def good_photo(artefact_id: str = "art-1", lat: float = TASK_LAT, lon: float = TASK_LON) -> ArtefactRecord:
    """A sharp, geotagged photo taken at the task location."""
    return ArtefactRecord(
        id=artefact_id,
        kind="photo",
        size_bytes=600_000,
        width_px=1600,
        height_px=1200,
        gps_lat=lat,
        gps_lon=lon,
    )


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all TRIBUNAL_ environment variables and reset the config cache."""
    for key in list(os.environ.keys()):
        if key.startswith("TRIBUNAL_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


# ============================================================================
# Time
# ============================================================================


@pytest.fixture
def clock():
    """A frozen clock starting at FIXED_NOW."""
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def now(clock):
    return clock.now


# ============================================================================
# Storage and collaborators
# ============================================================================


@pytest.fixture
def store():
    """A fresh in-memory store."""
    s = MemoryStore()
    yield s
    s.close()


@pytest.fixture
def tasks():
    return InMemoryTaskDirectory()


@pytest.fixture
def reputation():
    return InMemoryReputationDirectory()


@pytest.fixture
def wallets():
    return StaticWalletResolver({WORKER: "0xworker", REQUESTER: "0xrequester"})


@pytest.fixture
def events():
    return RecordingEventPublisher()


@pytest.fixture
def collaborators(tasks, reputation, wallets, events):
    """All collaborators as one namespace."""
    return SimpleNamespace(tasks=tasks, reputation=reputation, wallets=wallets, events=events)


@pytest.fixture
def provider(store):
    return LedgerStakingProvider(store)


@pytest.fixture
def service(store, collaborators, provider, clock):
    """DisputeService on the ledger provider with a frozen clock."""
    return DisputeService(
        store,
        collaborators.tasks,
        collaborators.reputation,
        collaborators.wallets,
        collaborators.events,
        provider,
        clock=clock,
    )


# ============================================================================
# Scenario builders
# ============================================================================


@pytest.fixture
def make_submission(tasks):
    """Register a task and a rejected submission for it.

    Default inputs score 100. Useful profiles:
    - verification_score=50.0 -> 85 (worker wins)
    - verification_score=50.0, artefacts=[] -> 50 (escalate)
    - verification_score=0.0, artefacts=[], late=True -> 20 (requester wins)
    """

    def _make(
        verification_score: float = 100.0,
        artefacts: list[ArtefactRecord] | None = None,
        late: bool = False,
        task_id: str = "task-1",
        submission_id: str = "sub-1",
        bounty_amount: int = BOUNTY,
        status: str = "rejected",
    ) -> SubmissionRecord:
        time_end = FIXED_NOW - timedelta(hours=2)
        tasks.add_task(
            TaskRecord(
                id=task_id,
                requester_id=REQUESTER,
                bounty_amount=bounty_amount,
                status="submitted",
                location_lat=TASK_LAT,
                location_lon=TASK_LON,
                radius_m=50.0,
                time_end=time_end,
            )
        )
        submitted_at = time_end + timedelta(hours=1) if late else time_end - timedelta(hours=1)
        return tasks.add_submission(
            SubmissionRecord(
                id=submission_id,
                task_id=task_id,
                worker_id=WORKER,
                status=status,
                submitted_at=submitted_at,
                verification_score=verification_score,
                artefacts=[good_photo()] if artefacts is None else artefacts,
            )
        )

    return _make


@pytest.fixture
def open_dispute(service, provider, make_submission):
    """Stake a claim, then open a dispute on its rejected submission."""

    def _open(**kwargs):
        submission = make_submission(**kwargs)
        task = service.tasks.get_task(submission.task_id)
        provider.create_stake(task.id, WORKER, task.bounty_amount, reputation=95.0, worker_address="0xworker")
        return service.open_dispute(submission.id, WORKER, reason="Work was complete")

    return _open


@pytest.fixture
def jury_pool(reputation):
    """Seat-able candidates: three at reliability 95 and two at 90."""
    candidates = [
        JurorCandidate("juror-a", 95.0, 20),
        JurorCandidate("juror-b", 95.0, 20),
        JurorCandidate("juror-c", 95.0, 20),
        JurorCandidate("juror-d", 90.0, 20),
        JurorCandidate("juror-e", 90.0, 20),
    ]
    for candidate in candidates:
        reputation.add(candidate)
    return [c.user_id for c in candidates]
