# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""In-memory store with per-entity locks and atomic units of work.

State is held in plain dicts owned by one ``MemoryStore`` instance.
Every read hands out a deep copy, so callers can never mutate committed
state except through a transaction.

Concurrency model:
- ``lock(*keys)`` serializes work on one dispute or one stake. Locks are
  re-entrant per thread and always acquired in sorted order. The lock
  registry holds them weakly, so idle keys do not accumulate.
- Reads take the commit lock, so they never see a half-applied commit.
- ``transaction(*keys)`` stages writes and applies them under a short
  commit lock. Conditional writes are verified first; if any check fails
  nothing is applied and ``ConflictError`` is raised.
"""

from __future__ import annotations

import copy
import logging
import threading
import weakref
from collections import defaultdict
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..core.exceptions import ConflictError, NotFoundError, TribunalException

if TYPE_CHECKING:
    from ..disputes.enums import DisputeStatus, JuryVote
    from ..disputes.models import (
        AuditLogEntry,
        Dispute,
        DisputeEvidence,
        DisputeJuror,
        SettlementRemediation,
    )
    from ..staking.models import LedgerEntry, Stake, StakeStatus

logger = logging.getLogger(__name__)

StakeKey = tuple[str, str]


class MemoryTransaction:
    """Staged writes for one unit of work against a ``MemoryStore``."""

    def __init__(self, store: MemoryStore):
        self._store = store
        # dispute_id -> (staged copy, expected committed version or None for insert)
        self._disputes: dict[str, tuple[Dispute, int | None]] = {}
        self._new_jurors: list[DisputeJuror] = []
        self._votes: dict[tuple[str, str], tuple[Any, str | None, datetime]] = {}
        self._evidence: list[DisputeEvidence] = []
        self._audit: list[AuditLogEntry] = []
        # stake key -> (staged copy, expected committed status or None for insert)
        self._stakes: dict[StakeKey, tuple[Stake, Any]] = {}
        self._ledger: list[LedgerEntry] = []
        self._strikes: dict[str, int] = defaultdict(int)
        self._remediations: dict[str, SettlementRemediation] = {}

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    def get_dispute(self, dispute_id: str) -> Dispute | None:
        if dispute_id in self._disputes:
            return copy.deepcopy(self._disputes[dispute_id][0])
        return self._store.get_dispute(dispute_id)

    def find_open_dispute(self, submission_id: str) -> Dispute | None:
        for staged, _ in self._disputes.values():
            if staged.submission_id == submission_id and not staged.is_resolved:
                return copy.deepcopy(staged)
        found = self._store._find_open_dispute(submission_id)
        if found is not None and found.id in self._disputes:
            return None  # resolved within this transaction
        return found

    def insert_dispute(self, dispute: Dispute) -> None:
        self._disputes[dispute.id] = (copy.deepcopy(dispute), None)

    def update_dispute(self, dispute: Dispute) -> None:
        """Stage a write conditional on the dispute's current version."""
        expected = dispute.version
        if dispute.id in self._disputes:
            expected = self._disputes[dispute.id][1]
            if expected is None:
                # Inserted in this transaction; stays an insert
                self._disputes[dispute.id] = (copy.deepcopy(dispute), None)
                return
        dispute.version = expected + 1
        self._disputes[dispute.id] = (copy.deepcopy(dispute), expected)

    # ------------------------------------------------------------------
    # Jurors
    # ------------------------------------------------------------------

    def list_jurors(self, dispute_id: str) -> list[DisputeJuror]:
        jurors = self._store.list_jurors(dispute_id)
        jurors.extend(copy.deepcopy(j) for j in self._new_jurors if j.dispute_id == dispute_id)
        for juror in jurors:
            staged = self._votes.get((dispute_id, juror.juror_id))
            if staged is not None:
                juror.vote, juror.reason, juror.voted_at = staged
        return jurors

    def add_jurors(self, jurors: Iterable[DisputeJuror]) -> None:
        self._new_jurors.extend(copy.deepcopy(j) for j in jurors)

    def record_vote(
        self, dispute_id: str, juror_id: str, vote: JuryVote, reason: str | None, voted_at: datetime
    ) -> None:
        """Stage a vote that commits only if the juror has not voted yet."""
        key = (dispute_id, juror_id)
        if key in self._votes:
            raise ConflictError("Juror has already voted", existing_id=juror_id)
        self._votes[key] = (vote, reason, voted_at)

    # ------------------------------------------------------------------
    # Evidence and audit
    # ------------------------------------------------------------------

    def list_evidence(self, dispute_id: str) -> list[DisputeEvidence]:
        items = self._store.list_evidence(dispute_id)
        items.extend(copy.deepcopy(e) for e in self._evidence if e.dispute_id == dispute_id)
        return items

    def add_evidence(self, evidence: DisputeEvidence) -> None:
        self._evidence.append(copy.deepcopy(evidence))

    def append_audit(self, entry: AuditLogEntry) -> None:
        self._audit.append(copy.deepcopy(entry))

    # ------------------------------------------------------------------
    # Stakes and ledger
    # ------------------------------------------------------------------

    def get_stake(self, task_id: str, worker_id: str) -> Stake | None:
        key = (task_id, worker_id)
        if key in self._stakes:
            return copy.deepcopy(self._stakes[key][0])
        return self._store.get_stake(task_id, worker_id)

    def insert_stake(self, stake: Stake) -> None:
        self._stakes[stake.key] = (copy.deepcopy(stake), None)

    def update_stake(self, stake: Stake, expected_status: StakeStatus) -> None:
        """Stage a stake write conditional on its committed status."""
        if stake.key in self._stakes:
            expected_status = self._stakes[stake.key][1]
        self._stakes[stake.key] = (copy.deepcopy(stake), expected_status)

    def append_ledger(self, entry: LedgerEntry) -> None:
        self._ledger.append(copy.deepcopy(entry))

    def get_strikes(self, worker_id: str) -> int:
        return self._store.get_strikes(worker_id) + self._strikes.get(worker_id, 0)

    def increment_strikes(self, worker_id: str) -> int:
        self._strikes[worker_id] += 1
        return self.get_strikes(worker_id)

    # ------------------------------------------------------------------
    # Remediation queue
    # ------------------------------------------------------------------

    def put_remediation(self, remediation: SettlementRemediation) -> None:
        self._remediations[remediation.id] = copy.deepcopy(remediation)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        store = self._store
        for dispute_id, (staged, expected) in self._disputes.items():
            current = store._disputes.get(dispute_id)
            if expected is None:
                if current is not None:
                    raise ConflictError("Dispute already exists", existing_id=dispute_id)
                existing = store._find_open_dispute(staged.submission_id)
                if existing is not None and not staged.is_resolved:
                    raise ConflictError(
                        "An open dispute already exists for this submission",
                        existing_id=existing.id,
                    )
            elif current is None:
                raise NotFoundError("Dispute", dispute_id)
            elif current.version != expected:
                raise ConflictError(
                    f"Dispute {dispute_id} was modified concurrently "
                    f"(expected version {expected}, found {current.version})",
                    existing_id=dispute_id,
                )

        for juror in self._new_jurors:
            if juror.juror_id in store._jurors.get(juror.dispute_id, {}):
                raise ConflictError("Juror already seated on dispute", existing_id=juror.juror_id)

        for (dispute_id, juror_id) in self._votes:
            committed = store._jurors.get(dispute_id, {}).get(juror_id)
            staged_new = any(
                j.dispute_id == dispute_id and j.juror_id == juror_id for j in self._new_jurors
            )
            if committed is None and not staged_new:
                raise NotFoundError("Juror", juror_id)
            if committed is not None and committed.vote is not None:
                raise ConflictError("Juror has already voted", existing_id=juror_id)

        for key, (staged, expected_status) in self._stakes.items():
            current = store._stakes.get(key)
            if expected_status is None:
                if current is not None:
                    raise ConflictError(
                        f"Stake already exists for task {key[0]} and worker {key[1]}",
                        existing_id=current.id,
                    )
            elif current is None:
                raise NotFoundError("Stake", f"{key[0]}:{key[1]}")
            elif current.status != expected_status:
                raise ConflictError(
                    f"Stake is {current.status.value}, expected {expected_status.value}",
                    existing_id=current.id,
                )

    def _apply(self) -> None:
        store = self._store
        for dispute_id, (staged, _) in self._disputes.items():
            store._disputes[dispute_id] = staged
        for juror in self._new_jurors:
            store._jurors.setdefault(juror.dispute_id, {})[juror.juror_id] = juror
        for (dispute_id, juror_id), (vote, reason, voted_at) in self._votes.items():
            juror = store._jurors[dispute_id][juror_id]
            juror.vote, juror.reason, juror.voted_at = vote, reason, voted_at
        for evidence in self._evidence:
            store._evidence.setdefault(evidence.dispute_id, []).append(evidence)
        store._audit.extend(self._audit)
        for key, (staged, _) in self._stakes.items():
            store._stakes[key] = staged
        store._ledger.extend(self._ledger)
        for worker_id, delta in self._strikes.items():
            store._strikes[worker_id] = store._strikes.get(worker_id, 0) + delta
        store._remediations.update(self._remediations)

    def commit(self) -> None:
        with self._store._commit_lock:
            self._validate()
            self._apply()


class MemoryStore:
    """Process-local implementation of the ``Store`` protocol."""

    def __init__(self):
        self._disputes: dict[str, Dispute] = {}
        self._jurors: dict[str, dict[str, DisputeJuror]] = {}
        self._evidence: dict[str, list[DisputeEvidence]] = {}
        self._audit: list[AuditLogEntry] = []
        self._stakes: dict[StakeKey, Stake] = {}
        self._ledger: list[LedgerEntry] = []
        self._strikes: dict[str, int] = {}
        self._remediations: dict[str, SettlementRemediation] = {}

        # Re-entrant: commit validation calls the read queries
        self._commit_lock = threading.RLock()
        self._registry_lock = threading.Lock()
        # Entries vanish once no caller holds the lock
        self._locks: weakref.WeakValueDictionary[str, Any] = weakref.WeakValueDictionary()
        self._open = True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False
        logger.debug("Memory store closed")

    @property
    def is_open(self) -> bool:
        return self._open

    def _require_open(self) -> None:
        if not self._open:
            raise TribunalException("Store is closed")

    # ------------------------------------------------------------------
    # Locking and units of work
    # ------------------------------------------------------------------

    def _lock_for(self, key: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def lock(self, *lock_keys: str) -> Generator[None, None, None]:
        """Hold the named entity locks for the duration of the block."""
        self._require_open()
        locks = [self._lock_for(key) for key in sorted(set(lock_keys))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()

    @contextmanager
    def transaction(self, *lock_keys: str) -> Generator[MemoryTransaction, None, None]:
        """Run a unit of work; commits on normal exit, discards on error."""
        with self.lock(*lock_keys):
            tx = MemoryTransaction(self)
            yield tx
            tx.commit()

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def get_dispute(self, dispute_id: str) -> Dispute | None:
        with self._commit_lock:
            return copy.deepcopy(self._disputes.get(dispute_id))

    def _find_open_dispute(self, submission_id: str) -> Dispute | None:
        with self._commit_lock:
            for dispute in self._disputes.values():
                if dispute.submission_id == submission_id and not dispute.is_resolved:
                    return copy.deepcopy(dispute)
            return None

    def list_disputes(self, statuses: Iterable[DisputeStatus] | None = None) -> list[Dispute]:
        wanted = set(statuses) if statuses is not None else None
        with self._commit_lock:
            disputes = [
                d for d in self._disputes.values() if wanted is None or d.status in wanted
            ]
            disputes.sort(key=lambda d: d.opened_at)
            return copy.deepcopy(disputes)

    def list_jurors(self, dispute_id: str) -> list[DisputeJuror]:
        with self._commit_lock:
            jurors = list(self._jurors.get(dispute_id, {}).values())
            jurors.sort(key=lambda j: j.juror_id)
            return copy.deepcopy(jurors)

    def disputes_for_juror(self, juror_id: str) -> list[str]:
        with self._commit_lock:
            return [
                dispute_id for dispute_id, jurors in self._jurors.items() if juror_id in jurors
            ]

    def list_evidence(self, dispute_id: str) -> list[DisputeEvidence]:
        with self._commit_lock:
            return copy.deepcopy(self._evidence.get(dispute_id, []))

    def list_audit(self, dispute_id: str | None = None) -> list[AuditLogEntry]:
        with self._commit_lock:
            entries = [e for e in self._audit if dispute_id is None or e.dispute_id == dispute_id]
            return copy.deepcopy(entries)

    def get_stake(self, task_id: str, worker_id: str) -> Stake | None:
        with self._commit_lock:
            return copy.deepcopy(self._stakes.get((task_id, worker_id)))

    def list_ledger(self, task_id: str | None = None) -> list[LedgerEntry]:
        with self._commit_lock:
            entries = [e for e in self._ledger if task_id is None or e.task_id == task_id]
            return copy.deepcopy(entries)

    def get_strikes(self, worker_id: str) -> int:
        with self._commit_lock:
            return self._strikes.get(worker_id, 0)

    def list_remediations(self, include_resolved: bool = False) -> list[SettlementRemediation]:
        with self._commit_lock:
            items = [r for r in self._remediations.values() if include_resolved or not r.resolved]
            items.sort(key=lambda r: r.created_at)
            return copy.deepcopy(items)
