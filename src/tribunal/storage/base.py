"""Storage protocol for disputes, jurors and the stake ledger.

Every write goes through a unit of work obtained from
``Store.transaction(*lock_keys)``. A unit of work either commits all of its
staged writes or none of them, and conditional writes (vote only if unset,
stake only if in the expected status, dispute only at the expected
version) are checked at commit time.
"""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import AbstractContextManager
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

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


def dispute_lock(dispute_id: str) -> str:
    return f"dispute:{dispute_id}"


def submission_lock(submission_id: str) -> str:
    return f"submission:{submission_id}"


def stake_lock(task_id: str, worker_id: str) -> str:
    return f"stake:{task_id}:{worker_id}"


@runtime_checkable
class Transaction(Protocol):
    """A unit of work. Reads see the transaction's own staged writes."""

    # Disputes
    def get_dispute(self, dispute_id: str) -> Dispute | None: ...
    def find_open_dispute(self, submission_id: str) -> Dispute | None: ...
    def insert_dispute(self, dispute: Dispute) -> None: ...
    def update_dispute(self, dispute: Dispute) -> None: ...

    # Jurors
    def list_jurors(self, dispute_id: str) -> list[DisputeJuror]: ...
    def add_jurors(self, jurors: Iterable[DisputeJuror]) -> None: ...
    def record_vote(
        self, dispute_id: str, juror_id: str, vote: JuryVote, reason: str | None, voted_at: datetime
    ) -> None: ...

    # Evidence and audit
    def list_evidence(self, dispute_id: str) -> list[DisputeEvidence]: ...
    def add_evidence(self, evidence: DisputeEvidence) -> None: ...
    def append_audit(self, entry: AuditLogEntry) -> None: ...

    # Stakes and ledger
    def get_stake(self, task_id: str, worker_id: str) -> Stake | None: ...
    def insert_stake(self, stake: Stake) -> None: ...
    def update_stake(self, stake: Stake, expected_status: StakeStatus) -> None: ...
    def append_ledger(self, entry: LedgerEntry) -> None: ...
    def get_strikes(self, worker_id: str) -> int: ...
    def increment_strikes(self, worker_id: str) -> int: ...

    # Remediation queue
    def put_remediation(self, remediation: SettlementRemediation) -> None: ...


@runtime_checkable
class Store(Protocol):
    """Persistent state for the engine with a start/stop lifecycle."""

    def open(self) -> None: ...
    def close(self) -> None: ...

    @property
    def is_open(self) -> bool: ...

    def transaction(self, *lock_keys: str) -> AbstractContextManager[Transaction]: ...
    def lock(self, *lock_keys: str) -> AbstractContextManager[None]: ...

    # Read-only queries (return copies)
    def get_dispute(self, dispute_id: str) -> Dispute | None: ...
    def list_disputes(self, statuses: Iterable[DisputeStatus] | None = None) -> list[Dispute]: ...
    def list_jurors(self, dispute_id: str) -> list[DisputeJuror]: ...
    def disputes_for_juror(self, juror_id: str) -> list[str]: ...
    def list_evidence(self, dispute_id: str) -> list[DisputeEvidence]: ...
    def list_audit(self, dispute_id: str | None = None) -> list[AuditLogEntry]: ...
    def get_stake(self, task_id: str, worker_id: str) -> Stake | None: ...
    def list_ledger(self, task_id: str | None = None) -> list[LedgerEntry]: ...
    def get_strikes(self, worker_id: str) -> int: ...
    def list_remediations(self, include_resolved: bool = False) -> list[SettlementRemediation]: ...
