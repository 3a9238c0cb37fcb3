# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Collaborator interfaces consumed by the dispute engine.

Task management, reputation, wallets and event fan-out live outside this
package. The engine depends only on these protocols; ``collaborators``
provides in-memory implementations for tests and local wiring.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@dataclass
class ArtefactRecord:
    """A file attached to a submission, with extracted metadata."""

    id: str
    kind: str  # "photo", "video", "document"
    size_bytes: int = 0
    width_px: int = 0
    height_px: int = 0
    gps_lat: float | None = None
    gps_lon: float | None = None

    @property
    def has_gps(self) -> bool:
        return self.gps_lat is not None and self.gps_lon is not None


@dataclass
class TaskRecord:
    """The slice of a task the engine reads and updates."""

    id: str
    requester_id: str
    bounty_amount: int  # minor units
    status: str = "open"
    location_lat: float | None = None
    location_lon: float | None = None
    radius_m: float = 50.0
    time_end: datetime | None = None
    requirements: dict[str, Any] = field(default_factory=dict)

    @property
    def has_location(self) -> bool:
        return self.location_lat is not None and self.location_lon is not None

    @property
    def min_artefacts(self) -> int:
        return int(self.requirements.get("min_artefacts") or 1)


@dataclass
class SubmissionRecord:
    """A worker's delivery for a task."""

    id: str
    task_id: str
    worker_id: str
    status: str
    submitted_at: datetime
    verification_score: float = 0.0
    artefacts: list[ArtefactRecord] = field(default_factory=list)


@dataclass
class JurorCandidate:
    """A user who may be seated on a jury."""

    user_id: str
    reliability_score: float
    accepted_tasks: int = 0


@runtime_checkable
class TaskDirectory(Protocol):
    """Read and update access to tasks and submissions."""

    def get_task(self, task_id: str) -> TaskRecord | None: ...

    def get_submission(self, submission_id: str) -> SubmissionRecord | None: ...

    def update_submission_status(self, submission_id: str, status: str) -> None: ...

    def update_task_status(self, task_id: str, status: str) -> None: ...


@runtime_checkable
class ReputationDirectory(Protocol):
    """Reputation lookups used for stake sizing and jury selection."""

    def get_reliability(self, user_id: str) -> float | None: ...

    def find_jury_candidates(
        self,
        min_reliability: float,
        min_accepted_tasks: int,
        exclude: Collection[str],
        limit: int,
    ) -> list[JurorCandidate]:
        """Return up to ``limit`` candidates ordered by reliability, best first."""
        ...


@runtime_checkable
class WalletResolver(Protocol):
    """Resolves a user's primary payout address."""

    def primary_wallet(self, user_id: str) -> str | None: ...


@runtime_checkable
class EventPublisher(Protocol):
    """Receives domain events such as ``DisputeResolved``."""

    def publish(self, event: Any) -> None: ...
