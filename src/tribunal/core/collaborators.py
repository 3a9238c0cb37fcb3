"""In-memory collaborator implementations.

Used by tests and by ``create_tribunal`` when no external directory is
supplied. Each one is a plain object holding its own dicts; nothing here
is shared between instances.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Collection
from typing import Any

from .interfaces import JurorCandidate, SubmissionRecord, TaskRecord

logger = logging.getLogger(__name__)


class InMemoryTaskDirectory:
    """Task and submission records held in dicts."""

    def __init__(self):
        self._tasks: dict[str, TaskRecord] = {}
        self._submissions: dict[str, SubmissionRecord] = {}
        self._lock = threading.Lock()

    def add_task(self, task: TaskRecord) -> TaskRecord:
        with self._lock:
            self._tasks[task.id] = task
        return task

    def add_submission(self, submission: SubmissionRecord) -> SubmissionRecord:
        with self._lock:
            self._submissions[submission.id] = submission
        return submission

    def get_task(self, task_id: str) -> TaskRecord | None:
        return self._tasks.get(task_id)

    def get_submission(self, submission_id: str) -> SubmissionRecord | None:
        return self._submissions.get(submission_id)

    def update_submission_status(self, submission_id: str, status: str) -> None:
        with self._lock:
            submission = self._submissions.get(submission_id)
            if submission is None:
                logger.warning(f"Status update for unknown submission {submission_id}")
                return
            submission.status = status

    def update_task_status(self, task_id: str, status: str) -> None:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                logger.warning(f"Status update for unknown task {task_id}")
                return
            task.status = status


class InMemoryReputationDirectory:
    """Reliability scores and jury candidate records."""

    def __init__(self, candidates: list[JurorCandidate] | None = None):
        self._candidates: dict[str, JurorCandidate] = {}
        for candidate in candidates or []:
            self.add(candidate)

    def add(self, candidate: JurorCandidate) -> None:
        self._candidates[candidate.user_id] = candidate

    def set_reliability(self, user_id: str, reliability: float, accepted_tasks: int = 0) -> None:
        self._candidates[user_id] = JurorCandidate(user_id, reliability, accepted_tasks)

    def get_reliability(self, user_id: str) -> float | None:
        candidate = self._candidates.get(user_id)
        return candidate.reliability_score if candidate else None

    def find_jury_candidates(
        self,
        min_reliability: float,
        min_accepted_tasks: int,
        exclude: Collection[str],
        limit: int,
    ) -> list[JurorCandidate]:
        excluded = set(exclude)
        matches = [
            c
            for c in self._candidates.values()
            if c.reliability_score >= min_reliability
            and c.accepted_tasks >= min_accepted_tasks
            and c.user_id not in excluded
        ]
        matches.sort(key=lambda c: (-c.reliability_score, c.user_id))
        return matches[:limit]


class StaticWalletResolver:
    """Wallet addresses from a fixed mapping."""

    def __init__(self, wallets: dict[str, str] | None = None):
        self._wallets = dict(wallets or {})

    def set_wallet(self, user_id: str, address: str) -> None:
        self._wallets[user_id] = address

    def primary_wallet(self, user_id: str) -> str | None:
        return self._wallets.get(user_id)


class RecordingEventPublisher:
    """Keeps published events in order."""

    def __init__(self):
        self.events: list[Any] = []

    def publish(self, event: Any) -> None:
        self.events.append(event)
