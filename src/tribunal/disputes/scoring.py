"""Tier 1 automated scoring.

Five weighted checks are run against the disputed submission and combined
into a 0-100 score. The score maps to a recommendation: worker wins at 80
or above, requester wins at 20 or below, escalate to a jury otherwise.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from ..core.interfaces import SubmissionRecord, TaskRecord
from .constants import ScoringConstants as C
from .enums import Recommendation
from .models import AutoScoreCheck, AutoScoreResult

logger = logging.getLogger(__name__)


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return C.EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def recommend(total_score: float | Decimal) -> Recommendation:
    """Map a score to a recommendation. Pass the unrounded mean."""
    if total_score >= C.WORKER_WINS_THRESHOLD:
        return Recommendation.WORKER_WINS
    if total_score <= C.REQUESTER_WINS_THRESHOLD:
        return Recommendation.REQUESTER_WINS
    return Recommendation.ESCALATE


def weighted_mean(checks: list[AutoScoreCheck]) -> Decimal:
    """Exact weighted mean of check scores."""
    total_weight = sum(c.weight for c in checks)
    if total_weight == 0:
        return Decimal(0)
    return sum(Decimal(str(c.score)) * c.weight for c in checks) / total_weight


def round_score(raw: Decimal) -> float:
    return float(raw.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def weighted_total(checks: list[AutoScoreCheck]) -> float:
    """Weighted mean of check scores, rounded half-up to one decimal."""
    return round_score(weighted_mean(checks))


class AutoScoreEngine:
    """Runs the Tier 1 checks for one submission."""

    def check_verification(self, submission: SubmissionRecord) -> AutoScoreCheck:
        score = max(0.0, min(100.0, float(submission.verification_score)))
        return AutoScoreCheck(
            name="verification_score",
            passed=score >= C.VERIFICATION_PASS,
            score=score,
            weight=C.VERIFICATION_WEIGHT,
            details=f"Verification score: {score:g}%",
        )

    def check_artefact_count(self, task: TaskRecord, submission: SubmissionRecord) -> AutoScoreCheck:
        required = max(1, task.min_artefacts)
        count = len(submission.artefacts)
        score = min(100.0, count / required * 100)
        return AutoScoreCheck(
            name="artefact_count",
            passed=count >= required,
            score=score,
            weight=C.ARTEFACT_COUNT_WEIGHT,
            details=f"{count}/{required} artefacts submitted",
        )

    def check_location(self, task: TaskRecord, submission: SubmissionRecord) -> AutoScoreCheck:
        with_gps = [a for a in submission.artefacts if a.has_gps]

        if not with_gps:
            score = C.LOCATION_NO_GPS_SCORE
            details = "No GPS data available"
        elif not task.has_location:
            # GPS present but nothing to compare against
            score = 0
            details = "Task has no location to compare GPS data with"
        else:
            best = min(
                haversine_distance_m(task.location_lat, task.location_lon, a.gps_lat, a.gps_lon)
                for a in with_gps
            )
            score = 0
            for multiple, band_score in C.LOCATION_BANDS:
                if best <= task.radius_m * multiple:
                    score = band_score
                    break
            details = f"Closest artefact {best:.0f}m from task location (radius {task.radius_m:g}m)"

        return AutoScoreCheck(
            name="location_check",
            passed=score >= C.LOCATION_PASS,
            score=score,
            weight=C.LOCATION_WEIGHT,
            details=details,
        )

    def check_timing(self, task: TaskRecord, submission: SubmissionRecord) -> AutoScoreCheck:
        on_time = task.time_end is None or submission.submitted_at <= task.time_end
        score = 100 if on_time else 0
        return AutoScoreCheck(
            name="timing_check",
            passed=score == 100,
            score=score,
            weight=C.TIMING_WEIGHT,
            details="Submitted within time window" if on_time else "Submitted after deadline",
        )

    def check_image_quality(self, submission: SubmissionRecord) -> AutoScoreCheck:
        photos = [a for a in submission.artefacts if a.kind == "photo"]
        if not photos:
            score = C.IMAGE_QUALITY_NO_PHOTOS
        else:
            avg_size = sum(a.size_bytes for a in photos) / len(photos)
            avg_dimension = sum(max(a.width_px, a.height_px) for a in photos) / len(photos)
            score = C.IMAGE_QUALITY_FLOOR
            for min_size, min_dimension, band_score in C.IMAGE_QUALITY_BANDS:
                if avg_size > min_size and avg_dimension > min_dimension:
                    score = band_score
                    break
        return AutoScoreCheck(
            name="image_quality",
            passed=score >= C.IMAGE_QUALITY_PASS,
            score=score,
            weight=C.IMAGE_QUALITY_WEIGHT,
            details=f"Average image quality assessment: {score}%",
        )

    def score(
        self,
        task: TaskRecord,
        submission: SubmissionRecord,
        now: datetime | None = None,
    ) -> AutoScoreResult:
        """Run every check and build the stored result."""
        checks = [
            self.check_verification(submission),
            self.check_artefact_count(task, submission),
            self.check_location(task, submission),
            self.check_timing(task, submission),
            self.check_image_quality(submission),
        ]
        raw = weighted_mean(checks)
        total = round_score(raw)
        # Thresholds apply to the exact mean; 79.96 is stored as 80.0 but escalates
        result = AutoScoreResult(
            total_score=total,
            checks=checks,
            recommendation=recommend(raw),
            timestamp=now or datetime.now(UTC),
        )
        logger.debug(f"Auto score for submission {submission.id}: {total} -> {result.recommendation.value}")
        return result
