"""Constants for the dispute engine.

Fixed scoring parameters. Timing and jury parameters are configurable and
live on ``DisputePolicy`` instead.
"""

from __future__ import annotations


class ScoringConstants:
    """Constants for Tier 1 automated scoring."""

    # Recommendation thresholds (inclusive)
    WORKER_WINS_THRESHOLD = 80.0
    REQUESTER_WINS_THRESHOLD = 20.0

    # Check weights
    VERIFICATION_WEIGHT = 30
    ARTEFACT_COUNT_WEIGHT = 15
    LOCATION_WEIGHT = 25
    TIMING_WEIGHT = 15
    IMAGE_QUALITY_WEIGHT = 15

    # Pass marks
    VERIFICATION_PASS = 70
    LOCATION_PASS = 70
    IMAGE_QUALITY_PASS = 50

    # Location bands as multiples of the task radius
    LOCATION_BANDS = ((1.0, 100), (1.5, 70), (2.0, 40))
    LOCATION_NO_GPS_SCORE = 50

    # Image quality bands: (min avg bytes, min avg max-dimension px, score)
    IMAGE_QUALITY_BANDS = (
        (500_000, 1000, 100),
        (200_000, 600, 75),
        (50_000, 300, 50),
    )
    IMAGE_QUALITY_FLOOR = 25
    IMAGE_QUALITY_NO_PHOTOS = 50

    EARTH_RADIUS_M = 6_371_000


class JuryConstants:
    """Constants for juror weighting."""

    BASE_WEIGHT = "1.0"
    RELIABILITY_FLOOR = 90
    RELIABILITY_CEILING = 100
    RELIABILITY_SPAN = 50
    WEIGHT_PRECISION = "0.0001"

    # Domain separator for the selection hash
    SELECTION_DOMAIN = b"tribunal-jury-selection-v1"
