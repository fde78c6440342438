"""Submission records and their lifecycle.

The orchestrating service lives in oralscreen.submissions.service.
"""

from .models import (
    ImageSlot,
    RecommendationsUpdate,
    ReportUpdate,
    SlotAnnotationsUpdate,
    Submission,
    SubmissionStatus,
    check_report_ready,
    normalize_recommendations,
)

__all__ = [
    "Submission",
    "ImageSlot",
    "SubmissionStatus",
    "SlotAnnotationsUpdate",
    "RecommendationsUpdate",
    "ReportUpdate",
    "check_report_ready",
    "normalize_recommendations",
]
