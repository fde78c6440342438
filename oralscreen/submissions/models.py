"""
Submission data model.

A submission holds three image slots (upper, front, lower teeth), the
per-label treatment recommendations and a monotonic status:

    uploaded -> annotated -> reported

Submissions are only changed through the typed partial updates below, each
touching one group of fields.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from oralscreen.annotation.shapes import Shape, coerce_shape_record
from oralscreen.core.constants import IMAGE_SLOTS
from oralscreen.core.errors import ValidationError
from oralscreen.core.text import is_blank, normalize_label


class SubmissionStatus(str, Enum):
    UPLOADED = "uploaded"
    ANNOTATED = "annotated"
    REPORTED = "reported"


class ImageSlot(BaseModel):
    """One anatomical photo position within a submission."""

    model_config = ConfigDict(frozen=True)

    original_url: str = Field(..., min_length=1)
    original_id: str = Field(..., min_length=1)
    annotated_url: Optional[str] = None
    annotated_id: Optional[str] = None
    annotations: List[Shape] = Field(default_factory=list)

    @field_validator("annotations", mode="before")
    @classmethod
    def _accept_legacy_records(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [coerce_shape_record(record) for record in value]
        return value

    @property
    def display_image_url(self) -> str:
        """Annotated image if one was saved, else the original."""
        return self.annotated_url or self.original_url

    @property
    def problem_labels(self) -> List[str]:
        labels: List[str] = []
        for shape in self.annotations:
            if shape.problem_label not in labels:
                labels.append(shape.problem_label)
        return labels


class Submission(BaseModel):
    """A patient's three photos plus the reviewer's annotations and report."""

    model_config = ConfigDict(frozen=True)

    id: str
    patient_name: str = Field(..., min_length=1)
    patient_email: str
    note: Optional[str] = None
    upper_teeth: ImageSlot
    front_teeth: ImageSlot
    lower_teeth: ImageSlot
    treatment_recommendations: Dict[str, str] = Field(default_factory=dict)
    # None on records saved before custom labels were tracked
    custom_labels: Optional[List[str]] = None
    status: SubmissionStatus = SubmissionStatus.UPLOADED
    report_url: Optional[str] = None
    report_id: Optional[str] = None
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    reviewed_at: Optional[datetime] = None
    report_generated_at: Optional[datetime] = None

    @field_validator("patient_name", "note")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None

    @field_validator("patient_email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError(f"Invalid email address: {value!r}")
        return value

    def slot(self, name: str) -> ImageSlot:
        if name not in IMAGE_SLOTS:
            raise ValidationError(f"Unknown image slot: {name!r}")
        return getattr(self, name)

    @property
    def slots(self) -> List[Tuple[str, ImageSlot]]:
        """(name, slot) pairs in report order."""
        return [(name, getattr(self, name)) for name in IMAGE_SLOTS]

    @property
    def problem_labels(self) -> List[str]:
        """Union of problem labels across all three slots, first-seen order."""
        labels: List[str] = []
        for _, slot in self.slots:
            for label in slot.problem_labels:
                if label not in labels:
                    labels.append(label)
        return labels

    def apply(self, update: "SubmissionUpdate", now: Optional[datetime] = None) -> "Submission":
        """Return a copy with one partial update applied."""
        now = now or datetime.now(timezone.utc)

        if isinstance(update, SlotAnnotationsUpdate):
            slot = self.slot(update.slot).model_copy(
                update={
                    "annotations": list(update.annotations),
                    "annotated_url": update.annotated_url,
                    "annotated_id": update.annotated_id,
                }
            )
            changes: Dict[str, Any] = {update.slot: slot, "reviewed_at": now}
            if update.annotations and self.status == SubmissionStatus.UPLOADED:
                changes["status"] = SubmissionStatus.ANNOTATED
            updated = self.model_copy(update=changes)
            return updated._prune_recommendations()

        if isinstance(update, RecommendationsUpdate):
            changes = {"treatment_recommendations": dict(update.recommendations)}
            if update.custom_labels is not None:
                changes["custom_labels"] = list(update.custom_labels)
            return self.model_copy(update=changes)

        if isinstance(update, ReportUpdate):
            return self.model_copy(
                update={
                    "status": SubmissionStatus.REPORTED,
                    "report_url": update.report_url,
                    "report_id": update.report_id,
                    "report_generated_at": now,
                }
            )

        raise TypeError(f"Unsupported submission update: {type(update).__name__}")

    def _prune_recommendations(self) -> "Submission":
        """Drop recommendation keys no shape or custom label accounts for.

        Left alone while custom labels have never been recorded, since any
        stored key may then be one the reviewer typed in.
        """
        if self.custom_labels is None:
            return self
        keep = set(self.problem_labels) | set(self.custom_labels)
        recs = {
            label: text
            for label, text in self.treatment_recommendations.items()
            if label in keep
        }
        if len(recs) == len(self.treatment_recommendations):
            return self
        return self.model_copy(update={"treatment_recommendations": recs})


# -----------------------------------------------------------------------------
# Partial updates
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SlotAnnotationsUpdate:
    """Replace one slot's shapes and annotated image reference."""

    slot: str
    annotations: Tuple[Any, ...]
    annotated_url: str
    annotated_id: str


@dataclass(frozen=True)
class RecommendationsUpdate:
    """Replace the treatment recommendations map (and custom labels, when given)."""

    recommendations: Mapping[str, str]
    custom_labels: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class ReportUpdate:
    """Record a generated report; moves status to reported."""

    report_url: str
    report_id: str


SubmissionUpdate = Union[SlotAnnotationsUpdate, RecommendationsUpdate, ReportUpdate]


def normalize_recommendations(recommendations: Mapping[str, str]) -> Dict[str, str]:
    """Canonical labels as keys; drops blank keys, keeps entry order."""
    result: Dict[str, str] = {}
    for label, text in recommendations.items():
        label = normalize_label(label)
        if label:
            result[label] = text or ""
    return result


def check_report_ready(status: SubmissionStatus, recommendations: Mapping[str, str]) -> None:
    """Validate that a report may be generated.

    Raises:
        ValidationError: Status is not annotated, or no recommendation has text
    """
    if SubmissionStatus(status) != SubmissionStatus.ANNOTATED:
        raise ValidationError(
            f"Submission must be annotated before generating a report (status: {SubmissionStatus(status).value})"
        )
    if all(is_blank(text) for text in recommendations.values()):
        raise ValidationError("At least one treatment recommendation is required")
