"""
Submission service: intake, annotation saves, recommendations and reports.

This is the persistence collaborator the annotation session talks to. It
owns the three stores and enforces the submission lifecycle rules.

Usage:
    from oralscreen.submissions.service import SubmissionService

    service = SubmissionService.local("data")
    submission = service.create_submission(
        "Jane Doe", "jane@example.com",
        {"upper_teeth": upper, "front_teeth": front, "lower_teeth": lower},
    )
"""

import logging
import uuid
from datetime import date
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from oralscreen.annotation.codec import parse_shapes
from oralscreen.config import config
from oralscreen.core.constants import IMAGE_SLOTS
from oralscreen.core.errors import ValidationError
from oralscreen.core.image import decode_image, sniff_content_type
from oralscreen.core.text import is_blank, normalize_label
from oralscreen.report.compositor import compose_report
from oralscreen.storage.base import ImageStore, ReportStore, SubmissionStore
from oralscreen.storage.local import LocalBlobStore, LocalSubmissionStore
from oralscreen.storage.memory import MemoryBlobStore, MemorySubmissionStore

from .models import (
    ImageSlot,
    RecommendationsUpdate,
    ReportUpdate,
    SlotAnnotationsUpdate,
    Submission,
    check_report_ready,
    normalize_recommendations,
)

logger = logging.getLogger("oralscreen.submissions")


class SubmissionService:
    """Lifecycle operations over the submission, image and report stores."""

    def __init__(self, submissions: SubmissionStore, images: ImageStore, reports: ReportStore):
        self.submissions = submissions
        self.images = images
        self.reports = reports

    @classmethod
    def local(cls, data_dir: Optional[Union[str, Path]] = None) -> "SubmissionService":
        """Service over the local filesystem stores under data_dir."""
        root = Path(data_dir or config.data_dir)
        return cls(
            submissions=LocalSubmissionStore(root / "submissions"),
            images=LocalBlobStore(root / "images"),
            reports=LocalBlobStore(root / "reports"),
        )

    @classmethod
    def in_memory(cls) -> "SubmissionService":
        return cls(
            submissions=MemorySubmissionStore(),
            images=MemoryBlobStore("images"),
            reports=MemoryBlobStore("reports"),
        )

    # -------------------------------------------------------------------------
    # Intake and reads
    # -------------------------------------------------------------------------

    def create_submission(
        self,
        patient_name: str,
        patient_email: str,
        images: Mapping[str, bytes],
        note: Optional[str] = None,
    ) -> Submission:
        """Create a submission from three original photos.

        Args:
            patient_name: Patient's name
            patient_email: Patient's email (stored lower-cased)
            images: Bytes for each of upper_teeth, front_teeth, lower_teeth
            note: Optional patient note

        Returns:
            The stored submission, status uploaded

        Raises:
            ValidationError: Missing fields or slots
            ImageDecodeError: An upload is not a supported image
            PersistenceError: A store call failed
        """
        if is_blank(patient_name):
            raise ValidationError("Patient name is required")
        if is_blank(patient_email) or "@" not in patient_email:
            raise ValidationError(f"Invalid patient email: {patient_email!r}")

        unknown = sorted(set(images) - set(IMAGE_SLOTS))
        if unknown:
            raise ValidationError(f"Unknown image slots: {', '.join(unknown)}")
        missing = [slot for slot in IMAGE_SLOTS if not images.get(slot)]
        if missing:
            raise ValidationError(f"All three images are required; missing: {', '.join(missing)}")

        # Decode everything before writing anything
        for slot in IMAGE_SLOTS:
            decode_image(images[slot])

        slots = {}
        for slot in IMAGE_SLOTS:
            data = images[slot]
            stored = self.images.put(data, sniff_content_type(data))
            slots[slot] = ImageSlot(original_url=stored.url, original_id=stored.id)

        try:
            submission = Submission(
                id=uuid.uuid4().hex,
                patient_name=patient_name,
                patient_email=patient_email,
                note=note,
                **slots,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid submission: {e}") from e

        self.submissions.create(submission)
        logger.info(f"Created submission {submission.id} for {submission.patient_email}")
        return submission

    def get_submission(self, submission_id: str) -> Submission:
        return self.submissions.get(submission_id)

    def list_submissions(self, status: Optional[str] = None) -> List[Submission]:
        """All submissions, oldest first, optionally filtered by status."""
        result = [self.submissions.get(sid) for sid in self.submissions.list_ids()]
        if status and status != "all":
            result = [s for s in result if s.status.value == status]
        return result

    def fetch_image(self, url: str) -> bytes:
        return self.images.get(url)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def save_annotations(
        self,
        submission_id: str,
        slot: str,
        shapes: Sequence[Any],
        raster_bytes: bytes,
    ) -> Submission:
        """Replace one slot's shapes and annotated image.

        The annotated image is written first; the record only points at it
        once the update succeeds, so a failed save leaves the slot unchanged.
        """
        if slot not in IMAGE_SLOTS:
            raise ValidationError(f"Unknown image slot: {slot!r}")
        if not raster_bytes:
            raise ValidationError("Annotated image is empty")

        records = [s.model_dump(mode="json") if isinstance(s, BaseModel) else s for s in shapes]
        validated = parse_shapes(records)
        self.submissions.get(submission_id)

        stored = self.images.put(raster_bytes, sniff_content_type(raster_bytes))
        updated = self.submissions.update(
            submission_id,
            SlotAnnotationsUpdate(
                slot=slot,
                annotations=tuple(validated),
                annotated_url=stored.url,
                annotated_id=stored.id,
            ),
        )
        logger.info(
            f"Saved {len(validated)} annotations on {slot} of {submission_id} "
            f"(status: {updated.status.value})"
        )
        return updated

    def save_recommendations(
        self,
        submission_id: str,
        recommendations: Mapping[str, str],
        custom_labels: Optional[Sequence[str]] = None,
    ) -> Submission:
        """Replace the recommendations map; custom labels are kept unless given."""
        self.submissions.get(submission_id)
        custom = None
        if custom_labels is not None:
            custom = tuple(filter(None, (normalize_label(label) for label in custom_labels)))
        updated = self.submissions.update(
            submission_id,
            RecommendationsUpdate(normalize_recommendations(recommendations), custom),
        )
        logger.info(f"Saved {len(updated.treatment_recommendations)} recommendations on {submission_id}")
        return updated

    def generate_report(
        self,
        submission_id: str,
        recommendations: Optional[Mapping[str, str]] = None,
        generated_on: Optional[date] = None,
    ) -> Submission:
        """Compose, store and attach the PDF report.

        Args:
            submission_id: Submission to report on
            recommendations: Replaces the stored map first when given
            generated_on: Date printed on the report

        Raises:
            ValidationError: Status is not annotated or no recommendation has text
        """
        submission = self.submissions.get(submission_id)
        if recommendations is not None:
            recs = normalize_recommendations(recommendations)
        else:
            recs = dict(submission.treatment_recommendations)
        check_report_ready(submission.status, recs)

        if recommendations is not None:
            submission = self.submissions.update(submission_id, RecommendationsUpdate(recs))

        pdf_bytes = compose_report(submission, recs, self.fetch_image, generated_on=generated_on)
        stored = self.reports.put_pdf(pdf_bytes)
        updated = self.submissions.update(submission_id, ReportUpdate(stored.url, stored.id))
        logger.info(f"Generated report for {submission_id}: {stored.url}")
        return updated

    def get_report_bytes(self, submission_id: str) -> bytes:
        submission = self.submissions.get(submission_id)
        if not submission.report_url:
            raise ValidationError(f"No report has been generated for {submission_id}")
        return self.reports.get(submission.report_url)
