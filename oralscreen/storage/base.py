"""
Store interfaces used by the submission service.

Three stores sit behind the core: images (originals and annotated
rasters), reports (PDF bytes) and submission records. Implementations raise
PersistenceError for any failure; a missing submission raises
SubmissionNotFoundError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

from oralscreen.submissions.models import Submission, SubmissionUpdate


@dataclass(frozen=True)
class StoredObject:
    """Reference to a stored blob."""

    url: str
    id: str


class BlobStore(ABC):
    """Write-once blobs addressed by url."""

    @abstractmethod
    def put(self, data: bytes, content_type: str) -> StoredObject:
        """
        Store bytes and return their reference

        Args:
            data: Raw bytes
            content_type: Media type such as "image/jpeg"

        Returns:
            StoredObject with url and id
        """
        pass

    @abstractmethod
    def get(self, url: str) -> bytes:
        """Fetch bytes previously stored (or reachable) at url"""
        pass


class ImageStore(BlobStore):
    """Original uploads and flattened annotated images."""


class ReportStore(BlobStore):
    """Generated PDF reports."""

    def put_pdf(self, data: bytes) -> StoredObject:
        return self.put(data, "application/pdf")


class SubmissionStore(ABC):
    """Submission records with one-group partial updates."""

    @abstractmethod
    def create(self, submission: Submission) -> Submission:
        pass

    @abstractmethod
    def get(self, submission_id: str) -> Submission:
        pass

    @abstractmethod
    def update(self, submission_id: str, update: SubmissionUpdate) -> Submission:
        """
        Apply one partial update and persist the result

        Args:
            submission_id: Submission to change
            update: SlotAnnotationsUpdate, RecommendationsUpdate or ReportUpdate

        Returns:
            The updated submission
        """
        pass

    @abstractmethod
    def list_ids(self) -> List[str]:
        """All submission ids, oldest first"""
        pass
