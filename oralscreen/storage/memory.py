"""In-memory stores for tests and embedding. Urls look like memory://images/<id>."""

import threading
import uuid
from typing import Dict, List

from oralscreen.core.errors import PersistenceError, SubmissionNotFoundError
from oralscreen.submissions.models import Submission, SubmissionUpdate

from .base import ImageStore, ReportStore, StoredObject, SubmissionStore


class MemoryBlobStore(ImageStore, ReportStore):
    """Blob store backed by a dict."""

    def __init__(self, namespace: str = "images"):
        self.namespace = namespace
        self._blobs: Dict[str, bytes] = {}
        self._content_types: Dict[str, str] = {}

    def put(self, data: bytes, content_type: str) -> StoredObject:
        object_id = uuid.uuid4().hex
        url = f"memory://{self.namespace}/{object_id}"
        self._blobs[url] = bytes(data)
        self._content_types[url] = content_type
        return StoredObject(url=url, id=object_id)

    def get(self, url: str) -> bytes:
        try:
            return self._blobs[url]
        except KeyError:
            raise PersistenceError(f"No object at {url}") from None

    def content_type(self, url: str) -> str:
        return self._content_types.get(url, "application/octet-stream")

    def __len__(self) -> int:
        return len(self._blobs)


class MemorySubmissionStore(SubmissionStore):
    """Submission store backed by a dict."""

    def __init__(self):
        self._records: Dict[str, Submission] = {}
        self._lock = threading.Lock()

    def create(self, submission: Submission) -> Submission:
        with self._lock:
            if submission.id in self._records:
                raise PersistenceError(f"Submission already exists: {submission.id}")
            self._records[submission.id] = submission
        return submission

    def get(self, submission_id: str) -> Submission:
        try:
            return self._records[submission_id]
        except KeyError:
            raise SubmissionNotFoundError(submission_id) from None

    def update(self, submission_id: str, update: SubmissionUpdate) -> Submission:
        with self._lock:
            updated = self.get(submission_id).apply(update)
            self._records[submission_id] = updated
        return updated

    def list_ids(self) -> List[str]:
        return list(self._records)
