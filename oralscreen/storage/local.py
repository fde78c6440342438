"""
Local filesystem stores.

Directory structure:
    <data_dir>/
        images/         - original uploads and annotated rasters
        reports/        - generated PDF reports
        submissions/    - one <id>.json record per submission

Blob urls are absolute file paths. Reading an http(s) url fetches it with
requests, so records that point at a remote image host still load.
"""

import logging
import threading
import uuid
from pathlib import Path
from typing import List, Optional, Union

import requests
from pydantic import ValidationError as PydanticValidationError

from oralscreen.config import config
from oralscreen.core.errors import PersistenceError, SubmissionNotFoundError
from oralscreen.submissions.models import Submission, SubmissionUpdate

from .base import ImageStore, ReportStore, StoredObject, SubmissionStore

logger = logging.getLogger("oralscreen.storage")

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "application/pdf": ".pdf",
}


def fetch_url(url: str, timeout: Optional[float] = None) -> bytes:
    """
    Download bytes over http(s)

    Raises:
        PersistenceError: On connection errors, timeouts or non-2xx responses
    """
    timeout = timeout if timeout is not None else config.http_timeout
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise PersistenceError(f"Cannot fetch {url}: {e}") from e
    return response.content


class LocalBlobStore(ImageStore, ReportStore):
    """Blobs as files in one directory."""

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def put(self, data: bytes, content_type: str) -> StoredObject:
        object_id = uuid.uuid4().hex
        path = self.base_path / f"{object_id}{CONTENT_TYPE_EXTENSIONS.get(content_type, '.bin')}"
        try:
            path.write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"Cannot write {path}: {e}") from e
        return StoredObject(url=str(path.resolve()), id=object_id)

    def get(self, url: str) -> bytes:
        if url.startswith(("http://", "https://")):
            return fetch_url(url)

        path = Path(url[len("file://"):] if url.startswith("file://") else url)
        try:
            return path.read_bytes()
        except OSError as e:
            raise PersistenceError(f"Cannot read {url}: {e}") from e


class LocalSubmissionStore(SubmissionStore):
    """Submission records as JSON files."""

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _record_path(self, submission_id: str) -> Path:
        if not submission_id or "/" in submission_id or submission_id.startswith("."):
            raise SubmissionNotFoundError(submission_id)
        return self.base_path / f"{submission_id}.json"

    def _write(self, submission: Submission) -> None:
        path = self._record_path(submission.id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(submission.model_dump_json(indent=2), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise PersistenceError(f"Cannot write submission {submission.id}: {e}") from e

    def create(self, submission: Submission) -> Submission:
        with self._lock:
            if self._record_path(submission.id).exists():
                raise PersistenceError(f"Submission already exists: {submission.id}")
            self._write(submission)
        return submission

    def get(self, submission_id: str) -> Submission:
        path = self._record_path(submission_id)
        if not path.exists():
            raise SubmissionNotFoundError(submission_id)
        try:
            return Submission.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise PersistenceError(f"Cannot read submission {submission_id}: {e}") from e
        except PydanticValidationError as e:
            raise PersistenceError(f"Corrupt submission record {submission_id}: {e}") from e

    def update(self, submission_id: str, update: SubmissionUpdate) -> Submission:
        with self._lock:
            updated = self.get(submission_id).apply(update)
            self._write(updated)
        return updated

    def list_ids(self) -> List[str]:
        submissions = []
        for path in self.base_path.glob("*.json"):
            try:
                submissions.append(self.get(path.stem))
            except PersistenceError as e:
                logger.warning(f"Skipping unreadable record {path.name}: {e}")
        submissions.sort(key=lambda s: s.submitted_at)
        return [s.id for s in submissions]
