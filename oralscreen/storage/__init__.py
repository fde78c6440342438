"""Image, report and submission stores."""

from .base import BlobStore, ImageStore, ReportStore, StoredObject, SubmissionStore
from .local import LocalBlobStore, LocalSubmissionStore, fetch_url
from .memory import MemoryBlobStore, MemorySubmissionStore

__all__ = [
    "StoredObject",
    "BlobStore",
    "ImageStore",
    "ReportStore",
    "SubmissionStore",
    "MemoryBlobStore",
    "MemorySubmissionStore",
    "LocalBlobStore",
    "LocalSubmissionStore",
    "fetch_url",
]
