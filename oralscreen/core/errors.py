"""Error types shared across oralscreen.

Every failure is scoped to one operation; none of these are fatal to the process.
"""


class OralScreenError(Exception):
    """Base class for oralscreen errors."""


class ImageDecodeError(OralScreenError):
    """Background or uploaded bytes are missing, corrupt, or not a supported raster."""


class PersistenceError(OralScreenError):
    """A store call (image, submission, or report) failed."""


class SubmissionNotFoundError(PersistenceError):
    """No submission exists for the requested id."""

    def __init__(self, submission_id: str):
        super().__init__(f"Submission not found: {submission_id}")
        self.submission_id = submission_id


class ValidationError(OralScreenError):
    """Input rejected before any I/O took place."""


class RenderError(OralScreenError):
    """A single report image could not be fetched or drawn."""
