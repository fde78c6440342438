"""Pytest configuration and fixtures for oralscreen tests."""

import io

import pytest
from PIL import Image

from oralscreen.annotation.shapes import make_shape
from oralscreen.submissions.service import SubmissionService


# --- Image fixtures ---


def make_image_bytes(size=(400, 300), color=(200, 180, 170), image_format="JPEG"):
    """Encode a solid-color test photo."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes():
    """A 400x300 JPEG photo."""
    return make_image_bytes()


@pytest.fixture
def png_bytes():
    """A 200x200 PNG photo."""
    return make_image_bytes(size=(200, 200), color=(10, 120, 200), image_format="PNG")


@pytest.fixture
def three_photos():
    """Distinct photos for the three image slots."""
    return {
        "upper_teeth": make_image_bytes(color=(220, 200, 190)),
        "front_teeth": make_image_bytes(size=(640, 480), color=(230, 210, 200)),
        "lower_teeth": make_image_bytes(size=(300, 400), color=(210, 190, 180)),
    }


# --- Service fixtures ---


@pytest.fixture
def service():
    """Submission service over in-memory stores."""
    return SubmissionService.in_memory()


@pytest.fixture
def submission(service, three_photos):
    """A fresh submission with status uploaded."""
    return service.create_submission(
        "Jane Doe", "  Jane.Doe@Example.COM ", three_photos, note="Sensitive molars"
    )


@pytest.fixture
def local_service(tmp_path):
    """Submission service over the local filesystem stores."""
    return SubmissionService.local(tmp_path / "data")


# --- Shape fixtures ---


@pytest.fixture
def sample_shapes():
    """One shape of each kind."""
    return [
        make_shape("rectangle", "Stains", {"left": 50, "top": 50, "width": 100, "height": 70}),
        make_shape("circle", "Crowns", {"left": 75, "top": 75, "radius": 25}),
        make_shape("arrow", "Malaligned", {"x1": 100, "y1": 100, "x2": 200, "y2": 200}),
        make_shape("freehand", "Attrition", {"path": [(10, 10), (12, 15), (20, 18)]}),
    ]


@pytest.fixture
def legacy_records():
    """Annotations in the flat record form found in older data."""
    return [
        {"type": "rectangle", "problem": "Stains", "left": 50, "top": 50, "width": 100, "height": 70},
        {"type": "circle", "problem": "Inflammed / Red gums", "left": 75, "top": 75, "radius": 25},
        {"type": "arrow", "problem": "Malaligned", "left": 100, "top": 100,
         "x1": 100, "y1": 100, "x2": 200, "y2": 200},
        {"type": "freehand", "problem": "Attrition", "left": 10, "top": 10,
         "path": [["M", 10, 10], ["Q", 11, 12, 12, 15], ["L", 20, 18]]},
    ]
