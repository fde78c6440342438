"""Core utilities shared across oralscreen modules."""

from .constants import (
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    FALLBACK_COLOR,
    IMAGE_SLOTS,
    PROBLEM_COLORS,
    SHAPE_KINDS,
    SLOT_LABELS,
)
from .errors import (
    ImageDecodeError,
    OralScreenError,
    PersistenceError,
    RenderError,
    SubmissionNotFoundError,
    ValidationError,
)
from .image import (
    decode_image,
    encode_image,
    fit_to_canvas,
    get_label_color,
    hex_to_rgb,
    hex_to_unit_rgb,
    sniff_content_type,
)
from .text import is_blank, normalize_label, wrap_text

__all__ = [
    # Constants
    "CANVAS_WIDTH",
    "CANVAS_HEIGHT",
    "PROBLEM_COLORS",
    "FALLBACK_COLOR",
    "SHAPE_KINDS",
    "IMAGE_SLOTS",
    "SLOT_LABELS",
    # Errors
    "OralScreenError",
    "ImageDecodeError",
    "PersistenceError",
    "SubmissionNotFoundError",
    "ValidationError",
    "RenderError",
    # Image
    "decode_image",
    "encode_image",
    "fit_to_canvas",
    "get_label_color",
    "hex_to_rgb",
    "hex_to_unit_rgb",
    "sniff_content_type",
    # Text
    "is_blank",
    "normalize_label",
    "wrap_text",
]
