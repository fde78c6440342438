"""Image processing utilities for oralscreen."""

import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from .constants import FALLBACK_COLOR, PROBLEM_COLORS, SUPPORTED_IMAGE_FORMATS
from .errors import ImageDecodeError
from .text import normalize_label


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    """Convert hex color string to RGB tuple.

    Args:
        hex_color: Color like "#EF4444" or shorthand "#888"

    Returns:
        RGB tuple like (239, 68, 68)
    """
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = "".join(c * 2 for c in hex_color)
    r = int(hex_color[0:2], 16)
    g = int(hex_color[2:4], 16)
    b = int(hex_color[4:6], 16)
    return (r, g, b)


def hex_to_unit_rgb(hex_color: str) -> Tuple[float, float, float]:
    """Convert hex color to a 0-1 float triple (PyMuPDF color format)."""
    r, g, b = hex_to_rgb(hex_color)
    return (r / 255, g / 255, b / 255)


def get_label_color(label: str) -> str:
    """Get stroke color for a problem label.

    Args:
        label: Problem label like "Stains" or an operator-entered custom label

    Returns:
        Hex color string; FALLBACK_COLOR for labels outside the fixed table
    """
    return PROBLEM_COLORS.get(normalize_label(label), FALLBACK_COLOR)


def decode_image(data: bytes) -> Image.Image:
    """Decode raster bytes into an RGB PIL image.

    Args:
        data: Encoded image bytes (JPEG, PNG, WEBP, GIF, BMP)

    Returns:
        Fully loaded RGB image

    Raises:
        ImageDecodeError: If bytes are empty, corrupt, or an unsupported format
    """
    if not data:
        raise ImageDecodeError("No image data")

    try:
        image = Image.open(io.BytesIO(data))
        image_format = image.format
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Cannot decode image: {e}") from e

    if image_format not in SUPPORTED_IMAGE_FORMATS:
        raise ImageDecodeError(f"Unsupported image format: {image_format}")

    if image.mode != "RGB":
        image = image.convert("RGB")
    return image


def fit_to_canvas(
    image_size: Tuple[int, int],
    canvas_size: Tuple[int, int],
) -> Tuple[float, Tuple[int, int, int, int]]:
    """Aspect-fit an image inside a canvas, centered.

    Args:
        image_size: (width, height) of the source image
        canvas_size: (width, height) of the drawing surface

    Returns:
        Tuple of (scale, (left, top, width, height)) where the box is the
        placed image in canvas pixels
    """
    img_w, img_h = image_size
    canvas_w, canvas_h = canvas_size
    if img_w <= 0 or img_h <= 0:
        raise ImageDecodeError(f"Invalid image size: {img_w}x{img_h}")

    scale = min(canvas_w / img_w, canvas_h / img_h)
    width = max(1, round(img_w * scale))
    height = max(1, round(img_h * scale))
    left = (canvas_w - width) // 2
    top = (canvas_h - height) // 2
    return scale, (left, top, width, height)


def encode_image(image: Image.Image, image_format: str = "PNG", quality: int = 90) -> bytes:
    """Encode a PIL image to bytes.

    Args:
        image: Image to encode
        image_format: "PNG" or "JPEG"
        quality: JPEG quality (ignored for PNG)

    Returns:
        Encoded bytes
    """
    buffer = io.BytesIO()
    image_format = image_format.upper()
    if image_format in ("JPEG", "JPG"):
        if image.mode != "RGB":
            image = image.convert("RGB")
        image.save(buffer, format="JPEG", quality=quality)
    else:
        image.save(buffer, format=image_format)
    return buffer.getvalue()


def sniff_content_type(data: bytes) -> str:
    """Guess media type from magic bytes; defaults to application/octet-stream."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data.startswith(b"%PDF"):
        return "application/pdf"
    return "application/octet-stream"
