"""
Annotation codec: live canvas shapes <-> Shape records, and canvas -> raster.

The two directions are independent. Live shapes carry transient UI state
(selection, drawing, transform scale) that records never hold; serializing
multiplies the scale out into the geometry.
"""

import json
import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from oralscreen.config import config
from oralscreen.core.errors import ValidationError

from .canvas import CanvasEngine, LiveShape
from .shapes import Shape, coerce_shape_record, make_shape

logger = logging.getLogger("oralscreen.codec")

_shape_list = TypeAdapter(List[Shape])


def live_to_shape(live: LiveShape) -> Shape:
    """Convert one live shape to a Shape record."""
    return make_shape(live.kind, live.problem_label, live.effective_geometry(), note=live.note)


def serialize(source: Union[CanvasEngine, Iterable[LiveShape]]) -> List[Shape]:
    """Serialize live shapes to Shape records.

    Args:
        source: A CanvasEngine or an iterable of its live shapes

    Returns:
        One record per live shape, in insertion order
    """
    live_shapes = source.shapes if isinstance(source, CanvasEngine) else source
    return [live_to_shape(live) for live in live_shapes]


def deserialize(shapes: Sequence[Shape], engine: CanvasEngine, mark_dirty: bool = False) -> List[int]:
    """Recreate live shapes on an engine from Shape records.

    Labels outside the fixed table are kept and drawn in the fallback color.
    The engine is not dirtied unless mark_dirty is set.

    Returns:
        Handles of the created live shapes
    """
    handles = [engine.add_shape_from(shape, mark_dirty=mark_dirty) for shape in shapes]
    logger.debug(f"Restored {len(handles)} shapes")
    return handles


def flatten_to_raster_bytes(engine: CanvasEngine, quality: Optional[int] = None) -> bytes:
    """Flatten background and shapes into JPEG bytes (the annotated image)."""
    quality = quality if quality is not None else config.jpeg_quality
    return engine.export_raster(image_format="JPEG", quality=quality)


def export_annotation(engine: CanvasEngine, quality: Optional[int] = None) -> Tuple[List[Shape], bytes]:
    """Produce the shape list and annotated raster together for one save."""
    shapes = serialize(engine)
    return shapes, flatten_to_raster_bytes(engine, quality=quality)


# -----------------------------------------------------------------------------
# Persisted form
# -----------------------------------------------------------------------------


def parse_shapes(records: Any) -> List[Shape]:
    """Validate a persisted list of shape records.

    Accepts the tagged form and the legacy flat form.

    Raises:
        ValidationError: If the input is not a list or any record is invalid
    """
    if records is None:
        return []
    if not isinstance(records, list):
        raise ValidationError(f"Expected a list of shapes, got {type(records).__name__}")
    try:
        return _shape_list.validate_python([coerce_shape_record(r) for r in records])
    except (PydanticValidationError, ValueError) as e:
        raise ValidationError(f"Invalid shape records: {e}") from e


def dump_shapes(shapes: Sequence[Shape]) -> List[dict]:
    """Shape records as JSON-ready dicts."""
    return [shape.model_dump(mode="json") for shape in shapes]


def shapes_to_json(shapes: Sequence[Shape], indent: Optional[int] = None) -> str:
    return json.dumps(dump_shapes(shapes), indent=indent)


def shapes_from_json(text: str) -> List[Shape]:
    try:
        records = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid shapes JSON: {e}") from e
    return parse_shapes(records)
