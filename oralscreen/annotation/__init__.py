"""Annotation subsystem: shape model, canvas engine, codec and editor state.

The session controller lives in oralscreen.annotation.session.
"""

from .canvas import CanvasEngine, LiveShape, resize_geometry
from .codec import (
    deserialize,
    dump_shapes,
    export_annotation,
    flatten_to_raster_bytes,
    parse_shapes,
    serialize,
    shapes_from_json,
    shapes_to_json,
)
from .recommendations import RecommendationEditor
from .shapes import (
    ArrowShape,
    CircleShape,
    FreehandShape,
    RectangleShape,
    Shape,
    coerce_shape_record,
    make_shape,
)

__all__ = [
    # Shapes
    "Shape",
    "RectangleShape",
    "CircleShape",
    "ArrowShape",
    "FreehandShape",
    "make_shape",
    "coerce_shape_record",
    # Canvas
    "CanvasEngine",
    "LiveShape",
    "resize_geometry",
    # Codec
    "serialize",
    "deserialize",
    "flatten_to_raster_bytes",
    "export_annotation",
    "parse_shapes",
    "dump_shapes",
    "shapes_to_json",
    "shapes_from_json",
    # Recommendations
    "RecommendationEditor",
]
