"""
Shape model for dental annotations.

A shape is one persisted vector annotation: a kind-discriminated record with a
problem label and kind-specific geometry. The stroke color is always derived
from the label, never stored.

Record format (JSON):
    {"kind": "rectangle", "problem_label": "Stains",
     "geometry": {"left": 50, "top": 50, "width": 100, "height": 70}}
    {"kind": "circle", "problem_label": "Crowns",
     "geometry": {"left": 75, "top": 75, "radius": 25}}
    {"kind": "arrow", "problem_label": "Malaligned",
     "geometry": {"x1": 100, "y1": 100, "x2": 200, "y2": 200}}
    {"kind": "freehand", "problem_label": "Attrition",
     "geometry": {"path": [[10, 10], [12, 15], [20, 18]]}}
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from oralscreen.core.errors import ValidationError
from oralscreen.core.image import get_label_color
from oralscreen.core.text import normalize_label

Point = Tuple[float, float]


# -----------------------------------------------------------------------------
# Geometry
# -----------------------------------------------------------------------------


class RectangleGeometry(BaseModel):
    """Top-left anchored rectangle."""

    model_config = ConfigDict(frozen=True)

    left: float
    top: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)


class CircleGeometry(BaseModel):
    """Circle given by its bounding-box top-left and radius."""

    model_config = ConfigDict(frozen=True)

    left: float
    top: float
    radius: float = Field(ge=0)

    @property
    def center(self) -> Point:
        return (self.left + self.radius, self.top + self.radius)


class ArrowGeometry(BaseModel):
    """Arrow from tail (x1, y1) to head (x2, y2)."""

    model_config = ConfigDict(frozen=True)

    x1: float
    y1: float
    x2: float
    y2: float


class FreehandGeometry(BaseModel):
    """Ordered polyline of canvas points."""

    model_config = ConfigDict(frozen=True)

    path: Tuple[Point, ...] = Field(min_length=1)


# -----------------------------------------------------------------------------
# Shapes
# -----------------------------------------------------------------------------


class _ShapeBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    problem_label: str = Field(..., description="Problem label, also the color key")
    note: Optional[str] = Field(default=None, description="Free-form reviewer note")

    @field_validator("problem_label")
    @classmethod
    def _label_not_blank(cls, value: str) -> str:
        value = normalize_label(value)
        if not value:
            raise ValueError("problem_label must not be empty")
        return value

    @property
    def stroke_color(self) -> str:
        """Hex stroke color for this shape's label."""
        return get_label_color(self.problem_label)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class RectangleShape(_ShapeBase):
    kind: Literal["rectangle"] = "rectangle"
    geometry: RectangleGeometry


class CircleShape(_ShapeBase):
    kind: Literal["circle"] = "circle"
    geometry: CircleGeometry


class ArrowShape(_ShapeBase):
    kind: Literal["arrow"] = "arrow"
    geometry: ArrowGeometry


class FreehandShape(_ShapeBase):
    kind: Literal["freehand"] = "freehand"
    geometry: FreehandGeometry


Shape = Annotated[
    Union[RectangleShape, CircleShape, ArrowShape, FreehandShape],
    Field(discriminator="kind"),
]

SHAPE_TYPES = {
    "rectangle": RectangleShape,
    "circle": CircleShape,
    "arrow": ArrowShape,
    "freehand": FreehandShape,
}


def make_shape(
    kind: str,
    problem_label: str,
    geometry: Dict[str, Any],
    note: Optional[str] = None,
) -> Shape:
    """Build a validated shape.

    Args:
        kind: "rectangle", "circle", "arrow", or "freehand"
        problem_label: Non-empty problem label
        geometry: Kind-specific geometry fields
        note: Optional reviewer note

    Returns:
        Shape instance

    Raises:
        ValidationError: Unknown kind, blank label, or invalid geometry
    """
    shape_type = SHAPE_TYPES.get(kind)
    if shape_type is None:
        raise ValidationError(f"Unknown shape kind: {kind!r}")
    try:
        return shape_type(problem_label=problem_label, geometry=geometry, note=note)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {kind} shape: {e}") from e


# -----------------------------------------------------------------------------
# Legacy records
# -----------------------------------------------------------------------------

_LEGACY_GEOMETRY_FIELDS = {
    "rectangle": ("left", "top", "width", "height"),
    "circle": ("left", "top", "radius"),
    "arrow": ("x1", "y1", "x2", "y2"),
}


def _points_from_path(path: Any) -> List[Point]:
    """Extract points from a stored freehand path.

    Accepts [[x, y], ...], [{"x": .., "y": ..}, ...] and SVG-style command
    lists such as [["M", 10, 10], ["Q", 11, 12, 14, 15], ["L", 20, 18]],
    where the end point of each command is kept.

    Raises:
        ValueError: Path or one of its points is malformed
    """
    if path is None:
        return []
    if not isinstance(path, (list, tuple)):
        raise ValueError(f"Freehand path must be a list, got {type(path).__name__}")

    points: List[Point] = []
    for item in path:
        if isinstance(item, dict):
            try:
                points.append((float(item["x"]), float(item["y"])))
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"Invalid freehand point: {item!r}") from e
            continue
        if not isinstance(item, (list, tuple)):
            raise ValueError(f"Invalid freehand point: {item!r}")
        numbers = [v for v in item if isinstance(v, (int, float)) and not isinstance(v, bool)]
        if len(numbers) >= 2:
            points.append((float(numbers[-2]), float(numbers[-1])))
    return points


def coerce_shape_record(record: Any) -> Any:
    """Convert a legacy flat annotation record to the tagged form.

    Older data stores annotations as loose dicts:
        {"type": "rectangle", "problem": "Stains", "left": 1, "top": 2, "width": 3, ...}

    Records already in tagged form (or not dicts at all) are returned unchanged
    so validation can report on them.
    """
    if not isinstance(record, dict) or "kind" in record or "type" not in record:
        return record

    kind = record["type"]
    label = record.get("problem", record.get("problem_label", ""))

    if kind == "freehand":
        geometry: Dict[str, Any] = {"path": _points_from_path(record.get("path"))}
    elif kind in _LEGACY_GEOMETRY_FIELDS:
        geometry = {name: record.get(name) for name in _LEGACY_GEOMETRY_FIELDS[kind]}
    else:
        geometry = {}

    return {"kind": kind, "problem_label": label, "geometry": geometry, "note": record.get("note")}
