"""
Canvas engine: a fixed-size drawing surface with a raster background and
live, editable shape objects layered above it.

The engine is driven by one operator. It knows nothing about persistence;
the codec turns its live shapes into Shape records and its surface into an
exported raster.

Usage:
    engine = CanvasEngine()
    engine.load_background(jpeg_bytes)
    handle = engine.add_shape("rectangle", "Stains")
    engine.pointer_down(50, 50)
    engine.pointer_move(150, 120)
    engine.pointer_up(150, 120)
    png = engine.export_raster()
"""

import itertools
import logging
import math
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from PIL import Image, ImageDraw

from oralscreen.config import config
from oralscreen.core.constants import (
    ARROW_HEAD_ANGLE,
    ARROW_HEAD_LENGTH,
    CANVAS_BACKGROUND,
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    DEFAULT_GEOMETRY,
)
from oralscreen.core.errors import ImageDecodeError, PersistenceError, ValidationError
from oralscreen.core.image import decode_image, encode_image, fit_to_canvas, get_label_color
from oralscreen.core.text import normalize_label

logger = logging.getLogger("oralscreen.canvas")

Point = Tuple[float, float]


@dataclass
class LiveShape:
    """A shape as it lives on the canvas, including transient UI state."""

    handle: int
    kind: str
    problem_label: str
    geometry: Dict[str, Any]
    scale_x: float = 1.0
    scale_y: float = 1.0
    note: Optional[str] = None
    selected: bool = False
    drawing: bool = False

    @property
    def stroke_color(self) -> str:
        return get_label_color(self.problem_label)

    def effective_geometry(self) -> Dict[str, Any]:
        """Geometry with the transform scale multiplied out.

        Scaling is anchored at the shape's top-left, the way a vector editor
        applies its transform handles.
        """
        g = self.geometry
        sx, sy = self.scale_x, self.scale_y

        if self.kind == "rectangle":
            return {
                "left": g["left"],
                "top": g["top"],
                "width": g["width"] * sx,
                "height": g["height"] * sy,
            }
        if self.kind == "circle":
            return {"left": g["left"], "top": g["top"], "radius": g["radius"] * sx}
        if self.kind == "arrow":
            ox, oy = min(g["x1"], g["x2"]), min(g["y1"], g["y2"])
            return {
                "x1": ox + (g["x1"] - ox) * sx,
                "y1": oy + (g["y1"] - oy) * sy,
                "x2": ox + (g["x2"] - ox) * sx,
                "y2": oy + (g["y2"] - oy) * sy,
            }

        path = g["path"]
        ox = min(x for x, _ in path)
        oy = min(y for _, y in path)
        return {"path": [(ox + (x - ox) * sx, oy + (y - oy) * sy) for x, y in path]}

    def bounds(self) -> Tuple[float, float, float, float]:
        """Bounding box (x0, y0, x1, y1) of the effective geometry."""
        g = self.effective_geometry()
        if self.kind == "rectangle":
            return (g["left"], g["top"], g["left"] + g["width"], g["top"] + g["height"])
        if self.kind == "circle":
            d = g["radius"] * 2
            return (g["left"], g["top"], g["left"] + d, g["top"] + d)
        if self.kind == "arrow":
            return (
                min(g["x1"], g["x2"]),
                min(g["y1"], g["y2"]),
                max(g["x1"], g["x2"]),
                max(g["y1"], g["y2"]),
            )
        xs = [x for x, _ in g["path"]]
        ys = [y for _, y in g["path"]]
        return (min(xs), min(ys), max(xs), max(ys))


# -----------------------------------------------------------------------------
# Geometry helpers
# -----------------------------------------------------------------------------


def resize_geometry(kind: str, start: Point, current: Point) -> Dict[str, float]:
    """Recompute geometry for a drag from start to current.

    Always derived from the original start point, so repeated pointer-move
    events with the same current point give the same result.

    Args:
        kind: "rectangle", "circle", or "arrow"
        start: Point where the drag began
        current: Current pointer point

    Returns:
        Geometry dict for the kind

    Raises:
        ValidationError: For freehand or unknown kinds
    """
    sx, sy = start
    cx, cy = current
    width = abs(cx - sx)
    height = abs(cy - sy)

    if kind == "rectangle":
        return {"left": min(sx, cx), "top": min(sy, cy), "width": width, "height": height}
    if kind == "circle":
        # Half the drag distance, centered on the start point
        radius = math.hypot(width, height) / 2
        return {"left": sx - radius, "top": sy - radius, "radius": radius}
    if kind == "arrow":
        return {"x1": sx, "y1": sy, "x2": cx, "y2": cy}

    raise ValidationError(f"Shape kind {kind!r} cannot be resized by dragging")


def translate_geometry(kind: str, geometry: Dict[str, Any], dx: float, dy: float) -> Dict[str, Any]:
    """Return geometry moved by (dx, dy)."""
    if kind == "arrow":
        return {
            "x1": geometry["x1"] + dx,
            "y1": geometry["y1"] + dy,
            "x2": geometry["x2"] + dx,
            "y2": geometry["y2"] + dy,
        }
    if kind == "freehand":
        return {"path": [(x + dx, y + dy) for x, y in geometry["path"]]}

    moved = dict(geometry)
    moved["left"] = geometry["left"] + dx
    moved["top"] = geometry["top"] + dy
    return moved


def arrow_head_points(x1: float, y1: float, x2: float, y2: float) -> List[Point]:
    """The two barb end points of an arrow head at (x2, y2)."""
    angle = math.atan2(y2 - y1, x2 - x1)
    return [
        (
            x2 - ARROW_HEAD_LENGTH * math.cos(angle - ARROW_HEAD_ANGLE),
            y2 - ARROW_HEAD_LENGTH * math.sin(angle - ARROW_HEAD_ANGLE),
        ),
        (
            x2 - ARROW_HEAD_LENGTH * math.cos(angle + ARROW_HEAD_ANGLE),
            y2 - ARROW_HEAD_LENGTH * math.sin(angle + ARROW_HEAD_ANGLE),
        ),
    ]


def draw_shape(draw: ImageDraw.ImageDraw, live: LiveShape, line_width: int = 3) -> None:
    """Draw one live shape onto a PIL drawing context."""
    color = live.stroke_color
    g = live.effective_geometry()

    if live.kind == "rectangle":
        draw.rectangle(
            [g["left"], g["top"], g["left"] + g["width"], g["top"] + g["height"]],
            outline=color,
            width=line_width,
        )
    elif live.kind == "circle":
        d = g["radius"] * 2
        draw.ellipse(
            [g["left"], g["top"], g["left"] + d, g["top"] + d],
            outline=color,
            width=line_width,
        )
    elif live.kind == "arrow":
        tip = (g["x2"], g["y2"])
        draw.line([(g["x1"], g["y1"]), tip], fill=color, width=line_width)
        for barb in arrow_head_points(g["x1"], g["y1"], g["x2"], g["y2"]):
            draw.line([barb, tip], fill=color, width=line_width)
    else:
        path = g["path"]
        if len(path) == 1:
            x, y = path[0]
            r = line_width / 2
            draw.ellipse([x - r, y - r, x + r, y + r], fill=color)
        else:
            draw.line(path, fill=color, width=line_width, joint="curve")


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------


@dataclass
class _Drag:
    handle: int
    start: Point
    resizing: bool
    origin: Dict[str, Any] = field(default_factory=dict)


class CanvasEngine:
    """Fixed-size drawing surface with a background raster and live shapes."""

    def __init__(
        self,
        width: int = CANVAS_WIDTH,
        height: int = CANVAS_HEIGHT,
        stroke_width: Optional[int] = None,
        on_shapes_changed: Optional[Callable[[], None]] = None,
        on_background_ready: Optional[Callable[[], None]] = None,
    ):
        self.width = width
        self.height = height
        self.stroke_width = stroke_width if stroke_width is not None else config.stroke_width
        self.on_shapes_changed = on_shapes_changed
        self.on_background_ready = on_background_ready

        self._shapes: List[LiveShape] = []
        self._handles = itertools.count(1)
        self._background: Optional[Image.Image] = None
        self._placed: Optional[Tuple[Image.Image, Tuple[int, int]]] = None
        self._lock = threading.Lock()
        self._dirty = False
        self._disposed = False

        self._freehand_mode = False
        self._freehand_label: Optional[str] = None
        self._stroke: Optional[List[Point]] = None
        self._stroke_label: Optional[str] = None
        self._drag: Optional[_Drag] = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def shapes(self) -> List[LiveShape]:
        """Live shapes in insertion order (copy of the list)."""
        return list(self._shapes)

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def has_background(self) -> bool:
        return self._background is not None

    @property
    def background_box(self) -> Optional[Tuple[int, int, int, int]]:
        """Placed background as (left, top, width, height), or None."""
        if self._placed is None:
            return None
        image, (left, top) = self._placed
        return (left, top, image.width, image.height)

    @property
    def freehand_mode(self) -> bool:
        return self._freehand_mode

    @property
    def selected(self) -> Optional[LiveShape]:
        for live in self._shapes:
            if live.selected:
                return live
        return None

    def get(self, handle: int) -> LiveShape:
        for live in self._shapes:
            if live.handle == handle:
                return live
        raise KeyError(f"No shape with handle {handle}")

    def mark_saved(self) -> None:
        """Acknowledge a successful save; clears the dirty flag."""
        self._dirty = False

    def _check_alive(self) -> None:
        if self._disposed:
            raise RuntimeError("Canvas engine has been disposed")

    def _changed(self, dirty: bool = True) -> None:
        if dirty:
            self._dirty = True
        if self.on_shapes_changed is not None:
            self.on_shapes_changed()

    # -------------------------------------------------------------------------
    # Background
    # -------------------------------------------------------------------------

    def load_background(self, data: bytes) -> Tuple[int, int, int, int]:
        """Decode bytes and place them as the background, aspect-fit and centered.

        Returns:
            Placed box as (left, top, width, height)

        Raises:
            ImageDecodeError: If the bytes are not a supported raster. The
                engine keeps working without a background.
        """
        self._check_alive()
        try:
            image = decode_image(data)
        except ImageDecodeError:
            logger.warning("Background could not be decoded; continuing without one")
            self.clear_background()
            raise
        self._set_background(image)
        return self.background_box

    def load_background_async(
        self,
        fetch: Callable[[], bytes],
        executor: Optional[Executor] = None,
    ) -> Future:
        """Fetch and decode the background off the editing path.

        Shapes can be edited while the background loads. On success the
        background is swapped in and on_background_ready fires. Completions
        after dispose() are ignored.

        Args:
            fetch: Callable returning encoded image bytes
            executor: Executor to run on; runs inline when None

        Returns:
            Future resolving to the placed box, or failing with ImageDecodeError
        """
        self._check_alive()

        def task() -> Image.Image:
            try:
                data = fetch()
            except PersistenceError as e:
                raise ImageDecodeError(f"Background fetch failed: {e}") from e
            return decode_image(data)

        outer: Future = Future()

        def done(inner: Future) -> None:
            error = inner.exception()
            if self._disposed:
                logger.debug("Ignoring background completion on disposed engine")
                outer.cancel()
                return
            if error is not None:
                logger.warning(f"Background load failed: {error}")
                outer.set_exception(error)
                return
            self._set_background(inner.result())
            outer.set_result(self.background_box)

        if executor is None:
            inner: Future = Future()
            try:
                inner.set_result(task())
            except Exception as e:
                inner.set_exception(e)
            done(inner)
        else:
            executor.submit(task).add_done_callback(done)
        return outer

    def _set_background(self, image: Image.Image) -> None:
        _, (left, top, width, height) = fit_to_canvas(image.size, (self.width, self.height))
        placed = image.resize((width, height), Image.Resampling.LANCZOS)
        with self._lock:
            self._background = image
            self._placed = (placed, (left, top))
        if self.on_background_ready is not None:
            self.on_background_ready()

    def clear_background(self) -> None:
        with self._lock:
            self._background = None
            self._placed = None

    # -------------------------------------------------------------------------
    # Shapes
    # -------------------------------------------------------------------------

    def add_shape(self, kind: str, problem_label: str) -> int:
        """Add a rectangle, circle or arrow at its default geometry.

        The new shape is selected and in drawing state: the next drag gesture
        resizes it from the drag's start point.

        Returns:
            Handle of the new shape
        """
        self._check_alive()
        if kind not in DEFAULT_GEOMETRY:
            if kind == "freehand":
                raise ValidationError("Freehand shapes are drawn with strokes, not added")
            raise ValidationError(f"Unknown shape kind: {kind!r}")
        label = normalize_label(problem_label)
        if not label:
            raise ValidationError("A problem label is required")

        live = LiveShape(
            handle=next(self._handles),
            kind=kind,
            problem_label=label,
            geometry=dict(DEFAULT_GEOMETRY[kind]),
            drawing=True,
        )
        self._shapes.append(live)
        self.select(live.handle)
        self._changed()
        return live.handle

    def add_shape_from(self, shape: Any, mark_dirty: bool = False) -> int:
        """Recreate a live shape from a Shape record.

        Used when restoring persisted shapes; does not dirty the engine or
        fire on_shapes_changed unless mark_dirty is set.
        """
        self._check_alive()
        geometry = shape.geometry.model_dump()
        if shape.kind == "freehand":
            geometry["path"] = [tuple(p) for p in geometry["path"]]

        live = LiveShape(
            handle=next(self._handles),
            kind=shape.kind,
            problem_label=shape.problem_label,
            geometry=geometry,
            note=shape.note,
        )
        self._shapes.append(live)
        if mark_dirty:
            self._changed()
        return live.handle

    def remove_shape(self, handle: int) -> None:
        self._check_alive()
        live = self.get(handle)
        self._shapes.remove(live)
        if self._drag is not None and self._drag.handle == handle:
            self._drag = None
        self._changed()

    def delete_selected(self) -> bool:
        """Remove the selected shape. Returns False if nothing was selected."""
        live = self.selected
        if live is None:
            return False
        self.remove_shape(live.handle)
        return True

    def clear_all_shapes(self) -> int:
        """Remove every shape; the background is untouched.

        Returns:
            Number of shapes removed
        """
        self._check_alive()
        count = len(self._shapes)
        self._shapes.clear()
        self._drag = None
        if count:
            self._changed()
        return count

    def resize_shape(self, handle: int, start: Point, current: Point) -> Dict[str, float]:
        """Resize a shape as if dragged from start to current."""
        self._check_alive()
        live = self.get(handle)
        live.geometry = resize_geometry(live.kind, start, current)
        live.scale_x = live.scale_y = 1.0
        self._changed()
        return live.geometry

    def scale_shape(self, handle: int, scale_x: float, scale_y: float) -> None:
        """Set the transform scale of a shape, as its handles would."""
        self._check_alive()
        if scale_x <= 0 or scale_y <= 0:
            raise ValidationError(f"Scale factors must be positive: {scale_x}, {scale_y}")
        live = self.get(handle)
        live.scale_x = scale_x
        live.scale_y = scale_y
        self._changed()

    def move_shape(self, handle: int, dx: float, dy: float) -> None:
        self._check_alive()
        live = self.get(handle)
        live.geometry = translate_geometry(live.kind, live.geometry, dx, dy)
        self._changed()

    def select(self, handle: Optional[int]) -> None:
        """Select one shape by handle, or clear the selection with None."""
        if handle is not None:
            self.get(handle)
        for live in self._shapes:
            live.selected = live.handle == handle

    def hit_test(self, x: float, y: float) -> Optional[int]:
        """Handle of the topmost shape whose bounds contain (x, y)."""
        tolerance = max(self.stroke_width, 4)
        for live in reversed(self._shapes):
            x0, y0, x1, y1 = live.bounds()
            if x0 - tolerance <= x <= x1 + tolerance and y0 - tolerance <= y <= y1 + tolerance:
                return live.handle
        return None

    # -------------------------------------------------------------------------
    # Freehand
    # -------------------------------------------------------------------------

    def set_drawing_mode(self, freehand: bool, problem_label: Optional[str] = None) -> None:
        """Switch pointer input between shape editing and freehand strokes."""
        self._freehand_mode = freehand
        self._freehand_label = normalize_label(problem_label) if problem_label else None
        if not freehand:
            self._stroke = None

    def begin_freehand_stroke(self, problem_label: str, point: Optional[Point] = None) -> None:
        self._check_alive()
        label = normalize_label(problem_label)
        if not label:
            raise ValidationError("A problem label is required")
        self._stroke_label = label
        self._stroke = [] if point is None else [(float(point[0]), float(point[1]))]

    def extend_freehand_stroke(self, x: float, y: float) -> None:
        if self._stroke is not None:
            self._stroke.append((float(x), float(y)))

    def end_freehand_stroke(self) -> Optional[int]:
        """Finalize the current stroke into a freehand shape.

        Returns:
            Handle of the new shape, or None if the stroke had no points
        """
        stroke, label = self._stroke, self._stroke_label
        self._stroke = None
        self._stroke_label = None
        if not stroke:
            return None

        live = LiveShape(
            handle=next(self._handles),
            kind="freehand",
            problem_label=label,
            geometry={"path": stroke},
        )
        self._shapes.append(live)
        self._changed()
        return live.handle

    # -------------------------------------------------------------------------
    # Pointer input
    # -------------------------------------------------------------------------

    def pointer_down(self, x: float, y: float) -> None:
        """Start a stroke, a resize of the drawing shape, or a move."""
        self._check_alive()
        if self._freehand_mode:
            self.begin_freehand_stroke(self._freehand_label or "", (x, y))
            return

        live = self.selected
        if live is not None and live.drawing:
            self._drag = _Drag(handle=live.handle, start=(x, y), resizing=True)
            return

        handle = self.hit_test(x, y)
        self.select(handle)
        if handle is not None:
            origin = self.get(handle).geometry
            self._drag = _Drag(handle=handle, start=(x, y), resizing=False, origin=origin)

    def pointer_move(self, x: float, y: float) -> None:
        if self._freehand_mode:
            self.extend_freehand_stroke(x, y)
            return

        drag = self._drag
        if drag is None:
            return
        if drag.resizing:
            self.resize_shape(drag.handle, drag.start, (x, y))
        else:
            live = self.get(drag.handle)
            dx, dy = x - drag.start[0], y - drag.start[1]
            live.geometry = translate_geometry(live.kind, drag.origin, dx, dy)
            self._changed()

    def pointer_up(self, x: float, y: float) -> Optional[int]:
        """Finish the gesture. Returns the handle of a new freehand shape, if any."""
        if self._freehand_mode:
            # Skip a release point the last move already sampled
            if not self._stroke or self._stroke[-1] != (float(x), float(y)):
                self.extend_freehand_stroke(x, y)
            return self.end_freehand_stroke()

        drag = self._drag
        self._drag = None
        if drag is not None and drag.resizing:
            self.get(drag.handle).drawing = False
        return None

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def render(self) -> Image.Image:
        """Flatten background and shapes onto a fresh RGB surface."""
        self._check_alive()
        surface = Image.new("RGB", (self.width, self.height), CANVAS_BACKGROUND)
        with self._lock:
            placed = self._placed
        if placed is not None:
            image, offset = placed
            surface.paste(image, offset)

        draw = ImageDraw.Draw(surface)
        for live in self._shapes:
            draw_shape(draw, live, self.stroke_width)
        return surface

    def export_raster(self, image_format: str = "PNG", quality: Optional[int] = None) -> bytes:
        """Render and encode the canvas at its native resolution."""
        quality = quality if quality is not None else config.jpeg_quality
        return encode_image(self.render(), image_format=image_format, quality=quality)

    def dispose(self) -> None:
        """Release the background and shapes and detach callbacks."""
        self.clear_background()
        self._shapes.clear()
        self._stroke = None
        self._drag = None
        self.on_shapes_changed = None
        self.on_background_ready = None
        self._disposed = True
