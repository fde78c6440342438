"""Unit tests for oralscreen.annotation.canvas module."""

import io
from concurrent.futures import ThreadPoolExecutor

import pytest
from PIL import Image

from oralscreen.annotation.canvas import CanvasEngine, resize_geometry
from oralscreen.core.errors import ImageDecodeError, PersistenceError, ValidationError


@pytest.fixture
def engine():
    return CanvasEngine(stroke_width=3)


class TestResizeGeometry:
    """Tests for resize_geometry function."""

    def test_rectangle_drag(self):
        """Should use min corner and absolute deltas."""
        assert resize_geometry("rectangle", (50, 50), (150, 120)) == {
            "left": 50, "top": 50, "width": 100, "height": 70,
        }

    def test_rectangle_drag_up_left(self):
        """Should normalize drags toward the origin."""
        assert resize_geometry("rectangle", (150, 120), (50, 50)) == {
            "left": 50, "top": 50, "width": 100, "height": 70,
        }

    def test_circle_radius_is_half_the_drag(self):
        """Should use half the drag distance as radius, centered on start."""
        geometry = resize_geometry("circle", (100, 100), (130, 140))
        assert geometry["radius"] == pytest.approx(25.0)
        assert geometry["left"] + geometry["radius"] == pytest.approx(100)
        assert geometry["top"] + geometry["radius"] == pytest.approx(100)

    def test_arrow_follows_pointer(self):
        """Should keep the tail at start and move the head."""
        assert resize_geometry("arrow", (10, 20), (30, 5)) == {"x1": 10, "y1": 20, "x2": 30, "y2": 5}

    def test_freehand_not_resizable(self):
        """Should refuse drag-resizing freehand shapes."""
        with pytest.raises(ValidationError):
            resize_geometry("freehand", (0, 0), (1, 1))


class TestAddShape:
    """Tests for adding and editing shapes."""

    def test_default_geometries(self, engine):
        """Should place new shapes at fixed defaults."""
        rect = engine.get(engine.add_shape("rectangle", "Stains"))
        circle = engine.get(engine.add_shape("circle", "Crowns"))
        arrow = engine.get(engine.add_shape("arrow", "Malaligned"))

        assert rect.geometry == {"left": 100.0, "top": 100.0, "width": 100.0, "height": 100.0}
        assert circle.geometry == {"left": 100.0, "top": 100.0, "radius": 50.0}
        assert arrow.geometry == {"x1": 100.0, "y1": 100.0, "x2": 200.0, "y2": 200.0}

    def test_add_marks_dirty(self, engine):
        """Should set the dirty flag when a shape is added."""
        assert not engine.is_dirty
        engine.add_shape("rectangle", "Stains")
        assert engine.is_dirty

    def test_new_shape_is_selected_and_drawing(self, engine):
        """Should select the new shape and arm it for a drag resize."""
        live = engine.get(engine.add_shape("circle", "Stains"))
        assert live.selected
        assert live.drawing

    def test_freehand_cannot_be_added(self, engine):
        """Should require strokes for freehand shapes."""
        with pytest.raises(ValidationError):
            engine.add_shape("freehand", "Stains")

    def test_blank_label_rejected(self, engine):
        """Should require a label."""
        with pytest.raises(ValidationError):
            engine.add_shape("rectangle", " ")

    def test_unknown_label_gets_fallback_color(self, engine):
        """Should accept labels outside the fixed table."""
        live = engine.get(engine.add_shape("rectangle", "Fluorosis"))
        assert live.stroke_color == "#888888"

    def test_callback_fires_on_change(self):
        """Should notify on shape changes."""
        calls = []
        engine = CanvasEngine(on_shapes_changed=lambda: calls.append(1))
        engine.add_shape("arrow", "Stains")
        assert calls == [1]


class TestPointerGestures:
    """Tests for pointer-driven creation, resize and move."""

    def test_drag_resizes_rectangle(self, engine):
        """Should resize the drawing rectangle from the drag start."""
        handle = engine.add_shape("rectangle", "Stains")
        engine.pointer_down(50, 50)
        engine.pointer_move(90, 90)
        engine.pointer_move(150, 120)
        engine.pointer_up(150, 120)

        live = engine.get(handle)
        assert live.geometry == {"left": 50, "top": 50, "width": 100, "height": 70}
        assert not live.drawing

    def test_resize_is_idempotent(self, engine):
        """Should give the same geometry for repeated moves to one point."""
        handle = engine.add_shape("circle", "Stains")
        engine.pointer_down(100, 100)
        engine.pointer_move(130, 140)
        first = dict(engine.get(handle).geometry)
        engine.pointer_move(130, 140)
        assert engine.get(handle).geometry == first
        assert first["radius"] == pytest.approx(25.0)

    def test_drag_moves_selected_shape(self, engine):
        """Should move a finished shape by the drag delta from its start."""
        handle = engine.add_shape("rectangle", "Stains")
        engine.pointer_down(50, 50)
        engine.pointer_move(150, 120)
        engine.pointer_up(150, 120)
        engine.mark_saved()

        engine.pointer_down(60, 60)
        engine.pointer_move(70, 65)
        engine.pointer_move(80, 70)
        engine.pointer_up(80, 70)

        live = engine.get(handle)
        assert (live.geometry["left"], live.geometry["top"]) == (70, 60)
        assert engine.is_dirty

    def test_click_on_empty_space_clears_selection(self, engine):
        """Should deselect when nothing is hit."""
        handle = engine.add_shape("rectangle", "Stains")
        engine.pointer_down(100, 100)
        engine.pointer_up(100, 100)
        engine.pointer_down(700, 550)
        assert engine.selected is None
        assert engine.get(handle).selected is False

    def test_freehand_stroke(self, engine):
        """Should turn one pointer drag into one freehand shape."""
        engine.set_drawing_mode(True, "Attrition")
        engine.pointer_down(10, 10)
        engine.pointer_move(12, 15)
        handle = engine.pointer_up(20, 18)

        live = engine.get(handle)
        assert live.kind == "freehand"
        assert live.problem_label == "Attrition"
        assert live.geometry["path"] == [(10, 10), (12, 15), (20, 18)]
        assert engine.is_dirty

    def test_freehand_release_not_duplicated(self, engine):
        """Should not repeat the last point when release matches the last move."""
        engine.set_drawing_mode(True, "Attrition")
        engine.pointer_down(10, 10)
        engine.pointer_move(20, 18)
        handle = engine.pointer_up(20, 18)

        assert engine.get(handle).geometry["path"] == [(10, 10), (20, 18)]

    def test_empty_stroke_dropped(self, engine):
        """Should not create a shape from a stroke with no points."""
        engine.begin_freehand_stroke("Stains")
        assert engine.end_freehand_stroke() is None
        assert engine.shapes == []
        assert not engine.is_dirty


class TestRemoval:
    """Tests for removing shapes."""

    def test_remove_and_delete_selected(self, engine):
        """Should remove by handle and by selection."""
        first = engine.add_shape("rectangle", "Stains")
        second = engine.add_shape("arrow", "Crowns")
        engine.remove_shape(first)
        assert [s.handle for s in engine.shapes] == [second]
        assert engine.delete_selected() is True
        assert engine.shapes == []
        assert engine.delete_selected() is False

    def test_clear_all_keeps_background(self, engine, jpeg_bytes):
        """Should remove shapes but leave the background."""
        engine.load_background(jpeg_bytes)
        engine.add_shape("rectangle", "Stains")
        engine.add_shape("circle", "Stains")
        assert engine.clear_all_shapes() == 2
        assert engine.shapes == []
        assert engine.has_background

    def test_clear_empty_canvas_not_dirty(self, engine):
        """Should not dirty the canvas when there was nothing to clear."""
        assert engine.clear_all_shapes() == 0
        assert not engine.is_dirty

    def test_unknown_handle(self, engine):
        """Should raise KeyError for unknown handles."""
        with pytest.raises(KeyError):
            engine.remove_shape(999)


class TestBackground:
    """Tests for background loading."""

    def test_aspect_fit_centered(self, engine, jpeg_bytes):
        """Should scale 400x300 up to 800x600 exactly."""
        assert engine.load_background(jpeg_bytes) == (0, 0, 800, 600)

    def test_tall_image_is_centered_horizontally(self, engine):
        """Should letterbox a portrait image in the middle."""
        buffer = io.BytesIO()
        Image.new("RGB", (300, 600), (255, 0, 0)).save(buffer, format="PNG")
        left, top, width, height = engine.load_background(buffer.getvalue())
        assert (width, height) == (300, 600)
        assert (left, top) == (250, 0)

    def test_background_does_not_dirty(self, engine, jpeg_bytes):
        """Should not set the dirty flag when the background changes."""
        engine.load_background(jpeg_bytes)
        assert not engine.is_dirty

    def test_corrupt_background_leaves_engine_usable(self, engine):
        """Should raise ImageDecodeError and keep accepting shapes."""
        with pytest.raises(ImageDecodeError):
            engine.load_background(b"not an image")
        assert not engine.has_background
        engine.add_shape("rectangle", "Stains")
        assert len(engine.shapes) == 1

    def test_async_load_swaps_in_background(self, jpeg_bytes):
        """Should load on an executor and notify when ready."""
        ready = []
        engine = CanvasEngine(on_background_ready=lambda: ready.append(True))
        engine.add_shape("rectangle", "Stains")
        with ThreadPoolExecutor(max_workers=1) as executor:
            future = engine.load_background_async(lambda: jpeg_bytes, executor)
            assert future.result(timeout=10) == (0, 0, 800, 600)
        assert ready == [True]
        assert engine.has_background

    def test_async_fetch_failure_is_decode_error(self, engine):
        """Should surface a failed fetch as ImageDecodeError."""
        def fetch():
            raise PersistenceError("404")

        future = engine.load_background_async(fetch)
        with pytest.raises(ImageDecodeError):
            future.result()
        assert not engine.has_background


class TestOutput:
    """Tests for rendering and lifecycle."""

    def test_export_native_resolution(self, engine, jpeg_bytes):
        """Should export at the 800x600 canvas size."""
        engine.load_background(jpeg_bytes)
        engine.add_shape("rectangle", "Stains")
        image = Image.open(io.BytesIO(engine.export_raster("PNG")))
        assert image.size == (800, 600)

    def test_shapes_drawn_in_label_color(self, engine):
        """Should stroke shapes in their label color."""
        engine.add_shape("rectangle", "Stains")
        image = engine.render()
        # Left edge of the default 100x100 rectangle at (100, 100)
        assert image.getpixel((100, 150)) == (239, 68, 68)

    def test_scale_multiplies_effective_geometry(self, engine):
        """Should apply transform scale to the effective geometry."""
        handle = engine.add_shape("rectangle", "Stains")
        engine.scale_shape(handle, 2.0, 0.5)
        assert engine.get(handle).effective_geometry() == {
            "left": 100.0, "top": 100.0, "width": 200.0, "height": 50.0,
        }
        assert engine.is_dirty

    def test_mark_saved_clears_dirty(self, engine):
        """Should clear dirty only on acknowledgement."""
        engine.add_shape("rectangle", "Stains")
        engine.mark_saved()
        assert not engine.is_dirty

    def test_dispose(self, engine, jpeg_bytes):
        """Should release resources and refuse further edits."""
        engine.load_background(jpeg_bytes)
        engine.add_shape("rectangle", "Stains")
        engine.dispose()
        assert engine.is_disposed
        assert engine.shapes == []
        assert not engine.has_background
        with pytest.raises(RuntimeError):
            engine.add_shape("rectangle", "Stains")
