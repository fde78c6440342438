"""
Annotation session controller.

Owns the editing state for one submission: current tool, current label,
active image slot, the canvas engine for that slot, the save lifecycle and
the recommendation editor. Hosts drive it through intent methods and listen
for SessionEvent notifications; the engine itself is never handed out.

Usage:
    service = SubmissionService.local("data")
    session = AnnotationSession(service, submission_id)
    session.select_tool("circle")
    session.select_label("Crowns")
    session.add_shape()
    session.pointer_down(100, 100)
    session.pointer_move(130, 140)
    session.pointer_up(130, 140)
    result = session.save()
    if not result.ok:
        print(result.message)
"""

import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from oralscreen.core.constants import DEFAULT_LABEL, IMAGE_SLOTS, SHAPE_KINDS, SLOT_LABELS
from oralscreen.core.errors import OralScreenError, ValidationError
from oralscreen.core.text import normalize_label
from oralscreen.submissions.models import Submission, check_report_ready

from .canvas import CanvasEngine
from .codec import deserialize, export_annotation
from .recommendations import RecommendationEditor
from .shapes import Shape

logger = logging.getLogger("oralscreen.session")


@dataclass
class OperationResult:
    """Outcome of a session intent."""

    ok: bool
    message: str = ""
    error: Optional[OralScreenError] = None
    value: Any = None


@dataclass(frozen=True)
class SessionEvent:
    """Change notification sent to subscribers."""

    name: str
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[SessionEvent], None]


class AnnotationSession:
    """UI-facing orchestration of one submission's annotation work."""

    def __init__(
        self,
        service: Any,
        submission_id: str,
        slot: str = IMAGE_SLOTS[0],
        executor: Optional[Executor] = None,
    ):
        """Open a session on a submission.

        Args:
            service: Persistence collaborator (a SubmissionService)
            submission_id: Submission to edit
            slot: Image slot to open first
            executor: Runs background image loads; inline when None

        Raises:
            PersistenceError: If the submission cannot be loaded
            ValidationError: If slot is unknown
        """
        if slot not in IMAGE_SLOTS:
            raise ValidationError(f"Unknown image slot: {slot!r}")

        self._service = service
        self._executor = executor
        self._listeners: List[Listener] = []
        self._submission: Submission = service.get_submission(submission_id)

        self._tool = SHAPE_KINDS[0]
        self._label = DEFAULT_LABEL
        self._saving = False
        self._generating = False
        self._suspend_sync = False
        self._message = ""

        self._recommendations = RecommendationEditor(
            self._submission.treatment_recommendations,
            derived_labels=self._submission.problem_labels,
            custom_labels=self._submission.custom_labels,
        )
        self._engine: Optional[CanvasEngine] = None
        self._slot = slot
        self._open_slot(slot)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def tool(self) -> str:
        return self._tool

    @property
    def active_label(self) -> str:
        return self._label

    @property
    def active_slot(self) -> str:
        return self._slot

    @property
    def dirty(self) -> bool:
        return self._engine is not None and self._engine.is_dirty

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def is_generating(self) -> bool:
        return self._generating

    @property
    def can_save(self) -> bool:
        return self.dirty and not self._saving

    @property
    def last_message(self) -> str:
        return self._message

    @property
    def submission(self) -> Submission:
        """Cached submission as of the last successful load or save."""
        return self._submission

    @property
    def recommendations(self) -> Dict[str, str]:
        return self._recommendations.as_dict()

    @property
    def custom_labels(self) -> List[str]:
        return self._recommendations.custom_labels

    @property
    def shape_count(self) -> int:
        return len(self._engine.shapes) if self._engine else 0

    @property
    def problem_labels(self) -> List[str]:
        """Labels on the live shapes of the active slot and the stored shapes of the others."""
        labels: List[str] = []
        for name, slot in self._submission.slots:
            if name == self._slot:
                current = [live.problem_label for live in self._engine.shapes]
            else:
                current = slot.problem_labels
            for label in current:
                if label not in labels:
                    labels.append(label)
        return labels

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, name: str, **payload: Any) -> None:
        event = SessionEvent(name, payload)
        for listener in list(self._listeners):
            listener(event)

    def _fail(self, message: str, error: Optional[OralScreenError] = None) -> OperationResult:
        self._message = message
        self._emit("message", text=message, error=error)
        return OperationResult(ok=False, message=message, error=error)

    def _ok(self, message: str = "", value: Any = None) -> OperationResult:
        if message:
            self._message = message
            self._emit("message", text=message, error=None)
        return OperationResult(ok=True, message=message, value=value)

    # -------------------------------------------------------------------------
    # Slot lifecycle
    # -------------------------------------------------------------------------

    def _open_slot(self, slot: str) -> None:
        image_slot = self._submission.slot(slot)
        engine = CanvasEngine(
            on_shapes_changed=self._on_shapes_changed,
            on_background_ready=self._on_background_ready,
        )
        engine.set_drawing_mode(self._tool == "freehand", self._label)
        deserialize(image_slot.annotations, engine)

        self._engine = engine
        self._slot = slot
        self._sync_recommendations()

        # The editable background is always the original photo
        future = engine.load_background_async(
            lambda: self._service.fetch_image(image_slot.original_url),
            self._executor,
        )
        future.add_done_callback(self._on_background_result)

    def _on_background_result(self, future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self._message = f"Background image unavailable: {error}"
            self._emit("background_failed", slot=self._slot, error=error)

    def _on_background_ready(self) -> None:
        self._emit("background_ready", slot=self._slot)

    def _on_shapes_changed(self) -> None:
        if self._suspend_sync:
            return
        self._sync_recommendations()
        self._emit("shapes_changed", count=self.shape_count, dirty=self.dirty)

    def _sync_recommendations(self) -> None:
        pruned = self._recommendations.sync(self.problem_labels)
        if pruned:
            logger.info(f"Pruned recommendations for labels no longer in use: {pruned}")
            self._emit("recommendations_changed", pruned=pruned)

    def switch_slot(self, slot: str, save_first: bool = False) -> OperationResult:
        """Tear down the current canvas and open another slot.

        Unsaved edits on the current slot are discarded with a warning unless
        save_first is set, in which case a failed save aborts the switch.
        """
        if slot not in IMAGE_SLOTS:
            return self._fail(f"Unknown image slot: {slot!r}", ValidationError(slot))
        if slot == self._slot:
            return self._ok()

        previous = self._slot
        if self.dirty:
            if save_first:
                saved = self.save()
                if not saved.ok:
                    return self._fail(f"Switch aborted, save failed: {saved.message}", saved.error)
            else:
                logger.warning(
                    f"Discarding unsaved edits on {SLOT_LABELS[previous]} "
                    f"({self.shape_count} shapes on canvas)"
                )
                self._emit("unsaved_changes_discarded", slot=previous)

        self._engine.dispose()
        self._open_slot(slot)
        self._emit("slot_changed", slot=slot, previous=previous)
        return self._ok(f"Editing {SLOT_LABELS[slot]}")

    def close(self) -> None:
        """Dispose the canvas. Unsaved edits are dropped with a warning."""
        if self._engine is None:
            return
        if self.dirty:
            logger.warning(f"Closing session with unsaved edits on {SLOT_LABELS[self._slot]}")
        self._engine.dispose()
        self._engine = None
        self._listeners.clear()

    # -------------------------------------------------------------------------
    # Tool and label
    # -------------------------------------------------------------------------

    def select_tool(self, tool: str) -> OperationResult:
        if tool not in SHAPE_KINDS:
            return self._fail(f"Unknown tool: {tool!r}", ValidationError(tool))
        self._tool = tool
        self._engine.set_drawing_mode(tool == "freehand", self._label)
        self._emit("tool_changed", tool=tool)
        return self._ok()

    def select_label(self, label: str) -> OperationResult:
        label = normalize_label(label)
        if not label:
            return self._fail("A problem label is required", ValidationError("blank label"))
        self._label = label
        self._engine.set_drawing_mode(self._tool == "freehand", label)
        self._emit("label_changed", label=label)
        return self._ok()

    # -------------------------------------------------------------------------
    # Shape editing
    # -------------------------------------------------------------------------

    def add_shape(self) -> OperationResult:
        """Add a shape of the current tool and label at its default geometry."""
        if self._tool == "freehand":
            return self._fail("Freehand shapes are drawn with the pointer")
        try:
            handle = self._engine.add_shape(self._tool, self._label)
        except ValidationError as e:
            return self._fail(str(e), e)
        return self._ok(value=handle)

    def pointer_down(self, x: float, y: float) -> None:
        self._engine.pointer_down(x, y)

    def pointer_move(self, x: float, y: float) -> None:
        self._engine.pointer_move(x, y)

    def pointer_up(self, x: float, y: float) -> Optional[int]:
        return self._engine.pointer_up(x, y)

    def select_at(self, x: float, y: float) -> OperationResult:
        handle = self._engine.hit_test(x, y)
        self._engine.select(handle)
        self._emit("selection_changed", handle=handle)
        return OperationResult(ok=handle is not None, value=handle)

    def delete_selected(self) -> OperationResult:
        if not self._engine.delete_selected():
            return self._fail("No shape selected")
        return self._ok("Shape deleted")

    def clear_all(self) -> OperationResult:
        removed = self._engine.clear_all_shapes()
        return self._ok(f"Removed {removed} shapes", value=removed)

    def import_shapes(self, shapes: Sequence[Shape], replace: bool = True) -> OperationResult:
        """Put shape records on the canvas as unsaved edits."""
        self._suspend_sync = True
        try:
            if replace:
                self._engine.clear_all_shapes()
            handles = deserialize(shapes, self._engine, mark_dirty=True)
        finally:
            self._suspend_sync = False
        self._on_shapes_changed()
        return self._ok(f"Imported {len(handles)} shapes", value=handles)

    def render_preview(self, image_format: str = "PNG") -> OperationResult:
        """Flattened canvas bytes for display; does not save."""
        return OperationResult(ok=True, value=self._engine.export_raster(image_format=image_format))

    # -------------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------------

    def save(self) -> OperationResult:
        """Persist the active slot's shapes and flattened image together.

        On failure the canvas keeps its shapes and stays dirty so the save can
        be retried.
        """
        if self._saving:
            return self._fail("A save is already in progress")
        if not self.dirty:
            return self._fail("Nothing to save")

        self._saving = True
        self._emit("saving", slot=self._slot)
        try:
            shapes, raster = export_annotation(self._engine)
            submission = self._service.save_annotations(
                self._submission.id, self._slot, shapes, raster
            )
        except OralScreenError as e:
            logger.error(f"Saving {self._slot} failed: {e}")
            self._emit("save_failed", slot=self._slot, error=e)
            return self._fail(f"Save failed: {e}", e)
        finally:
            self._saving = False

        self._submission = submission
        self._engine.mark_saved()
        logger.info(f"Saved {len(shapes)} shapes on {self._slot} of {submission.id}")

        # Stored entries the editor already pruned
        stale = [
            label
            for label in submission.treatment_recommendations
            if label not in self._recommendations.labels
        ]
        if stale:
            logger.info(f"Dropping stored recommendations for {', '.join(stale)}")
            self.save_recommendations()

        self._emit("saved", slot=self._slot, count=len(shapes), status=submission.status.value)
        return self._ok(f"{SLOT_LABELS[self._slot]} annotations saved", value=self._submission)

    # -------------------------------------------------------------------------
    # Recommendations
    # -------------------------------------------------------------------------

    def set_recommendation(self, label: str, text: str) -> OperationResult:
        try:
            self._recommendations.set(label, text)
        except ValidationError as e:
            return self._fail(str(e), e)
        self._emit("recommendations_changed", label=normalize_label(label))
        return self._ok()

    def add_custom_label(self, label: str) -> OperationResult:
        try:
            added = self._recommendations.add_custom_label(label)
        except ValidationError as e:
            return self._fail(str(e), e)
        if not added:
            return self._fail(f"Label already present: {normalize_label(label)}")
        self._emit("recommendations_changed", label=normalize_label(label))
        return self._ok()

    def remove_custom_label(self, label: str) -> OperationResult:
        try:
            self._recommendations.remove_custom_label(label)
        except ValidationError as e:
            return self._fail(str(e), e)
        self._emit("recommendations_changed", label=normalize_label(label))
        return self._ok()

    def save_recommendations(self) -> OperationResult:
        try:
            submission = self._service.save_recommendations(
                self._submission.id,
                self._recommendations.as_dict(),
                custom_labels=self._recommendations.custom_labels,
            )
        except OralScreenError as e:
            logger.error(f"Saving recommendations failed: {e}")
            return self._fail(f"Saving recommendations failed: {e}", e)

        self._submission = submission
        self._recommendations.mark_saved()
        self._emit("recommendations_saved")
        return self._ok("Recommendations saved", value=submission)

    # -------------------------------------------------------------------------
    # Report
    # -------------------------------------------------------------------------

    def generate_report(self) -> OperationResult:
        """Save pending recommendation edits, then compose and store the report."""
        if self._generating:
            return self._fail("Report generation already in progress")

        try:
            check_report_ready(self._submission.status, self._recommendations.as_dict())
        except ValidationError as e:
            return self._fail(str(e), e)

        self._generating = True
        self._emit("report_generating")
        try:
            if self._recommendations.dirty:
                result = self.save_recommendations()
                if not result.ok:
                    return result
            submission = self._service.generate_report(self._submission.id)
        except OralScreenError as e:
            logger.error(f"Report generation failed: {e}")
            self._emit("report_failed", error=e)
            return self._fail(f"Report generation failed: {e}", e)
        finally:
            self._generating = False

        self._submission = submission
        self._emit("report_generated", report_url=submission.report_url)
        return self._ok("Report generated", value=submission)
