"""Unit tests for oralscreen.annotation.session module."""

import logging

import pytest

from oralscreen.annotation.session import AnnotationSession
from oralscreen.core.errors import PersistenceError, ValidationError
from oralscreen.submissions.models import SubmissionStatus


class DelegatingService:
    """Wraps a real service so individual calls can be overridden."""

    def __init__(self, service):
        self._service = service

    def __getattr__(self, name):
        return getattr(self._service, name)


class FailingSaveService(DelegatingService):
    def __init__(self, service):
        super().__init__(service)
        self.calls = 0

    def save_annotations(self, *args, **kwargs):
        self.calls += 1
        raise PersistenceError("store unavailable")


class ReentrantSaveService(DelegatingService):
    session = None
    inner_result = None

    def save_annotations(self, *args, **kwargs):
        self.inner_result = self.session.save()
        return self._service.save_annotations(*args, **kwargs)


class ReentrantReportService(DelegatingService):
    session = None
    inner_result = None

    def generate_report(self, *args, **kwargs):
        self.inner_result = self.session.generate_report()
        return self._service.generate_report(*args, **kwargs)


class MissingImageService(DelegatingService):
    def fetch_image(self, url):
        raise PersistenceError(f"404 for {url}")


@pytest.fixture
def session(service, submission):
    s = AnnotationSession(service, submission.id)
    yield s
    s.close()


@pytest.fixture
def events(session):
    received = []
    session.subscribe(received.append)
    return received


def draw_rectangle(session, label="Stains"):
    session.select_tool("rectangle")
    session.select_label(label)
    result = session.add_shape()
    session.pointer_down(50, 50)
    session.pointer_move(150, 120)
    session.pointer_up(150, 120)
    return result.value


class TestOpen:
    """Tests for opening a session."""

    def test_defaults(self, session):
        """Should open the upper teeth slot with the default tool and label."""
        assert session.active_slot == "upper_teeth"
        assert session.tool == "rectangle"
        assert session.active_label == "Stains"
        assert not session.dirty
        assert session.shape_count == 0

    def test_unknown_slot(self, service, submission):
        """Should reject unknown slots."""
        with pytest.raises(ValidationError):
            AnnotationSession(service, submission.id, slot="molars")

    def test_missing_background_keeps_session_usable(self, service, submission):
        """Should report a failed background load and still allow editing."""
        session = AnnotationSession(MissingImageService(service), submission.id)
        assert "Background image unavailable" in session.last_message
        assert session.add_shape().ok
        assert session.shape_count == 1

    def test_reopens_saved_shapes(self, service, submission, session):
        """Should restore saved shapes without marking them dirty."""
        draw_rectangle(session)
        assert session.save().ok

        reopened = AnnotationSession(service, submission.id)
        assert reopened.shape_count == 1
        assert not reopened.dirty
        reopened.close()


class TestEditing:
    """Tests for tool, label and shape intents."""

    def test_select_unknown_tool(self, session):
        """Should fail and keep the current tool."""
        result = session.select_tool("polygon")
        assert not result.ok
        assert session.tool == "rectangle"

    def test_select_blank_label(self, session):
        """Should require a label."""
        assert not session.select_label("  ").ok

    def test_add_shape_marks_dirty(self, session, events):
        """Should dirty the session and notify listeners."""
        draw_rectangle(session)
        assert session.dirty
        assert session.can_save
        assert "shapes_changed" in [e.name for e in events]

    def test_freehand_via_pointer(self, session):
        """Should create freehand shapes from pointer strokes only."""
        session.select_tool("freehand")
        session.select_label("Attrition")
        assert not session.add_shape().ok

        session.pointer_down(10, 10)
        session.pointer_move(15, 12)
        handle = session.pointer_up(20, 18)
        assert handle is not None
        assert session.problem_labels == ["Attrition"]

    def test_delete_selected(self, session):
        """Should delete the selected shape and fail when nothing is selected."""
        draw_rectangle(session)
        assert session.select_at(60, 60).ok
        assert session.delete_selected().ok
        assert session.shape_count == 0
        assert not session.delete_selected().ok

    def test_clear_all(self, session):
        """Should remove every shape."""
        draw_rectangle(session)
        draw_rectangle(session, "Crowns")
        result = session.clear_all()
        assert result.value == 2
        assert session.shape_count == 0

    def test_unsubscribe(self, session):
        """Should stop delivering events after unsubscribing."""
        received = []
        unsubscribe = session.subscribe(received.append)
        unsubscribe()
        draw_rectangle(session)
        assert received == []

    def test_render_preview(self, session):
        """Should return encoded bytes without saving."""
        draw_rectangle(session)
        result = session.render_preview("PNG")
        assert result.value.startswith(b"\x89PNG")
        assert session.dirty


class TestSave:
    """Tests for the save lifecycle."""

    def test_first_save_marks_annotated(self, service, submission, session, events):
        """Should move the submission from uploaded to annotated."""
        assert submission.status == SubmissionStatus.UPLOADED
        draw_rectangle(session)

        result = session.save()

        assert result.ok
        assert result.value.status == SubmissionStatus.ANNOTATED
        assert not session.dirty
        stored = service.get_submission(submission.id)
        assert stored.upper_teeth.annotations[0].geometry.width == 100
        assert stored.upper_teeth.annotated_url
        assert "saved" in [e.name for e in events]

    def test_nothing_to_save(self, session):
        """Should refuse to save a clean canvas."""
        result = session.save()
        assert not result.ok
        assert result.message == "Nothing to save"

    def test_failed_save_stays_dirty(self, service, submission):
        """Should keep shapes and the dirty flag when the store fails."""
        failing = FailingSaveService(service)
        session = AnnotationSession(failing, submission.id)
        events = []
        session.subscribe(events.append)
        draw_rectangle(session)

        result = session.save()

        assert not result.ok
        assert isinstance(result.error, PersistenceError)
        assert session.dirty
        assert session.shape_count == 1
        assert not session.is_saving
        assert "save_failed" in [e.name for e in events]
        assert service.get_submission(submission.id).status == SubmissionStatus.UPLOADED

        # Retry reaches the store again
        session.save()
        assert failing.calls == 2
        session.close()

    def test_reentrant_save_rejected(self, service, submission):
        """Should reject a save started while another is in flight."""
        reentrant = ReentrantSaveService(service)
        session = AnnotationSession(reentrant, submission.id)
        reentrant.session = session
        draw_rectangle(session)

        assert session.save().ok
        assert not reentrant.inner_result.ok
        assert "already in progress" in reentrant.inner_result.message
        session.close()


class TestSwitchSlot:
    """Tests for changing the active image slot."""

    def test_discard_warns(self, session, events, caplog):
        """Should warn and emit an event when unsaved edits are dropped."""
        caplog.set_level(logging.WARNING, logger="oralscreen.session")
        draw_rectangle(session)

        result = session.switch_slot("front_teeth")

        assert result.ok
        assert session.active_slot == "front_teeth"
        assert session.shape_count == 0
        assert not session.dirty
        assert "Discarding unsaved edits" in caplog.text
        names = [e.name for e in events]
        assert "unsaved_changes_discarded" in names
        assert "slot_changed" in names

    def test_save_first(self, service, submission, session):
        """Should save before switching when asked."""
        draw_rectangle(session)
        assert session.switch_slot("lower_teeth", save_first=True).ok
        assert len(service.get_submission(submission.id).upper_teeth.annotations) == 1

    def test_unknown_slot(self, session):
        """Should fail without leaving the current slot."""
        assert not session.switch_slot("molars").ok
        assert session.active_slot == "upper_teeth"

    def test_labels_from_other_slots_kept(self, session):
        """Should keep recommendation entries for labels saved on other slots."""
        draw_rectangle(session, "Crowns")
        session.save()
        session.switch_slot("front_teeth")
        assert "Crowns" in session.recommendations


class TestRecommendations:
    """Tests for recommendation intents."""

    def test_entry_follows_shapes(self, session):
        """Should add an entry for a new label and prune it when the shape goes."""
        draw_rectangle(session, "Crowns")
        assert session.set_recommendation("Crowns", "Check fit").ok
        assert session.recommendations == {"Crowns": "Check fit"}

        session.select_at(60, 60)
        session.delete_selected()
        assert session.recommendations == {}

    def test_unknown_label(self, session):
        """Should fail for labels that have no entry."""
        result = session.set_recommendation("Crowns", "text")
        assert not result.ok
        assert isinstance(result.error, ValidationError)

    def test_custom_label_saved(self, service, submission, session):
        """Should persist custom labels and their text."""
        assert session.add_custom_label("Sensitivity").ok
        assert not session.add_custom_label("Sensitivity").ok
        session.set_recommendation("Sensitivity", "Use a soft brush")
        assert session.save_recommendations().ok
        stored = service.get_submission(submission.id)
        assert stored.treatment_recommendations == {"Sensitivity": "Use a soft brush"}
        assert session.custom_labels == ["Sensitivity"]

    def test_pruned_label_gone_after_reopen(self, service, submission, session):
        """Should not bring back a pruned label as custom after save and reopen."""
        draw_rectangle(session, "Stains")
        draw_rectangle(session, "Crowns")
        session.set_recommendation("Stains", "x")
        session.set_recommendation("Crowns", "y")
        assert session.save().ok
        assert session.save_recommendations().ok

        session.select_at(60, 60)
        assert session.delete_selected().ok
        assert session.save().ok
        session.close()

        stored = service.get_submission(submission.id)
        assert stored.treatment_recommendations == {"Stains": "x"}
        assert stored.custom_labels == []

        reopened = AnnotationSession(service, submission.id)
        try:
            assert reopened.recommendations == {"Stains": "x"}
            assert reopened.custom_labels == []
        finally:
            reopened.close()

    def test_custom_label_survives_reopen(self, service, submission, session):
        """Should keep a saved custom label that no shape carries across a reopen."""
        draw_rectangle(session, "Stains")
        session.add_custom_label("Sensitivity")
        session.set_recommendation("Sensitivity", "Use a soft brush")
        assert session.save().ok
        assert session.save_recommendations().ok
        session.close()

        reopened = AnnotationSession(service, submission.id)
        try:
            assert reopened.custom_labels == ["Sensitivity"]
            assert reopened.recommendations == {"Stains": "", "Sensitivity": "Use a soft brush"}
        finally:
            reopened.close()

    def test_remove_custom_label(self, session):
        """Should remove a custom label and refuse derived ones."""
        draw_rectangle(session)
        session.add_custom_label("Sensitivity")
        assert session.remove_custom_label("Sensitivity").ok
        assert not session.remove_custom_label("Stains").ok


class TestGenerateReport:
    """Tests for report generation through the session."""

    def test_before_annotation(self, service, submission, session):
        """Should fail with ValidationError before any annotation save."""
        result = session.generate_report()
        assert not result.ok
        assert isinstance(result.error, ValidationError)
        assert service.get_submission(submission.id).report_url is None

    def test_requires_recommendation_text(self, session):
        """Should fail when every recommendation is blank."""
        draw_rectangle(session)
        session.save()
        result = session.generate_report()
        assert not result.ok
        assert isinstance(result.error, ValidationError)

    def test_full_lifecycle(self, service, submission, session, events):
        """Should save pending recommendations and mark the submission reported."""
        draw_rectangle(session)
        session.save()
        session.set_recommendation("Stains", "Professional cleaning")

        result = session.generate_report()

        assert result.ok
        assert result.value.status == SubmissionStatus.REPORTED
        assert not session.is_generating
        stored = service.get_submission(submission.id)
        assert stored.treatment_recommendations == {"Stains": "Professional cleaning"}
        assert service.get_report_bytes(submission.id).startswith(b"%PDF")
        assert "report_generated" in [e.name for e in events]

    def test_not_twice(self, session):
        """Should refuse to report on an already reported submission."""
        draw_rectangle(session)
        session.save()
        session.set_recommendation("Stains", "Clean")
        assert session.generate_report().ok
        assert not session.generate_report().ok

    def test_reentrant_report_rejected(self, service, submission):
        """Should reject a report started while another is being generated."""
        reentrant = ReentrantReportService(service)
        session = AnnotationSession(reentrant, submission.id)
        reentrant.session = session
        draw_rectangle(session)
        session.save()
        session.set_recommendation("Stains", "Clean")

        result = session.generate_report()

        assert result.ok
        assert not reentrant.inner_result.ok
        assert "already in progress" in reentrant.inner_result.message
        assert not session.is_generating
        assert service.get_submission(submission.id).status == SubmissionStatus.REPORTED
        session.close()
