"""Unit tests for drag sessions: thresholds, previews, commit and cancel."""

import pytest

from earstaff.config import EditorConfig
from earstaff.drag import DragController
from earstaff.errors import DuplicateSessionError, MissingCapabilityError, StaffEditError
from earstaff.models import DragStatus, NoteSpec, StaffMetrics, Voice
from earstaff.quantizer import PitchClassQuantizer
from earstaff.renderers import LinearStaffRenderer
from earstaff.state import RenderState


def _sample_state(key_signature: str | None = None) -> RenderState:
    return RenderState(
        voices=[
            Voice(
                note_specs=[
                    NoteSpec(keys=["c/4"]),
                    NoteSpec(keys=["e/4"]),
                    NoteSpec(keys=["b/4"], is_rest=True),
                ]
            )
        ],
        key_signature=key_signature,
        metrics=StaffMetrics(top_y=40.0, bottom_y=88.0, spacing=12.0, x_start=10.0, x_end=490.0),
    )


def _controller(config: EditorConfig | None = None, quantizer=None) -> tuple[DragController, LinearStaffRenderer]:
    renderer = LinearStaffRenderer()
    return DragController(renderer, config, quantizer), renderer


def test_px_per_semitone() -> None:
    controller, _ = _controller()
    assert controller.px_per_semitone(12.0) == pytest.approx(3.6)
    assert controller.px_per_semitone(12.0, scale_y=2.0) == pytest.approx(7.2)
    assert controller.px_per_semitone(4.0) == 2.0
    assert controller.px_per_semitone(None) == pytest.approx(3.6)


def test_begin_hides_glyph_and_draws_preview() -> None:
    controller, renderer = _controller()
    state = _sample_state()
    session = controller.begin(1, state, 0, 0, 100.0)
    assert session.base_midi == 60
    assert session.px_per_semitone == pytest.approx(3.6)
    assert renderer.hidden == {(0, 0)}
    assert renderer.previews[1].key == "c/4"
    assert controller.session(1) is session


def test_move_without_travel_is_ignored() -> None:
    controller, renderer = _controller()
    state = _sample_state()
    controller.begin(1, state, 0, 0, 100.0)
    assert controller.move(1, 100.0, state) is None
    assert controller.move(1, 98.0, state) is None
    assert controller.session(1).preview_delta == 0
    assert controller.move(2, 50.0, state) is None


def test_upward_drag_raises_pitch() -> None:
    controller, renderer = _controller()
    state = _sample_state()
    controller.begin(1, state, 0, 0, 100.0)
    session = controller.move(1, 88.0, state)
    assert session.preview_delta == 3
    assert session.preview_pitch.key == "eb/4"
    assert session.preview_accidental == "b"
    assert renderer.previews[1].key == "eb/4"
    assert state.voices[0].note_specs[0].keys == ["c/4"]


def test_downward_drag_lowers_pitch() -> None:
    controller, _ = _controller()
    state = _sample_state()
    controller.begin(1, state, 0, 1, 88.0)
    session = controller.move(1, 96.0, state)
    assert session.preview_delta == -2
    assert session.preview_pitch.key == "d/4"


def test_sharp_spelling() -> None:
    controller, _ = _controller(EditorConfig(spelling_preference="sharp"))
    state = _sample_state()
    controller.begin(1, state, 0, 0, 100.0)
    session = controller.move(1, 88.0, state)
    assert session.preview_pitch.key == "d#/4"
    assert session.preview_accidental == "#"


def test_commit_returns_edit_without_touching_state() -> None:
    controller, renderer = _controller()
    state = _sample_state()
    session = controller.begin(1, state, 0, 0, 100.0)
    controller.move(1, 88.0, state)
    edit = controller.commit(1, state)
    assert (edit.midi, edit.note_index, edit.voice_index) == (63, 0, 0)
    assert edit.note is state.voices[0].note_specs[0]
    assert state.voices[0].note_specs[0].keys == ["c/4"]
    assert session.status == DragStatus.COMMITTED
    assert renderer.previews == {}
    assert renderer.hidden == set()
    assert controller.session(1) is None


def test_commit_without_pitch_change() -> None:
    controller, renderer = _controller()
    state = _sample_state()
    controller.begin(1, state, 0, 0, 100.0)
    assert controller.commit(1, state) is None
    assert renderer.hidden == set()
    assert controller.commit(1, state) is None


def test_commit_follows_note_identity() -> None:
    controller, _ = _controller()
    state = _sample_state()
    controller.begin(1, state, 0, 1, 88.0)
    controller.move(1, 76.0, state)
    state.voices[0].note_specs.insert(0, NoteSpec(keys=["a/4"]))
    edit = controller.commit(1, state)
    assert edit.note_index == 2
    assert edit.midi == 67


def test_cancel_restores_glyph_and_returns_snapshot() -> None:
    controller, renderer = _controller()
    state = _sample_state()
    before = state.voices[0].note_specs[0].clone()
    session = controller.begin(1, state, 0, 0, 100.0)
    controller.move(1, 80.0, state)
    assert controller.cancel(1, state) is session
    assert session.snapshot == before
    assert state.voices[0].note_specs[0].keys == ["c/4"]
    assert session.status == DragStatus.CANCELLED
    assert renderer.previews == {}
    assert renderer.hidden == set()
    assert controller.cancel(1, state) is None


def test_status_follows_session_lifecycle() -> None:
    controller, _ = _controller()
    state = _sample_state()
    assert controller.status(1) == DragStatus.IDLE
    controller.begin(1, state, 0, 0, 100.0)
    assert controller.status(1) == DragStatus.ACTIVE
    assert controller.holders(state.voices[0].note_specs[0]) == [1]
    assert controller.holders(state.voices[0].note_specs[1]) == []
    controller.commit(1, state)
    assert controller.status(1) == DragStatus.IDLE


def test_hidden_glyph_follows_note_after_insert() -> None:
    controller, renderer = _controller()
    state = _sample_state()
    controller.begin(1, state, 0, 1, 88.0)
    assert renderer.hidden == {(0, 1)}
    state.voices[0].note_specs.insert(0, NoteSpec(keys=["a/4"]))
    controller.refresh_glyphs(state)
    assert renderer.hidden == {(0, 2)}
    controller.cancel(1, state)
    assert renderer.hidden == set()


def test_release_keeps_glyph_hidden_by_another_session() -> None:
    controller, renderer = _controller()
    state = _sample_state()
    controller.begin(1, state, 0, 0, 100.0)
    state.voices[0].note_specs.insert(0, NoteSpec(keys=["a/4"]))
    controller.begin(2, state, 0, 0, 64.0)
    assert renderer.hidden == {(0, 0)}
    controller.cancel(1, state)
    assert renderer.hidden == {(0, 0)}
    controller.cancel(2, state)
    assert renderer.hidden == set()


def test_sessions_are_independent() -> None:
    controller, renderer = _controller()
    state = _sample_state()
    controller.begin(1, state, 0, 0, 100.0)
    controller.begin(2, state, 0, 1, 88.0)
    controller.move(1, 88.0, state)
    controller.move(2, 80.0, state)
    assert controller.session(1).preview_delta == 3
    assert controller.session(2).preview_delta == 2
    controller.cancel(2, state)
    assert set(renderer.previews) == {1}
    assert controller.commit(1, state).midi == 63


def test_duplicate_sessions_rejected() -> None:
    controller, _ = _controller()
    state = _sample_state()
    controller.begin(1, state, 0, 0, 100.0)
    with pytest.raises(DuplicateSessionError):
        controller.begin(1, state, 0, 1, 88.0)
    with pytest.raises(DuplicateSessionError):
        controller.begin(2, state, 0, 0, 100.0)
    assert list(controller.sessions) == [1]


def test_rests_and_missing_notes_rejected() -> None:
    controller, _ = _controller()
    state = _sample_state()
    with pytest.raises(StaffEditError):
        controller.begin(1, state, 0, 2, 64.0)
    with pytest.raises(StaffEditError):
        controller.begin(1, state, 0, 9, 64.0)
    assert len(controller.sessions) == 0


def test_quantized_drag() -> None:
    controller, _ = _controller(quantizer=PitchClassQuantizer.from_scale("C", "major"))
    state = _sample_state()
    controller.begin(1, state, 0, 0, 100.0)
    session = controller.move(1, 96.0, state)
    assert session.preview_delta == 2
    assert session.preview_pitch.key == "d/4"
    assert controller.commit(1, state).midi == 62


def test_drag_clamps_to_range() -> None:
    controller, _ = _controller(EditorConfig(midi_min=36, midi_max=62))
    state = _sample_state()
    controller.begin(1, state, 0, 0, 100.0)
    assert controller.move(1, 60.0, state).preview_delta == 2
    assert controller.commit(1, state).midi == 62


def test_cancel_all() -> None:
    controller, renderer = _controller()
    state = _sample_state()
    controller.begin(1, state, 0, 0, 100.0)
    controller.begin(2, state, 0, 1, 88.0)
    assert controller.cancel_all(state) == 2
    assert len(controller.sessions) == 0
    assert renderer.hidden == set()


def test_renderer_must_implement_interface() -> None:
    with pytest.raises(MissingCapabilityError):
        DragController(object())
