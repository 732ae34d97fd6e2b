"""End-to-end pointer scenarios on a rendered staff."""

import pytest

from earstaff.config import EditorConfig
from earstaff.errors import RenderError
from earstaff.interaction import StaffInteractionController
from earstaff.models import InputMeta, Operation, Phase
from earstaff.renderers import LinearStaffRenderer

pytestmark = pytest.mark.integration


class _FlakyRenderer(LinearStaffRenderer):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def render_voices(self, voices, key_signature, clef):
        if self.fail:
            raise RenderError("canvas lost")
        return super().render_voices(voices, key_signature, clef)


def _sample_controller(
    sequence: list[str],
    config: EditorConfig | None = None,
    key_signature: str | None = None,
    renderer: LinearStaffRenderer | None = None,
) -> tuple[StaffInteractionController, list[tuple[str | None, InputMeta]], list[tuple[str | None, InputMeta]]]:
    events: list[tuple[str | None, InputMeta]] = []
    previews: list[tuple[str | None, InputMeta]] = []
    controller = StaffInteractionController(
        renderer or LinearStaffRenderer(),
        config=config,
        on_input=lambda text, meta: events.append((text, meta)),
        on_preview=lambda text, meta: previews.append((text, meta)),
    )
    if key_signature:
        controller.synchronizer.set_key_signature(key_signature)
    controller.set_sequence(sequence)
    return controller, events, previews


def _summary(events: list[tuple[str | None, InputMeta]]) -> list[tuple]:
    return [(text, meta.operation, meta.phase, meta.note_index) for text, meta in events]


def test_drag_up_commits_flat_spelling() -> None:
    controller, events, _ = _sample_controller(["C4"])
    assert controller.pointer_down(70, 100)
    assert controller.pointer_move(70, 88)
    assert controller.pointer_up(70, 88)
    assert _summary(events) == [("Eb4", Operation.UPDATE, Phase.COMMIT, 0)]
    assert controller.current_sequence() == ["Eb4"]
    assert not controller.state.selection.has_selection


def test_drag_up_commits_sharp_spelling() -> None:
    controller, events, _ = _sample_controller(["C4"], config=EditorConfig(spelling_preference="sharp"))
    controller.pointer_down(70, 100)
    controller.pointer_move(70, 88)
    controller.pointer_up(70, 88)
    assert events[0][0] == "D#4"


def test_key_signature_hides_matching_accidental() -> None:
    controller, events, _ = _sample_controller(
        ["E4"],
        config=EditorConfig(spelling_preference="sharp"),
        key_signature="D",
    )
    controller.pointer_down(70, 88)
    controller.pointer_move(70, 80)
    controller.pointer_up(70, 80)
    spec = controller.state.voices[0].note_specs[0]
    assert events[0][0] == "F#4"
    assert (spec.keys, spec.accidentals) == (["f#/4"], [None])


def test_scaled_staff_maps_screen_coordinates() -> None:
    controller, events, _ = _sample_controller(["C4"], renderer=LinearStaffRenderer(scale=(2.0, 2.0)))
    assert controller.pointer_down(140, 200)
    controller.pointer_move(140, 176)
    controller.pointer_up(140, 176)
    assert events[0][0] == "Eb4"


def test_two_pointers_edit_independently() -> None:
    controller, events, _ = _sample_controller(["C4", "E4"])
    assert controller.pointer_down(70, 100, pointer_id=1)
    assert controller.pointer_down(110, 88, pointer_id=2)
    controller.pointer_move(70, 88, pointer_id=1)
    controller.pointer_move(110, 80, pointer_id=2)
    assert controller.pointer_up(pointer_id=1)
    assert controller.pointer_up(pointer_id=2)
    assert [(text, meta.note_index, meta.pointer_id) for text, meta in events] == [
        ("Eb4", 0, 1),
        ("Gb4", 1, 2),
    ]
    assert controller.current_sequence() == ["Eb4", "Gb4"]


def test_cancel_restores_note_and_reports_preview_phases() -> None:
    controller, events, previews = _sample_controller(["C4"])
    controller.pointer_down(70, 100)
    controller.pointer_move(70, 88)
    assert controller.pointer_cancel()
    assert controller.state.voices[0].note_specs[0].keys == ["c/4"]
    assert events == []
    assert [(text, meta.phase, meta.note_index) for text, meta in previews] == [
        ("C4", Phase.START, 0),
        ("Eb4", Phase.MOVE, 0),
        (None, Phase.CANCEL, 0),
    ]
    assert not controller.pointer_up()


def test_click_right_of_notes_appends() -> None:
    controller, events, _ = _sample_controller(["C4", "E4"])
    assert controller.pointer_down(200, 76)
    text, meta = events[0]
    assert (text, meta.operation, meta.phase, meta.note_index, meta.insert_index) == (
        "G4",
        Operation.INSERT,
        Phase.COMMIT,
        2,
        2,
    )
    selection = controller.state.selection
    assert (selection.voice_index, selection.note_index) == (0, 2)


def test_click_between_notes_inserts_positionally() -> None:
    controller, events, _ = _sample_controller(["C4", "E4"])
    assert controller.pointer_down(90, 76)
    assert _summary(events) == [
        ("G4", Operation.UPDATE, Phase.COMMIT, 1),
        ("E4", Operation.INSERT, Phase.COMMIT, 2),
    ]
    assert controller.current_sequence() == ["C4", "G4", "E4"]


def test_inserted_note_copies_last_duration() -> None:
    controller, _, _ = _sample_controller([])
    controller.set_sequence(["C4"], quarter_length=0.5)
    controller.pointer_down(200, 76)
    specs = controller.state.voices[0].note_specs
    assert [(spec.keys, spec.duration) for spec in specs] == [(["c/4"], "8"), (["g/4"], "8")]


def test_note_limit_blocks_insert() -> None:
    controller, events, _ = _sample_controller(["C4", "E4"], config=EditorConfig(max_total_notes=2))
    controller.pointer_down(200, 76)
    controller.pointer_up()
    assert events == []
    assert controller.state.total_notes() == 2


def test_wheel_nudges_selected_note() -> None:
    controller, events, _ = _sample_controller(["C4", "E4"])
    controller.pointer_down(110, 88)
    assert not controller.pointer_up()
    assert controller.wheel(-1)
    assert _summary(events) == [("F4", Operation.UPDATE, Phase.COMMIT, 1)]
    assert controller.wheel(3)
    assert controller.current_sequence() == ["C4", "E4"]
    assert not controller.wheel(0)


def test_wheel_respects_scale() -> None:
    controller, events, _ = _sample_controller(["C4", "E4"])
    controller.set_scale("D", "major")
    controller.pointer_down(110, 88)
    controller.pointer_up()
    controller.wheel(-1)
    assert events[-1][0] == "Gb4"


def test_delete_selected() -> None:
    controller, events, _ = _sample_controller(["C4", "E4"])
    controller.pointer_down(110, 88)
    controller.pointer_up()
    assert controller.delete_selected()
    assert _summary(events) == [(None, Operation.DELETE, Phase.DELETE, 1)]
    assert not controller.delete_selected()


def test_disabling_cancels_drags() -> None:
    controller, events, previews = _sample_controller(["C4"])
    controller.pointer_down(70, 100)
    controller.pointer_move(70, 88)
    controller.set_enabled(False)
    assert controller.state.voices[0].note_specs[0].keys == ["c/4"]
    assert previews[-1][1].phase == Phase.CANCEL
    assert len(controller.pointers) == 0
    assert not controller.pointer_down(70, 100)
    assert events == []


def test_duplicate_pointer_down_rejected() -> None:
    controller, _, _ = _sample_controller(["C4", "E4"])
    assert controller.pointer_down(70, 100, pointer_id=1)
    assert not controller.pointer_down(110, 88, pointer_id=1)
    assert controller.drags.session(1).note_index == 0


def test_allowed_pitch_classes_quantize_drag() -> None:
    controller, events, _ = _sample_controller(["C4"])
    controller.set_allowed_pitch_classes(["C", "E", "G"])
    controller.pointer_down(70, 100)
    controller.pointer_move(70, 96)
    controller.pointer_up()
    assert events[0][0] == "E4"
    with pytest.raises(ValueError):
        controller.set_allowed_pitch_classes([])
    controller.set_allowed_pitch_classes(None)
    assert controller.quantizer is None


def test_failed_render_keeps_stale_geometry() -> None:
    renderer = _FlakyRenderer()
    controller, events, _ = _sample_controller(["C4", "E4"], renderer=renderer)
    metrics = controller.state.metrics
    renderer.fail = True
    assert controller.pointer_down(200, 76)
    assert events[0][0] == "G4"
    assert controller.state.metrics is metrics
    assert len(controller.synchronizer.registry) == 2


def test_wheel_leaves_dragged_note_alone() -> None:
    controller, events, _ = _sample_controller(["C4"])
    controller.pointer_down(70, 100)
    assert not controller.wheel(-1)
    assert controller.pointer_cancel()
    assert events == []
    assert controller.state.voices[0].note_specs[0].keys == ["c/4"]
    assert controller.current_sequence() == ["C4"]


def test_cancel_reverts_edit_made_during_drag() -> None:
    controller, events, _ = _sample_controller(["C4"])
    controller.pointer_down(70, 100)
    controller.synchronizer.set_note_pitch(0, 0, 61)
    controller.synchronizer.commit()
    assert controller.pointer_cancel()
    assert _summary(events) == [
        ("Db4", Operation.UPDATE, Phase.COMMIT, 0),
        ("C4", Operation.UPDATE, Phase.COMMIT, 0),
    ]
    assert controller.current_sequence() == ["C4"]
    assert controller.state.voices[0].note_specs[0].keys == ["c/4"]


def test_delete_cancels_drag_on_note() -> None:
    renderer = LinearStaffRenderer()
    controller, events, previews = _sample_controller(["C4", "E4"], renderer=renderer)
    controller.pointer_down(110, 88)
    assert controller.delete_selected()
    assert _summary(events) == [(None, Operation.DELETE, Phase.DELETE, 1)]
    assert previews[-1][1].phase == Phase.CANCEL
    assert controller.drags.session("mouse") is None
    assert renderer.hidden == set()
    assert controller.current_sequence() == ["C4"]


def test_insert_by_one_pointer_while_another_drags() -> None:
    renderer = LinearStaffRenderer()
    controller, _, _ = _sample_controller(["C4", "E4"], renderer=renderer)
    assert controller.pointer_down(110, 88, pointer_id=1)
    assert renderer.hidden == {(0, 1)}
    assert controller.pointer_down(40, 76, pointer_id=2)
    assert controller.current_sequence() == ["G4", "C4", "E4"]
    assert renderer.hidden == {(0, 0), (0, 2)}

    assert controller.pointer_cancel(pointer_id=1)
    assert renderer.hidden == {(0, 0)}
    controller.pointer_up(pointer_id=2)
    assert renderer.hidden == set()
    assert controller.current_sequence() == ["G4", "C4", "E4"]


def test_inserting_pointer_keeps_dragging_new_note() -> None:
    controller, events, _ = _sample_controller(["C4", "E4"])
    assert controller.pointer_down(200, 76, pointer_id=7)
    entry = controller.pointers.get(7)
    assert (entry.note, entry.staff_index, entry.insert_index) == ("G4", 2, 2)
    assert controller.pointer_move(200, 64, pointer_id=7)
    assert controller.pointer_up(pointer_id=7)
    assert _summary(events) == [
        ("G4", Operation.INSERT, Phase.COMMIT, 2),
        ("Bb4", Operation.UPDATE, Phase.COMMIT, 2),
    ]
    assert controller.current_sequence() == ["C4", "E4", "Bb4"]
    assert controller.pointers.get(7) is None


def test_release_without_pitch_change_rerenders() -> None:
    renderer = LinearStaffRenderer()
    controller, events, _ = _sample_controller(["C4"], renderer=renderer)
    renders = renderer.render_calls
    controller.pointer_down(70, 100)
    assert not controller.pointer_up()
    assert renderer.render_calls == renders + 1
    assert events == []
