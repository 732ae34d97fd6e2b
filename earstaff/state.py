"""Per-staff-view render state and note selection."""

from __future__ import annotations

from dataclasses import dataclass, field

from earstaff.geometry import ScreenToStaffTransform, StaffGeometryProvider
from earstaff.models import NoteSpec, SequenceMode, StaffMetrics, Voice


@dataclass
class SelectionState:
    """
    Currently selected note and a selection requested for the next render.

    ``pending`` is set when a note is inserted: the new note only gets its
    notehead after the next render pass, so the synchronizer promotes it to
    the selection then.
    """

    voice_index: int | None = None
    note_index: int | None = None
    pending: tuple[int, int] | None = None

    @property
    def has_selection(self) -> bool:
        return self.voice_index is not None and self.note_index is not None

    def select(self, voice_index: int, note_index: int) -> None:
        self.voice_index = voice_index
        self.note_index = note_index

    def clear(self) -> None:
        self.voice_index = None
        self.note_index = None

    def promote_pending(self) -> bool:
        if self.pending is None:
            return False
        self.select(*self.pending)
        self.pending = None
        return True


@dataclass
class RenderState:
    """
    Everything one staff view knows about its current render.

    One instance per staff view. Only the render-state synchronizer mutates
    it; drag sessions and resolvers read it.

    Attributes:
        voices:        Voices on the staff, in render order.
        key_signature: Active key signature token (None = C major).
        clef:          Active clef.
        mode:          Melodic (one token per note) or harmonic (one chord).
        metrics:       Staff metrics from the last successful render, if any.
        geometry:      Live geometry provider from the last successful render.
        transform:     Screen-to-staff transform of the last successful render.
        selection:     Selected note and pending selection.
        render_count:  Number of successful render passes.
    """

    voices: list[Voice] = field(default_factory=lambda: [Voice()])
    key_signature: str | None = None
    clef: str = "treble"
    mode: SequenceMode = SequenceMode.MELODIC
    metrics: StaffMetrics | None = None
    geometry: StaffGeometryProvider | None = None
    transform: ScreenToStaffTransform = field(default_factory=ScreenToStaffTransform.identity)
    selection: SelectionState = field(default_factory=SelectionState)
    render_count: int = 0

    @property
    def scale_x(self) -> float:
        return self.transform.scale_x

    @property
    def scale_y(self) -> float:
        return self.transform.scale_y

    def voice(self, index: int) -> Voice | None:
        if 0 <= index < len(self.voices):
            return self.voices[index]
        return None

    def note_at(self, voice_index: int, note_index: int) -> NoteSpec | None:
        voice = self.voice(voice_index)
        if voice is None or not 0 <= note_index < len(voice.note_specs):
            return None
        return voice.note_specs[note_index]

    def total_notes(self) -> int:
        return sum(len(voice) for voice in self.voices)

    def selected_note(self) -> NoteSpec | None:
        if not self.selection.has_selection:
            return None
        return self.note_at(self.selection.voice_index, self.selection.note_index)  # type: ignore[arg-type]
