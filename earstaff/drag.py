"""Drag session controller: per-pointer begin → move → commit/cancel state machine."""

from __future__ import annotations

from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from earstaff.config import EditorConfig
from earstaff.errors import DuplicateSessionError, StaffEditError
from earstaff.geometry import require_capability
from earstaff.logger_config import get_logger, log_structured
from earstaff.models import DragStatus, NoteSpec
from earstaff.pitch import (
    PitchSpec,
    decide_accidental_for_key,
    midi_to_pitch_spec,
    parse_key_string,
    primary_midi,
)
from earstaff.quantizer import PitchClassQuantizer
from earstaff.renderers import PreviewGlyph, StaffRenderer
from earstaff.state import RenderState

logger = get_logger(__name__)


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


@dataclass(frozen=True)
class PitchEdit:
    """
    A committed pitch change proposed by a drag session.

    The synchronizer applies it to ``note`` (located by identity, so the
    edit survives inserts or deletes that shifted the note's index).
    """

    pointer_key: Hashable
    voice_index: int
    note: NoteSpec
    note_index: int
    midi: int
    key_index: int = 0


@dataclass
class DragSession:
    """
    State owned by one pointer while it drags one note.

    Attributes:
        pointer_key:         Pointer that owns the session.
        voice_index:         Voice of the dragged note.
        note_index:          Index of the note when the drag began.
        target:              The dragged NoteSpec object in the render state.
        snapshot:            Deep copy of ``target`` taken at begin.
        base_midi:           MIDI of the note's first key at begin.
        base_pitch:          Spelling of the note's first key at begin.
        px_per_semitone:     Vertical pointer travel worth one semitone.
        last_y:              Pointer Y of the previous event.
        accumulator:         Pointer travel not yet converted to semitones.
        preview_delta:       Semitones between ``base_midi`` and the preview.
        quantized_midi:      Last preview MIDI after quantization.
        last_direction:      Direction of the last semitone step (-1, 0, 1).
        preview_pitch:       Spelling of the current preview.
        preview_accidental:  Accidental drawn for the current preview.
        hidden_index:        Note index whose notehead is hidden for this session, if any.
        status:              Lifecycle state.
    """

    pointer_key: Hashable
    voice_index: int
    note_index: int
    target: NoteSpec
    snapshot: NoteSpec
    base_midi: int
    base_pitch: PitchSpec
    px_per_semitone: float
    last_y: float
    accumulator: float = 0.0
    preview_delta: int = 0
    quantized_midi: int = 0
    last_direction: int = 0
    preview_pitch: PitchSpec | None = None
    preview_accidental: str | None = None
    hidden_index: int | None = None
    status: DragStatus = DragStatus.ACTIVE

    @property
    def preview_midi(self) -> int:
        return self.base_midi + self.preview_delta


class DragController:
    """
    Owns every active drag session, one per pointer key.

    Sessions only read the render state and draw previews through the
    renderer; a commit returns a :class:`PitchEdit` for the synchronizer to
    apply instead of touching the voices.

    Args:
        renderer:  Collaborator that draws preview glyphs and toggles notehead visibility.
        config:    Interaction constants.
        quantizer: Optional pitch-class quantizer; None means chromatic dragging.
    """

    def __init__(
        self,
        renderer: StaffRenderer,
        config: EditorConfig | None = None,
        quantizer: PitchClassQuantizer | None = None,
    ) -> None:
        self._renderer = require_capability(renderer, StaffRenderer, "Drag preview renderer")
        self._config = config or EditorConfig()
        self.quantizer = quantizer
        self._sessions: dict[Hashable, DragSession] = {}

    @property
    def sessions(self) -> Mapping[Hashable, DragSession]:
        return MappingProxyType(self._sessions)

    def session(self, pointer_key: Hashable) -> DragSession | None:
        return self._sessions.get(pointer_key)

    def px_per_semitone(self, spacing: float | None, scale_y: float = 1.0) -> float:
        """Pointer travel per semitone: a fraction of half a line spacing, never below the floor."""
        line_spacing = spacing if spacing and spacing > 0 else self._config.default_line_spacing
        staff_step = line_spacing * scale_y / 2
        return max(self._config.min_px_per_semitone, staff_step * self._config.px_per_semitone_factor)

    def begin(
        self,
        pointer_key: Hashable,
        state: RenderState,
        voice_index: int,
        note_index: int,
        y: float,
    ) -> DragSession:
        """
        Start dragging note ``note_index`` of voice ``voice_index`` with ``pointer_key``.

        Raises:
            DuplicateSessionError: If the pointer already drags a note, or the note
                is already held by another pointer.
            StaffEditError: If the note does not exist or is a rest.
        """
        if pointer_key in self._sessions:
            logger.warning("Rejected drag for pointer %r: a session is already active", pointer_key)
            raise DuplicateSessionError(pointer_key)

        spec = state.note_at(voice_index, note_index)
        if spec is None:
            raise StaffEditError(f"No note at voice {voice_index}, index {note_index}.")
        if spec.is_rest:
            raise StaffEditError("Rests cannot be dragged.")
        for other in self._sessions.values():
            if other.target is spec:
                logger.warning(
                    "Rejected drag for pointer %r: note %d is held by pointer %r",
                    pointer_key,
                    note_index,
                    other.pointer_key,
                )
                raise DuplicateSessionError(pointer_key, f"note {note_index} is held by pointer {other.pointer_key!r}")

        base_midi = primary_midi(spec)
        parsed = parse_key_string(spec.keys[0]) if spec.keys else None
        base_pitch = parsed or midi_to_pitch_spec(base_midi, self._config.spelling_preference)
        spacing = state.metrics.spacing if state.metrics is not None else None

        session = DragSession(
            pointer_key=pointer_key,
            voice_index=voice_index,
            note_index=note_index,
            target=spec,
            snapshot=spec.clone(),
            base_midi=base_midi,
            base_pitch=base_pitch,
            px_per_semitone=self.px_per_semitone(spacing, state.scale_y),
            last_y=y,
            quantized_midi=base_midi,
            preview_pitch=base_pitch,
            preview_accidental=spec.accidentals[0] if spec.accidentals else None,
        )
        self._sessions[pointer_key] = session

        self._renderer.set_note_visibility(voice_index, note_index, False)
        session.hidden_index = note_index
        self._draw_preview(session, state)
        log_structured(
            logger,
            "drag begin",
            {
                "pointer": pointer_key,
                "voice": voice_index,
                "note": note_index,
                "base_midi": base_midi,
                "px_per_semitone": session.px_per_semitone,
            },
        )
        return session

    def move(self, pointer_key: Hashable, y: float, state: RenderState) -> DragSession | None:
        """
        Feed a pointer Y to the session of ``pointer_key``.

        Upward travel raises the pitch. Returns the session when its preview
        pitch changed, otherwise None; an event with no vertical travel
        leaves the session untouched.
        """
        session = self._sessions.get(pointer_key)
        if session is None:
            return None
        dy = session.last_y - y
        if dy == 0:
            return None
        session.last_y = y
        session.accumulator += dy

        step = session.px_per_semitone
        semitones = 0
        while abs(session.accumulator) >= step:
            direction = 1 if session.accumulator > 0 else -1
            semitones += direction
            session.accumulator -= direction * step
        if semitones == 0:
            return None

        previous_delta = session.preview_delta
        preview_midi = self._clamp(session.base_midi + previous_delta + semitones)
        if self.quantizer is not None:
            delta_change = preview_midi - session.preview_midi
            hint = _sign(delta_change) or session.last_direction or _sign(previous_delta + semitones)
            preview_midi = self.quantizer.quantize(
                preview_midi,
                last_midi=session.quantized_midi,
                direction=hint,
                base_midi=session.base_midi,
            )
        session.last_direction = _sign(semitones)
        session.preview_delta = preview_midi - session.base_midi
        session.quantized_midi = preview_midi
        if session.preview_delta == previous_delta:
            return None

        if session.preview_delta == 0:
            session.preview_pitch = session.base_pitch
        else:
            session.preview_pitch = midi_to_pitch_spec(preview_midi, self._config.spelling_preference)
        session.preview_accidental = decide_accidental_for_key(session.preview_pitch, state.key_signature)
        self._draw_preview(session, state)
        log_structured(
            logger,
            "drag move",
            {
                "pointer": pointer_key,
                "y": y,
                "semitones": semitones,
                "preview_midi": preview_midi,
                "key": session.preview_pitch.key,
            },
        )
        return session

    def commit(self, pointer_key: Hashable, state: RenderState) -> PitchEdit | None:
        """
        End the session of ``pointer_key`` and return the edit to apply.

        Returns None when the pointer has no session or the pitch did not change.
        """
        session = self._sessions.pop(pointer_key, None)
        if session is None:
            return None
        self._release(session)
        session.status = DragStatus.COMMITTED

        delta = session.preview_delta
        if delta == 0:
            logger.debug("Drag by pointer %r ended without a pitch change", pointer_key)
            return None
        target_midi = self._clamp(session.base_midi + delta)
        if self.quantizer is not None:
            target_midi = self.quantizer.quantize(
                target_midi,
                last_midi=session.quantized_midi,
                direction=_sign(delta or session.last_direction),
                base_midi=session.base_midi,
            )
        voice = state.voice(session.voice_index)
        current_index = voice.index_of(session.target) if voice is not None else None
        edit = PitchEdit(
            pointer_key=pointer_key,
            voice_index=session.voice_index,
            note=session.target,
            note_index=current_index if current_index is not None else session.note_index,
            midi=target_midi,
        )
        log_structured(
            logger,
            "drag commit",
            {"pointer": pointer_key, "note": edit.note_index, "midi": target_midi},
        )
        return edit

    def cancel(self, pointer_key: Hashable, state: RenderState) -> DragSession | None:
        """
        Abort the session of ``pointer_key`` and restore its notehead.

        The note itself is left alone: the returned session carries the
        snapshot, and restoring it is up to the synchronizer. Returns None
        when the pointer has no session.
        """
        session = self._sessions.pop(pointer_key, None)
        if session is None:
            return None
        self._release(session)
        session.status = DragStatus.CANCELLED
        logger.debug("Drag by pointer %r cancelled", pointer_key)
        return session

    def cancel_all(self, state: RenderState) -> int:
        cancelled = 0
        for pointer_key in list(self._sessions):
            cancelled += self.cancel(pointer_key, state) is not None
        return cancelled

    def status(self, pointer_key: Hashable) -> DragStatus:
        session = self._sessions.get(pointer_key)
        return session.status if session is not None else DragStatus.IDLE

    def holders(self, note: NoteSpec) -> list[Hashable]:
        """Pointer keys whose session drags ``note``."""
        return [key for key, session in self._sessions.items() if session.target is note]

    def refresh_glyphs(self, state: RenderState) -> None:
        """Move hidden noteheads to the current index of each dragged note after inserts or deletes."""
        for session in self._sessions.values():
            voice = state.voice(session.voice_index)
            index = voice.index_of(session.target) if voice is not None else None
            if index is None or session.hidden_index is None or index == session.hidden_index:
                continue
            if not self._hidden_elsewhere(session, session.hidden_index):
                self._renderer.set_note_visibility(session.voice_index, session.hidden_index, True)
            self._renderer.set_note_visibility(session.voice_index, index, False)
            logger.debug(
                "Pointer %r notehead moved from %d to %d",
                session.pointer_key,
                session.hidden_index,
                index,
            )
            session.hidden_index = index

    # ---- Private helpers ----

    def _clamp(self, midi: int) -> int:
        if self.quantizer is not None:
            return self.quantizer.clamp(midi)
        return min(self._config.midi_max, max(self._config.midi_min, midi))

    def _draw_preview(self, session: DragSession, state: RenderState) -> None:
        pitch = session.preview_pitch or session.base_pitch
        voice = state.voice(session.voice_index)
        clef = session.target.clef or (voice.clef if voice is not None else state.clef)
        self._renderer.draw_preview(
            PreviewGlyph(
                pointer_key=session.pointer_key,
                voice_index=session.voice_index,
                note_index=session.note_index,
                key=pitch.key,
                accidental=session.preview_accidental,
                clef=clef,
            )
        )

    def _hidden_elsewhere(self, session: DragSession, index: int) -> bool:
        return any(
            other is not session and other.voice_index == session.voice_index and other.hidden_index == index
            for other in self._sessions.values()
        )

    def _release(self, session: DragSession) -> None:
        self._renderer.clear_preview(session.pointer_key)
        if session.hidden_index is not None:
            if not self._hidden_elsewhere(session, session.hidden_index):
                self._renderer.set_note_visibility(session.voice_index, session.hidden_index, True)
            session.hidden_index = None
