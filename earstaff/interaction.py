"""Host-facing staff interaction controller: pointer, wheel and delete entry points."""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable

from earstaff.config import EditorConfig
from earstaff.diff import spec_to_note_token
from earstaff.drag import DragController
from earstaff.durations import duration_from_quarter_length
from earstaff.errors import DuplicateSessionError, StaffEditError
from earstaff.logger_config import get_logger, log_structured
from earstaff.models import DragStatus, InputMeta, NoteSpec, Operation, Phase, SequenceMode
from earstaff.pitch import decide_accidental_for_key, pitch_spec_to_note_token, primary_midi
from earstaff.pitch_resolver import find_closest_pitch_for_y, is_within_staff_bounds
from earstaff.pointers import MultiPointerRegistry, pointer_key
from earstaff.quantizer import PitchClassQuantizer, diatonic_pitch_classes
from earstaff.renderers import StaffRenderer
from earstaff.selectable import hit_padding
from earstaff.state import RenderState
from earstaff.sync import InputCallback, RenderStateSynchronizer

logger = get_logger(__name__)

PreviewCallback = Callable[[str | None, InputMeta], None]


class StaffInteractionController:
    """
    Turns pointer events on one staff view into note edits.

    Pointer coordinates are screen coordinates; they are mapped to staff
    coordinates with the transform of the last render. Pointer entry points
    never raise for editing failures: they log and return False.

    Args:
        renderer:   Rendering collaborator for the staff.
        state:      Render state of this view (a fresh one by default).
        config:     Interaction constants.
        on_input:   Host callback for committed inserts, updates and deletes.
        on_preview: Optional host callback for drag start/move/cancel.
    """

    def __init__(
        self,
        renderer: StaffRenderer,
        state: RenderState | None = None,
        config: EditorConfig | None = None,
        on_input: InputCallback | None = None,
        on_preview: PreviewCallback | None = None,
    ) -> None:
        self.config = config or EditorConfig()
        self.state = state if state is not None else RenderState()
        self.synchronizer = RenderStateSynchronizer(self.state, renderer, self.config, on_input)
        self.drags = DragController(renderer, self.config)
        self.pointers = MultiPointerRegistry()
        self.on_preview = on_preview
        self.enabled = True

    @property
    def on_input(self) -> InputCallback | None:
        return self.synchronizer.on_input

    @on_input.setter
    def on_input(self, callback: InputCallback | None) -> None:
        self.synchronizer.on_input = callback

    @property
    def quantizer(self) -> PitchClassQuantizer | None:
        return self.drags.quantizer

    # ── Host configuration ────────────────────────────────────────────────

    def set_enabled(self, enabled: bool) -> None:
        """Turn pointer handling on or off; disabling cancels every drag in progress."""
        self.enabled = bool(enabled)
        if not self.enabled:
            for key in list(self.drags.sessions):
                self.pointer_cancel(pointer_id=key)
            self.pointers.clear()

    def set_allowed_pitch_classes(
        self,
        tokens: Iterable[int | str] | None,
        midi_min: int | None = None,
        midi_max: int | None = None,
    ) -> None:
        """
        Restrict dragging to the given pitch classes; None restores chromatic dragging.

        Raises:
            ValueError: If a token is invalid, the set is empty, or the range is invalid.
        """
        if tokens is None:
            self.drags.quantizer = None
            return
        self.drags.quantizer = PitchClassQuantizer(
            tokens,
            self.config.midi_min if midi_min is None else midi_min,
            self.config.midi_max if midi_max is None else midi_max,
        )
        logger.debug("Allowed pitch classes: %s", sorted(self.drags.quantizer.allowed))

    def set_scale(self, tonic: str, mode: str = "major") -> None:
        self.set_allowed_pitch_classes(diatonic_pitch_classes(tonic, mode))

    def set_sequence(self, sequence: Iterable[str], quarter_length: float | None = None) -> bool:
        """
        Load host tokens into the first voice, dropping any drag in progress.

        ``quarter_length`` (1.0 = quarter note) sets the duration of the new
        notes; it is rounded to the nearest code with up to three dots.
        """
        self.drags.cancel_all(self.state)
        self.pointers.clear()
        template = None
        if quarter_length is not None:
            match = duration_from_quarter_length(quarter_length)
            if not match.exact:
                logger.info("Duration of %s quarters rounded to '%s'", quarter_length, match.vexflow_code)
            voice = self.state.voice(0)
            template = NoteSpec(
                keys=[],
                duration=match.code,
                dots=match.dots,
                clef=voice.clef if voice is not None else self.state.clef,
            )
        return self.synchronizer.set_sequence(list(sequence), template=template)

    def set_key_signature(self, key_signature: str | None) -> bool:
        return self.synchronizer.set_key_signature(key_signature)

    def set_mode(self, mode: SequenceMode) -> bool:
        self.drags.cancel_all(self.state)
        self.pointers.clear()
        return self.synchronizer.set_mode(mode)

    def render(self) -> bool:
        return self.synchronizer.request_render()

    def current_sequence(self) -> list[str]:
        return self.synchronizer.baseline

    # ── Pointer events ────────────────────────────────────────────────────

    def pointer_down(
        self,
        x: float,
        y: float,
        pointer_id: Hashable | None = None,
        pointer_type: str = "mouse",
    ) -> bool:
        """
        Press at screen (x, y): select and start dragging a note, or insert one.

        Returns True when the event selected, dragged or inserted a note.
        """
        if not self.enabled:
            return False
        key = pointer_key(pointer_id, pointer_type)
        try:
            return self._pointer_down(key, x, y)
        except StaffEditError as exc:
            logger.warning("Pointer-down ignored: %s", exc)
            return False

    def pointer_move(
        self,
        x: float,
        y: float,
        pointer_id: Hashable | None = None,
        pointer_type: str = "mouse",
    ) -> bool:
        """Drag to screen Y; returns True when the preview pitch changed."""
        if not self.enabled:
            return False
        key = pointer_key(pointer_id, pointer_type)
        session = self.drags.move(key, y, self.state)
        if session is None or session.preview_pitch is None:
            return False
        token = pitch_spec_to_note_token(session.preview_pitch)
        entry = self.pointers.move(key, token)
        if entry is not None:
            self._emit_preview(token, Phase.MOVE, key, entry.staff_index)
        return True

    def pointer_up(
        self,
        x: float = 0.0,
        y: float = 0.0,
        pointer_id: Hashable | None = None,
        pointer_type: str = "mouse",
    ) -> bool:
        """Release: commit the pointer's drag. Returns True when a pitch change was applied."""
        key = pointer_key(pointer_id, pointer_type)
        self.pointers.end(key)
        dragging = self.drags.status(key) is DragStatus.ACTIVE
        edit = self.drags.commit(key, self.state)
        if edit is None:
            if dragging:
                self.synchronizer.request_render()
            return False
        diffs = self.synchronizer.apply_pitch_edit(edit, pointer_id=key)
        self.synchronizer.clear_selection()
        return bool(diffs)

    def pointer_cancel(
        self,
        pointer_id: Hashable | None = None,
        pointer_type: str = "mouse",
    ) -> bool:
        """Abort the pointer's drag, restoring the note exactly as it was."""
        key = pointer_key(pointer_id, pointer_type)
        entry = self.pointers.cancel(key)
        session = self.drags.cancel(key, self.state)
        if session is None:
            return False
        self.synchronizer.restore_note(session.voice_index, session.target, session.snapshot, pointer_id=key)
        note_index = entry.staff_index if entry is not None else session.note_index
        self._emit_preview(None, Phase.CANCEL, key, note_index)
        return True

    def wheel(self, delta_y: float) -> bool:
        """
        Nudge the selected note one semitone: up for negative ``delta_y``, down otherwise.

        The selection is kept so repeated wheel steps keep moving the same
        note. A note held by an active drag is left alone.
        """
        if not self.enabled or delta_y == 0:
            return False
        selection = self.state.selection
        spec = self.state.selected_note()
        if spec is None or spec.is_rest:
            return False
        if self.drags.holders(spec):
            logger.info("Wheel ignored: note %s is being dragged", selection.note_index)
            return False
        step = 1 if delta_y < 0 else -1
        base_midi = primary_midi(spec)
        target = min(self.config.midi_max, max(self.config.midi_min, base_midi + step))
        quantizer = self.drags.quantizer
        if quantizer is not None:
            target = quantizer.quantize(target, last_midi=base_midi, direction=step, base_midi=base_midi)
        if target == base_midi:
            return False
        voice_index, note_index = selection.voice_index, selection.note_index
        self.synchronizer.set_note_pitch(voice_index, note_index, target)  # type: ignore[arg-type]
        self.synchronizer.commit()
        return True

    # ── Deletion ──────────────────────────────────────────────────────────

    def delete_note(self, voice_index: int, note_index: int) -> bool:
        spec = self.state.note_at(voice_index, note_index)
        if spec is None:
            return False
        for key in self.drags.holders(spec):
            self.pointer_cancel(pointer_id=key)
        self.synchronizer.delete_note(voice_index, note_index)
        self.drags.refresh_glyphs(self.state)
        return True

    def delete_selected(self) -> bool:
        selection = self.state.selection
        if not selection.has_selection:
            return False
        return self.delete_note(selection.voice_index, selection.note_index)  # type: ignore[arg-type]

    # ---- Private helpers ----

    def _pointer_down(self, key: Hashable, x: float, y: float) -> bool:
        if self.drags.status(key) is DragStatus.ACTIVE or key in self.pointers:
            logger.warning("Pointer %r pressed while already active", key)
            raise DuplicateSessionError(key)

        state = self.state
        sx, sy = state.transform.to_staff(x, y)
        metrics = state.metrics
        registry = self.synchronizer.registry
        spacing = metrics.spacing if metrics is not None and metrics.usable else self.config.default_line_spacing

        item = registry.hit_test(sx, sy, hit_padding(spacing))
        if item is None:
            if is_within_staff_bounds(sx, sy, metrics, self.config.staff_bounds_margin_lines):
                if self._try_insert(key, sx, sy, y):
                    return True
            item = registry.find_closest(sx, sy)
        if item is None:
            return False

        spec = state.note_at(item.voice_index, item.note_index)
        if spec is None:
            return False
        self.synchronizer.select(item.voice_index, item.note_index)
        if spec.is_rest:
            return True

        voice = state.voice(item.voice_index)
        insert_index = registry.insert_index(sx, item.voice_index, len(voice) if voice is not None else None)
        self.drags.begin(key, state, item.voice_index, item.note_index, y)
        token = spec_to_note_token(spec)
        self.pointers.start(
            key,
            token,
            staff_index=item.note_index,
            insert_index=insert_index,
            voice_index=item.voice_index,
        )
        self._emit_preview(token, Phase.START, key, item.note_index)
        return True

    def _try_insert(self, key: Hashable, x: float, y: float, screen_y: float) -> bool:
        """
        Insert a note at staff (x, y) and keep the pointer dragging it.

        The pointer is registered with the insert position; in melodic mode
        a drag starts on the new note so further movement adjusts its pitch.
        """
        state = self.state
        limit = self.config.max_total_notes
        if limit is not None and state.total_notes() >= limit:
            logger.info("Insert refused: note limit of %d reached", limit)
            return False
        voice = state.voice(0)
        if voice is None:
            return False

        clef = state.metrics.clef if state.metrics is not None else voice.clef
        candidate = find_closest_pitch_for_y(
            y,
            clef,
            geometry=state.geometry,
            metrics=state.metrics,
            midi_min=self.config.midi_min,
            midi_max=self.config.midi_max,
            prefer_natural=self.config.prefer_natural,
            preference=self.config.spelling_preference,
        )
        if candidate is None:
            logger.debug("Insert skipped: no pitch for y=%s", y)
            return False

        template = voice.note_specs[-1] if voice.note_specs else None
        spec = NoteSpec(
            keys=[candidate.pitch.key],
            duration=template.duration if template is not None else self.config.default_duration,
            accidentals=[decide_accidental_for_key(candidate.pitch, state.key_signature)],
            midis=[candidate.midi],
            dots=template.dots if template is not None else 0,
            clef=template.clef if template is not None else clef,
        )
        index = self.synchronizer.registry.insert_index(x, 0, len(voice))
        log_structured(logger, "insert", {"index": index, "key": candidate.pitch.key, "x": x, "y": y})
        self.synchronizer.insert_note(0, index, spec, pointer_id=key)
        self.drags.refresh_glyphs(state)

        token = pitch_spec_to_note_token(candidate.pitch)
        note_index = voice.index_of(spec)
        if note_index is None:
            # Harmonic mode folded the note into the chord.
            self.pointers.start(key, token, insert_index=index)
            return True
        self.drags.begin(key, state, 0, note_index, screen_y)
        self.pointers.start(key, token, staff_index=note_index, insert_index=index)
        self._emit_preview(token, Phase.START, key, note_index)
        return True

    def _emit_preview(
        self,
        token: str | None,
        phase: Phase,
        key: Hashable,
        note_index: int | None,
    ) -> None:
        if self.on_preview is None:
            return
        self.on_preview(
            token,
            InputMeta(operation=Operation.UPDATE, phase=phase, note_index=note_index, pointer_id=key),
        )
