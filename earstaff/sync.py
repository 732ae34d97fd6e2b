"""Render-state synchronizer: the single writer of RenderState."""

from __future__ import annotations

from collections.abc import Callable, Hashable, Sequence

from earstaff.config import EditorConfig
from earstaff.diff import diff_sequences, diff_to_input, extract_sequence, reflatten_sequence
from earstaff.drag import PitchEdit
from earstaff.geometry import require_capability
from earstaff.key_signatures import canonicalize_key_signature
from earstaff.logger_config import get_logger, log_structured
from earstaff.models import DiffEntry, InputMeta, NoteSpec, SequenceMode
from earstaff.pitch import apply_pitch_update, normalize_note_spec
from earstaff.renderers import StaffRenderer
from earstaff.selectable import SelectableRegistry
from earstaff.state import RenderState

logger = get_logger(__name__)

InputCallback = Callable[[str | None, InputMeta], None]


class RenderStateSynchronizer:
    """
    Applies edits to a RenderState, reports them to the host, and re-renders.

    Every structural or pitch change funnels through here. After an edit the
    synchronizer diffs the flattened sequence against its baseline, moves the
    baseline forward, dispatches one host notification per diff entry and
    requests a render pass. Render requests made while a pass is running are
    queued and drained once it finishes. A failed pass leaves the previous
    metrics and registry in place.

    Args:
        state:    The render state owned by this staff view.
        renderer: Rendering collaborator.
        config:   Interaction constants.
        on_input: Host callback receiving ``(pitch_token | None, meta)``.
    """

    def __init__(
        self,
        state: RenderState,
        renderer: StaffRenderer,
        config: EditorConfig | None = None,
        on_input: InputCallback | None = None,
    ) -> None:
        self.state = state
        self._renderer = require_capability(renderer, StaffRenderer, "Staff renderer")
        self._config = config or EditorConfig()
        self.on_input = on_input
        self.registry = SelectableRegistry()
        self._baseline: list[str] = extract_sequence(state.voices, state.mode)
        self._rendering = False
        self._render_pending = False

    @property
    def baseline(self) -> list[str]:
        return list(self._baseline)

    @property
    def is_rendering(self) -> bool:
        return self._rendering

    # ── Host-driven updates ───────────────────────────────────────────────

    def set_sequence(self, sequence: Sequence[str], template: NoteSpec | None = None) -> bool:
        """
        Replace the first voice with notes built from host tokens.

        Duration, dots and clef come from ``template``, else from the voice's
        current last note. No host notification is sent; the baseline
        becomes ``sequence``.
        """
        voice = self.state.voice(0)
        if voice is None:
            raise ValueError("RenderState has no voices.")
        if template is None and voice.note_specs:
            template = voice.note_specs[-1]
        voice.note_specs = reflatten_sequence(
            sequence,
            self.state.mode,
            key_signature=self.state.key_signature,
            template=template,
            clef=voice.clef,
        )
        for spec in voice.note_specs:
            normalize_note_spec(spec)
        self._baseline = extract_sequence(self.state.voices, self.state.mode)
        self.state.selection.clear()
        return self.request_render()

    def set_key_signature(self, key_signature: str | None) -> bool:
        """
        Switch the key signature; tokens like ``"b♭ major"`` or ``"Bm"`` are canonicalized.

        Raises:
            ValueError: If a non-empty token is not a supported key signature.
        """
        canonical = canonicalize_key_signature(key_signature)
        if key_signature and canonical is None:
            raise ValueError(f"Unsupported key signature '{key_signature}'.")
        self.state.key_signature = canonical
        return self.request_render()

    def set_mode(self, mode: SequenceMode) -> bool:
        """Switch sequence mode and rebuild the first voice from its current tokens."""
        sequence = extract_sequence(self.state.voices, self.state.mode)
        self.state.mode = mode
        return self.set_sequence(sequence)

    def select(self, voice_index: int, note_index: int) -> bool:
        if self.state.note_at(voice_index, note_index) is None:
            return False
        self.state.selection.select(voice_index, note_index)
        return True

    def clear_selection(self) -> None:
        self.state.selection.clear()

    # ── Edits ─────────────────────────────────────────────────────────────

    def apply_pitch_edit(self, edit: PitchEdit, pointer_id: Hashable | None = None) -> list[DiffEntry]:
        """Apply a committed drag; the note is located by identity."""
        voice = self.state.voice(edit.voice_index)
        index = voice.index_of(edit.note) if voice is not None else None
        if index is None or edit.note.is_rest:
            logger.warning("Dropped pitch edit: note %d of voice %d is gone", edit.note_index, edit.voice_index)
            return []
        self.set_note_pitch(edit.voice_index, index, edit.midi, key_index=edit.key_index)
        return self.commit(pointer_id)

    def restore_note(
        self,
        voice_index: int,
        note: NoteSpec,
        snapshot: NoteSpec,
        pointer_id: Hashable | None = None,
    ) -> list[DiffEntry]:
        """
        Put ``note`` back to ``snapshot`` after a cancelled drag.

        Nothing happens when the note is gone or unchanged. A note edited
        while the drag was live is restored and committed, so the host
        receives the reverting diff.
        """
        voice = self.state.voice(voice_index)
        if voice is None or voice.index_of(note) is None or note == snapshot:
            return []
        note.restore_from(snapshot)
        normalize_note_spec(note)
        logger.info("Restored note %d of voice %d after a cancelled drag", voice.index_of(note), voice_index)
        return self.commit(pointer_id)

    def set_note_pitch(self, voice_index: int, note_index: int, midi: int, key_index: int = 0) -> bool:
        """Respell one key of a note in place; does not commit."""
        spec = self.state.note_at(voice_index, note_index)
        if spec is None or spec.is_rest:
            return False
        update = apply_pitch_update(
            spec,
            midi,
            self.state.key_signature,
            index=key_index,
            preference=self._config.spelling_preference,
        )
        log_structured(
            logger,
            "pitch update",
            {"voice": voice_index, "note": note_index, "key": update.derived.key, "accidental": update.accidental},
        )
        return True

    def insert_note(
        self,
        voice_index: int,
        index: int,
        spec: NoteSpec,
        pointer_id: Hashable | None = None,
    ) -> list[DiffEntry]:
        """
        Insert ``spec`` at ``index`` and mark it as the pending selection.

        Raises:
            ValueError: If the voice does not exist or the index is out of range.
        """
        voice = self.state.voice(voice_index)
        if voice is None:
            raise ValueError(f"No voice {voice_index}.")
        if not 0 <= index <= len(voice):
            raise ValueError(f"Insert index {index} out of range for {len(voice)} notes.")
        voice.note_specs.insert(index, spec)
        self.state.selection.clear()
        self.state.selection.pending = (voice_index, index)
        return self.commit(pointer_id)

    def delete_note(
        self,
        voice_index: int,
        index: int,
        pointer_id: Hashable | None = None,
    ) -> list[DiffEntry]:
        """Remove a note; returns the resulting diffs (empty if nothing was removed)."""
        voice = self.state.voice(voice_index)
        if voice is None or not 0 <= index < len(voice):
            logger.debug("Delete ignored: no note %d in voice %d", index, voice_index)
            return []
        del voice.note_specs[index]
        self.state.selection.clear()
        return self.commit(pointer_id)

    def commit(self, pointer_id: Hashable | None = None) -> list[DiffEntry]:
        """
        Diff against the baseline, advance it, notify the host and re-render.

        In harmonic mode the first voice is re-flattened into a single chord
        before rendering.
        """
        next_sequence = extract_sequence(self.state.voices, self.state.mode)
        diffs = diff_sequences(self._baseline, next_sequence)
        self._baseline = list(next_sequence)

        if self.state.mode == SequenceMode.HARMONIC:
            self._reflatten_harmonic(next_sequence)

        log_structured(logger, "commit diffs", [(d.type.value, d.index, d.note) for d in diffs])
        for entry in diffs:
            self._dispatch(entry, pointer_id)
        self.request_render()
        return diffs

    # ── Rendering ─────────────────────────────────────────────────────────

    def request_render(self) -> bool:
        """
        Run a render pass now, or queue one if a pass is already running.

        Returns:
            True if this call ran (and drained) render passes and the last one
            succeeded; False when queued or when the last pass failed.
        """
        if self._rendering:
            self._render_pending = True
            logger.debug("Render requested while rendering; queued")
            return False

        self._rendering = True
        try:
            succeeded = self._render_pass()
            while self._render_pending:
                self._render_pending = False
                succeeded = self._render_pass()
        finally:
            self._rendering = False
        return succeeded

    # ---- Private helpers ----

    def _render_pass(self) -> bool:
        state = self.state
        try:
            result = self._renderer.render_voices(state.voices, state.key_signature, state.clef)
        except Exception:
            logger.exception("Render pass failed; keeping last known staff metrics")
            return False

        state.metrics = result.metrics
        state.geometry = result.geometry
        state.transform = result.transform
        self.registry.rebuild(result.note_boxes)
        state.render_count += 1

        if not state.selection.promote_pending() and state.selection.has_selection:
            if state.selected_note() is None:
                state.selection.clear()
        log_structured(
            logger,
            "render pass",
            {
                "count": state.render_count,
                "notes": len(self.registry),
                "top_y": result.metrics.top_y,
                "spacing": result.metrics.spacing,
            },
        )
        return True

    def _reflatten_harmonic(self, sequence: Sequence[str]) -> None:
        voice = self.state.voice(0)
        if voice is None:
            return
        template = next((spec for spec in reversed(voice.note_specs) if not spec.is_rest), None)
        voice.note_specs = reflatten_sequence(
            sequence,
            SequenceMode.HARMONIC,
            key_signature=self.state.key_signature,
            template=template,
            clef=voice.clef,
        )
        for spec in voice.note_specs:
            normalize_note_spec(spec)
        if self.state.selection.pending is not None:
            self.state.selection.pending = (0, 0) if voice.note_specs else None

    def _dispatch(self, entry: DiffEntry, pointer_id: Hashable | None) -> None:
        if self.on_input is None:
            return
        notification = diff_to_input(entry, pointer_id)
        if notification is None:
            return
        token, meta = notification
        self.on_input(token, meta)
