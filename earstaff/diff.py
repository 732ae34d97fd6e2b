"""Sequence diff engine: positional diffs between pitch-token snapshots."""

from __future__ import annotations

import math
from collections.abc import Hashable, Sequence

from earstaff.logger_config import get_logger, log_structured
from earstaff.models import DiffEntry, InputMeta, NoteSpec, Operation, Phase, SequenceMode, Voice
from earstaff.pitch import (
    decide_accidental_for_key,
    key_to_note_token,
    note_token_to_midi,
    parse_note_token,
)

logger = get_logger(__name__)


def sort_notes_ascending(notes: Sequence[str]) -> list[str]:
    """Sort pitch tokens by MIDI number; unparseable tokens sort first."""

    def sort_key(note: str) -> float:
        midi = note_token_to_midi(note)
        return -math.inf if midi is None else midi

    return sorted(notes, key=sort_key)


def spec_to_note_token(spec: NoteSpec, key_index: int = 0) -> str | None:
    """Host token (``"Eb4"``) for one key of a note, or None for rests and bad keys."""
    if spec.is_rest or not spec.keys:
        return None
    index = key_index if 0 <= key_index < len(spec.keys) else 0
    return key_to_note_token(spec.keys[index], spec.accidentals[index])


def extract_notes_from_spec(spec: NoteSpec) -> list[str]:
    tokens = (spec_to_note_token(spec, index) for index in range(len(spec.keys)))
    return [token for token in tokens if token]


def extract_sequence(voices: Sequence[Voice], mode: SequenceMode = SequenceMode.MELODIC) -> list[str]:
    """
    Flat pitch-token sequence of the first voice.

    Melodic mode yields one token per non-rest note (its first key). Harmonic
    mode collects every key of every non-rest note, sorted ascending.
    """
    if not voices:
        return []
    specs = [spec for spec in voices[0].note_specs if not spec.is_rest]
    if mode == SequenceMode.HARMONIC:
        collected: list[str] = []
        for spec in specs:
            collected.extend(extract_notes_from_spec(spec))
        return sort_notes_ascending(collected)
    tokens = (spec_to_note_token(spec) for spec in specs)
    return [token for token in tokens if token]


def diff_sequences(prev: Sequence[str], next_: Sequence[str]) -> list[DiffEntry]:
    """
    Positional diff of two token sequences.

    Each index up to the longer length yields ``insert`` (only in ``next_``),
    ``delete`` (only in ``prev``), ``update`` (different token) or nothing.
    Index-aligned only: an insert and a delete inside the same cycle show up
    as a run of updates.
    """
    diffs: list[DiffEntry] = []
    for index in range(max(len(prev), len(next_))):
        has_prev = index < len(prev)
        has_next = index < len(next_)
        if has_next and not has_prev:
            diffs.append(DiffEntry(Operation.INSERT, index, next_[index]))
        elif has_prev and not has_next:
            diffs.append(DiffEntry(Operation.DELETE, index))
        elif prev[index] != next_[index]:
            diffs.append(DiffEntry(Operation.UPDATE, index, next_[index]))
    return diffs


def apply_diffs(prev: Sequence[str], diffs: Sequence[DiffEntry]) -> list[str]:
    """
    Apply positional diffs to ``prev``.

    Updates and inserts are applied in ascending index order, deletes from
    the highest index down, so ``apply_diffs(a, diff_sequences(a, b)) == b``.

    Raises:
        ValueError: If an entry points outside the sequence or lacks a note.
    """
    result = list(prev)
    for entry in sorted(
        (e for e in diffs if e.type == Operation.DELETE), key=lambda e: e.index, reverse=True
    ):
        if not 0 <= entry.index < len(result):
            raise ValueError(f"Delete index {entry.index} out of range for {len(result)} notes.")
        del result[entry.index]
    for entry in sorted((e for e in diffs if e.type != Operation.DELETE), key=lambda e: e.index):
        if entry.note is None:
            raise ValueError(f"{entry.type.value} at index {entry.index} has no note.")
        if entry.type == Operation.UPDATE:
            if not 0 <= entry.index < len(result):
                raise ValueError(f"Update index {entry.index} out of range for {len(result)} notes.")
            result[entry.index] = entry.note
        else:
            if not 0 <= entry.index <= len(result):
                raise ValueError(f"Insert index {entry.index} out of range for {len(result)} notes.")
            result.insert(entry.index, entry.note)
    return result


def token_to_key(token: str, key_signature: str | None) -> tuple[str, str | None]:
    """
    VexFlow key and display accidental for a host token under ``key_signature``.

    Raises:
        ValueError: If the token is not a pitch.
    """
    pitch = parse_note_token(token)
    if pitch is None:
        raise ValueError(f"Unparseable pitch token '{token}'.")
    return pitch.key, decide_accidental_for_key(pitch, key_signature)


def reflatten_sequence(
    sequence: Sequence[str],
    mode: SequenceMode,
    *,
    key_signature: str | None = None,
    template: NoteSpec | None = None,
    clef: str = "treble",
) -> list[NoteSpec]:
    """
    Rebuild note specs from a token sequence.

    Melodic mode makes one note per token; harmonic mode makes a single chord
    with the tokens sorted ascending (no notes for an empty sequence).
    Duration, dots and clef come from ``template`` when given.
    """
    duration = template.duration if template is not None else "q"
    dots = template.dots if template is not None else 0
    note_clef = template.clef if template is not None else clef

    def build(tokens: Sequence[str]) -> NoteSpec:
        pairs = [token_to_key(token, key_signature) for token in tokens]
        return NoteSpec(
            keys=[key for key, _ in pairs],
            duration=duration,
            accidentals=[accidental for _, accidental in pairs],
            dots=dots,
            clef=note_clef,
        )

    if mode == SequenceMode.HARMONIC:
        ordered = sort_notes_ascending(sequence)
        return [build(ordered)] if ordered else []
    return [build([token]) for token in sequence]


def diff_to_input(
    entry: DiffEntry,
    pointer_id: Hashable | None = None,
) -> tuple[str | None, InputMeta] | None:
    """
    Host notification for one diff entry.

    Deletes report no pitch with phase ``delete``; inserts and updates report
    their pitch with phase ``commit`` (inserts also carry the insert index).
    Returns None for an insert or update without a pitch.
    """
    if entry.type == Operation.DELETE:
        return None, InputMeta(
            operation=Operation.DELETE,
            phase=Phase.DELETE,
            note_index=entry.index,
            pointer_id=pointer_id,
        )
    if entry.note is None:
        log_structured(logger, "diff entry without note skipped", {"type": entry.type.value, "index": entry.index})
        return None
    return entry.note, InputMeta(
        operation=entry.type,
        phase=Phase.COMMIT,
        note_index=entry.index,
        insert_index=entry.index if entry.type == Operation.INSERT else None,
        pointer_id=pointer_id,
    )
