"""Pitch model: MIDI <-> spelled pitch conversion and key-signature aware accidentals."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

from earstaff.key_signatures import get_key_signature_alteration, normalize_accidental_suffix
from earstaff.models import NoteSpec

# ── MIDI constants ──────────────────────────────────────────────────────────
SEMITONES_PER_OCTAVE = 12
LETTERS_PER_OCTAVE = 7
MIDDLE_C_MIDI = 60  # C4 in Scientific Pitch Notation

NOTE_LETTERS: Final[tuple[str, ...]] = ("c", "d", "e", "f", "g", "a", "b")

LETTER_TO_SEMITONE: Final[dict[str, int]] = {
    "c": 0, "d": 2, "e": 4, "f": 5, "g": 7, "a": 9, "b": 11,
}

#: Spelling tables indexed by pitch class: (letter, accidental)
SEMITONE_TO_FLAT: Final[tuple[tuple[str, str | None], ...]] = (
    ("c", None), ("d", "b"), ("d", None), ("e", "b"), ("e", None), ("f", None),
    ("g", "b"), ("g", None), ("a", "b"), ("a", None), ("b", "b"), ("b", None),
)

SEMITONE_TO_SHARP: Final[tuple[tuple[str, str | None], ...]] = (
    ("c", None), ("c", "#"), ("d", None), ("d", "#"), ("e", None), ("f", None),
    ("f", "#"), ("g", None), ("g", "#"), ("a", None), ("a", "#"), ("b", None),
)

ACCIDENTAL_OFFSETS: Final[dict[str | None, int]] = {
    "#": 1, "##": 2, "###": 3,
    "b": -1, "bb": -2, "bbb": -3,
    "n": 0, None: 0,
}

ACCIDENTAL_GLYPHS: Final[dict[str, str]] = {
    "#": "♯", "##": "♯♯", "###": "♯♯♯",
    "b": "♭", "bb": "♭♭", "bbb": "♭♭♭",
    "n": "♮",
}

_KEY_STRING_RE = re.compile(r"^([A-Ga-g])([#bn]{0,3})/(-?\d+)$")
_NOTE_TOKEN_RE = re.compile(r"^([A-Ga-g])([#♯b♭x𝄪𝄫]{0,3})(-?\d+)$")


def pitch_class_to_midi(pitch_class: int, octave: int) -> int:
    """
    Convert a pitch class (0-11) and an octave number to an absolute MIDI note.

    MIDI octave numbering: C-1 = 0, C0 = 12, C1 = 24, ... C4 (Middle C) = 60.
    """
    return (octave + 1) * SEMITONES_PER_OCTAVE + pitch_class


def normalize_preference(preference: str | None) -> str:
    """Map a spelling preference to "flat" or "sharp" ("natural" spells as sharp)."""
    if not preference:
        return "flat"
    normalized = str(preference).lower()
    if normalized in ("sharp", "natural"):
        return "sharp"
    return "flat"


def normalize_accidental(symbol: str | None) -> str | None:
    """Canonical accidental text, or None for "no accidental". Raises on unknown symbols."""
    if symbol is None or symbol == "" or symbol == "none":
        return None
    normalized = normalize_accidental_suffix(symbol)
    if normalized not in ACCIDENTAL_OFFSETS:
        raise ValueError(f"Unsupported accidental '{symbol}'.")
    return normalized


def accidental_offset(symbol: str | None) -> int:
    return ACCIDENTAL_OFFSETS[normalize_accidental(symbol)]


def diatonic_index_for_letter(letter: str, octave: int = 4) -> int:
    """Letter-only staff position: ``octave * 7 + letter index`` (C=0 … B=6)."""
    try:
        base_index = NOTE_LETTERS.index((letter or "c").lower())
    except ValueError:
        return 0
    return octave * LETTERS_PER_OCTAVE + base_index


@dataclass(frozen=True)
class PitchSpec:
    """A spelled pitch: letter, accidental (None = natural), octave."""

    letter: str
    accidental: str | None
    octave: int
    diatonic_index: int

    @property
    def key(self) -> str:
        """VexFlow key string, e.g. ``"eb/4"``."""
        return f"{self.letter}{self.accidental or ''}/{self.octave}"

    @property
    def midi(self) -> int:
        return pitch_key_to_midi(self.letter, self.accidental, self.octave)


def midi_to_pitch_spec(midi: int, preference: str | None = "flat") -> PitchSpec:
    """
    Spell a MIDI number as letter + accidental + octave.

    Black keys are spelled with flats or sharps according to ``preference``;
    white keys always come out without an accidental.
    """
    rounded = int(round(midi))
    semitone = rounded % SEMITONES_PER_OCTAVE
    table = SEMITONE_TO_SHARP if normalize_preference(preference) == "sharp" else SEMITONE_TO_FLAT
    letter, accidental = table[semitone]
    octave = rounded // SEMITONES_PER_OCTAVE - 1
    return PitchSpec(
        letter=letter,
        accidental=accidental,
        octave=octave,
        diatonic_index=diatonic_index_for_letter(letter, octave),
    )


def pitch_key_to_midi(letter: str, accidental: str | None, octave: int) -> int:
    """Exact inverse of :func:`midi_to_pitch_spec` for any spelling."""
    base = LETTER_TO_SEMITONE.get((letter or "").lower())
    if base is None:
        raise ValueError(f"Unknown note letter '{letter}'.")
    return pitch_class_to_midi(base, octave) + accidental_offset(accidental)


def parse_key_string(key: str | None) -> PitchSpec | None:
    """Parse ``"c#/4"``-style keys; returns None for anything unparseable."""
    if not isinstance(key, str):
        return None
    match = _KEY_STRING_RE.match(key.strip())
    if not match:
        return None
    accidental_raw = match.group(2) or None
    if accidental_raw is not None and accidental_raw not in ACCIDENTAL_OFFSETS:
        return None
    letter = match.group(1).lower()
    octave = int(match.group(3))
    accidental = None if accidental_raw == "n" else accidental_raw
    return PitchSpec(
        letter=letter,
        accidental=accidental,
        octave=octave,
        diatonic_index=diatonic_index_for_letter(letter, octave),
    )


def key_to_midi(key: str | None, accidental: str | None = None) -> int | None:
    """
    MIDI number of a key string.

    An accidental spelled inside the key wins; otherwise the separately stored
    display ``accidental`` is applied.
    """
    parsed = parse_key_string(key)
    if parsed is None:
        return None
    if parsed.accidental is not None or "n/" in (key or ""):
        return parsed.midi
    try:
        return pitch_key_to_midi(parsed.letter, accidental, parsed.octave)
    except ValueError:
        return parsed.midi


def note_spec_midis(spec: NoteSpec) -> list[int]:
    """MIDI numbers derived from a note's keys (the cache is ignored)."""
    midis: list[int] = []
    for key, accidental in zip(spec.keys, spec.accidentals):
        midi = key_to_midi(key, accidental)
        if midi is None:
            raise ValueError(f"Unparseable pitch key '{key}'.")
        midis.append(midi)
    return midis


def normalize_note_spec(spec: NoteSpec) -> NoteSpec:
    """Recompute the MIDI cache from keys; returns ``spec`` for chaining."""
    spec.midis = None if spec.is_rest else note_spec_midis(spec)
    return spec


def primary_midi(spec: NoteSpec | None, fallback: int = MIDDLE_C_MIDI) -> int:
    """First MIDI number of a note: the cache if present, else derived from keys."""
    if spec is None:
        return fallback
    if spec.midis:
        return spec.midis[0]
    if not spec.keys:
        return fallback
    midi = key_to_midi(spec.keys[0], spec.accidentals[0] if spec.accidentals else None)
    return fallback if midi is None else midi


def decide_accidental_for_key(pitch: PitchSpec, key_signature: str | None) -> str | None:
    """
    Accidental to display for ``pitch`` under ``key_signature``.

    None when the spelling already matches the signature; ``"n"`` when a
    signature accidental must be cancelled; otherwise the pitch's accidental.
    """
    base_offset = get_key_signature_alteration(pitch.letter.upper(), key_signature or "C")
    pitch_offset = accidental_offset(pitch.accidental)
    if pitch_offset == base_offset:
        return None
    if pitch_offset == 0 and base_offset != 0:
        return "n"
    return pitch.accidental


@dataclass(frozen=True)
class PitchUpdate:
    derived: PitchSpec
    accidental: str | None


def apply_pitch_update(
    spec: NoteSpec,
    midi: int,
    key_signature: str | None,
    index: int = 0,
    preference: str | None = "flat",
) -> PitchUpdate:
    """Respell key ``index`` of ``spec`` as ``midi`` in place, refreshing accidentals and cache."""
    if not 0 <= index < max(len(spec.keys), 1):
        raise ValueError(f"Key index {index} out of range for note with {len(spec.keys)} keys.")
    derived = midi_to_pitch_spec(midi, preference)
    symbol = decide_accidental_for_key(derived, key_signature)

    keys = list(spec.keys) or [derived.key]
    accidentals = list(spec.accidentals) or [None]
    keys[index] = derived.key
    accidentals[index] = symbol

    spec.keys = keys
    spec.accidentals = accidentals
    if spec.midis is not None:
        normalize_note_spec(spec)
    return PitchUpdate(derived=derived, accidental=symbol)


def accidental_to_glyph(accidental: str | None) -> str:
    return ACCIDENTAL_GLYPHS.get(accidental or "", "")


def format_pitch_label(key: str | None, accidental: str | None = None) -> str:
    """Human label such as ``"E♭4"``; the key's own accidental is used when present."""
    parsed = parse_key_string(key)
    if parsed is None:
        return ""
    symbol = parsed.accidental or accidental
    return f"{parsed.letter.upper()}{accidental_to_glyph(symbol)}{parsed.octave}"


# ── Note tokens (host-facing "C#4" strings) ─────────────────────────────────

def parse_note_token(token: str | None) -> PitchSpec | None:
    """Parse ``"Eb4"``/``"F♯3"``-style tokens; None for anything unparseable."""
    if not isinstance(token, str):
        return None
    match = _NOTE_TOKEN_RE.match(token.strip())
    if not match:
        return None
    try:
        accidental = normalize_accidental(match.group(2) or None)
    except ValueError:
        return None
    letter = match.group(1).lower()
    octave = int(match.group(3))
    return PitchSpec(
        letter=letter,
        accidental=None if accidental == "n" else accidental,
        octave=octave,
        diatonic_index=diatonic_index_for_letter(letter, octave),
    )


def note_token_to_midi(token: str | None) -> int | None:
    parsed = parse_note_token(token)
    return parsed.midi if parsed is not None else None


def pitch_spec_to_note_token(pitch: PitchSpec) -> str:
    accidental = pitch.accidental if pitch.accidental and pitch.accidental != "n" else ""
    return f"{pitch.letter.upper()}{accidental}{pitch.octave}"


def key_to_note_token(key: str | None, accidental: str | None = None) -> str | None:
    """Host token for a note key; display accidentals only fill in when the key has none."""
    parsed = parse_key_string(key)
    if parsed is None:
        return None
    if parsed.accidental is None and accidental not in (None, "n"):
        try:
            symbol = normalize_accidental(accidental)
        except ValueError:
            symbol = None
        parsed = PitchSpec(parsed.letter, symbol, parsed.octave, parsed.diatonic_index)
    return pitch_spec_to_note_token(parsed)
