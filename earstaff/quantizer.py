"""Pitch-class quantizer: snaps drag previews onto an allowed set of pitch classes."""

from __future__ import annotations

import re
from collections.abc import Iterable

from earstaff.key_signatures import normalize_accidental_suffix
from earstaff.logger_config import get_logger, log_structured
from earstaff.pitch import (
    LETTER_TO_SEMITONE,
    SEMITONES_PER_OCTAVE,
    accidental_offset,
    normalize_accidental,
)

logger = get_logger(__name__)

CHROMATIC_PITCH_CLASSES: frozenset[int] = frozenset(range(SEMITONES_PER_OCTAVE))

_PITCH_CLASS_TOKEN_RE = re.compile(r"^([A-Ga-g])([#♯b♭x𝄪𝄫n]{0,3})(-?\d+)?$")


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def pitch_class_from_token(token: int | str) -> int:
    """
    Pitch class (0-11) of an integer or a note-name token.

    Integers are taken mod 12; strings like ``"F#"``, ``"Bb"`` or ``"Eb4"``
    use their letter and accidental (any octave suffix is ignored).

    Raises:
        ValueError: If the token cannot be interpreted.
    """
    if isinstance(token, bool):
        raise ValueError(f"Unsupported pitch-class token {token!r}.")
    if isinstance(token, int):
        return token % SEMITONES_PER_OCTAVE
    if isinstance(token, str):
        text = token.strip()
        if text.lstrip("-").isdigit():
            return int(text) % SEMITONES_PER_OCTAVE
        match = _PITCH_CLASS_TOKEN_RE.match(text)
        if match:
            accidental = normalize_accidental(normalize_accidental_suffix(match.group(2)) or None)
            base = LETTER_TO_SEMITONE[match.group(1).lower()]
            return (base + accidental_offset(accidental)) % SEMITONES_PER_OCTAVE
    raise ValueError(f"Unsupported pitch-class token {token!r}.")


def diatonic_pitch_classes(tonic: str, mode: str = "major") -> frozenset[int]:
    """Pitch classes of the scale on ``tonic`` in ``mode`` ("major", "minor", "dorian", ...)."""
    from music21 import key as m21key

    name = normalize_accidental_suffix(tonic.strip())
    if not name or name[0].upper() not in "ABCDEFG":
        raise ValueError(f"Unrecognized tonic '{tonic}'.")
    music21_name = name[0].upper() + name[1:].replace("b", "-")
    try:
        scale_key = m21key.Key(music21_name, mode.lower())
    except Exception as exc:
        raise ValueError(f"Unsupported key '{tonic} {mode}': {exc}") from exc
    return frozenset(p.pitchClass for p in scale_key.getPitches())


class PitchClassQuantizer:
    """
    Restricts MIDI pitches to an allowed pitch-class set within ``[midi_min, midi_max]``.

    Args:
        allowed:  Pitch-class tokens: integers (taken mod 12) or note names.
        midi_min: Lowest MIDI number the quantizer will return.
        midi_max: Highest MIDI number the quantizer will return.

    Raises:
        ValueError: If no pitch class is given, a token is invalid, or the range is empty.
    """

    def __init__(
        self,
        allowed: Iterable[int | str],
        midi_min: int = 36,
        midi_max: int = 96,
    ) -> None:
        pitch_classes = frozenset(pitch_class_from_token(token) for token in allowed)
        if not pitch_classes:
            raise ValueError("At least one allowed pitch class is required.")
        if not 0 <= midi_min <= midi_max <= 127:
            raise ValueError(f"Invalid MIDI range [{midi_min}, {midi_max}].")
        self._allowed = pitch_classes
        self.midi_min = midi_min
        self.midi_max = midi_max

    @classmethod
    def chromatic(cls, midi_min: int = 36, midi_max: int = 96) -> PitchClassQuantizer:
        return cls(CHROMATIC_PITCH_CLASSES, midi_min, midi_max)

    @classmethod
    def from_scale(
        cls,
        tonic: str,
        mode: str = "major",
        midi_min: int = 36,
        midi_max: int = 96,
    ) -> PitchClassQuantizer:
        return cls(diatonic_pitch_classes(tonic, mode), midi_min, midi_max)

    @property
    def allowed(self) -> frozenset[int]:
        return self._allowed

    @property
    def is_chromatic(self) -> bool:
        return self._allowed == CHROMATIC_PITCH_CLASSES

    def clamp(self, midi: float) -> int:
        return int(min(self.midi_max, max(self.midi_min, round(midi))))

    def is_allowed(self, midi: int) -> bool:
        return midi % SEMITONES_PER_OCTAVE in self._allowed

    def quantize(
        self,
        preview_midi: float,
        *,
        last_midi: float | None = None,
        direction: int = 0,
        base_midi: int | None = None,
    ) -> int:
        """
        Nearest allowed pitch to ``preview_midi`` in the direction of travel.

        The direction is ``sign(direction)``, or ``sign(preview_midi - last_midi)``
        when no hint is given. The search walks one semitone at a time toward
        the range bound in that direction, then the opposite way. With no
        direction at all both ways are searched together, upward first on
        equal distance. If the range holds no allowed pitch, ``base_midi`` is
        returned when allowed, else the clamped preview.
        """
        clamped = self.clamp(preview_midi)
        if self.is_allowed(clamped):
            return clamped

        hint = _sign(direction)
        if hint == 0 and last_midi is not None:
            hint = _sign(preview_midi - last_midi)

        if hint != 0:
            found = self._search(clamped, hint)
            if found is None:
                found = self._search(clamped, -hint)
        else:
            found = self._search_nearest(clamped)

        if found is None and base_midi is not None:
            base = self.clamp(base_midi)
            if self.is_allowed(base):
                found = base

        result = clamped if found is None else found
        log_structured(
            logger,
            "quantize",
            {
                "preview": preview_midi,
                "last": last_midi,
                "direction": hint,
                "base": base_midi,
                "result": result,
            },
        )
        return result

    def __call__(
        self,
        *,
        preview_midi: float,
        last_midi: float | None = None,
        direction: int = 0,
        base_midi: int | None = None,
    ) -> int:
        return self.quantize(preview_midi, last_midi=last_midi, direction=direction, base_midi=base_midi)

    # ---- Private helpers ----

    def _search(self, start: int, step: int) -> int | None:
        candidate = start + step
        while self.midi_min <= candidate <= self.midi_max:
            if self.is_allowed(candidate):
                return candidate
            candidate += step
        return None

    def _search_nearest(self, start: int) -> int | None:
        for distance in range(1, self.midi_max - self.midi_min + 1):
            for candidate in (start + distance, start - distance):
                if self.midi_min <= candidate <= self.midi_max and self.is_allowed(candidate):
                    return candidate
        return None
