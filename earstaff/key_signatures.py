"""Canonical major key signatures and their per-letter alterations."""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Final, Mapping

# letter -> offset from natural (-1 flat, +1 sharp), keyed by canonical major tonic
KEY_SIGNATURE_ALTERATIONS: Final[Mapping[str, Mapping[str, int]]] = MappingProxyType(
    {
        "C": MappingProxyType({}),
        "G": MappingProxyType({"F": 1}),
        "D": MappingProxyType({"F": 1, "C": 1}),
        "A": MappingProxyType({"F": 1, "C": 1, "G": 1}),
        "E": MappingProxyType({"F": 1, "C": 1, "G": 1, "D": 1}),
        "B": MappingProxyType({"F": 1, "C": 1, "G": 1, "D": 1, "A": 1}),
        "F#": MappingProxyType({"F": 1, "C": 1, "G": 1, "D": 1, "A": 1, "E": 1}),
        "C#": MappingProxyType({"F": 1, "C": 1, "G": 1, "D": 1, "A": 1, "E": 1, "B": 1}),
        "F": MappingProxyType({"B": -1}),
        "Bb": MappingProxyType({"B": -1, "E": -1}),
        "Eb": MappingProxyType({"B": -1, "E": -1, "A": -1}),
        "Ab": MappingProxyType({"B": -1, "E": -1, "A": -1, "D": -1}),
        "Db": MappingProxyType({"B": -1, "E": -1, "A": -1, "D": -1, "G": -1}),
        "Gb": MappingProxyType({"B": -1, "E": -1, "A": -1, "D": -1, "G": -1, "C": -1}),
        "Cb": MappingProxyType({"B": -1, "E": -1, "A": -1, "D": -1, "G": -1, "C": -1, "F": -1}),
    }
)

SUPPORTED_KEY_SIGNATURES: Final[tuple[str, ...]] = tuple(KEY_SIGNATURE_ALTERATIONS)

#: Number of sharps (positive) or flats (negative) -> canonical major tonic
SHARPS_TO_MAJOR: Final[Mapping[int, str]] = MappingProxyType(
    {
        0: "C", 1: "G", 2: "D", 3: "A", 4: "E", 5: "B", 6: "F#", 7: "C#",
        -1: "F", -2: "Bb", -3: "Eb", -4: "Ab", -5: "Db", -6: "Gb", -7: "Cb",
    }
)

_EMPTY: Final[Mapping[str, int]] = MappingProxyType({})

_TOKEN_RE = re.compile(r"^([A-Ga-g])([#♯b♭x𝄪𝄫]{0,2})(.*)$")
_MINOR_SUFFIXES: Final[set[str]] = {"m", "min", "minor"}


def normalize_accidental_suffix(text: str) -> str:
    """Map Unicode and shorthand accidental spellings onto ``#``/``b`` text."""
    return (
        text.replace("♯", "#")
        .replace("♭", "b")
        .replace("𝄪", "##")
        .replace("𝄫", "bb")
        .replace("x", "##")
    )


def canonicalize_key_signature(token: str | None) -> str | None:
    """
    Normalize a key-signature token to its canonical major-key spelling.

    Accepts ``"Bb"``, ``"b♭ major"``, ``"F#"``, and minor tokens such as
    ``"Bm"`` or ``"g minor"`` (mapped to the relative major's signature).
    Returns None if the token is empty or the signature is unsupported.
    """
    if not token or not isinstance(token, str):
        return None
    words = token.strip().split()
    if not words:
        return None

    match = _TOKEN_RE.match(words[0])
    if not match:
        return None

    letter = match.group(1).upper()
    accidental = normalize_accidental_suffix(match.group(2))
    suffix = match.group(3).strip().lower()
    mode_word = words[1].lower() if len(words) > 1 else ""

    tonic = f"{letter}{accidental}"
    if suffix in _MINOR_SUFFIXES or mode_word in _MINOR_SUFFIXES:
        try:
            return key_signature_for(tonic, "minor")
        except ValueError:
            return None
    if suffix:
        return None

    return tonic if tonic in KEY_SIGNATURE_ALTERATIONS else None


def is_supported_key_signature(token: str | None) -> bool:
    return canonicalize_key_signature(token) is not None


def get_key_signature_map(token: str | None) -> Mapping[str, int]:
    canonical = canonicalize_key_signature(token)
    if canonical is None:
        return _EMPTY
    return KEY_SIGNATURE_ALTERATIONS[canonical]


def get_key_signature_alteration(letter: str, token: str | None) -> int:
    """Semitone alteration the key signature implies for ``letter`` (0 if none)."""
    if not letter:
        return 0
    return get_key_signature_map(token).get(letter.upper(), 0)


def key_signature_for(tonic: str, mode: str = "major") -> str:
    """
    Canonical major-key signature for any tonic and mode.

    Uses music21's key model, so church modes work as well
    (``key_signature_for("D", "dorian") == "C"``).

    Raises:
        ValueError: If the tonic is unparseable or needs more than seven accidentals.
    """
    from music21 import key as m21key

    match = _TOKEN_RE.match(tonic.strip()) if tonic else None
    if not match or match.group(3).strip():
        raise ValueError(f"Unrecognized tonic '{tonic}'.")
    letter = match.group(1).upper()
    accidental = normalize_accidental_suffix(match.group(2)).replace("b", "-")

    try:
        sharps = m21key.Key(f"{letter}{accidental}", mode.lower()).sharps
    except Exception as exc:
        raise ValueError(f"Unsupported key '{tonic} {mode}': {exc}") from exc

    if sharps not in SHARPS_TO_MAJOR:
        raise ValueError(f"Key '{tonic} {mode}' needs {abs(sharps)} accidentals; at most 7 are supported.")
    return SHARPS_TO_MAJOR[sharps]
