"""EditorConfig: tunable constants for staff interaction, with JSON overrides."""

from __future__ import annotations

import copy
import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Final

SPELLING_PREFERENCES: Final[set[str]] = {"flat", "sharp"}


@dataclass(frozen=True)
class EditorConfig:
    """
    Interaction constants shared by every staff view.

    Attributes:
        midi_min / midi_max:      Pitch range scanned by the coordinate resolver and
                                  enforced by the quantizer.
        default_line_spacing:     Staff line spacing assumed when the renderer reports none.
        min_px_per_semitone:      Floor for the vertical drag distance of one semitone.
        px_per_semitone_factor:   Fraction of a half line-spacing that counts as one semitone.
        spelling_preference:      "flat" or "sharp" spelling for black-key pitches.
        prefer_natural:           Break equal-distance resolver ties toward natural spellings.
        max_total_notes:          Insert limit across all voices (None = unlimited).
        staff_bounds_margin_lines: Vertical margin, in line spacings, accepted around the staff.
        default_duration:         Duration code for inserted notes when the voice is empty.
    """

    midi_min: int = 36
    midi_max: int = 96
    default_line_spacing: float = 12.0
    min_px_per_semitone: float = 2.0
    px_per_semitone_factor: float = 0.6
    spelling_preference: str = "flat"
    prefer_natural: bool = True
    max_total_notes: int | None = None
    staff_bounds_margin_lines: float = 4.0
    default_duration: str = "q"

    def __post_init__(self) -> None:
        if not 0 <= self.midi_min <= self.midi_max <= 127:
            raise ValueError(
                f"Invalid MIDI range [{self.midi_min}, {self.midi_max}]; expected 0 <= min <= max <= 127."
            )
        if self.spelling_preference not in SPELLING_PREFERENCES:
            supported = ", ".join(sorted(SPELLING_PREFERENCES))
            raise ValueError(
                f"Unsupported spelling preference '{self.spelling_preference}'. Use one of: {supported}."
            )
        if self.default_line_spacing <= 0:
            raise ValueError("default_line_spacing must be positive.")
        if self.min_px_per_semitone <= 0 or self.px_per_semitone_factor <= 0:
            raise ValueError("Semitone drag thresholds must be positive.")
        if self.max_total_notes is not None and self.max_total_notes < 0:
            raise ValueError("max_total_notes must be None or >= 0.")

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> EditorConfig:
        """Build a config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}.")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def load_config(path: str | Path | None = None) -> EditorConfig:
    """
    Load an EditorConfig from a JSON file layered over the defaults.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the file is not a JSON object or holds invalid values.
    """
    defaults = EditorConfig().to_dict()
    if path is None:
        return EditorConfig()

    text = Path(path).read_text(encoding="utf-8")
    try:
        overrides = json.loads(text) if text.strip() else {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Config file '{path}' is not valid JSON: {exc}") from exc
    if not isinstance(overrides, dict):
        raise ValueError(f"Config file '{path}' must contain a JSON object.")

    return EditorConfig.from_mapping(_deep_merge(defaults, overrides))
