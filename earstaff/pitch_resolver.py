"""Coordinate-to-pitch resolution on a rendered staff."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from earstaff.geometry import (
    LinearStaffGeometry,
    StaffGeometryProvider,
    require_capability,
    staff_line_for_key,
)
from earstaff.logger_config import get_logger, log_structured
from earstaff.models import StaffMetrics
from earstaff.pitch import PitchSpec, midi_to_pitch_spec

logger = get_logger(__name__)

DEFAULT_MIDI_MIN = 36
DEFAULT_MIDI_MAX = 96
TIE_TOLERANCE = 1e-6


@dataclass(frozen=True)
class PitchCandidate:
    """
    The pitch chosen for a staff Y.

    Attributes:
        midi:  MIDI number of the chosen pitch.
        pitch: Its spelling under the requested preference.
        line:  Staff line of the pitch (0 = top line, fractional = space).
        y:     Staff Y of that line.
        diff:  Distance between the requested Y and ``y``.
    """

    midi: int
    pitch: PitchSpec
    line: float
    y: float
    diff: float


def _select_geometry(
    geometry: StaffGeometryProvider | None,
    metrics: StaffMetrics | None,
) -> StaffGeometryProvider | None:
    if geometry is not None:
        return require_capability(geometry, StaffGeometryProvider, "Staff geometry")
    if metrics is not None and metrics.usable:
        return LinearStaffGeometry(metrics)
    return None


def find_closest_pitch_for_y(
    target_y: float,
    clef: str = "treble",
    *,
    geometry: StaffGeometryProvider | None = None,
    metrics: StaffMetrics | None = None,
    midi_min: int = DEFAULT_MIDI_MIN,
    midi_max: int = DEFAULT_MIDI_MAX,
    prefer_natural: bool = True,
    preference: str | None = "flat",
) -> PitchCandidate | None:
    """
    Scan ``[midi_min, midi_max]`` and return the pitch whose staff Y is closest to ``target_y``.

    A live ``geometry`` provider is used when given, else the linear
    ``metrics`` formula. Equal-distance candidates resolve to the first
    natural spelling when ``prefer_natural`` is set, otherwise to the lowest
    MIDI number.

    Returns:
        The chosen candidate, or None when ``target_y`` is not finite or
        neither geometry nor usable metrics are available.
    """
    if target_y is None or not math.isfinite(target_y):
        return None
    provider = _select_geometry(geometry, metrics)
    if provider is None:
        logger.debug("No staff geometry or metrics; cannot resolve y=%s", target_y)
        return None

    low = max(0, min(midi_min, midi_max))
    high = min(127, max(midi_min, midi_max))
    midis = np.arange(low, high + 1)
    specs = [midi_to_pitch_spec(int(midi), preference) for midi in midis]
    lines = np.array([staff_line_for_key(spec.letter, spec.octave, clef) for spec in specs])
    ys = np.array([provider.y_for_line(float(line)) for line in lines], dtype=float)

    diffs = np.abs(ys - target_y)
    best_diff = float(diffs.min())
    tied = np.flatnonzero(diffs - best_diff <= TIE_TOLERANCE)

    choice = int(tied[0])
    if prefer_natural:
        naturals = [int(i) for i in tied if specs[int(i)].accidental is None]
        if naturals:
            choice = naturals[0]

    candidate = PitchCandidate(
        midi=int(midis[choice]),
        pitch=specs[choice],
        line=float(lines[choice]),
        y=float(ys[choice]),
        diff=float(diffs[choice]),
    )
    log_structured(
        logger,
        "find_closest_pitch_for_y",
        {
            "target_y": target_y,
            "clef": clef,
            "midi": candidate.midi,
            "key": candidate.pitch.key,
            "line": candidate.line,
            "diff": candidate.diff,
        },
    )
    return candidate


def line_for_y(
    y: float,
    *,
    geometry: StaffGeometryProvider | None = None,
    metrics: StaffMetrics | None = None,
) -> float | None:
    """Fractional staff line under ``y``, or None without geometry."""
    if y is None or not math.isfinite(y):
        return None
    provider = _select_geometry(geometry, metrics)
    if provider is None:
        return None
    line = provider.line_for_y(y)
    return line if math.isfinite(line) else None


def is_within_staff_bounds(
    x: float,
    y: float,
    metrics: StaffMetrics | None,
    margin_lines: float = 4.0,
) -> bool:
    """
    True when (x, y) is close enough to the staff to count as an insert.

    The accepted area extends ``margin_lines`` spacings above and below the
    staff and one spacing past either horizontal end. Without metrics every
    point is accepted.
    """
    if metrics is None:
        return True
    spacing = metrics.spacing if metrics.spacing > 0 else 12.0
    margin = spacing * margin_lines
    top = metrics.top_y - margin
    bottom = metrics.bottom_y + margin
    return top <= y <= bottom and metrics.x_start - spacing <= x <= metrics.x_end + spacing
