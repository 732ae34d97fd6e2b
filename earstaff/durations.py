"""Duration quantization: fractional note values to VexFlow duration codes plus dots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

DURATION_DENOMS: Final[tuple[int, ...]] = (1, 2, 4, 8, 16, 32, 64)

DURATION_CODES: Final[dict[int, str]] = {
    1: "w", 2: "h", 4: "q", 8: "8", 16: "16", 32: "32", 64: "64",
}

MAX_DOTS = 3
DURATION_TOLERANCE = 1e-6


@dataclass(frozen=True)
class DurationMatch:
    """
    Closest representable duration for a requested value.

    Attributes:
        code:  Base duration code ("w", "h", "q", "8", ...).
        base:  Denominator of the base value (1 = whole note).
        dots:  Augmentation dots, 0-3.
        diff:  Absolute distance between the requested and represented value.
        exact: True when ``diff`` is within tolerance.
    """

    code: str
    base: int
    dots: int
    diff: float
    exact: bool

    @property
    def value(self) -> float:
        return duration_from_denom(self.base, self.dots)

    @property
    def vexflow_code(self) -> str:
        """Code with one ``d`` per dot, e.g. ``"qd"`` for a dotted quarter."""
        return self.code + "d" * self.dots


def duration_from_denom(denom: int, dots: int = 0) -> float:
    """Length in whole notes of ``1/denom`` with ``dots`` augmentation dots."""
    if denom <= 0:
        raise ValueError(f"Duration denominator must be positive, got {denom}.")
    value = 1.0 / denom
    addition = value
    for _ in range(dots):
        addition /= 2
        value += addition
    return value


def resolve_duration(value: float) -> DurationMatch:
    """
    Quantize a length in whole notes to the nearest code + dot count.

    Candidates are scanned from longest to shortest with dots 0-3; the first
    exact match wins, otherwise the smallest distance.
    """
    if value <= 0:
        raise ValueError(f"Duration must be positive, got {value}.")

    best: DurationMatch | None = None
    for denom in DURATION_DENOMS:
        for dots in range(MAX_DOTS + 1):
            diff = abs(duration_from_denom(denom, dots) - value)
            exact = diff <= DURATION_TOLERANCE
            if best is None or diff < best.diff:
                best = DurationMatch(
                    code=DURATION_CODES[denom],
                    base=denom,
                    dots=dots,
                    diff=diff,
                    exact=exact,
                )
            if exact:
                return best
    assert best is not None
    return best


def duration_from_quarter_length(quarter_length: float) -> DurationMatch:
    """Quantize a music21-style quarter length (1.0 = quarter note)."""
    return resolve_duration(quarter_length / 4.0)
