"""Staff geometry: clef line mapping, the geometry capability interface, and screen transforms."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Final, TypeVar

from earstaff.errors import MissingCapabilityError
from earstaff.models import StaffMetrics
from earstaff.pitch import NOTE_LETTERS

# VexFlow clef line shifts; line 0 of the key mapping is middle C on a treble staff
CLEF_LINE_SHIFTS: Final[dict[str, int]] = {
    "treble": 0,
    "bass": 6,
    "tenor": 4,
    "alto": 3,
    "soprano": 1,
    "percussion": 0,
    "mezzo-soprano": 2,
    "baritone-c": 5,
    "baritone-f": 5,
    "subbass": 7,
    "french": -1,
}

#: Key line of the top staff line; staff lines count downward from here
TOP_KEY_LINE = 5

T = TypeVar("T")


def clef_key_line(letter: str, octave: int, clef: str = "treble") -> float:
    """
    VexFlow key line of a letter/octave in ``clef`` (bottom staff line = 1, top = 5).

    Raises:
        ValueError: On an unknown clef or letter.
    """
    if clef not in CLEF_LINE_SHIFTS:
        raise ValueError(f"Unsupported clef '{clef}'. Use one of: {', '.join(sorted(CLEF_LINE_SHIFTS))}.")
    letter_index = NOTE_LETTERS.index(letter.lower())
    base_index = octave * 7 - 4 * 7
    return (base_index + letter_index) / 2 + CLEF_LINE_SHIFTS[clef]


def staff_line_for_key(letter: str, octave: int, clef: str = "treble") -> float:
    """Staff line counted from the top line (0) downward; half steps are spaces."""
    return TOP_KEY_LINE - clef_key_line(letter, octave, clef)


class StaffGeometryProvider(ABC):
    """Capability interface for converting between staff lines and staff Y."""

    @property
    @abstractmethod
    def metrics(self) -> StaffMetrics:
        """Metrics of the staff this provider describes."""

    @abstractmethod
    def y_for_line(self, line: float) -> float:
        """Staff Y of a (possibly fractional) staff line, 0 = top line."""

    @abstractmethod
    def line_for_y(self, y: float) -> float:
        """Inverse of :meth:`y_for_line`."""


class LinearStaffGeometry(StaffGeometryProvider):
    """Geometry derived purely from metrics: ``top_y + line * spacing``."""

    def __init__(self, metrics: StaffMetrics) -> None:
        if not metrics.usable:
            raise ValueError("LinearStaffGeometry needs metrics with positive spacing.")
        self._metrics = metrics

    @property
    def metrics(self) -> StaffMetrics:
        return self._metrics

    def y_for_line(self, line: float) -> float:
        return self._metrics.top_y + line * self._metrics.spacing

    def line_for_y(self, y: float) -> float:
        return (y - self._metrics.top_y) / self._metrics.spacing


def require_capability(collaborator: object, interface: type[T], role: str) -> T:
    """Return ``collaborator`` if it implements ``interface``; fail fast otherwise."""
    if not isinstance(collaborator, interface):
        raise MissingCapabilityError(
            f"{role} must implement {interface.__name__}, got {type(collaborator).__name__}."
        )
    return collaborator


@dataclass(frozen=True)
class ScreenToStaffTransform:
    """
    Screen (pointer) coordinates to staff coordinates, fixed for one render pass.

    ``staff = (screen - offset) / scale`` independently per axis.
    """

    scale_x: float = 1.0
    scale_y: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    def __post_init__(self) -> None:
        if self.scale_x <= 0 or self.scale_y <= 0:
            raise ValueError("Transform scales must be positive.")

    @classmethod
    def identity(cls) -> ScreenToStaffTransform:
        return cls()

    def to_staff(self, x: float, y: float) -> tuple[float, float]:
        return (x - self.offset_x) / self.scale_x, (y - self.offset_y) / self.scale_y

    def to_screen(self, x: float, y: float) -> tuple[float, float]:
        return x * self.scale_x + self.offset_x, y * self.scale_y + self.offset_y
