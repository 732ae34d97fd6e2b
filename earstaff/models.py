"""Data models shared by the staff editing components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Operation(str, Enum):
    """Kind of sequence edit reported to the host."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class Phase(str, Enum):
    """Interaction phase attached to host notifications."""

    START = "start"
    MOVE = "move"
    COMMIT = "commit"
    CANCEL = "cancel"
    DELETE = "delete"


class DragStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


class SequenceMode(str, Enum):
    """How voices flatten into the pitch sequence handed to the host."""

    MELODIC = "melodic"
    HARMONIC = "harmonic"


@dataclass
class NoteSpec:
    """
    One musical event as understood by the renderer.

    ``keys`` are VexFlow-style pitch keys (``"c#/4"``); ``accidentals`` is the
    parallel list of displayed accidental symbols (``None`` = nothing drawn).
    ``midis`` is an optional cache that must agree with ``keys`` + spelling.
    """

    keys: list[str]
    duration: str = "q"
    accidentals: list[str | None] = field(default_factory=list)
    midis: list[int] | None = None
    dots: int = 0
    is_rest: bool = False
    clef: str = "treble"

    def __post_init__(self) -> None:
        self.keys = list(self.keys)
        accidentals = list(self.accidentals)[: len(self.keys)]
        accidentals.extend([None] * (len(self.keys) - len(accidentals)))
        self.accidentals = accidentals
        if self.midis is not None:
            self.midis = list(self.midis)
        if not 0 <= self.dots <= 3:
            raise ValueError(f"dots must be between 0 and 3, got {self.dots}.")

    def clone(self, include_midis: bool = True) -> NoteSpec:
        """Deep copy of the note; list fields never alias the original."""
        return NoteSpec(
            keys=list(self.keys),
            duration=self.duration,
            accidentals=list(self.accidentals),
            midis=list(self.midis) if include_midis and self.midis is not None else None,
            dots=self.dots,
            is_rest=self.is_rest,
            clef=self.clef,
        )

    def restore_from(self, snapshot: NoteSpec) -> None:
        """Overwrite this note in place with the contents of ``snapshot``."""
        self.keys = list(snapshot.keys)
        self.duration = snapshot.duration
        self.accidentals = list(snapshot.accidentals)
        self.midis = list(snapshot.midis) if snapshot.midis is not None else None
        self.dots = snapshot.dots
        self.is_rest = snapshot.is_rest
        self.clef = snapshot.clef


@dataclass
class Voice:
    """An ordered, time-ordered list of notes on one staff."""

    note_specs: list[NoteSpec] = field(default_factory=list)
    clef: str = "treble"
    index: int = 0

    def __len__(self) -> int:
        return len(self.note_specs)

    def index_of(self, spec: NoteSpec) -> int | None:
        """Position of ``spec`` by identity, or None if it is no longer in the voice."""
        for position, candidate in enumerate(self.note_specs):
            if candidate is spec:
                return position
        return None

    def clone(self) -> Voice:
        return Voice(
            note_specs=[spec.clone() for spec in self.note_specs],
            clef=self.clef,
            index=self.index,
        )


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in staff coordinates."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    def contains(self, px: float, py: float, padding: float = 0.0) -> bool:
        return (
            self.x - padding <= px <= self.x + self.width + padding
            and self.y - padding <= py <= self.y + self.height + padding
        )


@dataclass(frozen=True)
class StaffMetrics:
    """
    Geometry of the rendered staff in staff (unscaled) coordinates.

    Attributes:
        top_y:    Y of the top staff line (line 0).
        bottom_y: Y of the bottom staff line (line 4).
        spacing:  Distance between adjacent staff lines.
        x_start:  Left edge of the staff.
        x_end:    Right edge of the staff.
        clef:     Active clef name.
    """

    top_y: float
    bottom_y: float
    spacing: float
    x_start: float
    x_end: float
    clef: str = "treble"

    @property
    def usable(self) -> bool:
        return self.spacing > 0


@dataclass(frozen=True)
class DiffEntry:
    """One positional difference between two pitch-sequence snapshots."""

    type: Operation
    index: int
    note: str | None = None


@dataclass(frozen=True)
class InputMeta:
    """Metadata delivered with every host notification."""

    operation: Operation
    phase: Phase
    note_index: int | None = None
    insert_index: int | None = None
    pointer_id: object | None = None
    source: str = "staff"
