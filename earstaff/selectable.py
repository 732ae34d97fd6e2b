"""Selectable registry of rendered noteheads and the insertion-index resolver."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from earstaff.logger_config import get_logger, log_structured
from earstaff.models import BoundingBox

logger = get_logger(__name__)

MIN_HIT_PADDING = 4.0
HIT_PADDING_FACTOR = 0.35


@dataclass(frozen=True)
class SelectableItem:
    """A rendered notehead mapped back to its position in the voices."""

    index: int
    voice_index: int
    note_index: int
    bbox: BoundingBox


def hit_padding(spacing: float) -> float:
    """Padding added around noteheads for hit testing: ``max(4, spacing * 0.35)``."""
    return max(MIN_HIT_PADDING, spacing * HIT_PADDING_FACTOR)


def determine_insert_index(
    x: float,
    items: Iterable[SelectableItem],
    length: int | None = None,
) -> int:
    """
    Position in the sequence at which a note placed at ``x`` belongs.

    Items are considered in sequence order; the first whose center X is at
    or right of ``x`` gives the index. When no item qualifies the note is
    appended at ``length`` (defaults to the number of items). With no
    rendered items at all the result is 0.
    """
    ordered = sorted(items, key=lambda item: item.note_index)
    if not ordered:
        return 0
    append_at = length if length is not None else len(ordered)
    if x is None or not math.isfinite(x):
        return append_at
    for item in ordered:
        if item.bbox.center_x >= x:
            return item.note_index
    return append_at


class SelectableRegistry:
    """
    Per-render mapping from notehead bounding boxes to (voice, note) indices.

    The registry is rebuilt by the synchronizer after every render pass and
    is never carried across renders.
    """

    def __init__(self) -> None:
        self._items: list[SelectableItem] = []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> tuple[SelectableItem, ...]:
        return tuple(self._items)

    def reset(self) -> None:
        self._items = []

    def add(self, voice_index: int, note_index: int, bbox: BoundingBox) -> SelectableItem:
        item = SelectableItem(
            index=len(self._items),
            voice_index=voice_index,
            note_index=note_index,
            bbox=bbox,
        )
        self._items.append(item)
        return item

    def rebuild(self, boxes: Sequence[Sequence[BoundingBox | None]]) -> None:
        """Replace all items from per-voice lists of note bounding boxes (None = not drawn)."""
        self.reset()
        for voice_index, voice_boxes in enumerate(boxes):
            for note_index, bbox in enumerate(voice_boxes):
                if bbox is not None:
                    self.add(voice_index, note_index, bbox)
        logger.debug("Selectable registry rebuilt with %d items", len(self._items))

    def get(self, index: int) -> SelectableItem | None:
        if 0 <= index < len(self._items):
            return self._items[index]
        return None

    def find(self, voice_index: int, note_index: int) -> SelectableItem | None:
        for item in self._items:
            if item.voice_index == voice_index and item.note_index == note_index:
                return item
        return None

    def for_voice(self, voice_index: int) -> list[SelectableItem]:
        return sorted(
            (item for item in self._items if item.voice_index == voice_index),
            key=lambda item: item.note_index,
        )

    def hit_test(self, x: float, y: float, padding: float = 0.0) -> SelectableItem | None:
        """Item whose padded box contains the point; the nearest center wins on overlap."""
        hits = [item for item in self._items if item.bbox.contains(x, y, padding)]
        if not hits:
            return None
        return min(hits, key=lambda item: math.hypot(item.bbox.center_x - x, item.bbox.center_y - y))

    def find_closest_details(self, x: float, y: float) -> tuple[SelectableItem, float] | None:
        """Nearest item by notehead center and its distance, or None when empty."""
        if not self._items:
            return None
        centers = np.array([(item.bbox.center_x, item.bbox.center_y) for item in self._items])
        distances = np.hypot(centers[:, 0] - x, centers[:, 1] - y)
        best = int(np.argmin(distances))
        log_structured(logger, "find_closest", {"x": x, "y": y, "index": best, "distance": float(distances[best])})
        return self._items[best], float(distances[best])

    def find_closest(self, x: float, y: float) -> SelectableItem | None:
        details = self.find_closest_details(x, y)
        return details[0] if details else None

    def insert_index(self, x: float, voice_index: int = 0, length: int | None = None) -> int:
        return determine_insert_index(x, self.for_voice(voice_index), length)
