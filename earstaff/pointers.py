"""Multi-pointer registry: per-pointer note bindings for concurrent drags and touches."""

from __future__ import annotations

from collections.abc import Hashable, Iterator
from dataclasses import dataclass, replace

from earstaff.errors import DuplicateSessionError
from earstaff.logger_config import get_logger

logger = get_logger(__name__)

MOUSE_POINTER_KEY = "mouse"
TOUCH_POINTER_KEY = "touch"


def pointer_key(pointer_id: Hashable | None = None, pointer_type: str = "mouse") -> Hashable:
    """
    Registry key for a pointer event.

    The device-reported id is used when present; otherwise a synthetic key
    per device type ("mouse" or "touch").
    """
    if pointer_id is not None:
        return pointer_id
    return TOUCH_POINTER_KEY if pointer_type == "touch" else MOUSE_POINTER_KEY


@dataclass(frozen=True)
class PointerEntry:
    """
    Last-known binding of one pointer.

    Attributes:
        key:          Pointer registry key.
        note:         Last pitch token reported for this pointer.
        staff_index:  Note index the pointer is editing (None while unresolved).
        insert_index: Insert position resolved at pointer-down, if any.
        voice_index:  Voice the pointer is editing.
    """

    key: Hashable
    note: str | None
    staff_index: int | None = None
    insert_index: int | None = None
    voice_index: int = 0


class MultiPointerRegistry:
    """Independent entries per pointer; one pointer never touches another's entry."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, PointerEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[PointerEntry]:
        return iter(list(self._entries.values()))

    def get(self, key: Hashable) -> PointerEntry | None:
        return self._entries.get(key)

    def start(
        self,
        key: Hashable,
        note: str | None,
        staff_index: int | None = None,
        insert_index: int | None = None,
        voice_index: int = 0,
    ) -> PointerEntry:
        """
        Bind ``key`` to a note at pointer-down.

        Raises:
            DuplicateSessionError: If ``key`` is already bound.
        """
        if key in self._entries:
            logger.warning("Pointer %r pressed again before release; keeping the first binding", key)
            raise DuplicateSessionError(key, "pointer is already bound")
        entry = PointerEntry(
            key=key,
            note=note,
            staff_index=staff_index,
            insert_index=insert_index,
            voice_index=voice_index,
        )
        self._entries[key] = entry
        return entry

    def move(
        self,
        key: Hashable,
        note: str | None,
        staff_index: int | None = None,
        insert_index: int | None = None,
    ) -> PointerEntry | None:
        """
        Record a new pitch for a bound pointer.

        The stored indices are kept; the given ones only fill indices that
        were never resolved. Returns the updated entry, or None when the
        pointer is unknown or its note did not change.
        """
        entry = self._entries.get(key)
        if entry is None or entry.note == note:
            return None
        updated = replace(
            entry,
            note=note,
            staff_index=entry.staff_index if entry.staff_index is not None else staff_index,
            insert_index=entry.insert_index if entry.insert_index is not None else insert_index,
        )
        self._entries[key] = updated
        return updated

    def end(self, key: Hashable) -> PointerEntry | None:
        """Remove and return the entry for ``key`` (pointer-up or cancel)."""
        return self._entries.pop(key, None)

    cancel = end

    def clear(self) -> None:
        self._entries.clear()
