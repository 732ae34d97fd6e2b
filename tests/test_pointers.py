"""Unit tests for the multi-pointer registry."""

import pytest

from earstaff.errors import DuplicateSessionError
from earstaff.pointers import MultiPointerRegistry, pointer_key


def test_pointer_key_fallbacks() -> None:
    assert pointer_key(7) == 7
    assert pointer_key(None) == "mouse"
    assert pointer_key(None, "touch") == "touch"
    assert pointer_key(0, "touch") == 0


def test_start_rejects_duplicate_key() -> None:
    registry = MultiPointerRegistry()
    registry.start(1, "C4", staff_index=0)
    with pytest.raises(DuplicateSessionError):
        registry.start(1, "D4", staff_index=1)
    assert registry.get(1).note == "C4"


def test_entries_are_independent() -> None:
    registry = MultiPointerRegistry()
    registry.start(1, "C4", staff_index=0)
    registry.start(2, "E4", staff_index=1)
    registry.move(1, "Eb4")
    assert registry.get(1).note == "Eb4"
    assert registry.get(2).note == "E4"
    assert registry.end(2).staff_index == 1
    assert 2 not in registry
    assert 1 in registry
    assert len(registry) == 1


def test_move_reports_changes_only() -> None:
    registry = MultiPointerRegistry()
    assert registry.move(1, "C4") is None
    registry.start(1, "C4", staff_index=0)
    assert registry.move(1, "C4") is None
    assert registry.move(1, "D4").note == "D4"


def test_move_keeps_resolved_indices() -> None:
    registry = MultiPointerRegistry()
    registry.start(1, "C4", staff_index=0)
    entry = registry.move(1, "D4", staff_index=3, insert_index=2)
    assert entry.staff_index == 0
    assert entry.insert_index == 2


def test_cancel_and_clear() -> None:
    registry = MultiPointerRegistry()
    registry.start("mouse", "C4")
    registry.start("touch", "G4")
    assert registry.cancel("mouse").note == "C4"
    assert registry.cancel("mouse") is None
    assert [entry.key for entry in registry] == ["touch"]
    registry.clear()
    assert len(registry) == 0
