"""Unit tests for the selectable registry and the insertion-index resolver."""

from earstaff.models import BoundingBox
from earstaff.selectable import SelectableItem, SelectableRegistry, determine_insert_index, hit_padding


def _box(center_x: float, center_y: float = 50.0) -> BoundingBox:
    return BoundingBox(x=center_x - 5.0, y=center_y - 5.0, width=10.0, height=10.0)


def _sample_items(*centers: float) -> list[SelectableItem]:
    return [
        SelectableItem(index=i, voice_index=0, note_index=i, bbox=_box(center))
        for i, center in enumerate(centers)
    ]


def test_insert_index_examples() -> None:
    items = _sample_items(10.0, 30.0, 50.0)
    assert determine_insert_index(31.0, items) == 2
    assert determine_insert_index(5.0, items) == 0
    assert determine_insert_index(200.0, items) == 3


def test_insert_index_on_center_goes_before() -> None:
    assert determine_insert_index(30.0, _sample_items(10.0, 30.0, 50.0)) == 1


def test_insert_index_without_glyphs_is_zero() -> None:
    assert determine_insert_index(100.0, []) == 0
    assert determine_insert_index(100.0, [], length=4) == 0


def test_insert_index_appends_at_length() -> None:
    assert determine_insert_index(200.0, _sample_items(10.0, 30.0), length=5) == 5


def test_insert_index_uses_sequence_order() -> None:
    items = list(reversed(_sample_items(10.0, 30.0, 50.0)))
    assert determine_insert_index(20.0, items) == 1


def test_hit_padding_floor() -> None:
    assert hit_padding(4.0) == 4.0
    assert hit_padding(20.0) == 7.0


def test_registry_rebuild_and_lookup() -> None:
    registry = SelectableRegistry()
    registry.rebuild([[_box(10.0), None, _box(50.0)], [_box(30.0, 120.0)]])
    assert len(registry) == 3
    assert registry.find(0, 2).bbox.center_x == 50.0
    assert registry.find(0, 1) is None
    assert [item.note_index for item in registry.for_voice(0)] == [0, 2]
    assert registry.get(7) is None


def test_registry_hit_test_with_padding() -> None:
    registry = SelectableRegistry()
    registry.rebuild([[_box(10.0), _box(30.0)]])
    assert registry.hit_test(17.0, 50.0) is None
    assert registry.hit_test(17.0, 50.0, padding=4.0).note_index == 0
    assert registry.hit_test(100.0, 50.0, padding=4.0) is None


def test_registry_find_closest() -> None:
    registry = SelectableRegistry()
    assert registry.find_closest(0.0, 0.0) is None
    registry.rebuild([[_box(10.0), _box(30.0), _box(50.0)]])
    item, distance = registry.find_closest_details(33.0, 54.0)
    assert item.note_index == 1
    assert distance == 5.0


def test_registry_insert_index_per_voice() -> None:
    registry = SelectableRegistry()
    registry.rebuild([[_box(10.0), _box(30.0)], [_box(100.0)]])
    assert registry.insert_index(20.0, voice_index=0) == 1
    assert registry.insert_index(20.0, voice_index=1) == 0
    assert registry.insert_index(500.0, voice_index=0, length=2) == 2
