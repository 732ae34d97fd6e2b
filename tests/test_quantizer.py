"""Unit tests for the pitch-class quantizer."""

import pytest

from earstaff.quantizer import (
    CHROMATIC_PITCH_CLASSES,
    PitchClassQuantizer,
    diatonic_pitch_classes,
    pitch_class_from_token,
)

C_MAJOR = frozenset({0, 2, 4, 5, 7, 9, 11})


def test_allowed_preview_is_returned_unchanged() -> None:
    quantizer = PitchClassQuantizer(C_MAJOR)
    assert quantizer.quantize(60, direction=1) == 60
    assert quantizer.quantize(64, direction=-1) == 64


def test_direction_decides_neighbour() -> None:
    quantizer = PitchClassQuantizer(C_MAJOR)
    assert quantizer.quantize(61, direction=1) == 62
    assert quantizer.quantize(61, direction=-1) == 60


def test_no_direction_searches_both_ways_upward_first() -> None:
    quantizer = PitchClassQuantizer(C_MAJOR)
    assert quantizer.quantize(61) == 62
    assert quantizer.quantize(66) == 67


def test_direction_from_last_midi() -> None:
    quantizer = PitchClassQuantizer(["C", "G"])
    assert quantizer.quantize(62, last_midi=61) == 67
    assert quantizer.quantize(62, last_midi=63) == 60
    assert quantizer.quantize(62, direction=1) == 67
    assert quantizer.quantize(62, direction=-1) == 60


def test_explicit_direction_beats_last_midi() -> None:
    quantizer = PitchClassQuantizer(["C", "G"])
    assert quantizer.quantize(62, last_midi=61, direction=-1) == 60


def test_falls_back_to_opposite_direction_at_range_edge() -> None:
    quantizer = PitchClassQuantizer([0], midi_min=60, midi_max=64)
    assert quantizer.quantize(62, direction=1) == 60


def test_no_allowed_pitch_in_range() -> None:
    quantizer = PitchClassQuantizer([6], midi_min=60, midi_max=64)
    assert quantizer.quantize(62, direction=1) == 62
    assert quantizer.quantize(62, direction=1, base_midi=61) == 62


def test_clamps_to_range() -> None:
    quantizer = PitchClassQuantizer.chromatic()
    assert quantizer.quantize(200) == 96
    assert quantizer.quantize(-5) == 36
    assert quantizer.is_chromatic


@pytest.mark.parametrize("allowed", [C_MAJOR, frozenset({0, 7}), frozenset({3}), CHROMATIC_PITCH_CLASSES])
def test_results_are_allowed_and_follow_direction(allowed: frozenset) -> None:
    quantizer = PitchClassQuantizer(allowed)
    for preview in range(30, 100):
        for direction in (-1, 0, 1):
            result = quantizer.quantize(preview, direction=direction)
            assert quantizer.midi_min <= result <= quantizer.midi_max
            assert result % 12 in allowed
            clamped = quantizer.clamp(preview)
            if direction > 0 and any(m % 12 in allowed for m in range(clamped, quantizer.midi_max + 1)):
                assert result >= clamped
            if direction < 0 and any(m % 12 in allowed for m in range(quantizer.midi_min, clamped + 1)):
                assert result <= clamped


def test_callable_form() -> None:
    quantizer = PitchClassQuantizer(C_MAJOR)
    assert quantizer(preview_midi=61, direction=-1) == 60


def test_invalid_construction() -> None:
    with pytest.raises(ValueError):
        PitchClassQuantizer([])
    with pytest.raises(ValueError):
        PitchClassQuantizer(C_MAJOR, midi_min=80, midi_max=70)
    with pytest.raises(ValueError):
        PitchClassQuantizer(["H"])


def test_pitch_class_tokens() -> None:
    assert pitch_class_from_token(13) == 1
    assert pitch_class_from_token("-1") == 11
    assert pitch_class_from_token("F#") == 6
    assert pitch_class_from_token("Bb") == 10
    assert pitch_class_from_token("Eb4") == 3
    assert pitch_class_from_token("Cb") == 11
    with pytest.raises(ValueError):
        pitch_class_from_token(True)
    with pytest.raises(ValueError):
        pitch_class_from_token("do")


def test_diatonic_pitch_classes() -> None:
    assert diatonic_pitch_classes("D", "major") == frozenset({2, 4, 6, 7, 9, 11, 1})
    assert diatonic_pitch_classes("A", "minor") == frozenset({9, 11, 0, 2, 4, 5, 7})
    assert diatonic_pitch_classes("Bb") == frozenset({10, 0, 2, 3, 5, 7, 9})


def test_from_scale() -> None:
    quantizer = PitchClassQuantizer.from_scale("G", "major")
    assert quantizer.quantize(65, direction=1) == 66
    assert not quantizer.is_chromatic
