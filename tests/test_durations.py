"""Unit tests for duration quantization."""

import pytest

from earstaff.durations import (
    duration_from_denom,
    duration_from_quarter_length,
    resolve_duration,
)


def test_exact_quarter() -> None:
    match = resolve_duration(0.25)
    assert (match.code, match.dots, match.exact) == ("q", 0, True)


def test_exact_dotted_values() -> None:
    assert resolve_duration(0.375).vexflow_code == "qd"
    assert resolve_duration(0.4375).vexflow_code == "qdd"
    assert resolve_duration(1.5).vexflow_code == "wd"


def test_inexact_value_is_flagged() -> None:
    match = resolve_duration(0.3)
    assert match.code == "q"
    assert match.dots == 0
    assert not match.exact
    assert match.diff == pytest.approx(0.05)


def test_non_positive_duration_raises() -> None:
    with pytest.raises(ValueError):
        resolve_duration(0)


def test_duration_helpers() -> None:
    assert duration_from_denom(8, 1) == pytest.approx(0.1875)
    assert duration_from_quarter_length(1.5).vexflow_code == "qd"
