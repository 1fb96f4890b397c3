"""Tests for human duration parsing."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from continuous_opencode.duration import format_duration, parse_duration


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2 hours", 7200),
        ("30 minutes", 1800),
        ("1 hour 30 minutes", 5400),
        ("1h30m", 5400),
        ("2h", 7200),
        ("45m", 2700),
        ("90 mins", 5400),
        ("1H15M", 4500),
    ],
)
def test_parse_duration_examples(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "soon", "h", "m", "ten minutes", "-"])
def test_parse_duration_garbage_is_zero(text):
    assert parse_duration(text) == 0


def test_parse_duration_none_is_zero():
    assert parse_duration(None) == 0


@given(
    hours=st.integers(min_value=0, max_value=500),
    minutes=st.integers(min_value=0, max_value=59),
)
@settings(max_examples=50)
def test_property_compact_form_sums_components(hours: int, minutes: int):
    assert parse_duration(f"{hours}h{minutes}m") == hours * 3600 + minutes * 60


@given(st.text(max_size=40))
@settings(max_examples=100)
def test_property_never_raises_and_never_negative(text: str):
    assert parse_duration(text) >= 0


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "0s"), (42, "42s"), (200, "3m20s"), (3900, "1h05m"), (-5, "0s")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
