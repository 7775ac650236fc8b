from __future__ import annotations

from datetime import timedelta

import pytest


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("30m", timedelta(minutes=30)),
        ("10s", timedelta(seconds=10)),
        ("2h30m", timedelta(hours=2, minutes=30)),
        ("1.5m", timedelta(seconds=90)),
        ("250ms", timedelta(milliseconds=250)),
        ("0", timedelta(0)),
    ],
)
def test_parse_duration(raw, expected) -> None:
    from receiver.core.time_window import parse_duration

    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["", "30", "abc", "10x", "m5", "5m garbage"])
def test_parse_duration_rejects_invalid(raw) -> None:
    from receiver.core.time_window import parse_duration

    with pytest.raises(ValueError):
        parse_duration(raw)


def test_prom_duration_picks_largest_whole_unit() -> None:
    from receiver.core.time_window import prom_duration

    assert prom_duration(timedelta(hours=1)) == "1h"
    assert prom_duration(timedelta(minutes=30)) == "30m"
    assert prom_duration(timedelta(minutes=90)) == "90m"
    assert prom_duration(timedelta(seconds=45)) == "45s"


def test_format_duration() -> None:
    from receiver.core.time_window import format_duration

    assert format_duration(timedelta(minutes=30)) == "30m0s"
    assert format_duration(timedelta(hours=1)) == "1h0m0s"
    assert format_duration(timedelta(seconds=45)) == "45s"
