"""Shared duration parsing utilities."""

from __future__ import annotations

import re
from datetime import timedelta

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string (e.g. '30s', '1h', '2h30m', '1.5m', '250ms') into a timedelta.

    A bare '0' is accepted. Raises ValueError for anything else.
    """
    s = (value or "").strip()
    if s == "0":
        return timedelta(0)
    if not s:
        raise ValueError("empty duration")

    pos = 0
    total = 0.0
    for m in _PART.finditer(s):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(s) or pos == 0:
        raise ValueError(f"Invalid duration format: {value}")
    return timedelta(seconds=total)


def prom_duration(d: timedelta) -> str:
    """Render a timedelta as a PromQL range selector duration ('1h', '30m', '45s')."""
    seconds = int(d.total_seconds())
    if seconds and seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds and seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


def format_duration(d: timedelta) -> str:
    """Compact human form used in prompts ('30m0s', '1h0m0s', '45s')."""
    total = int(d.total_seconds())
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"
