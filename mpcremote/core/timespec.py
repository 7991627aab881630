from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

from .errors import ParseError

# Interval delimiters: ASCII dash, tilde, and the CJK "to".
_RANGE_DELIMITERS = re.compile(r"[-~至]")
_DIGITS = re.compile(r"^\d+$")


@dataclass(frozen=True)
class Point:
    """A single boundary timestamp in milliseconds."""

    ms: int

    @property
    def resume_ms(self) -> int:
        return self.ms


@dataclass(frozen=True)
class Range:
    """Half-open interval [start_ms, end_ms) that is skipped over when entered."""

    start_ms: int
    end_ms: int

    def __post_init__(self) -> None:
        if self.end_ms <= self.start_ms:
            raise ValueError(f"Range end ({self.end_ms}) must be > start ({self.start_ms})")

    @property
    def resume_ms(self) -> int:
        return self.end_ms

    def contains(self, position_ms: int) -> bool:
        return self.start_ms <= position_ms < self.end_ms


TimeSpec = Union[Point, Range]


def hhmmss_to_ms(text: str) -> int | None:
    """Convert `SS`, `M:S` or `H:M:S` to milliseconds.

    Components may overflow (e.g. `0:90` is 90 seconds); the total is what
    counts, `ms_to_hhmmss` renders the carried form.
    """

    if not isinstance(text, str):
        return None
    s = text.strip()
    if not s:
        return None

    parts = [p.strip() for p in s.split(":")]
    if not all(_DIGITS.match(p) for p in parts):
        return None

    nums = [int(p) for p in parts]
    if len(nums) == 1:
        h, m, sec = 0, 0, nums[0]
    elif len(nums) == 2:
        h, m, sec = 0, nums[0], nums[1]
    elif len(nums) == 3:
        h, m, sec = nums
    else:
        return None

    return (h * 3600 + m * 60 + sec) * 1000


def ms_to_hhmmss(ms: int) -> str:
    total = max(0, int(ms)) // 1000
    h = total // 3600
    m = (total % 3600) // 60
    s = total % 60
    return f"{h:02d}:{m:02d}:{s:02d}"


def parse(raw: object) -> TimeSpec | None:
    """Parse a point (`90`, `1:30`, `00:01:30`) or interval (`1:45-2:50`).

    Returns None for anything malformed, including intervals whose start is
    not strictly before the end.
    """

    if not isinstance(raw, str):
        return None
    s = raw.strip()
    if not s:
        return None

    if _RANGE_DELIMITERS.search(s):
        parts = [p.strip() for p in _RANGE_DELIMITERS.split(s)]
        if len(parts) != 2:
            return None
        start = hhmmss_to_ms(parts[0])
        end = hhmmss_to_ms(parts[1])
        if start is None or end is None or start >= end:
            return None
        return Range(start_ms=start, end_ms=end)

    ms = hhmmss_to_ms(s)
    return Point(ms=ms) if ms is not None else None


def require(raw: object) -> TimeSpec:
    spec = parse(raw)
    if spec is None:
        raise ParseError(f"invalid time expression {raw!r} (expected e.g. 02:30 or 01:45-02:50)")
    return spec


def format(spec: TimeSpec | None) -> str:  # noqa: A001 - mirrors parse()
    if spec is None:
        return ""
    if isinstance(spec, Range):
        return f"{ms_to_hhmmss(spec.start_ms)}-{ms_to_hhmmss(spec.end_ms)}"
    return ms_to_hhmmss(spec.ms)


def normalize(raw: str) -> str:
    """Canonical form of `raw`, or `raw` unchanged when it does not parse."""

    spec = parse(raw)
    return format(spec) if spec is not None else raw
