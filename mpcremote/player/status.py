from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import unquote, unquote_to_bytes

from ..core.config import DEFAULT_PLAYING_LABELS
from ..core.models import PlaybackSnapshot

_ON_STATUS = re.compile(r"OnStatus\((.*)\)", re.DOTALL)
_QUOTES = ("'", '"')

# Field positions inside OnStatus(...).
F_TITLE = 0
F_STATE = 1
F_POS_MS = 2
F_POS_STR = 3
F_DUR_MS = 4
F_DUR_STR = 5
F_MUTED = 6
F_VOLUME = 7
F_FILE_PATH = 8


def split_status_fields(text: str) -> list[str] | None:
    """Split the argument list of `OnStatus(...)` into trimmed fields.

    - Commas inside '...' or "..." do not split.
    - A backslash shields the next character from quote/comma handling.
      `\\'` and `\\"` decode to the bare quote; other pairs are kept as-is so
      Windows paths survive.
    """

    if not isinstance(text, str):
        return None
    m = _ON_STATUS.search(text)
    if m is None or not m.group(1):
        return None

    fields: list[str] = []
    buf: list[str] = []
    escaped = False
    quote: str | None = None

    for ch in m.group(1):
        if escaped:
            if ch in _QUOTES:
                buf[-1] = ch
            else:
                buf.append(ch)
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            buf.append(ch)
            continue
        if ch in _QUOTES:
            if quote is None:
                quote = ch
                continue
            if quote == ch:
                quote = None
                continue
        if ch == "," and quote is None:
            fields.append("".join(buf).strip())
            buf.clear()
            continue
        buf.append(ch)

    fields.append("".join(buf).strip())
    return fields


def decode_field(value: str) -> str:
    """Percent-decode as UTF-8, falling back to GBK for legacy builds."""

    try:
        return unquote(value, encoding="utf-8", errors="strict")
    except UnicodeDecodeError:
        pass
    try:
        return unquote_to_bytes(value).decode("gbk")
    except UnicodeDecodeError:
        return value


def _to_int(value: str) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def normalize_status(text: str, *, playing_labels: Iterable[str] = DEFAULT_PLAYING_LABELS) -> PlaybackSnapshot | None:
    fields = split_status_fields(text)
    if fields is None:
        return None

    def _field(i: int, default: str = "") -> str:
        return fields[i] if i < len(fields) and fields[i] != "" else default

    play_state = decode_field(_field(F_STATE))
    return PlaybackSnapshot(
        file_path=decode_field(_field(F_FILE_PATH)),
        position_ms=max(0, _to_int(_field(F_POS_MS, "0"))),
        duration_ms=max(0, _to_int(_field(F_DUR_MS, "0"))),
        is_playing=play_state in set(playing_labels),
        window_title=decode_field(_field(F_TITLE)),
        play_state=play_state,
        position_str=_field(F_POS_STR, "00:00:00"),
        duration_str=_field(F_DUR_STR, "00:00:00"),
        muted=_to_int(_field(F_MUTED, "0")) == 1,
        volume=_to_int(_field(F_VOLUME, "0")),
    )
