from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Protocol

from .config import DetectorConfig
from .models import PlaybackSnapshot, SkipAction
from .rules import SkipRule
from .timespec import Point, Range, TimeSpec, ms_to_hhmmss


class CommandSink(Protocol):
    def send_command(self, command_id: int) -> object: ...

    def send_seek_percent(self, percent: float) -> object: ...


@dataclass
class DetectorState:
    last_file_path: str = ""
    last_position_ms: int = 0
    skip_in_flight: bool = False
    last_skip_at: float | None = None
    # Monotonic deadline until which an issued command is assumed in flight.
    settle_until: float = 0.0


class SkipDetector:
    """Boundary-crossing detector for head/tail skip rules.

    Fed one `PlaybackSnapshot` per telemetry update. Compares the previous and
    current position so a point boundary fires once when crossed, and range
    boundaries fire while the position is inside them. After any command the
    detector waits out a settle window before looking again.

    Phases:
    - idle: evaluating snapshots
    - awaiting_confirmation: a command was issued; snapshots are ignored until
      the settle window has passed
    """

    def __init__(
        self,
        *,
        rule_lookup: Callable[[str], SkipRule | None],
        channel: CommandSink,
        config: DetectorConfig | None = None,
        time_fn: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ) -> None:
        self._rule_lookup = rule_lookup
        self._channel = channel
        self.config = config or DetectorConfig()
        self._time_fn = time_fn
        self.debug = debug
        self.state = DetectorState()

    @property
    def phase(self) -> str:
        if self.state.skip_in_flight and float(self._time_fn()) < self.state.settle_until:
            return "awaiting_confirmation"
        return "idle"

    def reset(self) -> None:
        """Forget the tracked file so edited rules apply on the next snapshot."""

        self.state = DetectorState()

    def process(self, snap: PlaybackSnapshot) -> SkipAction | None:
        if not snap.is_playing or snap.duration_ms <= 0:
            return None

        now = float(self._time_fn())
        st = self.state

        if st.skip_in_flight:
            if now < st.settle_until:
                return None
            st.skip_in_flight = False
        if st.last_skip_at is not None and (now - st.last_skip_at) * 1000 < self.config.cooldown_ms:
            return None

        pos = int(snap.position_ms)
        path = snap.file_path or ""

        jumped = abs(pos - st.last_position_ms) > self.config.new_file_jump_ms
        if path != st.last_file_path or jumped:
            if self.debug:
                why = "new file" if path != st.last_file_path else "position jump"
                print(f"[debug] skip: {why} at {ms_to_hhmmss(pos)} folder={snap.folder!r}")
            st.last_file_path = path
            st.last_position_ms = pos
            if pos < self.config.start_window_ms:
                rule = self._rule_lookup(path)
                if rule is not None and rule.head is not None:
                    target = rule.head.resume_ms
                    if target > pos:
                        return self._seek(snap, target, reason="new_file_head", now=now)
            return None

        rule = self._rule_lookup(path)
        if rule is None:
            st.last_position_ms = pos
            return None

        if rule.head is not None:
            target = self._head_target(rule.head, pos)
            if target is not None and target > pos:
                return self._seek(snap, target, reason="head", now=now)

        if rule.tail is not None:
            tail = rule.tail
            if isinstance(tail, Range):
                if tail.contains(pos):
                    return self._seek(snap, tail.end_ms, reason="tail", now=now)
            elif st.last_position_ms < tail.ms <= pos:
                return self._advance(pos, tail, now=now)

        st.last_position_ms = pos
        return None

    def _head_target(self, head: TimeSpec, pos: int) -> int | None:
        if isinstance(head, Range):
            return head.end_ms if head.contains(pos) else None
        if pos < head.ms and pos < self.config.head_point_window_ms:
            return head.ms
        return None

    def _enter_settle(self, now: float, settle_ms: int) -> None:
        st = self.state
        st.skip_in_flight = True
        st.last_skip_at = now
        st.settle_until = now + settle_ms / 1000.0

    def _seek(self, snap: PlaybackSnapshot, target_ms: int, *, reason: str, now: float) -> SkipAction:
        percent = max(0.0, min(100.0, target_ms / snap.duration_ms * 100))
        self._enter_settle(now, self.config.seek_settle_ms)
        # Assume the seek lands; the next snapshot is compared against the target.
        self.state.last_position_ms = target_ms
        if self.debug:
            print(
                f"[debug] skip: {reason} {ms_to_hhmmss(snap.position_ms)} -> {ms_to_hhmmss(target_ms)} ({percent:.2f}%)"
            )
        self._channel.send_seek_percent(percent)
        return SkipAction(kind="seek", reason=reason, target_ms=target_ms, percent=percent)

    def _advance(self, pos: int, tail: Point, *, now: float) -> SkipAction:
        command_id = self.config.next_command_id
        self._enter_settle(now, self.config.advance_settle_ms)
        # The crossing is consumed; a later snapshot past the point must not re-fire.
        self.state.last_position_ms = pos
        if self.debug:
            print(f"[debug] skip: tail crossed {ms_to_hhmmss(tail.ms)}; next file (wm_command={command_id})")
        self._channel.send_command(command_id)
        return SkipAction(kind="advance", reason="tail", command_id=command_id)
