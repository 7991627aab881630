from __future__ import annotations

from dataclasses import dataclass

from .paths import folder_of


@dataclass(frozen=True)
class PlaybackSnapshot:
    file_path: str
    position_ms: int
    duration_ms: int
    is_playing: bool
    window_title: str = ""
    play_state: str = ""
    position_str: str = "00:00:00"
    duration_str: str = "00:00:00"
    muted: bool = False
    volume: int = 0

    @property
    def folder(self) -> str:
        return folder_of(self.file_path)

    @property
    def progress_percent(self) -> float:
        if self.duration_ms <= 0:
            return 0.0
        return min(100.0, self.position_ms / self.duration_ms * 100)

    def delta_key(self) -> tuple[int, str, str]:
        """Fields whose change makes a status update worth emitting."""

        return (self.position_ms, self.play_state, self.file_path)


@dataclass(frozen=True)
class TelemetryEvent:
    kind: str  # "status" | "error" | "state"
    snapshot: PlaybackSnapshot | None = None
    context: str | None = None  # "fetch" | "parse" | "worker"
    message: str | None = None
    state: str | None = None  # "started" | "stopped"

    @staticmethod
    def status(snapshot: PlaybackSnapshot) -> "TelemetryEvent":
        return TelemetryEvent(kind="status", snapshot=snapshot)

    @staticmethod
    def error(context: str, message: str) -> "TelemetryEvent":
        return TelemetryEvent(kind="error", context=context, message=message)

    @staticmethod
    def changed(state: str) -> "TelemetryEvent":
        return TelemetryEvent(kind="state", state=state)


@dataclass(frozen=True)
class SkipAction:
    kind: str  # "seek" | "advance"
    reason: str  # "new_file_head" | "head" | "tail"
    target_ms: int | None = None
    percent: float | None = None
    command_id: int | None = None
