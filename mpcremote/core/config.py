from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError

DEFAULT_PLAYING_LABELS = ("Playing", "正在播放")
TELEMETRY_MODES = ("worker", "timer")


def resolve_profile_config_path(*, repo_root: Path, base_name: str, profile: str | None) -> tuple[Path, str]:
    """Pick `config/<base>.<profile>.json` when it exists, else `config/<base>.json`.

    The reason ("profile" / "fallback") is echoed in the `[config]` line.
    Profile names are case-insensitive; a blank profile means none.
    """

    default = repo_root / "config" / f"{base_name}.json"
    name = str(profile or "").strip().lower()
    candidate = default.with_name(f"{base_name}.{name}.json") if name else None
    if candidate is not None and candidate.exists():
        return candidate, "profile"
    return default, "fallback"


def load_settings_profile(*, repo_root: Path, profile: str | None = None, path_override: Path | None = None) -> Settings:
    """Load settings config honoring per-profile files and optional overrides."""

    if path_override is not None:
        print(f"[config] profile={profile or '-'} settings={path_override} (override)")
        return load_settings(path_override, repo_root=repo_root)
    path, reason = resolve_profile_config_path(repo_root=repo_root, base_name="settings", profile=profile)
    if not path.exists():
        print(f"[config] profile={profile or '-'} settings={path} (missing; defaults)")
        return settings_from_dict({}, repo_root=repo_root)
    print(f"[config] profile={profile or '-'} settings={path} ({reason})")
    return load_settings(path, repo_root=repo_root)


@dataclass(frozen=True)
class DetectorConfig:
    # Position jump treated as a manual seek / new file.
    new_file_jump_ms: int = 10_000
    # A new file counts as "just started" below this position.
    start_window_ms: int = 500
    # Head points only fire this early in playback.
    head_point_window_ms: int = 5_000
    # Minimum gap between two skips.
    cooldown_ms: int = 100
    # Time the player gets to apply a command before we look again.
    seek_settle_ms: int = 500
    advance_settle_ms: int = 1_000
    next_command_id: int = 920


@dataclass(frozen=True)
class Settings:
    base_url: str = "http://127.0.0.1:13579"
    status_path: str = "/status.html"
    command_path: str = "/command.html"
    timeout_ms: int = 5000
    interval_ms: int = 1000
    telemetry_mode: str = "worker"
    rules_path: Path = Path("data/skip_rules.json")
    playing_labels: tuple[str, ...] = DEFAULT_PLAYING_LABELS
    debug: bool = False
    detector: DetectorConfig = field(default_factory=DetectorConfig)

    @property
    def status_url(self) -> str:
        return self.base_url.rstrip("/") + self.status_path

    @property
    def command_url(self) -> str:
        return self.base_url.rstrip("/") + self.command_path


def _positive_int(data: dict[str, Any], key: str, default: int) -> int:
    raw = data.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be > 0, got {value}")
    return value


def _detector_from_dict(data: dict[str, Any]) -> DetectorConfig:
    if not isinstance(data, dict):
        raise ConfigError("detector must be an object")
    d = DetectorConfig()
    return DetectorConfig(
        new_file_jump_ms=_positive_int(data, "new_file_jump_ms", d.new_file_jump_ms),
        start_window_ms=_positive_int(data, "start_window_ms", d.start_window_ms),
        head_point_window_ms=_positive_int(data, "head_point_window_ms", d.head_point_window_ms),
        cooldown_ms=_positive_int(data, "cooldown_ms", d.cooldown_ms),
        seek_settle_ms=_positive_int(data, "seek_settle_ms", d.seek_settle_ms),
        advance_settle_ms=_positive_int(data, "advance_settle_ms", d.advance_settle_ms),
        next_command_id=_positive_int(data, "next_command_id", d.next_command_id),
    )


def settings_from_dict(data: dict[str, Any], *, repo_root: Path) -> Settings:
    if not isinstance(data, dict):
        raise ConfigError("settings must be a JSON object")
    d = Settings()

    base_url = str(data.get("base_url", d.base_url)).strip()
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError(f"base_url must be an http(s) URL, got {base_url!r}")

    mode = str(data.get("telemetry_mode", d.telemetry_mode)).strip().lower()
    if mode not in TELEMETRY_MODES:
        raise ConfigError(f"telemetry_mode must be one of {TELEMETRY_MODES}, got {mode!r}")

    rules_path = Path(str(data.get("rules_path", d.rules_path))).expanduser()
    if not rules_path.is_absolute():
        rules_path = repo_root / rules_path

    raw_labels = data.get("playing_labels", d.playing_labels)
    if isinstance(raw_labels, str):
        raw_labels = [raw_labels]
    labels = tuple(str(x) for x in raw_labels)
    if not labels:
        raise ConfigError("playing_labels requires at least one label")

    return Settings(
        base_url=base_url,
        status_path=str(data.get("status_path", d.status_path)),
        command_path=str(data.get("command_path", d.command_path)),
        timeout_ms=_positive_int(data, "timeout_ms", d.timeout_ms),
        interval_ms=_positive_int(data, "interval_ms", d.interval_ms),
        telemetry_mode=mode,
        rules_path=rules_path,
        playing_labels=labels,
        debug=bool(data.get("debug", False)),
        detector=_detector_from_dict(data.get("detector", {}) or {}),
    )


def load_settings(path: Path, *, repo_root: Path) -> Settings:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path}: invalid JSON: {e}") from e
    return settings_from_dict(data, repo_root=repo_root)
