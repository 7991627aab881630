from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

import requests

from ..core.errors import CommandError
from ..core.timespec import ms_to_hhmmss

# MPC-HC / MPC-BE wm_command ids.
WM_COMMANDS: dict[str, int] = {
    "fullscreen": 830,
    "play_pause": 889,
    "stop": 890,
    "volume_up": 907,
    "volume_down": 908,
    "mute": 909,
    "previous": 919,
    "next": 920,
}

# wm_command=-1 carries a seek target instead of a command id.
SEEK_COMMAND_ID = -1


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    message: str


class CommandChannel(Protocol):
    def send_command(self, command_id: int) -> CommandResult: ...

    def send_seek_percent(self, percent: float) -> CommandResult: ...


def resolve_command_id(value: str) -> int:
    """Accept a numeric id or a name from WM_COMMANDS."""

    key = str(value).strip().lower().replace("-", "_")
    if key in WM_COMMANDS:
        return WM_COMMANDS[key]
    try:
        return int(key)
    except ValueError:
        names = ", ".join(sorted(WM_COMMANDS))
        raise ValueError(f"unknown command {value!r}; use a numeric id or one of: {names}")


@dataclass
class MpcCommandChannel:
    """Sends commands to the player's `/command.html` endpoint.

    Every call is bounded by `timeout_ms` and reports its outcome as a
    `CommandResult`; transport errors never propagate to the caller.
    """

    command_url: str
    timeout_ms: int = 5000
    debug: bool = False
    on_sent: Callable[[], None] | None = None
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def _request(self, method: str, *, label: str, **kwargs: Any) -> None:
        if self.debug:
            print(f"[debug] command >>> {method} {label}")
        try:
            resp = self.session.request(method, self.command_url, timeout=self.timeout_ms / 1000.0, **kwargs)
        except requests.Timeout as e:
            raise CommandError(f"timed out [{label}]") from e
        except requests.RequestException as e:
            raise CommandError(f"request failed [{label}]: {e}") from e
        if not resp.ok:
            raise CommandError(f"HTTP {resp.status_code} [{label}]")

    def _send(self, method: str, *, label: str, **kwargs: Any) -> CommandResult:
        try:
            self._request(method, label=label, **kwargs)
        except CommandError as e:
            if self.debug:
                print(f"[debug] command <<< failed: {e}")
            return CommandResult(ok=False, message=str(e))
        if self.on_sent is not None:
            self.on_sent()
        return CommandResult(ok=True, message=f"ok [{label}]")

    def send_command(self, command_id: int) -> CommandResult:
        command_id = int(command_id)
        return self._send(
            "POST",
            label=f"wm_command={command_id}",
            data={"wm_command": command_id, "null": 0},
        )

    def send_seek_percent(self, percent: float) -> CommandResult:
        percent = max(0.0, min(100.0, float(percent)))
        return self._send(
            "GET",
            label=f"percent={percent:.2f}",
            params={"wm_command": SEEK_COMMAND_ID, "percent": percent},
            headers={"Cache-Control": "no-cache"},
        )

    def seek_to_ms(self, position_ms: int) -> CommandResult:
        position = ms_to_hhmmss(position_ms)
        return self._send(
            "POST",
            label=f"position={position}",
            data={"wm_command": SEEK_COMMAND_ID, "position": position},
        )

    def close(self) -> None:
        self.session.close()
