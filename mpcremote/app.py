from __future__ import annotations

import argparse
import functools
import json
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable

from mpcremote.core import timespec
from mpcremote.core.config import Settings, load_settings_profile
from mpcremote.core.detector import SkipDetector
from mpcremote.core.errors import ConfigError, ImportValidationError, ParseError
from mpcremote.core.models import PlaybackSnapshot, SkipAction, TelemetryEvent
from mpcremote.core.rules import IMPORT_MODES, RuleStore
from mpcremote.player import MpcCommandChannel, ResilientTelemetrySource, TelemetryConfig
from mpcremote.player.commands import resolve_command_id
from mpcremote.player.status import normalize_status
from mpcremote.player.telemetry import StatusFetcher, TelemetrySource, run_fetch_cycle


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="mpcremote", description="Remote control and intro/outro skipper for MPC-HC.")
    parser.add_argument("--profile", default=None, help="Select config/settings.<profile>.json when present.")
    parser.add_argument(
        "--settings",
        type=str,
        default=None,
        help="Override settings config path (takes precedence over profile).",
    )
    parser.add_argument("--base-url", default=None, help="Player web interface, e.g. http://127.0.0.1:13579")
    parser.add_argument("--debug", action="store_true", help="Print diagnostic [debug] lines.")

    sub = parser.add_subparsers(dest="cmd")
    sub.add_parser("run", help="Poll the player, show status and apply skip rules (default).")
    sub.add_parser("status", help="Fetch and print the player status once.")

    p_send = sub.add_parser("send", help="Send a wm_command id or name (play_pause, next, ...).")
    p_send.add_argument("command")

    p_seek = sub.add_parser("seek", help="Jump to a time (SS, MM:SS or HH:MM:SS).")
    p_seek.add_argument("time")

    p_rules = sub.add_parser("rules", help="Manage skip rules.")
    rsub = p_rules.add_subparsers(dest="rules_cmd", required=True)
    rsub.add_parser("list")

    p_add = rsub.add_parser("add")
    p_add.add_argument("--folder", default="", help="Folder name the rule applies to (empty = all).")
    p_add.add_argument("--head", default="", help="Intro end (02:50) or range to skip (01:45-02:50).")
    p_add.add_argument("--tail", default="", help="Outro start (20:32) or range to skip (20:32-22:42).")

    p_edit = rsub.add_parser("edit")
    p_edit.add_argument("index", type=int, help="1-based rule number from `rules list`.")
    p_edit.add_argument("--folder", default=None)
    p_edit.add_argument("--head", default=None)
    p_edit.add_argument("--tail", default=None)

    for name in ("remove", "enable", "disable"):
        p = rsub.add_parser(name)
        p.add_argument("index", type=int, help="1-based rule number from `rules list`.")

    p_imp = rsub.add_parser("import")
    p_imp.add_argument("path")
    p_imp.add_argument("--mode", choices=IMPORT_MODES, default="append")

    p_exp = rsub.add_parser("export")
    p_exp.add_argument("path")

    return parser.parse_args(argv)


def _load_settings(args: argparse.Namespace) -> Settings:
    repo_root = Path(__file__).resolve().parents[1]
    settings_path = Path(args.settings).expanduser() if args.settings else None
    settings = load_settings_profile(repo_root=repo_root, profile=args.profile, path_override=settings_path)
    if args.base_url:
        settings = replace(settings, base_url=args.base_url)
    if args.debug:
        settings = replace(settings, debug=True)
    return settings


def _telemetry_config(settings: Settings) -> TelemetryConfig:
    return TelemetryConfig(
        status_url=settings.status_url,
        timeout_ms=settings.timeout_ms,
        interval_ms=settings.interval_ms,
    )


def render_status_line(snap: PlaybackSnapshot) -> str:
    bar_width = 20
    filled = int(round(snap.progress_percent / 100 * bar_width))
    bar = "#" * filled + "-" * (bar_width - filled)
    mute = " muted" if snap.muted else ""
    name = snap.file_path.replace("/", "\\").rsplit("\\", 1)[-1] or snap.window_title
    return (
        f"[{snap.play_state or '?'}] {snap.position_str}/{snap.duration_str} [{bar}] "
        f"vol={snap.volume}{mute} {name}"
    )


def render_action(action: SkipAction) -> str:
    if action.kind == "advance":
        return f"[skip] {action.reason}: next file (wm_command={action.command_id})"
    assert action.target_ms is not None and action.percent is not None
    return f"[skip] {action.reason}: jump to {timespec.ms_to_hhmmss(action.target_ms)} ({action.percent:.2f}%)"


def refresh_after_command(source: TelemetrySource) -> Callable[[], None]:
    """Queue a status refresh after a command so the display catches up.

    Worker mode only: in timer mode the fetch would block the host loop for up
    to `timeout_ms`.
    """

    def _refresh() -> None:
        if source.mode == "worker":
            source.fetch_once()

    return _refresh


def _run(settings: Settings) -> int:
    store = RuleStore(path=settings.rules_path, debug=settings.debug)
    source = ResilientTelemetrySource(
        _telemetry_config(settings),
        prefer_worker=settings.telemetry_mode == "worker",
        normalize=functools.partial(normalize_status, playing_labels=settings.playing_labels),
        debug=settings.debug,
    )
    channel = MpcCommandChannel(
        command_url=settings.command_url,
        timeout_ms=settings.timeout_ms,
        debug=settings.debug,
        on_sent=refresh_after_command(source),
    )
    detector = SkipDetector(
        rule_lookup=store.find_match,
        channel=channel,
        config=settings.detector,
        debug=settings.debug,
    )

    print(f"mpcremote polling {settings.status_url} every {settings.interval_ms}ms (mode={source.mode})")
    print(f"rules: {settings.rules_path}  (Ctrl+C to quit)")
    print()

    last_line: str | None = None
    last_error: str | None = None
    rules_revision = store.revision()

    def _handle(evt: TelemetryEvent) -> None:
        nonlocal last_line, last_error, rules_revision
        if evt.kind == "status" and evt.snapshot is not None:
            last_error = None
            revision = store.revision()
            if revision != rules_revision:
                # Edited rules must apply to the file that is already playing.
                rules_revision = revision
                detector.reset()
                print("[rules] reloaded")
            line = render_status_line(evt.snapshot)
            if line != last_line:
                print(line)
                last_line = line
            action = detector.process(evt.snapshot)
            if action is not None:
                print(render_action(action))
        elif evt.kind == "error":
            msg = f"[telemetry] {evt.context} error: {evt.message}"
            # A dead player would otherwise print the same error every tick.
            if msg != last_error:
                print(msg)
                last_error = msg
        elif evt.kind == "state" and settings.debug:
            print(f"[debug] telemetry: {evt.state} (mode={source.mode})")

    try:
        source.start()
        while True:
            for evt in source.pump():
                _handle(evt)
            time.sleep(0.05)
    except KeyboardInterrupt:
        print("Exiting.")
        return 0
    finally:
        source.stop()
        source.close()
        channel.close()


def _status(settings: Settings) -> int:
    fetcher = StatusFetcher()
    try:
        event, snap = run_fetch_cycle(
            fetcher,
            _telemetry_config(settings),
            functools.partial(normalize_status, playing_labels=settings.playing_labels),
        )
    finally:
        fetcher.close()
    if snap is None:
        print(f"[telemetry] {event.context} error: {event.message}")
        return 1
    print(render_status_line(snap))
    print(f"file: {snap.file_path or '-'}")
    print(f"folder: {snap.folder or '-'}")
    return 0


def _rules(args: argparse.Namespace, settings: Settings) -> int:
    store = RuleStore(path=settings.rules_path, debug=settings.debug)
    cmd = args.rules_cmd

    if cmd == "list":
        rules = store.load()
        if not rules:
            print("(no skip rules)")
        for i, r in enumerate(rules, start=1):
            flag = "x" if r.enabled else " "
            folder = r.folder or "(all folders)"
            head = timespec.format(r.head) or "(not set)"
            tail = timespec.format(r.tail) or "(not set)"
            print(f"{i:>3}. [{flag}] {folder} | head: {head} | tail: {tail}")
        return 0

    if cmd == "add":
        rule = store.add(folder=args.folder, head=args.head, tail=args.tail)
        print(f"added: {json.dumps(rule.to_record(), ensure_ascii=False)}")
        return 0

    if cmd == "import":
        rules = store.import_from(Path(args.path).expanduser(), mode=args.mode)
        print(f"imported ({args.mode}); {len(rules)} rule(s) stored")
        return 0

    if cmd == "export":
        count = store.export_to(Path(args.path).expanduser())
        if count == 0:
            print("no skip rules to export")
        else:
            print(f"exported {count} rule(s) to {args.path}")
        return 0

    idx = int(args.index) - 1
    if idx < 0:
        raise IndexError(args.index)
    if cmd == "edit":
        rule = store.update(idx, folder=args.folder, head=args.head, tail=args.tail)
        print(f"updated {args.index}: {json.dumps(rule.to_record(), ensure_ascii=False)}")
    elif cmd == "remove":
        store.remove(idx)
        print(f"removed {args.index}")
    else:
        store.set_enabled(idx, cmd == "enable")
        print(f"{cmd}d {args.index}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = _load_settings(args)
    except ConfigError as e:
        print(f"[config] {e}")
        return 2

    cmd = args.cmd or "run"
    if cmd == "run":
        return _run(settings)
    if cmd == "status":
        return _status(settings)

    if cmd in ("send", "seek"):
        channel = MpcCommandChannel(command_url=settings.command_url, timeout_ms=settings.timeout_ms, debug=settings.debug)
        try:
            if cmd == "send":
                try:
                    result = channel.send_command(resolve_command_id(args.command))
                except ValueError as e:
                    print(str(e))
                    return 2
            else:
                target_ms = timespec.hhmmss_to_ms(args.time)
                if target_ms is None:
                    print(f"invalid time {args.time!r}")
                    return 2
                result = channel.seek_to_ms(target_ms)
        finally:
            channel.close()
        print(result.message)
        return 0 if result.ok else 1

    try:
        return _rules(args, settings)
    except ImportValidationError as e:
        print(f"import failed: {e}")
        return 1
    except ParseError as e:
        print(str(e))
        return 2
    except IndexError:
        print(f"no rule number {args.index}")
        return 2
    except OSError as e:
        print(f"rules: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
