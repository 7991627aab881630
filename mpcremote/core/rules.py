from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterable

from . import timespec
from .errors import ImportValidationError, ParseError
from .paths import folder_of
from .timespec import TimeSpec

IMPORT_MODES = ("replace", "append")


@dataclass(frozen=True)
class SkipRule:
    folder: str
    head: TimeSpec | None = None
    tail: TimeSpec | None = None
    enabled: bool = True

    def applies_to(self, folder: str) -> bool:
        return self.folder == "" or self.folder == folder

    def to_record(self) -> dict[str, Any]:
        return {
            "folder": self.folder,
            "start": timespec.format(self.head),
            "end": timespec.format(self.tail),
            "enabled": bool(self.enabled),
        }

    @staticmethod
    def from_record(d: dict[str, Any]) -> "SkipRule":
        """Lenient constructor for records already on disk.

        Unparseable times become None (rule part not applicable).
        """

        return SkipRule(
            folder=str(d.get("folder", "") or "").strip(),
            head=timespec.parse(d.get("start", "")),
            tail=timespec.parse(d.get("end", "")),
            enabled=d.get("enabled") is not False,
        )


def _optional_spec(raw: str | None) -> TimeSpec | None:
    if raw is None or not str(raw).strip():
        return None
    return timespec.require(str(raw))


def validate_record(d: Any) -> SkipRule:
    """Strict constructor used by import. Raises ValueError with a readable reason."""

    if not isinstance(d, dict):
        raise ValueError("expected an object with folder/start/end")
    for key in ("folder", "start", "end"):
        if not isinstance(d.get(key), str):
            raise ValueError(f"missing or non-string field {key!r}")
    enabled = d.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ValueError("field 'enabled' must be true or false")
    try:
        head = _optional_spec(d["start"])
        tail = _optional_spec(d["end"])
    except ParseError as e:
        raise ValueError(str(e)) from e
    return SkipRule(folder=d["folder"].strip(), head=head, tail=tail, enabled=enabled)


class RuleStore:
    """Ordered skip rules persisted as a JSON array.

    Order is creation order; the first enabled match wins.
    """

    def __init__(self, *, path: Path, debug: bool = False) -> None:
        self.path = path
        self.debug = debug

    def load(self) -> list[SkipRule]:
        try:
            if not self.path.exists():
                return []
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, list):
                raise ValueError("rules file must hold a JSON array")
            return [SkipRule.from_record(r) for r in data if isinstance(r, dict)]
        except Exception as e:
            # Corrupt rules should not crash playback.
            if self.debug:
                print(f"[debug] rules: failed to load {self.path}: {e}")
            return []

    def save(self, rules: Iterable[SkipRule]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [r.to_record() for r in rules]
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)

    def revision(self) -> int:
        """Changes whenever the rules file is rewritten (by this or another process)."""

        try:
            return self.path.stat().st_mtime_ns
        except FileNotFoundError:
            return 0

    def find_match(self, file_path: str | None) -> SkipRule | None:
        if not file_path:
            return None
        folder = folder_of(file_path)
        for rule in self.load():
            if rule.enabled and rule.applies_to(folder):
                return rule
        return None

    # --- Editing ---
    def add(self, *, folder: str, head: str = "", tail: str = "") -> SkipRule:
        rule = SkipRule(folder=folder.strip(), head=_optional_spec(head), tail=_optional_spec(tail))
        rules = self.load()
        rules.append(rule)
        self.save(rules)
        return rule

    def update(
        self,
        index: int,
        *,
        folder: str | None = None,
        head: str | None = None,
        tail: str | None = None,
    ) -> SkipRule:
        rules = self.load()
        rule = rules[index]
        if folder is not None:
            rule = replace(rule, folder=folder.strip())
        if head is not None:
            rule = replace(rule, head=_optional_spec(head))
        if tail is not None:
            rule = replace(rule, tail=_optional_spec(tail))
        rules[index] = rule
        self.save(rules)
        return rule

    def remove(self, index: int) -> SkipRule:
        rules = self.load()
        removed = rules.pop(index)
        self.save(rules)
        return removed

    def set_enabled(self, index: int, enabled: bool) -> SkipRule:
        rules = self.load()
        rules[index] = replace(rules[index], enabled=bool(enabled))
        self.save(rules)
        return rules[index]

    # --- Import / export ---
    def export_records(self) -> list[dict[str, Any]]:
        return [r.to_record() for r in self.load()]

    def export_to(self, path: Path) -> int:
        records = self.export_records()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(records, indent=2, ensure_ascii=False), encoding="utf-8")
        return len(records)

    def import_records(self, records: Any, *, mode: str) -> list[SkipRule]:
        """Validate every record, then replace or append. All-or-nothing."""

        if mode not in IMPORT_MODES:
            raise ValueError(f"mode must be one of {IMPORT_MODES}, got {mode!r}")
        if not isinstance(records, list):
            raise ImportValidationError(0, "import payload must be a JSON array")

        accepted: list[SkipRule] = []
        for i, rec in enumerate(records, start=1):
            try:
                accepted.append(validate_record(rec))
            except ValueError as e:
                raise ImportValidationError(i, str(e)) from e

        rules = accepted if mode == "replace" else self.load() + accepted
        self.save(rules)
        if self.debug:
            print(f"[debug] rules: imported {len(accepted)} record(s) mode={mode} total={len(rules)}")
        return rules

    def import_from(self, path: Path, *, mode: str) -> list[SkipRule]:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ImportValidationError(0, f"not valid JSON: {e}") from e
        return self.import_records(payload, mode=mode)
