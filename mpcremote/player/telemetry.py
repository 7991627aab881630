from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import requests

from ..core.errors import FetchFailure, FetchTimeout, WorkerUnavailable
from ..core.models import PlaybackSnapshot, TelemetryEvent
from .status import normalize_status


@dataclass(frozen=True)
class TelemetryConfig:
    status_url: str
    timeout_ms: int = 5000
    interval_ms: int = 1000

    @property
    def interval_sec(self) -> float:
        return max(0.01, self.interval_ms / 1000.0)


FetchFn = Callable[[TelemetryConfig], str]
NormalizeFn = Callable[[str], Optional[PlaybackSnapshot]]


class StatusFetcher:
    """Bounded-timeout GET of the player's status endpoint.

    Raises FetchTimeout / FetchFailure; both are recoverable.
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session = session or requests.Session()

    def __call__(self, config: TelemetryConfig) -> str:
        try:
            resp = self._session.get(
                config.status_url,
                timeout=config.timeout_ms / 1000.0,
                headers={"Cache-Control": "no-cache"},
            )
        except requests.Timeout as e:
            raise FetchTimeout("timeout") from e
        except requests.RequestException as e:
            raise FetchFailure(str(e)) from e
        if not resp.ok:
            raise FetchFailure(f"HTTP {resp.status_code}")
        return resp.text

    def close(self) -> None:
        self._session.close()


def run_fetch_cycle(
    fetch: FetchFn, config: TelemetryConfig, normalize: NormalizeFn
) -> tuple[TelemetryEvent, PlaybackSnapshot | None]:
    """One fetch-parse step shared by both execution modes."""

    try:
        text = fetch(config)
    except FetchTimeout:
        return TelemetryEvent.error("fetch", "timeout"), None
    except FetchFailure as e:
        return TelemetryEvent.error("fetch", str(e)), None

    snap = normalize(text)
    if snap is None:
        return TelemetryEvent.error("parse", "unrecognized status payload"), None
    return TelemetryEvent.status(snap), snap


def _close_if_closable(obj: Any) -> None:
    close = getattr(obj, "close", None)
    if callable(close):
        close()


class TelemetrySource(Protocol):
    mode: str

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def fetch_once(self) -> None: ...

    def update_config(self, config: TelemetryConfig) -> None: ...

    def pump(self) -> list[TelemetryEvent]: ...

    def close(self) -> None: ...


# --- Worker mode ---


class _TelemetryWorker:
    """Polling loop that runs on the worker thread.

    Shares nothing with the caller except the two queues. Inbox messages are
    (command, payload, generation); outbox items are (generation, event).
    """

    def __init__(
        self,
        inbox: queue.Queue,
        outbox: queue.Queue,
        *,
        fetcher_factory: Callable[[], FetchFn],
        normalize: NormalizeFn,
        time_fn: Callable[[], float],
        debug: bool,
    ) -> None:
        self._inbox = inbox
        self._outbox = outbox
        self._fetcher_factory = fetcher_factory
        self._normalize = normalize
        self._time_fn = time_fn
        self._debug = debug

        self._fetch: FetchFn | None = None
        self._config: TelemetryConfig | None = None
        self._running = False
        self._generation = 0
        self._next_due = 0.0
        self._last_key: tuple[int, str, str] | None = None

    def run(self) -> None:
        try:
            self._fetch = self._fetcher_factory()
            while True:
                msg = self._next_message()
                if msg is not None and not self._handle(*msg):
                    return
                if self._running and self._time_fn() >= self._next_due:
                    self._tick(force=False, generation=self._generation)
                    self._next_due = self._time_fn() + self._require_config().interval_sec
        except Exception as e:
            self._outbox.put((self._generation, TelemetryEvent.error("worker", f"{type(e).__name__}: {e}")))
        finally:
            if self._fetch is not None:
                _close_if_closable(self._fetch)

    def _next_message(self) -> tuple[str, Any, int] | None:
        if not self._running:
            return self._inbox.get()
        wait = self._next_due - self._time_fn()
        try:
            if wait <= 0:
                return self._inbox.get_nowait()
            return self._inbox.get(timeout=wait)
        except queue.Empty:
            return None

    def _require_config(self) -> TelemetryConfig:
        if self._config is None:
            raise WorkerUnavailable("worker used before init")
        return self._config

    def _emit(self, generation: int, event: TelemetryEvent) -> None:
        self._outbox.put((generation, event))

    def _start(self, generation: int) -> None:
        self._running = True
        self._generation = generation
        self._last_key = None
        self._next_due = self._time_fn()
        self._emit(generation, TelemetryEvent.changed("started"))

    def _stop(self, generation: int) -> None:
        self._running = False
        self._generation = generation
        self._emit(generation, TelemetryEvent.changed("stopped"))

    def _handle(self, command: str, payload: Any, generation: int) -> bool:
        if command == "init":
            self._config = payload
        elif command == "start":
            if not self._running:
                self._start(generation)
        elif command == "stop":
            if self._running:
                self._stop(generation)
        elif command == "update_config":
            self._config = payload
            if self._running:
                self._stop(generation)
                self._start(generation)
        elif command == "fetch_once":
            self._tick(force=True, generation=generation)
        elif command == "terminate":
            return False
        elif self._debug:
            print(f"[debug] telemetry-worker: unknown command {command!r}")
        return True

    def _tick(self, *, force: bool, generation: int) -> None:
        assert self._fetch is not None
        event, snap = run_fetch_cycle(self._fetch, self._require_config(), self._normalize)
        if snap is not None:
            # Idle/paused players report the same status every tick; skip repeats.
            key = snap.delta_key()
            if not force and key == self._last_key:
                return
            self._last_key = key
        self._emit(generation, event)


class WorkerTelemetrySource:
    """Polls on a background thread; the caller drains events with `pump()`.

    `failure` is set once the worker has died; the instance is unusable after that.
    """

    mode = "worker"

    def __init__(
        self,
        config: TelemetryConfig,
        *,
        fetcher_factory: Callable[[], FetchFn] = StatusFetcher,
        normalize: NormalizeFn = normalize_status,
        time_fn: Callable[[], float] = time.monotonic,
        debug: bool = False,
        join_timeout_sec: float = 1.0,
    ) -> None:
        self.debug = debug
        self.failure: str | None = None
        self._join_timeout_sec = float(join_timeout_sec)
        self._inbox: queue.Queue = queue.Queue()
        self._outbox: queue.Queue = queue.Queue()
        self._generation = 0
        self._running = False

        worker = _TelemetryWorker(
            self._inbox,
            self._outbox,
            fetcher_factory=fetcher_factory,
            normalize=normalize,
            time_fn=time_fn,
            debug=debug,
        )
        self._thread = threading.Thread(target=worker.run, name="mpcremote-telemetry", daemon=True)
        try:
            self._thread.start()
        except RuntimeError as e:
            raise WorkerUnavailable(f"cannot start worker thread: {e}") from e

        self._post("init", config)
        if self.debug:
            print(f"[debug] telemetry: worker started url={config.status_url}")

    def _post(self, command: str, payload: Any = None) -> None:
        self._inbox.put((command, payload, self._generation))

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._generation += 1
        self._post("start")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        # Results of a fetch already in flight carry the old generation and get dropped.
        self._generation += 1
        self._post("stop")

    def fetch_once(self) -> None:
        self._post("fetch_once")

    def update_config(self, config: TelemetryConfig) -> None:
        if self._running:
            self._generation += 1
        self._post("update_config", config)

    def pump(self) -> list[TelemetryEvent]:
        events: list[TelemetryEvent] = []
        while True:
            try:
                generation, event = self._outbox.get_nowait()
            except queue.Empty:
                break
            if event.kind == "error" and event.context == "worker":
                self.failure = event.message or "worker error"
                events.append(event)
                continue
            if event.kind != "state" and generation != self._generation:
                if self.debug:
                    print(f"[debug] telemetry: dropped stale {event.kind} from a stopped cycle")
                continue
            events.append(event)

        if self.failure is None and not self._thread.is_alive():
            self.failure = "worker thread exited"
            events.append(TelemetryEvent.error("worker", self.failure))
        return events

    def close(self) -> None:
        self._running = False
        self._post("terminate")
        self._thread.join(timeout=self._join_timeout_sec)


# --- Same-thread mode ---


class TimerTelemetrySource:
    """Polls on the caller's thread; `pump()` runs a fetch whenever the interval is due."""

    mode = "timer"

    def __init__(
        self,
        config: TelemetryConfig,
        *,
        fetcher_factory: Callable[[], FetchFn] = StatusFetcher,
        normalize: NormalizeFn = normalize_status,
        time_fn: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ) -> None:
        self.debug = debug
        self._config = config
        self._fetch = fetcher_factory()
        self._normalize = normalize
        self._time_fn = time_fn
        self._running = False
        self._next_due: float | None = None
        self._pending: list[TelemetryEvent] = []

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._next_due = self._time_fn()
        self._pending.append(TelemetryEvent.changed("started"))

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._next_due = None
        self._pending.append(TelemetryEvent.changed("stopped"))

    def fetch_once(self) -> None:
        event, _ = run_fetch_cycle(self._fetch, self._config, self._normalize)
        self._pending.append(event)

    def update_config(self, config: TelemetryConfig) -> None:
        self._config = config
        if self._running:
            self.stop()
            self.start()

    def pump(self) -> list[TelemetryEvent]:
        if self._running and self._next_due is not None:
            now = self._time_fn()
            if now >= self._next_due:
                event, _ = run_fetch_cycle(self._fetch, self._config, self._normalize)
                self._pending.append(event)
                self._next_due = self._time_fn() + self._config.interval_sec
        events, self._pending = self._pending, []
        return events

    def close(self) -> None:
        self._running = False
        self._next_due = None
        _close_if_closable(self._fetch)


# --- Mode selection ---


class ResilientTelemetrySource:
    """Worker-first telemetry that falls back to same-thread polling for good.

    The fallback happens when the worker cannot be created or reports a fatal
    error. Config and running state carry over to the replacement.
    """

    def __init__(
        self,
        config: TelemetryConfig,
        *,
        prefer_worker: bool = True,
        fetcher_factory: Callable[[], FetchFn] = StatusFetcher,
        normalize: NormalizeFn = normalize_status,
        time_fn: Callable[[], float] = time.monotonic,
        debug: bool = False,
        worker_factory: Callable[..., TelemetrySource] = WorkerTelemetrySource,
        timer_factory: Callable[..., TelemetrySource] = TimerTelemetrySource,
    ) -> None:
        self.debug = debug
        self._config = config
        self._running = False
        self._pending: list[TelemetryEvent] = []
        self._source_kwargs = dict(fetcher_factory=fetcher_factory, normalize=normalize, time_fn=time_fn, debug=debug)
        self._timer_factory = timer_factory

        self._active: TelemetrySource | None = None
        if prefer_worker:
            try:
                self._active = worker_factory(config, **self._source_kwargs)
            except RuntimeError as e:
                self._degrade(str(e), announce=True)
        if self._active is None:
            self._active = timer_factory(config, **self._source_kwargs)

    @property
    def mode(self) -> str:
        assert self._active is not None
        return self._active.mode

    def _degrade(self, reason: str, *, announce: bool) -> None:
        print(f"[telemetry] worker unavailable ({reason}); falling back to same-thread polling")
        if self._active is not None:
            self._active.close()
        self._active = self._timer_factory(self._config, **self._source_kwargs)
        if announce:
            self._pending.append(TelemetryEvent.error("worker", f"worker unavailable: {reason}"))
        if self._running:
            self._active.start()

    def start(self) -> None:
        assert self._active is not None
        self._running = True
        self._active.start()

    def stop(self) -> None:
        assert self._active is not None
        self._running = False
        self._active.stop()

    def fetch_once(self) -> None:
        assert self._active is not None
        self._active.fetch_once()

    def update_config(self, config: TelemetryConfig) -> None:
        assert self._active is not None
        self._config = config
        self._active.update_config(config)

    def pump(self) -> list[TelemetryEvent]:
        assert self._active is not None
        events, self._pending = self._pending, []
        events.extend(self._active.pump())
        failure = getattr(self._active, "failure", None)
        if failure is not None:
            # The worker already reported its own error event above.
            self._degrade(failure, announce=False)
            events.extend(self._pending)
            self._pending = []
        return events

    def close(self) -> None:
        assert self._active is not None
        self._running = False
        self._active.close()
