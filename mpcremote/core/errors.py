from __future__ import annotations


class ParseError(ValueError):
    """Malformed time or rule expression."""


class ConfigError(ValueError):
    pass


class ImportValidationError(ValueError):
    """A rule import was rejected; nothing was committed.

    `index` is the 1-based position of the offending record (0 when the
    payload itself is not a list).
    """

    def __init__(self, index: int, reason: str) -> None:
        self.index = int(index)
        self.reason = str(reason)
        if self.index > 0:
            super().__init__(f"record {self.index}: {self.reason}")
        else:
            super().__init__(self.reason)


class TelemetryError(RuntimeError):
    pass


class FetchTimeout(TelemetryError):
    pass


class FetchFailure(TelemetryError):
    pass


class WorkerUnavailable(TelemetryError):
    pass


class CommandError(RuntimeError):
    pass
