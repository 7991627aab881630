"""Player adapters.

MPC-HC / MPC-BE are controlled through their built-in web interface:
`/status.html` for telemetry and `/command.html` for commands.
"""

from .commands import CommandResult, MpcCommandChannel
from .telemetry import ResilientTelemetrySource, TelemetryConfig

__all__ = ["CommandResult", "MpcCommandChannel", "ResilientTelemetrySource", "TelemetryConfig"]
