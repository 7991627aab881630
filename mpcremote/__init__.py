"""mpcremote - remote control and intro/outro skipper for MPC-HC.

Core concept: the player's web interface is polled about once a second; each
status update is checked against per-folder skip rules, and matching head/tail
segments are skipped by sending seek or next-file commands back.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
