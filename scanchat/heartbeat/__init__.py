"""Heartbeat progress ticks for long-running plugin calls."""

from scanchat.heartbeat.ticker import HEARTBEAT_TEXT, HeartbeatTicker

__all__ = ["HEARTBEAT_TEXT", "HeartbeatTicker"]
