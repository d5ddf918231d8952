"""Outbound stream events and the single-writer merger."""

from scanchat.stream.events import ContentDelta, End, Error, ErrorKind, Heartbeat, StatusText, StreamEvent
from scanchat.stream.merger import ChannelSink, StreamMerger

__all__ = [
    "ChannelSink",
    "ContentDelta",
    "End",
    "Error",
    "ErrorKind",
    "Heartbeat",
    "StatusText",
    "StreamEvent",
    "StreamMerger",
]
