"""Realtime presence and notification hub."""

from sharedrive.realtime.connection import Connection, ConnectionState, OutboundMessage
from sharedrive.realtime.hub import EditingSession, PresenceHub, ViewerInfo

__all__ = [
    "Connection",
    "ConnectionState",
    "EditingSession",
    "OutboundMessage",
    "PresenceHub",
    "ViewerInfo",
]
