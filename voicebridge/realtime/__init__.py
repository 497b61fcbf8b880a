"""
Realtime control-channel handling: typed events, the event router, response
requests and the per-call session state machine.
"""

from voicebridge.realtime.channel import ControlChannel, build_realtime_ws_url
from voicebridge.realtime.requests import BestEffortResponseRequest, QueuedResponseRequest
from voicebridge.realtime.router import EventRouter
from voicebridge.realtime.session import RealtimeCallSession, SessionState

__all__ = [
    "ControlChannel",
    "build_realtime_ws_url",
    "BestEffortResponseRequest",
    "QueuedResponseRequest",
    "EventRouter",
    "RealtimeCallSession",
    "SessionState",
]
