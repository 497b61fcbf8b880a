"""
Response requests submitted to the realtime session.

A request either must eventually be spoken (QueuedResponseRequest, parked in
the session's FIFO while a response is in flight or the gate is closed) or is
only worth sending right now (BestEffortResponseRequest, dropped when blocked).
"""

from dataclasses import dataclass
from typing import ClassVar

SOURCE_GREETING = "greeting"
SOURCE_TURN_RESPONSE = "turn_response"
SOURCE_TOOL_FOLLOW_UP_SUCCESS = "tool_follow_up_success"
SOURCE_TOOL_FOLLOW_UP_ERROR = "tool_follow_up_error"


@dataclass(frozen=True)
class ResponseRequest:
    instructions: str
    source: str

    queue_if_blocked: ClassVar[bool] = False


@dataclass(frozen=True)
class QueuedResponseRequest(ResponseRequest):
    queue_if_blocked: ClassVar[bool] = True


@dataclass(frozen=True)
class BestEffortResponseRequest(ResponseRequest):
    queue_if_blocked: ClassVar[bool] = False
