"""
Event router: decodes inbound control-channel payloads and dispatches them to
the session handler registered for the event class.

The router holds no call state. Unrecognized events are dropped, and any
exception raised by a handler is logged here and never escapes.
"""

from typing import Any, Dict, Optional, Type

import structlog

from voicebridge.realtime.events import (
    AssistantTranscriptDelta,
    AssistantTranscriptDone,
    ConversationItem,
    FunctionCallArgumentsDelta,
    FunctionCallArgumentsDone,
    InputTranscriptionCompleted,
    InputTranscriptionFailed,
    OutputItemAdded,
    RealtimeError,
    RealtimeEvent,
    ResponseAudioDelta,
    ResponseCreated,
    ResponseFinished,
    ResponseTextDelta,
    SessionUpdated,
    SpeechStarted,
    SpeechStopped,
    UnrecognizedEvent,
    decode_event,
)

logger = structlog.get_logger(__name__)

# Event class -> name of the session coroutine handling it
DEFAULT_ROUTES: Dict[Type[RealtimeEvent], str] = {
    SessionUpdated: "on_session_updated",
    SpeechStarted: "on_speech_started",
    SpeechStopped: "on_speech_stopped",
    ResponseCreated: "on_response_created",
    ResponseFinished: "on_response_finished",
    OutputItemAdded: "on_output_item_added",
    FunctionCallArgumentsDelta: "on_function_call_arguments_delta",
    FunctionCallArgumentsDone: "on_function_call_arguments_done",
    ConversationItem: "on_conversation_item",
    InputTranscriptionCompleted: "on_input_transcription_completed",
    InputTranscriptionFailed: "on_input_transcription_failed",
    ResponseTextDelta: "on_response_text_delta",
    ResponseAudioDelta: "on_response_audio_delta",
    AssistantTranscriptDelta: "on_assistant_transcript_delta",
    AssistantTranscriptDone: "on_assistant_transcript_done",
    RealtimeError: "on_error",
}

# Noisy per-chunk events kept out of the per-event debug log
_QUIET_TYPES = ("response.output_audio.delta", "response.output_audio_transcript.delta",
                "response.audio_transcript.delta", "response.function_call_arguments.delta")


class EventRouter:
    def __init__(self, routes: Optional[Dict[Type[RealtimeEvent], str]] = None, debug_events: bool = False):
        self.routes = dict(routes or DEFAULT_ROUTES)
        self.debug_events = debug_events

    async def dispatch(self, session, payload: Dict[str, Any]) -> Optional[RealtimeEvent]:
        """
        Route one payload to its handler.

        Returns the decoded event (or None when decoding itself failed).
        """
        call_id = getattr(session, "call_id", None)
        try:
            event = decode_event(payload)
        except Exception:
            logger.error("rt_event_error", call_id=call_id, stage="decode", exc_info=True)
            return None

        if self.debug_events and any(k in event.type for k in ("audio", "speech", "item")):
            logger.debug("Realtime event", call_id=call_id, type=event.type, keys=",".join(sorted(payload)))
        elif event.type not in _QUIET_TYPES:
            logger.debug("rt_event", call_id=call_id, type=event.type or "unknown")

        if isinstance(event, UnrecognizedEvent):
            if event.looks_like_transcription:
                logger.warning("Unhandled transcription event", call_id=call_id, type=event.type,
                               sample=str(payload)[:200])
            return event

        handler_name = self.routes.get(type(event))
        handler = getattr(session, handler_name, None) if handler_name else None
        if handler is None:
            logger.debug("No handler for event", call_id=call_id, type=event.type)
            return event

        try:
            await handler(event)
        except Exception as exc:
            logger.error("rt_event_error", call_id=call_id, type=event.type, error=str(exc), exc_info=True)
        return event
