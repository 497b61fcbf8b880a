"""
Typed inbound events for the realtime control channel.

decode_event() turns a decoded JSON payload into one of the dataclasses below.
Decoding is tolerant: missing or wrongly typed fields become None, and unknown
or missing types become UnrecognizedEvent.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional


def _str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _response_id(payload: Dict[str, Any]) -> Optional[str]:
    nested = _str(_dict(payload.get("response")).get("id"))
    return nested or _str(payload.get("response_id"))


@dataclass
class RealtimeEvent:
    type: str = ""


@dataclass
class UnrecognizedEvent(RealtimeEvent):
    keys: tuple = ()

    @property
    def looks_like_transcription(self) -> bool:
        return "transcription" in self.type or "transcript" in self.type


@dataclass
class SessionUpdated(RealtimeEvent):
    session: Dict[str, Any] = field(default_factory=dict)

    @property
    def transcription_model(self) -> Optional[str]:
        transcription = self.session.get("input_audio_transcription")
        if transcription is None:
            transcription = _dict(_dict(self.session.get("audio")).get("input")).get("transcription")
        if not transcription:
            return None
        return _str(_dict(transcription).get("model")) or "unknown"


@dataclass
class SpeechStarted(RealtimeEvent):
    item_id: Optional[str] = None


@dataclass
class SpeechStopped(RealtimeEvent):
    item_id: Optional[str] = None


@dataclass
class ResponseCreated(RealtimeEvent):
    response_id: Optional[str] = None


@dataclass
class ResponseFinished(RealtimeEvent):
    """response.completed or response.done."""
    response_id: Optional[str] = None
    status: Optional[str] = None


@dataclass
class OutputItemAdded(RealtimeEvent):
    response_id: Optional[str] = None
    item_id: Optional[str] = None
    item_type: Optional[str] = None
    name: Optional[str] = None
    call_id: Optional[str] = None

    @property
    def is_function_call(self) -> bool:
        return self.item_type == "function_call" and bool(self.item_id) and bool(self.name)


@dataclass
class FunctionCallArgumentsDelta(RealtimeEvent):
    item_id: Optional[str] = None
    delta: Optional[str] = None


@dataclass
class FunctionCallArgumentsDone(RealtimeEvent):
    item_id: Optional[str] = None
    arguments: Optional[str] = None
    call_id: Optional[str] = None


@dataclass
class ConversationItem(RealtimeEvent):
    """conversation.item.added / .done / .created / .retrieved."""
    item_id: Optional[str] = None
    role: Optional[str] = None
    item_type: Optional[str] = None
    content: list = field(default_factory=list)

    def message_text(self) -> str:
        parts = []
        for part in self.content:
            part = _dict(part)
            if part.get("type") in ("text", "output_text", "input_text"):
                parts.append(_str(part.get("text")) or "")
            elif part.get("type") in ("audio", "output_audio", "input_audio"):
                parts.append(_str(part.get("transcript")) or "")
        return "".join(parts).strip()


@dataclass
class InputTranscriptionCompleted(RealtimeEvent):
    item_id: Optional[str] = None
    transcript: Optional[str] = None


@dataclass
class InputTranscriptionFailed(RealtimeEvent):
    item_id: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None


@dataclass
class ResponseTextDelta(RealtimeEvent):
    response_id: Optional[str] = None
    delta: Optional[str] = None


@dataclass
class ResponseAudioDelta(RealtimeEvent):
    response_id: Optional[str] = None
    delta: Optional[str] = None


@dataclass
class AssistantTranscriptDelta(RealtimeEvent):
    item_id: Optional[str] = None
    delta: Optional[str] = None


@dataclass
class AssistantTranscriptDone(RealtimeEvent):
    item_id: Optional[str] = None
    transcript: Optional[str] = None


@dataclass
class RealtimeError(RealtimeEvent):
    code: Optional[str] = None
    param: Optional[str] = None
    message: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def is_voice_parameter_rejection(self) -> bool:
        return self.code in ("unknown_parameter", "invalid_request_error") and "voice" in (self.param or "")


def _session_updated(t, p):
    return SessionUpdated(type=t, session=_dict(p.get("session")))


def _speech_started(t, p):
    return SpeechStarted(type=t, item_id=_str(p.get("item_id")))


def _speech_stopped(t, p):
    return SpeechStopped(type=t, item_id=_str(p.get("item_id")))


def _response_created(t, p):
    return ResponseCreated(type=t, response_id=_response_id(p))


def _response_finished(t, p):
    return ResponseFinished(type=t, response_id=_response_id(p),
                            status=_str(_dict(p.get("response")).get("status")))


def _output_item_added(t, p):
    item = _dict(p.get("item"))
    return OutputItemAdded(
        type=t,
        response_id=_response_id(p),
        item_id=_str(item.get("id")),
        item_type=_str(item.get("type")),
        name=_str(item.get("name")),
        call_id=_str(item.get("call_id")),
    )


def _arguments_delta(t, p):
    return FunctionCallArgumentsDelta(type=t, item_id=_str(p.get("item_id")), delta=_str(p.get("delta")))


def _arguments_done(t, p):
    return FunctionCallArgumentsDone(
        type=t,
        item_id=_str(p.get("item_id")),
        arguments=_str(p.get("arguments")),
        call_id=_str(p.get("call_id")),
    )


def _conversation_item(t, p):
    item = _dict(p.get("item"))
    content = item.get("content")
    return ConversationItem(
        type=t,
        item_id=_str(item.get("id")),
        role=_str(item.get("role")),
        item_type=_str(item.get("type")),
        content=content if isinstance(content, list) else [],
    )


def _transcription_completed(t, p):
    return InputTranscriptionCompleted(type=t, item_id=_str(p.get("item_id")), transcript=_str(p.get("transcript")))


def _transcription_failed(t, p):
    error = _dict(p.get("error"))
    return InputTranscriptionFailed(
        type=t,
        item_id=_str(p.get("item_id")),
        code=_str(error.get("code")),
        message=_str(error.get("message")),
    )


def _text_delta(t, p):
    return ResponseTextDelta(type=t, response_id=_response_id(p), delta=_str(p.get("delta")))


def _audio_delta(t, p):
    return ResponseAudioDelta(type=t, response_id=_response_id(p), delta=_str(p.get("delta")))


def _transcript_delta(t, p):
    return AssistantTranscriptDelta(type=t, item_id=_str(p.get("item_id")), delta=_str(p.get("delta")))


def _transcript_done(t, p):
    return AssistantTranscriptDone(type=t, item_id=_str(p.get("item_id")), transcript=_str(p.get("transcript")))


def _error(t, p):
    error = _dict(p.get("error"))
    return RealtimeError(
        type=t,
        code=_str(error.get("code")),
        param=_str(error.get("param")),
        message=_str(error.get("message")),
        error_type=_str(error.get("type")),
    )


EVENT_DECODERS: Dict[str, Callable[[str, Dict[str, Any]], RealtimeEvent]] = {
    "session.updated": _session_updated,
    "input_audio_buffer.speech_started": _speech_started,
    "input_audio_buffer.speech_stopped": _speech_stopped,
    "response.created": _response_created,
    "response.completed": _response_finished,
    "response.done": _response_finished,
    "response.output_item.added": _output_item_added,
    "response.function_call_arguments.delta": _arguments_delta,
    "response.function_call_arguments.done": _arguments_done,
    "conversation.item.added": _conversation_item,
    "conversation.item.done": _conversation_item,
    "conversation.item.created": _conversation_item,
    "conversation.item.retrieved": _conversation_item,
    "conversation.item.input_audio_transcription.completed": _transcription_completed,
    "conversation.item.audio_transcription.completed": _transcription_completed,
    "conversation.item.input_audio_transcription.failed": _transcription_failed,
    "conversation.item.audio_transcription.failed": _transcription_failed,
    "response.output_text.delta": _text_delta,
    "response.output_audio.delta": _audio_delta,
    "response.output_audio_transcript.delta": _transcript_delta,
    "response.audio_transcript.delta": _transcript_delta,
    "response.output_audio_transcript.done": _transcript_done,
    "response.audio_transcript.done": _transcript_done,
    "error": _error,
}


def decode_event(payload: Any) -> RealtimeEvent:
    """Decode one inbound JSON object into a typed event."""
    payload = _dict(payload)
    event_type = _str(payload.get("type")) or ""
    decoder = EVENT_DECODERS.get(event_type)
    if decoder is None:
        return UnrecognizedEvent(type=event_type, keys=tuple(sorted(payload.keys())))
    return decoder(event_type, payload)
