"""
Per-call realtime session orchestrator.

One RealtimeCallSession exists per live call. It owns the call's control
channel and decides when the AI may speak:

- the greeting is requested once, right after the initial session.update,
  and is protected from early caller noise by a barge guard window;
- a new response is only submitted when no response is in flight and the
  minimum gap since the last submission has elapsed; guaranteed requests wait
  in a FIFO, best-effort requests are dropped;
- caller speech cancels every in-flight response (barge-in);
- tools stay locked (tool_choice "none") until the caller has actually been
  heard, and function calls announced before that are cancelled.

Handlers are invoked by EventRouter strictly in arrival order for a call, so
plain attribute mutation is safe. The only concurrent actors are the turn timer
and the deferred queue flush; both detach themselves on firing and commit the
gate before awaiting the send.
"""

import asyncio
import json
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional, Set

import structlog

from voicebridge.config import AppConfig
from voicebridge.core.analytics import CallAnalytics, ToolCallMetric
from voicebridge.logging_config import redact_pii, truncate
from voicebridge.prompts import (
    GREETING_INSTRUCTIONS_TEMPLATE,
    TOOL_ERROR_INSTRUCTIONS,
    TOOL_FOLLOW_UP_TEMPLATE,
    TURN_RESPONSE_INSTRUCTIONS,
)
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
    ResponseAudioDelta,
    ResponseCreated,
    ResponseFinished,
    ResponseTextDelta,
    SessionUpdated,
    SpeechStarted,
    SpeechStopped,
)
from voicebridge.realtime.requests import (
    SOURCE_GREETING,
    SOURCE_TOOL_FOLLOW_UP_ERROR,
    SOURCE_TOOL_FOLLOW_UP_SUCCESS,
    SOURCE_TURN_RESPONSE,
    BestEffortResponseRequest,
    QueuedResponseRequest,
    ResponseRequest,
)
from voicebridge.tools.base import ToolError
from voicebridge.tools.context import ToolExecutionContext
from voicebridge.tools.registry import ToolRegistry

logger = structlog.get_logger(__name__)

HANDOFF_TOOL_NAME = "handoff_human"


class SessionState(Enum):
    CONNECTING = "connecting"
    CONFIGURING = "configuring"
    GREETING = "greeting"
    LISTENING = "listening"
    RESPONDING = "responding"
    CLOSED = "closed"


@dataclass
class PendingToolCall:
    name: str
    args_buffer: str = ""
    call_id: Optional[str] = None  # correlation id from the output item, if any


class RealtimeCallSession:
    """State machine for one call's control channel."""

    def __init__(
        self,
        call_id: str,
        channel,
        tools: ToolRegistry,
        config: AppConfig,
        analytics: Optional[CallAnalytics] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.call_id = call_id
        self.channel = channel
        self.tools = tools
        self.config = config
        self.analytics = analytics or CallAnalytics()
        self._clock = clock

        timing = config.timing
        self.turn_response_delay = timing.turn_response_delay_ms / 1000.0
        self.barge_guard_window = timing.greeting_barge_guard_ms / 1000.0
        self.min_response_gap = timing.min_response_gap_ms / 1000.0

        self.pending_tools: Dict[str, PendingToolCall] = {}
        self.active_responses: Set[str] = set()
        self.configured = False
        self.greeted = False
        self.tools_unlocked = False
        self.response_gate_until = 0.0
        self.pending_turn_task: Optional[asyncio.Task] = None
        self.pending_flush_task: Optional[asyncio.Task] = None
        self.user_speaking = False
        self.heard_user = False
        self.barge_guard_until = 0.0
        self.pending_follow_ups: Deque[ResponseRequest] = deque()

        self.voice_fallback_applied = False
        self.assistant_transcripts: Dict[str, str] = {}
        self.response_texts: Dict[str, str] = {}
        self.closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        if self.closed:
            return SessionState.CLOSED
        if not self.greeted:
            return SessionState.CONNECTING
        if not self.configured:
            return SessionState.CONFIGURING
        if not self.heard_user and (self.active_responses or self._clock() < self.barge_guard_until):
            return SessionState.GREETING
        if self.active_responses:
            return SessionState.RESPONDING
        return SessionState.LISTENING

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Configure the session and request the greeting, once."""
        rt = self.config.realtime
        await self.send_session_update({
            "type": "realtime",
            "audio": {"output": {"voice": rt.voice}},
            "input_audio_transcription": {"model": rt.transcription_model},
            "turn_detection": {
                "type": rt.turn_detection.type,
                "interrupt_response": rt.turn_detection.interrupt_response,
            },
        })
        logger.info("Initial session configuration sent", call_id=self.call_id, voice=rt.voice)

        if self.greeted:
            return
        self.greeted = True
        self.barge_guard_until = self._clock() + self.barge_guard_window
        greeting = GREETING_INSTRUCTIONS_TEMPLATE.format(greeting=self.config.llm.initial_greeting)
        await self.request_response(BestEffortResponseRequest(greeting, SOURCE_GREETING))

    async def send_session_update(self, patch: Dict[str, Any]) -> None:
        if not patch:
            return
        update = patch if "type" in patch else {"type": "realtime", **patch}
        await self.channel.send_json({"type": "session.update", "session": update})

    async def request_response(self, request: ResponseRequest, *, from_queue: bool = False) -> bool:
        """
        Submit a response.create if nothing is in flight and the gate is open.

        Blocked guaranteed requests are parked in pending_follow_ups (at the
        head when they were just dequeued, so FIFO order survives). Blocked
        best-effort requests are dropped. Returns True when submitted.
        """
        now = self._clock()
        snippet = truncate(request.instructions, 180)

        blocked_by = None
        if self.active_responses:
            blocked_by = "active"
        elif now < self.response_gate_until:
            blocked_by = "gate"

        if blocked_by is not None:
            logger.debug(
                "Response skipped",
                call_id=self.call_id,
                source=request.source,
                reason=blocked_by,
                active_responses=len(self.active_responses),
                wait_ms=max(0, int((self.response_gate_until - now) * 1000)),
            )
            if request.queue_if_blocked:
                if from_queue:
                    self.pending_follow_ups.appendleft(request)
                else:
                    self.pending_follow_ups.append(request)
                logger.info("Follow-up queued", call_id=self.call_id, source=request.source,
                            queue_length=len(self.pending_follow_ups))
                # Only a finished response drains the queue; a closed gap needs its own wake-up
                if blocked_by == "gate":
                    self._schedule_deferred_flush(self.response_gate_until - now)
            return False

        # Commit before awaiting the send so a concurrent submitter sees the gate
        self.response_gate_until = now + self.min_response_gap
        await self.channel.send_json({"type": "response.create", "response": {"instructions": request.instructions}})
        self.analytics.record_response(self.call_id, request.source)
        logger.info("Response requested", call_id=self.call_id, source=request.source, snippet=snippet)
        return True

    async def flush_pending_follow_ups(self) -> None:
        if not self.pending_follow_ups:
            return
        request = self.pending_follow_ups.popleft()
        logger.info("Flushing follow-up", call_id=self.call_id, source=request.source,
                    remaining=len(self.pending_follow_ups))
        await self.request_response(request, from_queue=True)

    async def cancel_active_responses(self) -> int:
        if not self.active_responses:
            return 0
        response_ids = list(self.active_responses)
        self.active_responses.clear()
        for response_id in response_ids:
            await self.channel.send_json({"type": "response.cancel", "response_id": response_id})
            logger.info("Response cancelled", call_id=self.call_id, response_id=response_id)
        return len(response_ids)

    async def unlock_tools(self, reason: str) -> None:
        if self.tools_unlocked:
            return
        self.tools_unlocked = True
        await self.send_session_update({"tool_choice": "auto"})
        logger.info("Tools unlocked", call_id=self.call_id, reason=reason)

    async def send_function_result(self, correlation_id: str, output: Dict[str, Any]) -> None:
        await self.channel.send_json({
            "type": "conversation.item.create",
            "item": {
                "type": "function_call_output",
                "call_id": correlation_id,
                "output": json.dumps(output),
            },
        })

    # ------------------------------------------------------------------
    # Turn timer
    # ------------------------------------------------------------------

    def _cancel_turn_timer(self) -> None:
        task = self.pending_turn_task
        self.pending_turn_task = None
        if task is not None and not task.done():
            task.cancel()

    def _schedule_turn_response(self) -> None:
        self._cancel_turn_timer()
        self.pending_turn_task = asyncio.create_task(self._turn_timer())
        logger.debug("Turn timer scheduled", call_id=self.call_id, delay_ms=int(self.turn_response_delay * 1000))

    async def _turn_timer(self) -> None:
        await asyncio.sleep(self.turn_response_delay)
        # Detach first: once firing, speech_started can no longer cancel this task
        if self.pending_turn_task is asyncio.current_task():
            self.pending_turn_task = None
        if self.closed:
            return
        try:
            await self.request_response(BestEffortResponseRequest(TURN_RESPONSE_INSTRUCTIONS, SOURCE_TURN_RESPONSE))
        except Exception:
            logger.error("Turn response request failed", call_id=self.call_id, exc_info=True)

    def _cancel_deferred_flush(self) -> None:
        task = self.pending_flush_task
        self.pending_flush_task = None
        if task is not None and not task.done():
            task.cancel()

    def _schedule_deferred_flush(self, delay: float) -> None:
        if self.closed:
            return
        self._cancel_deferred_flush()
        self.pending_flush_task = asyncio.create_task(self._deferred_flush(max(0.0, delay)))
        logger.debug("Deferred flush scheduled", call_id=self.call_id, delay_ms=int(delay * 1000))

    async def _deferred_flush(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self.pending_flush_task is asyncio.current_task():
            self.pending_flush_task = None
        if self.closed or self.active_responses:
            return
        try:
            await self.flush_pending_follow_ups()
        except Exception:
            logger.error("Deferred follow-up flush failed", call_id=self.call_id, exc_info=True)

    # ------------------------------------------------------------------
    # Inbound handlers (called by EventRouter)
    # ------------------------------------------------------------------

    async def on_session_updated(self, event: SessionUpdated) -> None:
        self.configured = True
        model = event.transcription_model
        if model:
            logger.info("User transcription armed", call_id=self.call_id, model=model)
        else:
            logger.warning("User transcription not configured in session", call_id=self.call_id)

    async def on_speech_started(self, event: SpeechStarted) -> None:
        self.user_speaking = True
        self.analytics.record_speech_event(self.call_id)

        now = self._clock()
        if not self.tools_unlocked and now < self.barge_guard_until:
            logger.info("Barge guard active; ignoring speech", call_id=self.call_id,
                        remaining_ms=int((self.barge_guard_until - now) * 1000))
            return

        cancelled = await self.cancel_active_responses()
        if cancelled:
            self.analytics.record_barge_in(self.call_id)
        self._cancel_turn_timer()

    async def on_speech_stopped(self, event: SpeechStopped) -> None:
        if not (self.configured and self.user_speaking):
            return
        self.user_speaking = False
        if not self.heard_user:
            return
        self.analytics.mark_user_turn_start(self.call_id)
        self._schedule_turn_response()

    async def on_output_item_added(self, event: OutputItemAdded) -> None:
        if not event.is_function_call:
            return
        if not self.heard_user:
            logger.warning("Tool call blocked before caller spoke", call_id=self.call_id,
                           item_id=event.item_id, tool=event.name)
            if event.response_id:
                self.active_responses.discard(event.response_id)
                await self.channel.send_json({"type": "response.cancel", "response_id": event.response_id})
            return
        self.pending_tools[event.item_id] = PendingToolCall(name=event.name, call_id=event.call_id)
        logger.info("Tool call registered", call_id=self.call_id, item_id=event.item_id, tool=event.name)

    async def on_function_call_arguments_delta(self, event: FunctionCallArgumentsDelta) -> None:
        if not event.item_id:
            return
        pending = self.pending_tools.get(event.item_id)
        if pending is None or not event.delta:
            return
        pending.args_buffer += event.delta

    async def on_function_call_arguments_done(self, event: FunctionCallArgumentsDone) -> None:
        if not event.item_id:
            return
        pending = self.pending_tools.pop(event.item_id, None)
        if pending is None:
            return

        raw_arguments = event.arguments if event.arguments else pending.args_buffer
        arguments = parse_tool_arguments(raw_arguments)
        name = pending.name

        logger.info("Tool dispatch", call_id=self.call_id, tool=name, item_id=event.item_id,
                    args=truncate(raw_arguments or "{}", 200))
        started = self._clock()
        wall_started = time.time()
        try:
            result = await self.tools.execute(name, arguments, ToolExecutionContext(call_id=self.call_id))
        except ToolError as exc:
            duration_ms = (self._clock() - started) * 1000.0
            self.analytics.record_tool_call(self.call_id, ToolCallMetric(
                name=name, timestamp=wall_started, duration_ms=duration_ms, success=False, error=str(exc),
            ))
            logger.error("Tool execution failed", call_id=self.call_id, tool=name,
                         error_type=type(exc).__name__, error=str(exc), duration_ms=int(duration_ms))
            await self.request_response(QueuedResponseRequest(TOOL_ERROR_INSTRUCTIONS, SOURCE_TOOL_FOLLOW_UP_ERROR))
            return

        duration_ms = (self._clock() - started) * 1000.0
        self.analytics.record_tool_call(self.call_id, ToolCallMetric(
            name=name, timestamp=wall_started, duration_ms=duration_ms, success=True, args=arguments,
        ))
        logger.info("Tool succeeded", call_id=self.call_id, tool=name, duration_ms=int(duration_ms))

        correlation_id = event.call_id or pending.call_id
        if correlation_id:
            await self.send_function_result(correlation_id, result.output)
        else:
            logger.warning("Function result not sent: no correlation id", call_id=self.call_id,
                           tool=name, item_id=event.item_id)

        if name == HANDOFF_TOOL_NAME:
            self.analytics.set_transfer_reason(self.call_id, str(arguments.get("reason") or "unknown"))

        follow_up = result.follow_up_instructions or TOOL_FOLLOW_UP_TEMPLATE.format(
            tool_name=name, output=json.dumps(result.output),
        )
        await self.request_response(QueuedResponseRequest(follow_up, SOURCE_TOOL_FOLLOW_UP_SUCCESS))

    async def on_conversation_item(self, event: ConversationItem) -> None:
        if event.role == "assistant" and event.item_type == "message":
            text = event.message_text()
            if text:
                self._record_assistant_text(text)
        if event.role == "user":
            await self._mark_heard_user("conversation_item")

    async def on_input_transcription_completed(self, event: InputTranscriptionCompleted) -> None:
        if not event.transcript:
            return
        self.analytics.record_transcript(self.call_id, "user", event.transcript)
        self.analytics.mark_user_turn_start(self.call_id)
        logger.info("User transcript", call_id=self.call_id, text=truncate(redact_pii(event.transcript), 160))
        await self._mark_heard_user("transcript")

    async def on_input_transcription_failed(self, event: InputTranscriptionFailed) -> None:
        logger.warning("User input transcription failed", call_id=self.call_id, item_id=event.item_id,
                       code=event.code, message=event.message)

    async def on_response_created(self, event: ResponseCreated) -> None:
        if event.response_id:
            self.active_responses.add(event.response_id)

    async def on_response_finished(self, event: ResponseFinished) -> None:
        if not event.response_id:
            return
        text = self.response_texts.pop(event.response_id, "").strip()
        if text:
            self._record_assistant_text(text)
        self._measure_latency()

        self.active_responses.discard(event.response_id)
        if not self.active_responses:
            await self.flush_pending_follow_ups()

    async def on_response_text_delta(self, event: ResponseTextDelta) -> None:
        if not (event.delta and event.response_id):
            return
        self._measure_latency()
        self.response_texts[event.response_id] = self.response_texts.get(event.response_id, "") + event.delta

    async def on_response_audio_delta(self, event: ResponseAudioDelta) -> None:
        if event.delta:
            self._measure_latency()

    async def on_assistant_transcript_delta(self, event: AssistantTranscriptDelta) -> None:
        if not (event.delta and event.item_id):
            return
        self.assistant_transcripts[event.item_id] = self.assistant_transcripts.get(event.item_id, "") + event.delta

    async def on_assistant_transcript_done(self, event: AssistantTranscriptDone) -> None:
        if event.item_id:
            transcript = self.assistant_transcripts.pop(event.item_id, None) or event.transcript
        else:
            transcript = event.transcript
        if transcript:
            self._record_assistant_text(transcript)

    async def on_error(self, event: RealtimeError) -> None:
        logger.warning("Realtime error event", call_id=self.call_id, code=event.code,
                       param=event.param, error_type=event.error_type, message=event.message)
        if not event.is_voice_parameter_rejection:
            return
        if self.voice_fallback_applied:
            logger.error("Voice parameter rejected again after fallback; not retrying",
                         call_id=self.call_id, param=event.param)
            return
        self.voice_fallback_applied = True
        await self.send_session_update({"voice": self.config.realtime.voice})
        logger.info("Voice fallback applied", call_id=self.call_id, via="session.voice")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self, router) -> None:
        """Feed inbound messages to the router until the channel closes."""
        async for payload in self.channel.messages():
            await router.dispatch(self, payload)
            if self.closed:
                break

    async def close(self, reason: str = "channel_closed") -> None:
        if self.closed:
            return
        self.closed = True
        self._cancel_turn_timer()
        self._cancel_deferred_flush()
        if self.pending_tools or self.pending_follow_ups:
            logger.info("Discarding pending work on close", call_id=self.call_id,
                        pending_tools=len(self.pending_tools), pending_follow_ups=len(self.pending_follow_ups))
        self.pending_tools.clear()
        self.pending_follow_ups.clear()
        await self.channel.close(reason)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _mark_heard_user(self, reason: str) -> None:
        if self.heard_user:
            return
        self.heard_user = True
        self.barge_guard_until = 0.0
        await self.unlock_tools(reason)

    def _record_assistant_text(self, text: str) -> None:
        self.analytics.record_transcript(self.call_id, "assistant", text)
        logger.debug("Assistant transcript", call_id=self.call_id, text=truncate(text, 160))

    def _measure_latency(self) -> None:
        latency = self.analytics.mark_assistant_response(self.call_id)
        if latency is not None:
            logger.info("Turn latency measured", call_id=self.call_id, latency_ms=int(latency))


def parse_tool_arguments(raw: Optional[str]) -> Dict[str, Any]:
    """Decode streamed tool arguments; anything but a JSON object becomes {}."""
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}
