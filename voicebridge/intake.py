"""
Incoming-call intake.

Turns a verified ``realtime.call.incoming`` notification into a live call:
accept via the signaling gateway, open the control channel, build and register
the session, run it until the channel closes, then tear everything down.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import structlog

from voicebridge.config import AppConfig
from voicebridge.core.analytics import STATUS_COMPLETED, STATUS_FAILED, STATUS_TRANSFERRED, CallAnalytics
from voicebridge.core.call_registry import CallRegistry
from voicebridge.gateway import CallNotFoundError, SignalingGateway
from voicebridge.logging_config import set_correlation_id
from voicebridge.realtime.channel import ControlChannel
from voicebridge.realtime.router import EventRouter
from voicebridge.realtime.session import RealtimeCallSession
from voicebridge.tools.registry import ToolRegistry
from voicebridge.utils.sip_headers import extract_caller_phone

logger = structlog.get_logger(__name__)

CALL_INCOMING_EVENT = "realtime.call.incoming"


class InvalidNotificationError(ValueError):
    """A call notification that cannot be acted on (HTTP 400)."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class IncomingCall:
    call_id: str
    caller_phone: Optional[str] = None


def parse_incoming_call(event: Dict[str, Any]) -> Optional[IncomingCall]:
    """
    Extract the call from a webhook event.

    Returns None for event types other than realtime.call.incoming.

    Raises:
        InvalidNotificationError: If the call id is missing
    """
    if event.get("type") != CALL_INCOMING_EVENT:
        return None
    data = event.get("data")
    data = data if isinstance(data, dict) else {}
    call_id = data.get("call_id")
    if not isinstance(call_id, str) or not call_id:
        raise InvalidNotificationError("missing_call_id", "Incoming call notification has no call_id")
    sip_headers = data.get("sip_headers")
    caller_phone = extract_caller_phone(sip_headers if isinstance(sip_headers, list) else [])
    return IncomingCall(call_id=call_id, caller_phone=caller_phone)


ChannelFactory = Callable[[Any, str], Awaitable[Any]]


class IncomingCallIntake:
    """Owns the background task of every call it has started."""

    def __init__(
        self,
        config: AppConfig,
        gateway: SignalingGateway,
        tools: ToolRegistry,
        registry: CallRegistry,
        analytics: CallAnalytics,
        router: Optional[EventRouter] = None,
        channel_factory: Optional[ChannelFactory] = None,
        session_factory: Callable[..., RealtimeCallSession] = RealtimeCallSession,
    ):
        self.config = config
        self.gateway = gateway
        self.tools = tools
        self.registry = registry
        self.analytics = analytics
        self.router = router or EventRouter(debug_events=config.debug_events)
        self.channel_factory = channel_factory or ControlChannel.connect
        self.session_factory = session_factory
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> Set[asyncio.Task]:
        return set(self._tasks)

    def build_session_config(self) -> Dict[str, Any]:
        return {
            "type": "realtime",
            "model": self.config.realtime.model,
            "tools": self.tools.to_openai_realtime_schema(),
            "tool_choice": "none",
            "instructions": self.config.llm.prompt,
        }

    def handle_notification(self, event: Dict[str, Any]) -> Optional[asyncio.Task]:
        """
        Validate a webhook event and start the call in the background.

        Returns the scheduled task, or None when the event is not a call
        notification.

        Raises:
            InvalidNotificationError: If the notification is malformed
        """
        call = parse_incoming_call(event)
        if call is None:
            logger.info("Ignoring webhook event", type=event.get("type") or "unknown")
            return None

        logger.info("Incoming call notification", call_id=call.call_id, caller=call.caller_phone)
        task = asyncio.create_task(self.handle_incoming_call(call), name=f"call-{call.call_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def handle_incoming_call(self, call: IncomingCall) -> None:
        call_id = call.call_id
        set_correlation_id(call_id)
        self.analytics.start_call(call_id)
        if call.caller_phone:
            self.analytics.set_call_metadata(call_id, "caller_phone", call.caller_phone)

        try:
            await self.gateway.accept(call_id, self.build_session_config())
        except CallNotFoundError:
            logger.info("Accept skipped: call no longer exists", call_id=call_id, reason="call_id_not_found")
            self.analytics.end_call(call_id, STATUS_FAILED)
            return
        except Exception as exc:
            logger.error("Failed to accept call", call_id=call_id, error=str(exc), exc_info=True)
            self.analytics.end_call(call_id, STATUS_FAILED)
            return

        try:
            channel = await self.channel_factory(self.config.realtime, call_id)
        except Exception as exc:
            logger.error("Failed to open control channel", call_id=call_id, error=str(exc), exc_info=True)
            self.analytics.end_call(call_id, STATUS_FAILED)
            return

        session = self.session_factory(call_id, channel, self.tools, self.config, self.analytics)
        self.registry.register(session)
        status = STATUS_COMPLETED
        try:
            await session.start()
            await session.run(self.router)
        except asyncio.CancelledError:
            logger.info("Call task cancelled", call_id=call_id)
            raise
        except Exception as exc:
            status = STATUS_FAILED
            logger.error("Call session failed", call_id=call_id, error=str(exc), exc_info=True)
        finally:
            await self._finalize(session, status)

    async def _finalize(self, session: RealtimeCallSession, status: str) -> None:
        call_id = session.call_id
        try:
            await session.close()
        except Exception:
            logger.error("Error closing session", call_id=call_id, exc_info=True)
        self.registry.unregister(call_id, session)

        metrics = self.analytics.get_call_metrics(call_id)
        if status == STATUS_COMPLETED and metrics is not None and metrics.transfer_reason:
            status = STATUS_TRANSFERRED
        metrics = self.analytics.end_call(call_id, status)
        logger.info("Call ended", call_id=call_id, status=status)
        if metrics is not None:
            logger.info(
                "Call summary",
                call_id=call_id,
                duration_sec=round(metrics.duration or 0.0, 2),
                tool_calls=len(metrics.tool_calls),
                transcripts=len(metrics.transcripts),
                sentiment=metrics.sentiment,
                status=metrics.status,
            )

    async def shutdown(self) -> None:
        """Cancel in-flight calls and wait for their teardown."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Intake shut down", cancelled_calls=len(tasks))
