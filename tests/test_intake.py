"""
Unit tests for IncomingCallIntake.

The gateway is mocked and the channel factory hands out an in-memory
channel, so a whole call can be driven from notification to teardown.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from voicebridge.core.analytics import STATUS_COMPLETED, STATUS_FAILED, STATUS_TRANSFERRED
from voicebridge.core.call_registry import CallRegistry
from voicebridge.gateway import CallNotFoundError
from voicebridge.intake import IncomingCallIntake, InvalidNotificationError, parse_incoming_call


def incoming(call_id="call_1", sip_headers=None):
    data = {"call_id": call_id}
    if sip_headers is not None:
        data["sip_headers"] = sip_headers
    return {"type": "realtime.call.incoming", "data": data}


async def wait_until(predicate, attempts=100):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0)
    return predicate()


@pytest.fixture
def call_registry():
    return CallRegistry()


@pytest.fixture
def held_channel(fake_channel):
    fake_channel.hold_open = True
    return fake_channel


@pytest.fixture
def intake(app_config, mock_gateway, tool_registry, call_registry, analytics, held_channel):
    return IncomingCallIntake(
        app_config,
        mock_gateway,
        tool_registry,
        call_registry,
        analytics,
        channel_factory=AsyncMock(return_value=held_channel),
    )


class TestParseIncomingCall:
    """Notification validation."""

    def test_extracts_call_and_caller(self):
        call = parse_incoming_call(incoming(sip_headers=[{"name": "From", "value": "sip:+15551234567@x.com"}]))

        assert call.call_id == "call_1"
        assert call.caller_phone == "+15551234567"

    def test_other_event_types_ignored(self):
        assert parse_incoming_call({"type": "realtime.call.ended", "data": {"call_id": "x"}}) is None
        assert parse_incoming_call({}) is None

    @pytest.mark.parametrize("event", [
        {"type": "realtime.call.incoming"},
        {"type": "realtime.call.incoming", "data": {}},
        {"type": "realtime.call.incoming", "data": {"call_id": ""}},
        {"type": "realtime.call.incoming", "data": {"call_id": 12}},
    ])
    def test_missing_call_id(self, event):
        with pytest.raises(InvalidNotificationError) as exc_info:
            parse_incoming_call(event)

        assert exc_info.value.code == "missing_call_id"


class TestIncomingCallIntake:
    """Accept, register, run and tear down a call."""

    def test_session_config_starts_with_tools_locked(self, intake, app_config):
        config = intake.build_session_config()

        assert config["type"] == "realtime"
        assert config["model"] == app_config.realtime.model
        assert config["tool_choice"] == "none"
        assert config["instructions"] == app_config.llm.prompt
        assert [t["name"] for t in config["tools"]][0] == "handoff_human"

    @pytest.mark.asyncio
    async def test_incoming_call_is_registered_while_live(
        self, intake, mock_gateway, call_registry, held_channel, analytics
    ):
        """The session is registered after accept and removed once the channel ends."""
        task = intake.handle_notification(incoming(
            sip_headers=[{"name": "From", "value": "sip:+15551234567@example.com"}],
        ))

        assert await wait_until(lambda: "call_1" in call_registry)
        mock_gateway.accept.assert_awaited_once()
        assert mock_gateway.accept.await_args.args[0] == "call_1"
        assert held_channel.of_type("session.update")
        assert analytics.get_call_metrics("call_1").metadata["caller_phone"] == "+15551234567"

        held_channel.release.set()
        await task

        assert "call_1" not in call_registry
        assert held_channel.close_calls == 1
        assert analytics.get_call_metrics("call_1").status == STATUS_COMPLETED

    @pytest.mark.asyncio
    async def test_call_gone_before_accept_is_benign(self, intake, mock_gateway, call_registry, analytics):
        """call_id_not_found on accept ends the call quietly without a channel."""
        mock_gateway.accept.side_effect = CallNotFoundError("call_1", "accept failed (404)", status=404)

        task = intake.handle_notification(incoming())
        await task

        intake.channel_factory.assert_not_awaited()
        assert len(call_registry) == 0
        assert analytics.get_call_metrics("call_1").status == STATUS_FAILED

    @pytest.mark.asyncio
    async def test_channel_failure_ends_call(self, intake, call_registry, analytics):
        intake.channel_factory.side_effect = OSError("connection refused")

        await intake.handle_notification(incoming())

        assert len(call_registry) == 0
        assert analytics.get_call_metrics("call_1").status == STATUS_FAILED

    @pytest.mark.asyncio
    async def test_transfer_reason_marks_call_transferred(self, intake, call_registry, held_channel, analytics):
        task = intake.handle_notification(incoming())
        assert await wait_until(lambda: "call_1" in call_registry)

        analytics.set_transfer_reason("call_1", "wants a person")
        held_channel.release.set()
        await task

        assert analytics.get_call_metrics("call_1").status == STATUS_TRANSFERRED

    @pytest.mark.asyncio
    async def test_non_call_event_starts_nothing(self, intake):
        assert intake.handle_notification({"type": "realtime.call.ended"}) is None
        assert intake.pending_tasks == set()

    @pytest.mark.asyncio
    async def test_missing_call_id_raises(self, intake):
        with pytest.raises(InvalidNotificationError):
            intake.handle_notification({"type": "realtime.call.incoming", "data": {}})

    @pytest.mark.asyncio
    async def test_shutdown_cancels_live_calls(self, intake, call_registry, held_channel):
        """Shutdown cancels in-flight calls and still tears them down."""
        intake.handle_notification(incoming())
        assert await wait_until(lambda: "call_1" in call_registry)

        await intake.shutdown()

        assert len(call_registry) == 0
        assert held_channel.closed is True
        assert intake.pending_tasks == set()
