"""
Shared fixtures for voicebridge tests.

Provides an in-memory control channel, a controllable clock and a ready-made
call session so realtime behaviour can be driven event by event.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from voicebridge.config import AppConfig, TimingConfig, TransferConfig
from voicebridge.core.analytics import CallAnalytics
from voicebridge.realtime.router import EventRouter
from voicebridge.realtime.session import RealtimeCallSession
from voicebridge.tools.registry import build_default_registry


class FakeChannel:
    """Records outbound messages; replays a scripted inbound stream."""

    def __init__(self, incoming=None):
        self.sent = []
        self.closed = False
        self.close_calls = 0
        self.close_reason = None
        self._incoming = list(incoming or [])
        self.release = asyncio.Event()
        self.hold_open = False

    async def send_json(self, message):
        if self.closed:
            return False
        self.sent.append(message)
        return True

    def feed(self, *payloads):
        self._incoming.extend(payloads)

    async def messages(self):
        for payload in self._incoming:
            yield payload
        if self.hold_open:
            await self.release.wait()

    async def close(self, reason=None):
        self.close_calls += 1
        self.close_reason = reason
        self.closed = True

    def of_type(self, message_type):
        return [m for m in self.sent if m.get("type") == message_type]


class FakeClock:
    """Monotonic clock whose value only moves when a test advances it."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def app_config():
    """Config with a short turn delay and a transfer target."""
    return AppConfig(
        test_mode=True,
        timing=TimingConfig(turn_response_delay_ms=10, greeting_barge_guard_ms=2000, min_response_gap_ms=500),
        transfer=TransferConfig(sip_target_uri="sip:agent@example.com"),
    )


@pytest.fixture
def fake_channel():
    return FakeChannel()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def analytics():
    return CallAnalytics()


@pytest.fixture
def mock_gateway():
    gateway = Mock()
    gateway.refer = AsyncMock(return_value={})
    gateway.accept = AsyncMock(return_value={})
    gateway.hangup = AsyncMock(return_value={})
    return gateway


@pytest.fixture
def tool_registry(app_config, mock_gateway):
    return build_default_registry(app_config, mock_gateway)


@pytest.fixture
def router():
    return EventRouter()


@pytest.fixture
def session(app_config, fake_channel, tool_registry, analytics, clock):
    """A session for call_1 with analytics tracking already started."""
    analytics.start_call("call_1")
    return RealtimeCallSession("call_1", fake_channel, tool_registry, app_config, analytics, clock=clock)
