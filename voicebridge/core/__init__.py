"""Process-wide state owned by the application: the call registry and analytics."""

from voicebridge.core.analytics import CallAnalytics
from voicebridge.core.call_registry import CallRegistry

__all__ = ["CallAnalytics", "CallRegistry"]
