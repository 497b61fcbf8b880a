"""Telephony tools that act on the call itself."""

from voicebridge.tools.telephony.handoff import HandoffHumanTool

__all__ = ["HandoffHumanTool"]
