"""voicebridge: control-plane bridge between Realtime SIP calls and an AI session."""

__version__ = "0.1.0"
