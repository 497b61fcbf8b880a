"""
Tool calling system for voicebridge.

Tools are advertised to the realtime session at call acceptance and invoked
through ToolRegistry.execute() when the AI issues a function call.
"""

__version__ = "1.0.0"
