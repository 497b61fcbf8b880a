"""
Tool execution context.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ToolExecutionContext:
    """
    Context provided to tools during execution.

    Deliberately minimal: handlers get the call identifier and nothing that
    would let them reach into the session or its control channel.
    """

    call_id: str
