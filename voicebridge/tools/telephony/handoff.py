"""
Handoff Tool - Transfer the caller to a human.

Issues a SIP REFER for the active call towards the configured target URI.
"""

from typing import Optional

from pydantic import BaseModel, Field
import structlog

from voicebridge.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter, ToolResult
from voicebridge.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)


class TransferNotConfiguredError(RuntimeError):
    pass


class HandoffHumanArgs(BaseModel):
    reason: str = Field(min_length=3)


class HandoffHumanTool(Tool):
    """
    Transfer the caller to a live human queue.

    Use when:
    - Caller asks for a person
    - A tool failed and the caller accepts the offered transfer
    - The request is outside what the assistant can handle
    """

    args_model = HandoffHumanArgs

    def __init__(self, gateway=None, target_uri: Optional[str] = None):
        self._gateway = gateway
        self._target_uri = target_uri

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="handoff_human",
            description="Transfers the caller to a live human queue.",
            category=ToolCategory.TELEPHONY,
            max_execution_time=15,
            parameters=[
                ToolParameter(
                    name="reason",
                    type="string",
                    description="Short sentence describing why the caller needs a human.",
                    required=True,
                ),
            ],
        )

    async def run(self, args: HandoffHumanArgs, context: ToolExecutionContext) -> ToolResult:
        if not self._target_uri:
            raise TransferNotConfiguredError("SIP_TARGET_URI is not configured")
        if self._gateway is None:
            raise TransferNotConfiguredError("No signaling gateway available for transfer")

        logger.info("Transferring caller to human", call_id=context.call_id,
                    target_uri=self._target_uri, reason=args.reason)
        await self._gateway.refer(context.call_id, self._target_uri)

        return ToolResult(
            output={
                "status": "transferring",
                "target_uri": self._target_uri,
                "reason": args.reason,
            },
            follow_up_instructions="Let the caller know you're transferring them now and to please hold.",
        )
