"""
Tool registry - central repository for all available tools.

Owns name lookup, schema export for the realtime session and the single
execute() entry point that validates arguments and runs handlers under
their execution budget.
"""

import asyncio
from typing import Any, Dict, List, Optional

import structlog

from voicebridge.tools.base import (
    Tool,
    ToolCategory,
    ToolHandlerError,
    ToolResult,
    UnsupportedToolError,
)
from voicebridge.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)


class ToolRegistry:
    """
    Registry for all available tools.

    One registry is built at startup and shared read-only by every call
    session.
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool instance.

        Tools take their collaborators (gateway, config) through their
        constructor, so the registry stores ready instances.
        """
        tool_name = tool.definition.name

        if tool_name in self._tools:
            logger.warning("Tool already registered, overwriting", tool=tool_name)

        self._tools[tool_name] = tool
        logger.debug("Registered tool", tool=tool_name, category=tool.definition.category.value)

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def get_all(self) -> List[Tool]:
        return list(self._tools.values())

    def get_by_category(self, category: ToolCategory) -> List[Tool]:
        return [
            tool for tool in self._tools.values()
            if tool.definition.category == category
        ]

    def list_tool_names(self) -> List[str]:
        return list(self._tools.keys())

    def to_openai_realtime_schema(self) -> List[Dict[str, Any]]:
        """
        Export all tools in OpenAI Realtime API format.

        Returns:
            List of flat function schemas, in registration order
        """
        return [
            tool.definition.to_openai_realtime_schema()
            for tool in self._tools.values()
        ]

    async def execute(self, name: str, raw_arguments: Any, context: ToolExecutionContext) -> ToolResult:
        """
        Validate arguments and run the named tool.

        Args:
            name: Tool name as sent by the AI
            raw_arguments: Decoded JSON arguments (usually a dict)
            context: Per-call execution context

        Returns:
            ToolResult from the handler

        Raises:
            UnsupportedToolError: Unknown tool name
            InvalidToolArgumentsError: Arguments failed validation
            ToolHandlerError: Handler raised or timed out
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnsupportedToolError(name)

        args = tool.validate_arguments(raw_arguments)
        budget = tool.definition.max_execution_time

        try:
            result = await asyncio.wait_for(tool.run(args, context), timeout=budget)
        except asyncio.TimeoutError as exc:
            logger.warning("Tool execution timed out", call_id=context.call_id, tool=name, timeout_sec=budget)
            raise ToolHandlerError(name, exc) from exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise ToolHandlerError(name, exc) from exc

        logger.debug("Tool executed", call_id=context.call_id, tool=name)
        return result


def build_default_registry(config, gateway=None) -> ToolRegistry:
    """
    Register all built-in tools.

    Args:
        config: AppConfig (for transfer target and per-tool settings)
        gateway: SignalingGateway used by handoff_human for SIP REFER
    """
    from voicebridge.tools.business.orders import (
        CheckInventoryTool,
        LookupOrderTool,
        SearchProductsTool,
    )
    from voicebridge.tools.business.scheduling import CheckCompanyHoursTool, ScheduleCallbackTool
    from voicebridge.tools.business.locations import FindStoreLocationTool, GetWeatherTool
    from voicebridge.tools.telephony.handoff import HandoffHumanTool

    tools_config = getattr(config, "tools", None) or {}
    registry = ToolRegistry()
    registry.register(HandoffHumanTool(gateway=gateway, target_uri=config.transfer.sip_target_uri))
    registry.register(LookupOrderTool())
    registry.register(CheckInventoryTool())
    registry.register(ScheduleCallbackTool())
    registry.register(GetWeatherTool())
    registry.register(CheckCompanyHoursTool(timezone_name=_tool_setting(tools_config, "check_company_hours", "timezone")))
    registry.register(SearchProductsTool())
    registry.register(FindStoreLocationTool())

    logger.info("Tool registry initialized", tools=registry.list_tool_names())
    return registry


def _tool_setting(tools_config: Dict[str, Any], name: str, key: str) -> Any:
    block = tools_config.get(name) or {}
    return block.get(key) if isinstance(block, dict) else None
