"""
Callback booking and business-hours tools.
"""

import time
from datetime import datetime
from typing import Callable, Dict, Optional

from pydantic import BaseModel, Field
import structlog

from voicebridge.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter, ToolResult
from voicebridge.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)

GENERAL_HOURS = {"weekday": "9:00 AM - 5:00 PM", "weekend": "Closed on weekends"}

DEPARTMENT_HOURS: Dict[str, Dict[str, str]] = {
    "sales": {"weekday": "9:00 AM - 6:00 PM", "weekend": "10:00 AM - 4:00 PM"},
    "support": {"weekday": "8:00 AM - 8:00 PM", "weekend": "9:00 AM - 5:00 PM"},
    "general": GENERAL_HOURS,
}

# Opening window used for the currently_open flag (local hour, half-open)
OPEN_HOUR = 9
CLOSE_HOUR = 17


class ScheduleCallbackArgs(BaseModel):
    reason: str = Field(min_length=5)
    preferredTime: str = Field(min_length=3)


class CheckCompanyHoursArgs(BaseModel):
    department: Optional[str] = None


class ScheduleCallbackTool(Tool):
    """Book a human callback and hand back a reference number."""

    args_model = ScheduleCallbackArgs

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="schedule_callback",
            description="Books a human callback with the provided context.",
            category=ToolCategory.BUSINESS,
            max_execution_time=10,
            parameters=[
                ToolParameter(
                    name="reason",
                    type="string",
                    description="Why the customer needs a callback.",
                    required=True,
                ),
                ToolParameter(
                    name="preferredTime",
                    type="string",
                    description="Desired timeslot (free text).",
                    required=True,
                ),
            ],
        )

    async def run(self, args: ScheduleCallbackArgs, context: ToolExecutionContext) -> ToolResult:
        reference = f"CB-{int(self._clock())}"
        logger.info("Callback scheduled", call_id=context.call_id, reference=reference)
        return ToolResult(
            output={
                "status": "scheduled",
                "reference": reference,
                "reason": args.reason,
                "preferredTime": args.preferredTime,
            },
            follow_up_instructions=(
                "Confirm the agreed callback window, share the reference number, "
                "and ask if there's anything else to handle."
            ),
        )


class CheckCompanyHoursTool(Tool):
    """
    Business hours for the company or one department.

    Unknown departments fall back to the general hours but keep the name the
    caller used.
    """

    args_model = CheckCompanyHoursArgs

    def __init__(self, timezone_name: Optional[str] = None, now: Callable[[], datetime] = datetime.now):
        self._timezone_name = timezone_name or "CET"
        self._now = now

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="check_company_hours",
            description="Retrieves business hours for the company or a specific department.",
            category=ToolCategory.BUSINESS,
            max_execution_time=5,
            parameters=[
                ToolParameter(
                    name="department",
                    type="string",
                    description="Optional department name (sales, support, etc.).",
                ),
            ],
        )

    async def run(self, args: CheckCompanyHoursArgs, context: ToolExecutionContext) -> ToolResult:
        dept = args.department or "general"
        hours = DEPARTMENT_HOURS.get(dept.lower(), GENERAL_HOURS)
        hour = self._now().hour
        return ToolResult(
            output={
                "department": dept,
                "weekday_hours": hours["weekday"],
                "weekend_hours": hours["weekend"],
                "timezone": self._timezone_name,
                "currently_open": OPEN_HOUR <= hour < CLOSE_HOUR,
            },
            follow_up_instructions=(
                f"Let the caller know {dept} hours are {hours['weekday']} on weekdays and "
                f"{hours['weekend']} on weekends. Ask if there's anything else you can help with."
            ),
        )
