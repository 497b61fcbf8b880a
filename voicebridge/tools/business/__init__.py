"""
Business tools package.

Demo-data tools for orders, inventory, callbacks, hours, weather and stores.
"""

from voicebridge.tools.business.orders import CheckInventoryTool, LookupOrderTool, SearchProductsTool
from voicebridge.tools.business.scheduling import CheckCompanyHoursTool, ScheduleCallbackTool
from voicebridge.tools.business.locations import FindStoreLocationTool, GetWeatherTool

__all__ = [
    "LookupOrderTool",
    "CheckInventoryTool",
    "SearchProductsTool",
    "ScheduleCallbackTool",
    "CheckCompanyHoursTool",
    "GetWeatherTool",
    "FindStoreLocationTool",
]
