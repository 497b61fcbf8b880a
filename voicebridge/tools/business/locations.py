"""
Weather and store-location tools (demo data).
"""

import random
from typing import Optional

from pydantic import BaseModel, Field

from voicebridge.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter, ToolResult
from voicebridge.tools.context import ToolExecutionContext

WEATHER_CONDITIONS = ["sunny", "partly cloudy", "cloudy", "rainy"]

DEMO_STORES = [
    {
        "name": "Downtown Store",
        "address": "123 Main Street",
        "distance_km": 2.5,
        "phone": "+1-555-0100",
    },
    {
        "name": "Mall Location",
        "address": "456 Shopping Center",
        "distance_km": 5.2,
        "phone": "+1-555-0200",
    },
]


class GetWeatherArgs(BaseModel):
    location: str = Field(min_length=2)


class FindStoreLocationArgs(BaseModel):
    zipCode: Optional[str] = None


def celsius_to_fahrenheit(celsius: float) -> int:
    return round(celsius * 9 / 5 + 32)


class GetWeatherTool(Tool):
    """Current conditions for a location; values are simulated."""

    args_model = GetWeatherArgs

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_weather",
            description="Provides current weather and forecast for a specified location.",
            category=ToolCategory.BUSINESS,
            max_execution_time=10,
            parameters=[
                ToolParameter(
                    name="location",
                    type="string",
                    description="City or location name to get weather for.",
                    required=True,
                ),
            ],
        )

    async def run(self, args: GetWeatherArgs, context: ToolExecutionContext) -> ToolResult:
        condition = self._rng.choice(WEATHER_CONDITIONS)
        temp = self._rng.randint(10, 29)
        humidity = self._rng.randint(40, 79)
        temp_f = celsius_to_fahrenheit(temp)
        return ToolResult(
            output={
                "location": args.location,
                "temperature_celsius": temp,
                "temperature_fahrenheit": temp_f,
                "condition": condition,
                "humidity_percent": humidity,
                "forecast": f"{condition} conditions expected to continue",
            },
            follow_up_instructions=(
                f"Share the weather for {args.location}: {temp}°C ({temp_f}°F) and {condition}. "
                "Ask if they need anything else."
            ),
        )


class FindStoreLocationTool(Tool):
    """Nearest store by ZIP code."""

    args_model = FindStoreLocationArgs

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="find_store_location",
            description="Finds the nearest store location based on ZIP code or area.",
            category=ToolCategory.BUSINESS,
            max_execution_time=10,
            parameters=[
                ToolParameter(
                    name="zipCode",
                    type="string",
                    description="ZIP/postal code for location search.",
                ),
            ],
        )

    async def run(self, args: FindStoreLocationArgs, context: ToolExecutionContext) -> ToolResult:
        if not DEMO_STORES:
            raise LookupError("No store locations available")
        nearest = DEMO_STORES[0]
        return ToolResult(
            output={
                "search_area": args.zipCode or "your area",
                "nearest_store": nearest,
                "additional_locations": len(DEMO_STORES) - 1,
                "stores": DEMO_STORES,
            },
            follow_up_instructions=(
                f"Share that the nearest store is {nearest['name']} at {nearest['address']}, "
                f"about {nearest['distance_km']}km away. Provide the phone number {nearest['phone']}. "
                "Ask if they need directions or hours."
            ),
        )
