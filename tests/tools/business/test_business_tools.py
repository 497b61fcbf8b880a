"""
Unit tests for the demo business tools.

Randomised tools receive a seeded or stubbed generator so outputs are
deterministic.
"""

from datetime import datetime
from unittest.mock import Mock

import pytest

from voicebridge.tools.base import InvalidToolArgumentsError
from voicebridge.tools.business.locations import (
    DEMO_STORES,
    FindStoreLocationTool,
    GetWeatherTool,
    celsius_to_fahrenheit,
)
from voicebridge.tools.business.orders import (
    DEMO_PRODUCTS,
    CheckInventoryTool,
    LookupOrderTool,
    SearchProductsTool,
)
from voicebridge.tools.business.scheduling import CheckCompanyHoursTool, ScheduleCallbackTool
from voicebridge.tools.context import ToolExecutionContext


@pytest.fixture
def context():
    return ToolExecutionContext(call_id="call_1")


def stub_rng(random_value=0.5, randint_value=3, choice_value="sunny"):
    rng = Mock()
    rng.random.return_value = random_value
    rng.randint.return_value = randint_value
    rng.choice.return_value = choice_value
    return rng


class TestLookupOrderTool:
    """lookup_order argument rules and output."""

    @pytest.mark.asyncio
    async def test_reports_processing(self, context):
        tool = LookupOrderTool()
        result = await tool.run(tool.validate_arguments({"orderNumber": "ACME-1001"}), context)

        assert result.output["orderNumber"] == "ACME-1001"
        assert result.output["status"] == "processing"
        assert result.output["eta_days"] == 2
        assert "ACME-1001" in result.follow_up_instructions

    @pytest.mark.parametrize("order_number", ["A1", "has space 1", "x" * 33, "ORD_123"])
    def test_rejects_bad_order_numbers(self, order_number):
        """Too short, too long or with characters outside letters, digits and dashes."""
        with pytest.raises(InvalidToolArgumentsError):
            LookupOrderTool().validate_arguments({"orderNumber": order_number})


class TestCheckInventoryTool:
    """check_inventory availability branches."""

    @pytest.mark.asyncio
    async def test_in_stock(self, context):
        tool = CheckInventoryTool(rng=stub_rng(random_value=0.9, randint_value=5))
        result = await tool.run(tool.validate_arguments({"sku": "abc-12"}), context)

        assert result.output == {"sku": "ABC-12", "available": True, "quantity": 5, "eta_days": 2}
        assert "in stock" in result.follow_up_instructions

    @pytest.mark.asyncio
    async def test_out_of_stock(self, context):
        tool = CheckInventoryTool(rng=stub_rng(random_value=0.1))
        result = await tool.run(tool.validate_arguments({"sku": "abc-12"}), context)

        assert result.output["available"] is False
        assert result.output["quantity"] == 0
        assert result.output["eta_days"] == 6
        assert "unavailable" in result.follow_up_instructions

    def test_short_sku_rejected(self):
        with pytest.raises(InvalidToolArgumentsError):
            CheckInventoryTool().validate_arguments({"sku": "ab"})


class TestSearchProductsTool:
    @pytest.mark.asyncio
    async def test_top_two_matches(self, context):
        tool = SearchProductsTool()
        result = await tool.run(tool.validate_arguments({"query": "headphones"}), context)

        assert result.output["category"] == "all"
        assert result.output["top_matches"] == DEMO_PRODUCTS[:2]
        assert result.output["total_available"] == 3


class TestScheduleCallbackTool:
    @pytest.mark.asyncio
    async def test_reference_uses_clock(self, context):
        tool = ScheduleCallbackTool(clock=lambda: 1700000000.7)
        args = tool.validate_arguments({"reason": "billing question", "preferredTime": "tomorrow 10am"})

        result = await tool.run(args, context)

        assert result.output["reference"] == "CB-1700000000"
        assert result.output["status"] == "scheduled"

    def test_short_reason_rejected(self):
        with pytest.raises(InvalidToolArgumentsError):
            ScheduleCallbackTool().validate_arguments({"reason": "hi", "preferredTime": "now"})


class TestCheckCompanyHoursTool:
    """Department hours and the open-now flag."""

    @pytest.mark.asyncio
    async def test_support_hours_open(self, context):
        tool = CheckCompanyHoursTool(timezone_name="Europe/Berlin", now=lambda: datetime(2025, 1, 6, 10, 0))
        result = await tool.run(tool.validate_arguments({"department": "Support"}), context)

        assert result.output["weekday_hours"] == "8:00 AM - 8:00 PM"
        assert result.output["timezone"] == "Europe/Berlin"
        assert result.output["currently_open"] is True

    @pytest.mark.asyncio
    async def test_unknown_department_uses_general_hours(self, context):
        """An unknown department keeps its name but reports general hours."""
        tool = CheckCompanyHoursTool(now=lambda: datetime(2025, 1, 6, 17, 0))
        result = await tool.run(tool.validate_arguments({"department": "legal"}), context)

        assert result.output["department"] == "legal"
        assert result.output["weekday_hours"] == "9:00 AM - 5:00 PM"
        assert result.output["timezone"] == "CET"
        assert result.output["currently_open"] is False


class TestLocationTools:
    """get_weather and find_store_location."""

    def test_celsius_to_fahrenheit(self):
        assert celsius_to_fahrenheit(0) == 32
        assert celsius_to_fahrenheit(21) == 70

    @pytest.mark.asyncio
    async def test_weather(self, context):
        tool = GetWeatherTool(rng=stub_rng(randint_value=20, choice_value="rainy"))
        result = await tool.run(tool.validate_arguments({"location": "Berlin"}), context)

        assert result.output["location"] == "Berlin"
        assert result.output["condition"] == "rainy"
        assert result.output["temperature_fahrenheit"] == 68

    @pytest.mark.asyncio
    async def test_store_without_zip(self, context):
        tool = FindStoreLocationTool()
        result = await tool.run(tool.validate_arguments({}), context)

        assert result.output["search_area"] == "your area"
        assert result.output["nearest_store"] == DEMO_STORES[0]
        assert result.output["additional_locations"] == len(DEMO_STORES) - 1
