"""
Order, inventory and product-search tools.

Backed by demo data; swap the bodies of run() for real backend lookups.
"""

import random
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field
import structlog

from voicebridge.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter, ToolResult
from voicebridge.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)

# Letters, digits and dashes; matched case-insensitively
IDENTIFIER_PATTERN = r"^[A-Za-z0-9-]+$"

DEMO_PRODUCTS = [
    {"name": "Premium Wireless Headphones", "price": 299, "rating": 4.5},
    {"name": "Smart Watch Pro", "price": 399, "rating": 4.7},
    {"name": "Portable Speaker", "price": 149, "rating": 4.3},
]


class LookupOrderArgs(BaseModel):
    orderNumber: str = Field(min_length=4, max_length=32, pattern=IDENTIFIER_PATTERN)


class CheckInventoryArgs(BaseModel):
    sku: str = Field(min_length=3, max_length=24, pattern=IDENTIFIER_PATTERN)


class SearchProductsArgs(BaseModel):
    query: str = Field(min_length=2)
    category: Optional[str] = None


class LookupOrderTool(Tool):
    """Report the latest status of a caller's order."""

    args_model = LookupOrderArgs

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="lookup_order",
            description="Retrieves the latest order status for a caller.",
            category=ToolCategory.BUSINESS,
            max_execution_time=10,
            parameters=[
                ToolParameter(
                    name="orderNumber",
                    type="string",
                    description="The caller's order number (letters+digits).",
                    required=True,
                ),
            ],
        )

    async def run(self, args: LookupOrderArgs, context: ToolExecutionContext) -> ToolResult:
        order_number = args.orderNumber
        logger.info("Order lookup", call_id=context.call_id, order_number=order_number)
        return ToolResult(
            output={
                "orderNumber": order_number,
                "status": "processing",
                "last_updated": datetime.now(timezone.utc).isoformat(),
                "eta_days": 2,
            },
            follow_up_instructions=(
                f"Let the caller know order {order_number} is processing and should ship within about 2 days."
            ),
        )


class CheckInventoryTool(Tool):
    """
    Check stock for a SKU.

    Availability is simulated: roughly three in four lookups report stock.
    """

    args_model = CheckInventoryArgs

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="check_inventory",
            description="Checks if a product is in stock and estimates delivery timing.",
            category=ToolCategory.BUSINESS,
            max_execution_time=10,
            parameters=[
                ToolParameter(
                    name="sku",
                    type="string",
                    description="SKU, article ID, or product name fragment.",
                    required=True,
                ),
            ],
        )

    async def run(self, args: CheckInventoryArgs, context: ToolExecutionContext) -> ToolResult:
        sku = args.sku.upper()
        available = self._rng.random() > 0.25
        quantity = self._rng.randint(1, 8) if available else 0

        if available:
            follow_up = (
                f"Confirm item {sku} is in stock (qty {quantity}) and offer express shipping within ~2 days."
            )
        else:
            follow_up = (
                f"Explain that item {sku} is currently unavailable, mention a ~6-day restock, "
                "and offer alternatives or a callback."
            )

        return ToolResult(
            output={
                "sku": sku,
                "available": available,
                "quantity": quantity,
                "eta_days": 2 if available else 6,
            },
            follow_up_instructions=follow_up,
        )


class SearchProductsTool(Tool):
    """Search the (demo) catalog and return the top two matches."""

    args_model = SearchProductsArgs

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="search_products",
            description="Searches the product catalog and recommends items based on query.",
            category=ToolCategory.BUSINESS,
            max_execution_time=10,
            parameters=[
                ToolParameter(
                    name="query",
                    type="string",
                    description="Product search query.",
                    required=True,
                ),
                ToolParameter(
                    name="category",
                    type="string",
                    description="Optional category filter.",
                ),
            ],
        )

    async def run(self, args: SearchProductsArgs, context: ToolExecutionContext) -> ToolResult:
        results = DEMO_PRODUCTS[:2]
        summary = ", ".join(f"{p['name']} at ${p['price']}" for p in results)
        return ToolResult(
            output={
                "query": args.query,
                "category": args.category or "all",
                "results_count": len(results),
                "top_matches": results,
                "total_available": len(DEMO_PRODUCTS),
            },
            follow_up_instructions=(
                f"Share the top product matches: {summary}. "
                "Ask if they'd like details on any specific item or help with ordering."
            ),
        )
