"""Nutrition lookup tools backed by the OpenFoodFacts catalog."""
from __future__ import annotations

from typing import Any, Dict, List

from nutriagent.services.openfoodfacts import OpenFoodFactsClient
from nutriagent.tools.registry import ToolDefinition, ToolRegistry, tolerant_gather

_PAGE = {"type": "number", "description": "Page number (default 1)"}

BARCODE_SCHEMA = {
    "type": "object",
    "properties": {
        "barcode": {
            "type": "string",
            "description": "The product barcode (EAN-13 or UPC-A), e.g. '3017620422003' for Nutella",
        },
    },
    "required": ["barcode"],
}

SEARCH_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "Product name or keyword to search for"},
        "page": _PAGE,
        "page_size": {"type": "number", "description": "Results per page, max 50 (default 5)"},
    },
    "required": ["query"],
}

CATEGORY_SCHEMA = {
    "type": "object",
    "properties": {
        "category": {"type": "string", "description": "Food category name"},
        "page": _PAGE,
        "page_size": {"type": "number", "description": "Results per page (default 5)"},
    },
    "required": ["category"],
}

COMPARE_SCHEMA = {
    "type": "object",
    "properties": {
        "barcodes": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Array of barcodes to compare",
        },
    },
    "required": ["barcodes"],
}

ALLERGEN_SCHEMA = {
    "type": "object",
    "properties": {
        "barcode": {"type": "string", "description": "Product barcode"},
    },
    "required": ["barcode"],
}


def build_food_registry(client: OpenFoodFactsClient) -> ToolRegistry:
    """Wire the five nutrition tools to a catalog client."""

    async def get_product_by_barcode(args: Dict[str, Any]) -> Dict[str, Any]:
        return await client.get_product_by_barcode(str(args["barcode"]))

    async def search_products(args: Dict[str, Any]) -> Dict[str, Any]:
        return await client.search_products(
            str(args["query"]),
            page=args.get("page") or 1,
            page_size=args.get("page_size") or 5,
        )

    async def get_products_by_category(args: Dict[str, Any]) -> Dict[str, Any]:
        return await client.get_products_by_category(
            str(args["category"]),
            page=args.get("page") or 1,
            page_size=args.get("page_size") or 5,
        )

    async def compare_products(args: Dict[str, Any]) -> List[Dict[str, Any]]:
        barcodes = args["barcodes"]
        if isinstance(barcodes, str):
            barcodes = [barcodes]
        return await tolerant_gather(*(client.get_product_by_barcode(str(code)) for code in barcodes))

    async def get_allergen_info(args: Dict[str, Any]) -> Dict[str, Any]:
        return await client.get_allergen_info(str(args["barcode"]))

    return ToolRegistry(
        [
            ToolDefinition(
                name="get_product_by_barcode",
                description=(
                    "Look up a food product by its barcode (EAN/UPC). Returns full nutritional "
                    "facts, Nutri-Score, ingredients, allergens."
                ),
                input_schema=BARCODE_SCHEMA,
                executor=get_product_by_barcode,
            ),
            ToolDefinition(
                name="search_products",
                description=(
                    "Search the OpenFoodFacts database by product name or keyword. Returns "
                    "matching products with nutritional info."
                ),
                input_schema=SEARCH_SCHEMA,
                executor=search_products,
            ),
            ToolDefinition(
                name="get_products_by_category",
                description=(
                    "Browse products in a specific food category, e.g. 'breakfast-cereals', "
                    "'yogurts', 'sodas'."
                ),
                input_schema=CATEGORY_SCHEMA,
                executor=get_products_by_category,
            ),
            ToolDefinition(
                name="compare_products",
                description=(
                    "Compare nutritional facts and Nutri-Score across multiple products by "
                    "their barcodes."
                ),
                input_schema=COMPARE_SCHEMA,
                executor=compare_products,
            ),
            ToolDefinition(
                name="get_allergen_info",
                description=(
                    "Get allergen and trace information for a product by barcode. Useful for "
                    "dietary restriction checks."
                ),
                input_schema=ALLERGEN_SCHEMA,
                executor=get_allergen_info,
            ),
        ]
    )
