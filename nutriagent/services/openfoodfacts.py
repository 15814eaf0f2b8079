"""OpenFoodFacts catalog client returning lean, agent-friendly records."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from nutriagent.core.errors import DataSourceError, ProductNotFoundError

logger = logging.getLogger(__name__)

USER_AGENT = "NutriAgent/1.2 (python; contact@nutriagent.dev)"
MAX_PAGE_SIZE = 50

_NUTRIENT_KEYS = (
    ("energy_kcal_100g", ("energy-kcal_100g", "energy_kcal_100g")),
    ("fat_100g", ("fat_100g",)),
    ("saturated_fat_100g", ("saturated-fat_100g", "saturated_fat_100g")),
    ("carbohydrates_100g", ("carbohydrates_100g",)),
    ("sugars_100g", ("sugars_100g",)),
    ("fiber_100g", ("fiber_100g",)),
    ("proteins_100g", ("proteins_100g",)),
    ("salt_100g", ("salt_100g",)),
    ("sodium_100g", ("sodium_100g",)),
)

_ALLERGEN_FIELDS = "product_name,allergens,allergens_tags,traces,traces_tags"


def _first(record: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return default


def summarise(product: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a raw catalog product into the summary shape exposed to tools."""
    nutriments = product.get("nutriments") or {}
    return {
        "code": str(product.get("code", "")),
        "product_name": str(_first(product, "product_name", "product_name_en", default="Unknown")),
        "brands": str(product.get("brands") or ""),
        "categories": str(product.get("categories") or ""),
        "nutriscore_grade": str(product.get("nutriscore_grade") or "unknown"),
        "nova_group": _first(product, "nova_group", default="unknown"),
        "ecoscore_grade": str(product.get("ecoscore_grade") or "unknown"),
        "image_url": str(_first(product, "image_front_url", "image_url", default="")),
        "nutriments": {
            name: _first(nutriments, *aliases) for name, aliases in _NUTRIENT_KEYS
        },
        "ingredients_text": str(_first(product, "ingredients_text", "ingredients_text_en", default="")),
        "allergens": str(product.get("allergens") or ""),
        "quantity": str(product.get("quantity") or ""),
    }


def _paging(page: Any, page_size: Any) -> tuple[int, int]:
    page_number = max(1, int(page or 1))
    size = min(MAX_PAGE_SIZE, max(1, int(page_size or 5)))
    return page_number, size


def category_tag(category: str) -> str:
    """Turn a free-form category name into the catalog's tag form."""
    return re.sub(r"\s+", "-", category.strip().lower())


class OpenFoodFactsClient:
    """Thin async wrapper over the public OpenFoodFacts read API."""

    def __init__(
        self,
        base_url: str = "https://world.openfoodfacts.org",
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 20.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _fetch(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        missing_ok: bool = False,
    ) -> Dict[str, Any]:
        """GET a catalog path; with ``missing_ok`` a 404 yields an empty payload."""
        url = f"{self._base_url}{path}"
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        logger.debug("GET %s params=%s", url, params)
        try:
            response = await self._http.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise DataSourceError(f"OpenFoodFacts request failed: {exc}") from exc
        if missing_ok and response.status_code == 404:
            return {}
        if response.is_error:
            raise DataSourceError(f"OpenFoodFacts {response.status_code}: {response.reason_phrase}")
        try:
            return response.json()
        except ValueError as exc:
            raise DataSourceError("OpenFoodFacts returned a non-JSON body") from exc

    async def get_product_by_barcode(self, barcode: str) -> Dict[str, Any]:
        data = await self._fetch(f"/api/v2/product/{quote(barcode, safe='')}.json", missing_ok=True)
        product = data.get("product")
        if not product:
            raise ProductNotFoundError(barcode)
        return summarise(product)

    async def search_products(self, query: str, page: int = 1, page_size: int = 5) -> Dict[str, Any]:
        page_number, size = _paging(page, page_size)
        data = await self._fetch(
            "/cgi/search.pl",
            params={
                "search_terms": query,
                "search_simple": "1",
                "action": "process",
                "json": "true",
                "page": page_number,
                "page_size": size,
            },
        )
        return self._listing(data)

    async def get_products_by_category(self, category: str, page: int = 1, page_size: int = 5) -> Dict[str, Any]:
        page_number, size = _paging(page, page_size)
        data = await self._fetch(
            f"/category/{category_tag(category)}.json",
            params={"page": page_number, "page_size": size},
        )
        return self._listing(data)

    async def get_allergen_info(self, barcode: str) -> Dict[str, Any]:
        data = await self._fetch(
            f"/api/v2/product/{quote(barcode, safe='')}.json",
            params={"fields": _ALLERGEN_FIELDS},
            missing_ok=True,
        )
        product = data.get("product")
        if not product:
            raise ProductNotFoundError(barcode)
        return {
            "product_name": str(product.get("product_name") or "Unknown"),
            "allergens": str(product.get("allergens") or ""),
            "allergens_tags": list(product.get("allergens_tags") or []),
            "traces": str(product.get("traces") or ""),
            "traces_tags": list(product.get("traces_tags") or []),
        }

    @staticmethod
    def _listing(data: Dict[str, Any]) -> Dict[str, Any]:
        products: List[Dict[str, Any]] = [summarise(p) for p in data.get("products") or []]
        return {"count": data.get("count") or 0, "products": products}
