"""Open Food Facts barcode lookup and product search."""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass

from nutrition_resolver.adapters.openfoodfacts_client import OpenFoodFactsClient
from nutrition_resolver.domain.branded import MatchSource, NutritionData, ProductCandidate

KJ_PER_KCAL = 4.184
SODIUM_PER_SALT = 0.393

_logger = logging.getLogger(__name__)


def normalize_nutriments(
    nutriments: Mapping[str, object] | None, per: str = "100g"
) -> NutritionData | None:
    """Convert OFF nutriments to absolute values, or None without calories.

    ``per`` selects the ``_100g`` or ``_serving`` variant of each field.
    Energy falls back to kJ / 4.184 and sodium to salt x 0.393 (g to mg).
    """
    if not isinstance(nutriments, Mapping):
        return None

    def value(key: str) -> float | None:
        raw = nutriments.get(f"{key}_{per}")
        if isinstance(raw, bool) or not isinstance(raw, int | float | str):
            return None
        try:
            number = float(raw)
        except ValueError:
            return None
        return number if math.isfinite(number) else None

    calories = value("energy-kcal")
    if calories is None:
        kilojoules = value("energy-kj") or value("energy")
        calories = kilojoules / KJ_PER_KCAL if kilojoules else None
    if not calories or calories <= 0:
        return None

    sodium_grams = value("sodium")
    if sodium_grams is None:
        salt = value("salt")
        sodium_grams = salt * SODIUM_PER_SALT if salt is not None else 0.0

    return NutritionData(
        calories=round(calories),
        protein=round(value("proteins") or 0.0, 1),
        carbs=round(value("carbohydrates") or 0.0, 1),
        fat=round(value("fat") or 0.0, 1),
        fiber=round(value("fiber") or 0.0, 1),
        sugar=round(value("sugars") or 0.0, 1),
        sodium=round(sodium_grams * 1000),
    )


def product_nutrition(product: Mapping[str, object]) -> NutritionData | None:
    """Return nutrition for one serving, else per 100 g.

    Declared per-serving values win; otherwise per-100g values are scaled by
    ``serving_quantity`` when OFF knows it.
    """
    nutriments = product.get("nutriments")
    if not isinstance(nutriments, Mapping):
        return None
    if product.get("nutrition_data_per") == "serving":
        per_serving = normalize_nutriments(nutriments, per="serving")
        if per_serving is not None:
            return per_serving
    per_100g = normalize_nutriments(nutriments, per="100g")
    serving = product.get("serving_quantity")
    if isinstance(serving, str):
        try:
            serving = float(serving)
        except ValueError:
            serving = None
    if isinstance(serving, bool):
        serving = None
    if (
        per_100g is not None
        and isinstance(serving, int | float)
        and math.isfinite(serving)
        and serving > 0
    ):
        return per_100g.scaled(serving / 100)
    return per_100g


@dataclass
class OpenFoodFactsService:
    """Product lookups against Open Food Facts."""

    client: OpenFoodFactsClient
    debug: bool = False

    async def lookup_barcode(self, barcode: str) -> ProductCandidate | None:
        """Return the product for a barcode, or None when unknown."""
        payload = await self.client.get_product(barcode.strip())
        product = payload.get("product")
        if payload.get("status") != 1 or not isinstance(product, Mapping):
            if self.debug:
                _logger.info("OFF barcode not found: barcode=%s", barcode)
            return None
        return _to_candidate(product, fallback_id=barcode.strip())

    async def search_products(self, query: str, limit: int = 5) -> list[ProductCandidate]:
        """Search products by free text."""
        payload = await self.client.search(query, page_size=limit)
        products = payload.get("products")
        if not isinstance(products, list):
            return []
        candidates = [
            _to_candidate(product)
            for product in products
            if isinstance(product, Mapping) and product.get("product_name")
        ]
        if self.debug:
            _logger.info("OFF search: query=%s results=%s", query, len(candidates))
        return candidates[:limit]


def _to_candidate(
    product: Mapping[str, object], fallback_id: str | None = None
) -> ProductCandidate:
    brands = product.get("brands")
    brand = brands.split(",")[0].strip() if isinstance(brands, str) and brands else None
    return ProductCandidate(
        provider=MatchSource.OPENFOODFACTS,
        product_id=str(product.get("code") or fallback_id or ""),
        name=str(product.get("product_name") or ""),
        brand=brand or None,
        nutrition=product_nutrition(product),
    )
