"""Nutrition service integrating USDA FDC."""

import asyncio
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nutrition_resolver.adapters.fdc_client import FdcClient
from nutrition_resolver.domain.branded import MatchSource, NutritionData, ProductCandidate
from nutrition_resolver.domain.candidates import SearchResult
from nutrition_resolver.services.cache import Cache

_NUTRIENT_IDS = {
    "calories": 1008,
    "protein": 1003,
    "fat": 1004,
    "carbs": 1005,
    "fiber": 1079,
    "sugar": 2000,
    "sodium": 1093,
}

_GENERIC_DATA_TYPES = {"Foundation", "SR Legacy", "Survey (FNDDS)"}
_BRANDED_DATA_TYPES = ["Branded"]

_logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


@dataclass
class NutritionService:
    """FDC-backed food search with caching and a short retry."""

    fdc_client: FdcClient
    cache: Cache
    search_ttl_seconds: int = 3600
    debug: bool = False
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3

    async def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        bypass_guard: bool = False,
    ) -> list[SearchResult]:
        """Search generic and branded foods by name.

        Unless ``bypass_guard`` is set, results sharing no word with the query
        are dropped.
        """
        payload = await self._cached_search(query, max_results, None)
        results = [_to_search_result(food) for food in _foods(payload)]
        if not bypass_guard:
            results = [result for result in results if _shares_word(query, result.name)]
        if self.debug:
            _logger.info(
                "Nutrition search FDC: query=%s results=%s guard=%s",
                query,
                len(results),
                not bypass_guard,
            )
        return results[:max_results]

    async def search_products(self, query: str, limit: int = 5) -> list[ProductCandidate]:
        """Search branded products and return per-serving nutrition."""
        payload = await self._cached_search(query, limit, _BRANDED_DATA_TYPES)
        products = [_to_product(food) for food in _foods(payload)]
        if self.debug:
            _logger.info("Nutrition products FDC: query=%s results=%s", query, len(products))
        return products[:limit]

    async def _cached_search(
        self, query: str, limit: int, data_types: list[str] | None
    ) -> dict[str, object]:
        scope = ",".join(data_types or ["all"])
        cache_key = f"fdc:search:{scope}:{query.lower()}:{limit}"
        cached = self.cache.get(cache_key)
        if isinstance(cached, dict):
            return cached
        payload = await self._call_with_retry(
            lambda: self.fdc_client.search_foods(
                query, page_size=limit, data_types=data_types
            ),
            action=f"search:{scope}",
        )
        self.cache.set(cache_key, payload, ttl_seconds=self.search_ttl_seconds)
        return payload

    async def _call_with_retry(
        self, func: "Callable[[], Awaitable[dict[str, object]]]", *, action: str
    ) -> dict[str, object]:
        """Call an async function with a short retry."""
        attempt = 0
        while True:
            try:
                return await func()
            except Exception as exc:
                attempt += 1
                status_code = _status_code_from_exception(exc)
                if self.debug:
                    _logger.warning(
                        "Nutrition %s failed (attempt %s/%s, status=%s): %s",
                        action,
                        attempt,
                        self.retry_attempts + 1,
                        status_code,
                        exc,
                    )
                if attempt > self.retry_attempts:
                    raise
                await asyncio.sleep(self.retry_delay_seconds)


def _status_code_from_exception(exc: Exception) -> str:
    """Extract HTTP status code from an exception, if available."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return str(status_code)
    return "n/a"


def _foods(payload: Mapping[str, object]) -> list[Mapping[str, object]]:
    foods = payload.get("foods")
    if not isinstance(foods, list):
        return []
    return [food for food in foods if isinstance(food, Mapping) and "fdcId" in food]


def _extract_nutrients(food_nutrients: object) -> dict[str, float]:
    """Extract known nutrients (per 100 g) from FDC nutrient rows."""
    values: dict[str, float] = {}
    if not isinstance(food_nutrients, list):
        return values
    by_id = {nutrient_id: name for name, nutrient_id in _NUTRIENT_IDS.items()}
    for nutrient in food_nutrients:
        if not isinstance(nutrient, Mapping):
            continue
        nutrient_info = nutrient.get("nutrient") or {}
        nutrient_id = nutrient.get("nutrientId") or nutrient_info.get("id")
        amount = nutrient.get("value", nutrient.get("amount"))
        name = by_id.get(nutrient_id)
        if name is not None and isinstance(amount, int | float):
            values[name] = float(amount)
    return values


def _to_search_result(food: Mapping[str, object]) -> SearchResult:
    nutrients = _extract_nutrients(food.get("foodNutrients"))
    brand = food.get("brandName") or food.get("brandOwner")
    serving_grams = _serving_grams(food)
    return SearchResult(
        id=str(food["fdcId"]),
        name=str(food.get("description") or ""),
        calories_per_100g=nutrients.get("calories"),
        protein_per_100g=nutrients.get("protein"),
        carbs_per_100g=nutrients.get("carbs"),
        fat_per_100g=nutrients.get("fat"),
        serving_grams=serving_grams,
        serving_text=_optional_text(food.get("householdServingFullText")),
        brand=_optional_text(brand),
        code=_optional_text(food.get("gtinUpc")),
        is_generic=food.get("dataType") in _GENERIC_DATA_TYPES,
    )


def _to_product(food: Mapping[str, object]) -> ProductCandidate:
    nutrients = _extract_nutrients(food.get("foodNutrients"))
    nutrition = None
    if nutrients.get("calories", 0) > 0:
        per_100g = NutritionData(
            calories=nutrients.get("calories", 0.0),
            protein=nutrients.get("protein", 0.0),
            carbs=nutrients.get("carbs", 0.0),
            fat=nutrients.get("fat", 0.0),
            fiber=nutrients.get("fiber", 0.0),
            sugar=nutrients.get("sugar", 0.0),
            sodium=nutrients.get("sodium", 0.0),
        )
        nutrition = per_100g.scaled((_serving_grams(food) or 100) / 100)
    return ProductCandidate(
        provider=MatchSource.USDA,
        product_id=str(food["fdcId"]),
        name=str(food.get("description") or ""),
        brand=_optional_text(food.get("brandName") or food.get("brandOwner")),
        nutrition=nutrition,
    )


def _serving_grams(food: Mapping[str, object]) -> float | None:
    size = food.get("servingSize")
    unit = str(food.get("servingSizeUnit") or "").lower()
    if isinstance(size, int | float) and size > 0 and unit in {"g", "grm", "ml", "mlt"}:
        return float(size)
    return None


def _optional_text(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _shares_word(query: str, name: str) -> bool:
    query_words = set(re.findall(r"[a-z0-9]+", query.lower()))
    name_words = set(re.findall(r"[a-z0-9]+", name.lower()))
    return bool(query_words & name_words)
