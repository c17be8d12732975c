"""Tests for Open Food Facts normalization and lookups."""

import asyncio

from nutrition_resolver.domain.branded import MatchSource, NutritionData
from nutrition_resolver.services.openfoodfacts import (
    OpenFoodFactsService,
    normalize_nutriments,
    product_nutrition,
)
from tests.conftest import FakeOpenFoodFactsClient

NUTELLA = {
    "code": "3017620422003",
    "product_name": "Nutella",
    "brands": "Ferrero, Nutella",
    "serving_quantity": 15,
    "nutriments": {
        "energy-kcal_100g": 539,
        "proteins_100g": 6.3,
        "carbohydrates_100g": 57.5,
        "fat_100g": 30.9,
        "sugars_100g": 56.3,
        "salt_100g": 0.107,
    },
}


def test_normalize_nutriments_uses_kilojoules_and_salt() -> None:
    nutrition = normalize_nutriments({"energy_100g": 1674, "salt_100g": 1.0})

    assert nutrition is not None
    assert nutrition.calories == 400
    assert nutrition.sodium == 393


def test_normalize_nutriments_requires_calories() -> None:
    assert normalize_nutriments({"proteins_100g": 5}) is None
    assert normalize_nutriments(None) is None
    assert normalize_nutriments({"energy-kcal_100g": "n/a"}) is None


def test_normalize_nutriments_ignores_non_finite_values() -> None:
    nutrition = normalize_nutriments(
        {"energy-kcal_100g": "nan", "energy-kj_100g": 1674, "proteins_100g": "inf"}
    )

    assert nutrition is not None
    assert nutrition.calories == 400
    assert nutrition.protein == 0.0
    assert normalize_nutriments({"energy-kcal_100g": float("nan")}) is None


def test_product_nutrition_scales_by_serving_quantity() -> None:
    nutrition = product_nutrition(NUTELLA)

    assert nutrition is not None
    assert nutrition.calories == 81
    assert nutrition.fat == 4.6


def test_product_nutrition_prefers_declared_serving() -> None:
    product = {
        "nutrition_data_per": "serving",
        "nutriments": {"energy-kcal_serving": 120, "energy-kcal_100g": 400},
    }

    assert product_nutrition(product) == NutritionData(calories=120)


def test_product_nutrition_without_serving_is_per_100g() -> None:
    product = {"nutriments": {"energy-kcal_100g": 250}, "serving_quantity": True}

    assert product_nutrition(product) == NutritionData(calories=250)


def test_lookup_barcode() -> None:
    service = OpenFoodFactsService(FakeOpenFoodFactsClient(products={"3017620422003": NUTELLA}))

    found = asyncio.run(service.lookup_barcode(" 3017620422003 "))
    missing = asyncio.run(service.lookup_barcode("000"))

    assert found is not None
    assert found.provider is MatchSource.OPENFOODFACTS
    assert found.product_id == "3017620422003"
    assert found.brand == "Ferrero"
    assert missing is None


def test_search_products_skips_unnamed_entries() -> None:
    client = FakeOpenFoodFactsClient(search_payload={"products": [NUTELLA, {"code": "1"}]})
    service = OpenFoodFactsService(client)

    products = asyncio.run(service.search_products("nutella"))

    assert [item.name for item in products] == ["Nutella"]


def test_search_products_keeps_batch_with_nan_calories() -> None:
    broken = {"code": "2", "product_name": "Mystery bar", "nutriments": {"energy-kcal_100g": "nan"}}
    client = FakeOpenFoodFactsClient(search_payload={"products": [broken, NUTELLA]})
    service = OpenFoodFactsService(client)

    products = asyncio.run(service.search_products("bar"))

    assert [item.name for item in products] == ["Mystery bar", "Nutella"]
    assert products[0].nutrition is None
    assert products[1].nutrition is not None
