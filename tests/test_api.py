"""Tests for the HTTP API."""

from uuid import uuid4

from fastapi.testclient import TestClient

from nutrition_resolver.api.app import create_app
from nutrition_resolver.services.feature_flags import PORTION_DETECTION_FLAG
from tests.conftest import InMemoryPortionPreferenceRepository


def test_health(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_parse_food(container) -> None:
    client = TestClient(create_app(container))

    response = client.post("/foods/parse", json={"query": "2 slices of piza"})

    assert response.status_code == 200
    data = response.json()
    assert data["normalized"] == "2 slices of pizza"
    assert data["core_name"] == "pizza"
    assert data["facets"]["units"] == {"count": 2.0, "unit": "slice"}
    assert data["aliases"][0] == "2 slices of pizza"


def test_food_candidates(container) -> None:
    client = TestClient(create_app(container))

    response = client.post("/foods/candidates", json={"query": "chicken", "max_results": 5})

    assert response.status_code == 200
    data = response.json()
    ids = [candidate["id"] for candidate in data["candidates"]]
    assert sorted(ids) == ["171077", "2345678"]
    assert isinstance(data["show_picker"], bool)


def test_food_candidates_validates_limit(container) -> None:
    client = TestClient(create_app(container))

    response = client.post("/foods/candidates", json={"query": "chicken", "max_results": 0})

    assert response.status_code == 422


def test_portions_infer(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/portions/infer",
        json={"food_name": "club sandwich", "original_text": "a club sandwich"},
    )

    assert response.status_code == 200
    assert response.json()["grams"] == 150
    assert response.json()["unit"] == "1 sandwich"


def test_portions_detect_scales_nutrition(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/portions/detect",
        json={
            "product_data": {"serving_size": "40 g"},
            "nutrition_per_100g": {"calories": 500, "protein": 10},
            "include_trace": True,
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["portion"]["grams"] == 40
    assert data["portion"]["source"] == "db_declared"
    assert data["nutrition"]["calories"] == 200
    assert data["nutrition"]["protein"] == 4.0
    assert data["trace"]["entry_source"] == "api"


def test_portions_detect_disabled(container, flag_repository) -> None:
    flag_repository.flags[PORTION_DETECTION_FLAG] = False
    client = TestClient(create_app(container))

    response = client.post("/portions/detect", json={"product_data": {"serving_size": "40 g"}})

    assert response.json()["portion"] == {
        "grams": 30,
        "is_estimated": True,
        "source": "fallback_default",
        "confidence": "low",
        "display": "30g",
    }
    assert "trace" not in response.json()


def test_save_portion_preference(container, preference_repository) -> None:
    client = TestClient(create_app(container))
    user_id = uuid4()

    response = client.put(
        "/portions/preferences",
        json={"user_id": str(user_id), "barcode": "0123", "portion_grams": 45},
    )

    assert response.status_code == 200
    assert response.json()["saved"] is True
    assert response.json()["product_key"] == "barcode:0123"
    assert preference_repository.preferences[(user_id, "barcode:0123")].portion_grams == 45


def test_save_portion_preference_requires_key(container) -> None:
    client = TestClient(create_app(container))

    response = client.put(
        "/portions/preferences",
        json={"user_id": str(uuid4()), "portion_grams": 45},
    )

    assert response.status_code == 422


def test_save_portion_preference_reports_storage_failure(container) -> None:
    container.portion_preferences.repository = InMemoryPortionPreferenceRepository(
        error=RuntimeError("db down")
    )
    client = TestClient(create_app(container))

    response = client.put(
        "/portions/preferences",
        json={"user_id": str(uuid4()), "name": "Granola", "portion_grams": 45},
    )

    assert response.status_code == 200
    assert response.json()["saved"] is False


def test_match_product(container) -> None:
    client = TestClient(create_app(container))

    response = client.post("/products/match", json={"product_name": "Grilled chicken strips"})

    assert response.status_code == 200
    data = response.json()
    assert data["found"] is True
    assert data["source"] == "usda"
    assert data["nutrition_source"] == "usda"
    assert data["brand_name"] == "TYSON"
    assert data["nutrition"]["calories"] == 100


def test_match_product_failure_is_recorded(container, failed_lookups, llm_client) -> None:
    llm_client.error = RuntimeError("model unavailable")
    client = TestClient(create_app(container))

    response = client.post("/products/match", json={"product_name": "Zorblax Crunch"})

    assert response.status_code == 200
    assert response.json()["found"] is False
    assert response.json()["source"] == "failed"
    assert len(failed_lookups.rows) == 1


def test_food_candidates_keeps_one_per_family(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/foods/candidates",
        json={"query": "chicken", "max_results": 5, "max_per_family": 1},
    )

    assert response.status_code == 200
    candidates = response.json()["candidates"]
    assert len(candidates) == 1
    assert candidates[0]["class_id"] == "chicken_breast"
