"""Shared test fixtures."""

from dataclasses import dataclass, field
from uuid import UUID

import pytest

from nutrition_resolver.adapters.fdc_client import FdcClient
from nutrition_resolver.adapters.openfoodfacts_client import OpenFoodFactsClient
from nutrition_resolver.config import Settings
from nutrition_resolver.containers import AppContainer
from nutrition_resolver.domain.branded import MatchSource, NutritionData, ProductCandidate
from nutrition_resolver.domain.candidates import SearchResult
from nutrition_resolver.domain.portions import UserPortionPref
from nutrition_resolver.services.branded import BrandedProductMatcher, FailedLookupRepository
from nutrition_resolver.services.cache import InMemoryCache
from nutrition_resolver.services.candidates import CandidateSearchService
from nutrition_resolver.services.feature_flags import (
    AI_RERANK_FLAG,
    PORTION_DETECTION_FLAG,
    FeatureFlagRepository,
    FeatureFlagService,
)
from nutrition_resolver.services.llm import LlmClient, LlmService
from nutrition_resolver.services.nutrition import NutritionService
from nutrition_resolver.services.openfoodfacts import OpenFoodFactsService
from nutrition_resolver.services.portion_detection import PortionDetectionService
from nutrition_resolver.services.portion_preferences import (
    PortionPreferenceRepository,
    PortionPreferenceService,
)


@dataclass
class InMemoryFeatureFlagRepository(FeatureFlagRepository):
    """In-memory feature flags for tests."""

    flags: dict[str, bool] = field(default_factory=dict)
    error: Exception | None = None

    def get_flag(self, key: str) -> bool | None:
        if self.error is not None:
            raise self.error
        return self.flags.get(key)


@dataclass
class InMemoryPortionPreferenceRepository(PortionPreferenceRepository):
    """In-memory portion preferences for tests."""

    preferences: dict[tuple[UUID, str], UserPortionPref] = field(default_factory=dict)
    error: Exception | None = None

    def get_preference(self, user_id: UUID, product_key: str) -> UserPortionPref | None:
        if self.error is not None:
            raise self.error
        return self.preferences.get((user_id, product_key))

    def upsert_preference(self, user_id: UUID, preference: UserPortionPref) -> None:
        if self.error is not None:
            raise self.error
        self.preferences[(user_id, preference.product_key)] = preference


@dataclass
class InMemoryFailedLookupRepository(FailedLookupRepository):
    """Records failed lookups in memory."""

    rows: list[dict[str, object]] = field(default_factory=list)
    error: Exception | None = None

    def record_failure(self, food_name: str, confidence: int, failure_reason: str) -> None:
        if self.error is not None:
            raise self.error
        self.rows.append(
            {
                "food_name": food_name,
                "confidence": confidence,
                "failure_reason": failure_reason,
            }
        )


@dataclass
class FakeFoodSearch:
    """Food search returning canned results per query."""

    results: dict[str, list[SearchResult]] = field(default_factory=dict)
    failing_queries: set[str] = field(default_factory=set)
    calls: list[tuple[str, int, bool]] = field(default_factory=list)

    async def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        bypass_guard: bool = False,
    ) -> list[SearchResult]:
        self.calls.append((query, max_results, bypass_guard))
        if query in self.failing_queries:
            raise RuntimeError(f"search failed for {query}")
        return self.results.get(query, [])[:max_results]


@dataclass
class FakeProductProvider:
    """Product search provider returning canned products per query."""

    products: dict[str, list[ProductCandidate]] = field(default_factory=dict)
    error: Exception | None = None
    queries: list[str] = field(default_factory=list)

    async def search_products(self, query: str, limit: int = 5) -> list[ProductCandidate]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.products.get(query, [])[:limit]


@dataclass
class FakeBarcodeLookup:
    """Barcode lookup over a fixed product map."""

    products: dict[str, ProductCandidate] = field(default_factory=dict)
    error: Exception | None = None

    async def lookup_barcode(self, barcode: str) -> ProductCandidate | None:
        if self.error is not None:
            raise self.error
        return self.products.get(barcode)


@dataclass
class FakeLlmClient(LlmClient):
    """LLM client returning a fixed payload per schema name."""

    payloads: dict[str, dict[str, object]] = field(default_factory=dict)
    error: Exception | None = None
    prompts: list[tuple[str, str]] = field(default_factory=list)

    async def complete_json(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
    ) -> dict[str, object]:
        self.prompts.append((schema_name, prompt))
        if self.error is not None:
            raise self.error
        return self.payloads[schema_name]


@dataclass
class FakeFdcClient(FdcClient):
    """Fake FDC client with in-memory responses."""

    search_payload: dict[str, object] = field(
        default_factory=lambda: {
            "foods": [
                {
                    "fdcId": 171077,
                    "description": "Chicken, broilers or fryers, breast, roasted",
                    "dataType": "SR Legacy",
                    "foodNutrients": [
                        {"nutrientId": 1008, "value": 165},
                        {"nutrientId": 1003, "value": 31},
                        {"nutrientId": 1004, "value": 3.6},
                        {"nutrientId": 1005, "value": 0},
                    ],
                },
                {
                    "fdcId": 2345678,
                    "description": "Grilled chicken strips",
                    "brandOwner": "Tyson Foods, Inc.",
                    "brandName": "TYSON",
                    "dataType": "Branded",
                    "gtinUpc": "023700043774",
                    "servingSize": 84,
                    "servingSizeUnit": "g",
                    "householdServingFullText": "3 oz",
                    "foodNutrients": [
                        {"nutrientId": 1008, "value": 119},
                        {"nutrientId": 1003, "value": 22.6},
                        {"nutrientId": 1004, "value": 2.98},
                        {"nutrientId": 1005, "value": 1.19},
                        {"nutrientId": 1093, "value": 500},
                    ],
                },
            ]
        }
    )
    calls: list[tuple[str, int, list[str] | None]] = field(default_factory=list)

    async def search_foods(
        self,
        query: str,
        page_size: int = 10,
        data_types: list[str] | None = None,
    ) -> dict[str, object]:
        self.calls.append((query, page_size, data_types))
        return self.search_payload


@dataclass
class FakeOpenFoodFactsClient(OpenFoodFactsClient):
    """Fake Open Food Facts client."""

    products: dict[str, dict[str, object]] = field(default_factory=dict)
    search_payload: dict[str, object] = field(default_factory=lambda: {"products": []})

    async def get_product(self, barcode: str) -> dict[str, object]:
        product = self.products.get(barcode)
        if product is None:
            return {"status": 0}
        return {"status": 1, "product": product}

    async def search(self, query: str, page_size: int = 5) -> dict[str, object]:
        return self.search_payload


def build_flags(**flags: bool) -> FeatureFlagService:
    """Flag service backed by memory with the production defaults."""
    return FeatureFlagService(
        repository=InMemoryFeatureFlagRepository(flags=dict(flags)),
        defaults={PORTION_DETECTION_FLAG: True, AI_RERANK_FLAG: False},
    )


def product(
    name: str,
    calories: float = 250,
    brand: str | None = None,
    provider: MatchSource = MatchSource.USDA,
    product_id: str = "p-1",
) -> ProductCandidate:
    """Build a database product with simple nutrition."""
    return ProductCandidate(
        provider=provider,
        product_id=product_id,
        name=name,
        brand=brand,
        nutrition=NutritionData(calories=calories, protein=10, carbs=30, fat=9),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        openai_api_key="openai-key",
        fdc_api_key="fdc-key",
    )


@pytest.fixture
def flag_repository() -> InMemoryFeatureFlagRepository:
    return InMemoryFeatureFlagRepository()


@pytest.fixture
def preference_repository() -> InMemoryPortionPreferenceRepository:
    return InMemoryPortionPreferenceRepository()


@pytest.fixture
def failed_lookups() -> InMemoryFailedLookupRepository:
    return InMemoryFailedLookupRepository()


@pytest.fixture
def llm_client() -> FakeLlmClient:
    return FakeLlmClient(
        payloads={
            "nutrition": {
                "calories": 420,
                "protein": 18,
                "carbs": 40,
                "fat": 20,
                "fiber": 2,
                "sugar": 6,
                "sodium": 800,
            },
            "rerank": {"ids": []},
        }
    )


@pytest.fixture
def container(
    settings: Settings,
    flag_repository: InMemoryFeatureFlagRepository,
    preference_repository: InMemoryPortionPreferenceRepository,
    failed_lookups: InMemoryFailedLookupRepository,
    llm_client: FakeLlmClient,
) -> AppContainer:
    feature_flags = FeatureFlagService(
        repository=flag_repository,
        defaults={PORTION_DETECTION_FLAG: True, AI_RERANK_FLAG: False},
    )
    portion_preferences = PortionPreferenceService(preference_repository)
    portion_detection = PortionDetectionService(
        flags=feature_flags,
        preferences=portion_preferences,
        preference_timeout_seconds=settings.portion_pref_timeout_seconds,
    )
    llm_service = LlmService(
        client=llm_client,
        model=settings.openai_model,
        reasoning_effort=settings.openai_reasoning_effort,
        store=settings.openai_store,
    )
    nutrition_service = NutritionService(
        fdc_client=FakeFdcClient(),
        cache=InMemoryCache(),
    )
    off_service = OpenFoodFactsService(FakeOpenFoodFactsClient())
    candidate_search = CandidateSearchService(
        search=nutrition_service,
        flags=feature_flags,
        reranker=llm_service,
    )
    branded_matcher = BrandedProductMatcher(
        providers={
            MatchSource.USDA: nutrition_service,
            MatchSource.OPENFOODFACTS: off_service,
        },
        barcode_lookup=off_service,
        llm=llm_service,
        failed_lookups=failed_lookups,
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        feature_flags=feature_flags,
        portion_preferences=portion_preferences,
        portion_detection=portion_detection,
        nutrition_service=nutrition_service,
        candidate_search=candidate_search,
        branded_matcher=branded_matcher,
        close_resources=close_resources,
    )
