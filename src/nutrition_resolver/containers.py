"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from nutrition_resolver.adapters.fdc_client import HttpxFdcClient
from nutrition_resolver.adapters.openai_llm_client import OpenAILlmClient
from nutrition_resolver.adapters.openfoodfacts_client import HttpxOpenFoodFactsClient
from nutrition_resolver.adapters.supabase_failed_lookup_repository import (
    SupabaseFailedLookupRepository,
)
from nutrition_resolver.adapters.supabase_feature_flag_repository import (
    SupabaseFeatureFlagRepository,
)
from nutrition_resolver.adapters.supabase_portion_preference_repository import (
    SupabasePortionPreferenceRepository,
)
from nutrition_resolver.config import Settings
from nutrition_resolver.domain.branded import MatchSource
from nutrition_resolver.services.branded import BrandedProductMatcher
from nutrition_resolver.services.cache import InMemoryCache
from nutrition_resolver.services.candidates import CandidateSearchService
from nutrition_resolver.services.feature_flags import (
    AI_RERANK_FLAG,
    PORTION_DETECTION_FLAG,
    FeatureFlagService,
)
from nutrition_resolver.services.llm import LlmService
from nutrition_resolver.services.nutrition import NutritionService
from nutrition_resolver.services.openfoodfacts import OpenFoodFactsService
from nutrition_resolver.services.portion_detection import PortionDetectionService
from nutrition_resolver.services.portion_preferences import PortionPreferenceService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    feature_flags: FeatureFlagService
    portion_preferences: PortionPreferenceService
    portion_detection: PortionDetectionService
    nutrition_service: NutritionService
    candidate_search: CandidateSearchService
    branded_matcher: BrandedProductMatcher
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    feature_flags = FeatureFlagService(
        repository=SupabaseFeatureFlagRepository(supabase_client),
        defaults={
            PORTION_DETECTION_FLAG: resolved_settings.portion_detection_default,
            AI_RERANK_FLAG: resolved_settings.ai_rerank_default,
        },
    )
    portion_preferences = PortionPreferenceService(
        SupabasePortionPreferenceRepository(supabase_client)
    )
    portion_detection = PortionDetectionService(
        flags=feature_flags,
        preferences=portion_preferences,
        preference_timeout_seconds=resolved_settings.portion_pref_timeout_seconds,
    )
    openai_client = OpenAILlmClient.create(resolved_settings.openai_api_key)
    llm_service = LlmService(
        client=openai_client,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
    )
    fdc_client = HttpxFdcClient.create(
        api_key=resolved_settings.fdc_api_key,
        base_url=resolved_settings.fdc_base_url,
    )
    nutrition_service = NutritionService(
        fdc_client=fdc_client,
        cache=InMemoryCache(),
        debug=resolved_settings.debug,
    )
    off_client = HttpxOpenFoodFactsClient.create(resolved_settings.off_base_url)
    off_service = OpenFoodFactsService(off_client, debug=resolved_settings.debug)
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
        failed_lookups=SupabaseFailedLookupRepository(supabase_client),
        trust_category_when_branded=resolved_settings.trust_category_when_branded,
    )

    async def close_resources() -> None:
        await fdc_client.close()
        await off_client.close()
        await openai_client.close()

    return AppContainer(
        settings=resolved_settings,
        feature_flags=feature_flags,
        portion_preferences=portion_preferences,
        portion_detection=portion_detection,
        nutrition_service=nutrition_service,
        candidate_search=candidate_search,
        branded_matcher=branded_matcher,
        close_resources=close_resources,
    )
