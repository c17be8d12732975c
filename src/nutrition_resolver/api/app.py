"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, HTTPException, Request, status

from nutrition_resolver.api.models import (
    CandidateRequest,
    FoodQueryRequest,
    PortionDetectRequest,
    PortionInferRequest,
    PortionPreferenceRequest,
    ProductMatchRequest,
)
from nutrition_resolver.app_logging import configure_logging
from nutrition_resolver.containers import AppContainer
from nutrition_resolver.domain.branded import NutritionData
from nutrition_resolver.domain.candidates import CandidateOptions
from nutrition_resolver.domain.facets import ParsedFacets
from nutrition_resolver.services.aliases import expand_aliases
from nutrition_resolver.services.candidates import should_show_candidate_picker
from nutrition_resolver.services.facets import (
    clean_query,
    extract_core_food_name,
    normalize_query,
    parse_facets,
)
from nutrition_resolver.services.portion_calculator import to_per_portion
from nutrition_resolver.services.portion_preferences import product_key
from nutrition_resolver.services.portions import infer_portion


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/foods/parse")
    async def parse_food(body: FoodQueryRequest) -> dict[str, object]:
        """Normalize a query and return its facets and aliases."""
        return {
            "normalized": normalize_query(body.query),
            "cleaned": clean_query(body.query),
            "core_name": extract_core_food_name(body.query),
            "facets": _facets_payload(parse_facets(body.query)),
            "aliases": expand_aliases(body.query),
        }

    @app.post("/foods/candidates")
    async def food_candidates(
        body: CandidateRequest, request: Request
    ) -> dict[str, object]:
        """Search, score and rank food candidates."""
        state_container: AppContainer = request.app.state.container
        candidates = await state_container.candidate_search.get_food_candidates(
            body.query,
            max_results=body.max_results,
            options=CandidateOptions(
                prefer_generic=body.prefer_generic,
                require_core_token=body.require_core_token,
                max_per_family=body.max_per_family,
            ),
        )
        return {
            "candidates": [asdict(candidate) for candidate in candidates],
            "show_picker": should_show_candidate_picker(candidates),
        }

    @app.post("/portions/infer")
    async def portions_infer(body: PortionInferRequest) -> dict[str, object]:
        """Estimate the portion of a named food."""
        text = body.original_text or body.food_name
        estimate = infer_portion(
            body.food_name, text, facets=parse_facets(text), class_id=body.class_id
        )
        return asdict(estimate)

    @app.post("/portions/detect")
    async def portions_detect(
        body: PortionDetectRequest, request: Request
    ) -> dict[str, object]:
        """Detect a safe portion for a packaged product."""
        state_container: AppContainer = request.app.state.container
        portion, trace = await state_container.portion_detection.detect_with_trace(
            body.product_data,
            body.ocr_text,
            entry_source=body.entry_source,
            user_id=body.user_id,
        )
        payload: dict[str, object] = {"portion": asdict(portion)}
        if body.nutrition_per_100g is not None:
            per_portion = to_per_portion(
                NutritionData(**body.nutrition_per_100g.model_dump()), portion.grams
            )
            payload["nutrition"] = per_portion.to_dict() if per_portion else None
        if body.include_trace:
            payload["trace"] = asdict(trace)
        return payload

    @app.put("/portions/preferences")
    async def save_portion_preference(
        body: PortionPreferenceRequest, request: Request
    ) -> dict[str, object]:
        """Save the user's usual portion for a product."""
        state_container: AppContainer = request.app.state.container
        key = product_key(body.barcode, body.brand, body.name)
        if key is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="barcode, brand or name is required",
            )
        try:
            state_container.portion_preferences.save(
                body.user_id, key, body.portion_grams, body.portion_display
            )
        except Exception:
            logger.exception("Failed to save portion preference: key=%s", key)
            return {"saved": False, "product_key": key}
        return {
            "saved": True,
            "product_key": key,
            "portion_grams": body.portion_grams,
            "portion_display": body.portion_display,
        }

    @app.post("/products/match")
    async def match_product(
        body: ProductMatchRequest, request: Request
    ) -> dict[str, object]:
        """Resolve a branded product to nutrition facts."""
        state_container: AppContainer = request.app.state.container
        match = await state_container.branded_matcher.match(
            body.product_name, ocr_text=body.ocr_text, barcode=body.barcode
        )
        payload = asdict(match)
        payload["nutrition_source"] = match.nutrition_source
        return payload

    return app


def _facets_payload(facets: ParsedFacets) -> dict[str, object]:
    units = facets.units
    return {
        "core": sorted(facets.core),
        "prep": sorted(facets.prep),
        "cuisine": sorted(facets.cuisine),
        "form": sorted(facets.form),
        "protein": sorted(facets.protein),
        "size": sorted(facets.size),
        "quantity": sorted(facets.quantity),
        "units": {"count": units.count, "unit": units.unit} if units else None,
    }
