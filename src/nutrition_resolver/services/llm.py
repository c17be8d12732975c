"""LLM-backed candidate reranking and nutrition estimation."""

from dataclasses import dataclass
from typing import Protocol

from nutrition_resolver.domain.branded import NutritionData
from nutrition_resolver.domain.candidates import FoodCandidate
from nutrition_resolver.domain.llm import NutritionEstimate, RerankResult

MAX_RERANK_CANDIDATES = 10

RERANK_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "ids": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["ids"],
    "additionalProperties": False,
}

_NUTRIENT_FIELDS = ("calories", "protein", "carbs", "fat", "fiber", "sugar", "sodium")

NUTRITION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {name: {"type": "number", "minimum": 0} for name in _NUTRIENT_FIELDS},
    "required": list(_NUTRIENT_FIELDS),
    "additionalProperties": False,
}


class LlmClient(Protocol):
    """Interface for structured-output LLM completions."""

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
        """Return the JSON object produced for ``prompt``."""


@dataclass
class LlmService:
    """Service that prepares prompts and validates structured LLM output."""

    client: LlmClient
    model: str
    reasoning_effort: str | None
    store: bool

    async def rerank(self, query: str, candidates: list[FoodCandidate]) -> list[str]:
        """Return candidate ids ordered from most to least relevant."""
        shortlist = candidates[:MAX_RERANK_CANDIDATES]
        if not shortlist:
            return []
        lines = "\n".join(
            f"- id={candidate.id} name={candidate.name} score={candidate.score:.1f}"
            for candidate in shortlist
        )
        prompt = (
            f'A user logged the food "{query}". '
            "Order these database entries from best to worst match and return "
            "their ids. Only use ids from the list.\n"
            f"{lines}"
        )
        raw = await self._complete(prompt, RERANK_SCHEMA, "rerank")
        known = {candidate.id for candidate in shortlist}
        result = RerankResult.model_validate(raw)
        return [candidate_id for candidate_id in result.ids if candidate_id in known]

    async def estimate_nutrition(
        self,
        name: str,
        brand: str | None = None,
        category: str | None = None,
    ) -> NutritionData:
        """Estimate nutrition for one typical serving of a product.

        Raises ``pydantic.ValidationError`` when the answer is implausible
        (calories outside 0-5000 or negative macros).
        """
        details = [f'Product: "{name}"']
        if brand:
            details.append(f"Brand: {brand}")
        if category:
            details.append(f"Category: {category}")
        prompt = (
            "Estimate the nutrition facts for one typical serving of this food. "
            "Return calories (kcal), protein, carbs, fat, fiber and sugar in grams "
            "and sodium in milligrams.\n" + "\n".join(details)
        )
        raw = await self._complete(prompt, NUTRITION_SCHEMA, "nutrition")
        estimate = NutritionEstimate.model_validate(raw)
        return NutritionData(
            calories=round(estimate.calories),
            protein=round(estimate.protein, 1),
            carbs=round(estimate.carbs, 1),
            fat=round(estimate.fat, 1),
            fiber=round(estimate.fiber, 1),
            sugar=round(estimate.sugar, 1),
            sodium=round(estimate.sodium),
        )

    async def _complete(
        self, prompt: str, schema: dict[str, object], schema_name: str
    ) -> dict[str, object]:
        return await self.client.complete_json(
            model=self.model,
            reasoning_effort=self.reasoning_effort,
            store=self.store,
            prompt=prompt,
            schema=schema,
            schema_name=schema_name,
        )
