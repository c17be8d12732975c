"""Models for structured LLM outputs."""

from pydantic import BaseModel, Field


class RerankResult(BaseModel):
    """Candidate ids ordered by relevance."""

    ids: list[str]


class NutritionEstimate(BaseModel):
    """Nutrition estimate for one typical serving."""

    calories: float = Field(gt=0, lt=5000)
    protein: float = Field(ge=0)
    carbs: float = Field(ge=0)
    fat: float = Field(ge=0)
    fiber: float = Field(default=0.0, ge=0)
    sugar: float = Field(default=0.0, ge=0)
    sodium: float = Field(default=0.0, ge=0)
