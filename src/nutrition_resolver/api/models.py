"""Pydantic request models for the HTTP API."""

from uuid import UUID

from pydantic import BaseModel, Field


class FoodQueryRequest(BaseModel):
    """Free-text food query."""

    query: str


class CandidateRequest(BaseModel):
    """Candidate search request."""

    query: str
    max_results: int = Field(default=6, ge=1, le=25)
    prefer_generic: bool = False
    require_core_token: bool = False
    max_per_family: int = Field(default=0, ge=0)


class PortionInferRequest(BaseModel):
    """Portion inference request for a named food."""

    food_name: str
    original_text: str | None = None
    class_id: str | None = None


class NutritionPer100g(BaseModel):
    """Per-100g nutrition used to scale a detected portion."""

    calories: float = Field(ge=0)
    protein: float = Field(default=0.0, ge=0)
    carbs: float = Field(default=0.0, ge=0)
    fat: float = Field(default=0.0, ge=0)
    fiber: float = Field(default=0.0, ge=0)
    sugar: float = Field(default=0.0, ge=0)
    sodium: float = Field(default=0.0, ge=0)


class PortionDetectRequest(BaseModel):
    """Portion detection request for a packaged product."""

    product_data: dict[str, object] | None = None
    ocr_text: str | None = None
    entry_source: str = "api"
    user_id: UUID | None = None
    nutrition_per_100g: NutritionPer100g | None = None
    include_trace: bool = False


class PortionPreferenceRequest(BaseModel):
    """A user's usual portion for one product."""

    user_id: UUID
    barcode: str | None = None
    brand: str | None = None
    name: str | None = None
    portion_grams: float = Field(gt=0)
    portion_display: str | None = None


class ProductMatchRequest(BaseModel):
    """Branded product matching request."""

    product_name: str
    ocr_text: str | None = None
    barcode: str | None = None
