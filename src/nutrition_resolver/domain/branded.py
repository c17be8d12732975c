"""Domain models for branded product matching."""

from dataclasses import dataclass, field
from enum import Enum


class MatchSource(str, Enum):
    """Data source that produced a branded product answer."""

    BARCODE = "barcode"
    USDA = "usda"
    OPENFOODFACTS = "openfoodfacts"
    GPT_FALLBACK = "gpt-fallback"
    CATEGORY_FALLBACK = "category_fallback"
    FAILED = "failed"


@dataclass(frozen=True)
class NutritionData:
    """Absolute nutrition values for one portion (sodium in mg)."""

    calories: float
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0
    fiber: float = 0.0
    sugar: float = 0.0
    sodium: float = 0.0

    def scaled(self, factor: float) -> "NutritionData":
        """Return a copy with every value multiplied by ``factor``."""
        return NutritionData(
            calories=round(self.calories * factor),
            protein=round(self.protein * factor, 1),
            carbs=round(self.carbs * factor, 1),
            fat=round(self.fat * factor, 1),
            fiber=round(self.fiber * factor, 1),
            sugar=round(self.sugar * factor, 1),
            sodium=round(self.sodium * factor),
        )

    def to_dict(self) -> dict[str, float]:
        """Return the values as a plain mapping."""
        return {
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
            "fiber": self.fiber,
            "sugar": self.sugar,
            "sodium": self.sodium,
        }


@dataclass(frozen=True)
class ProductCandidate:
    """Product returned by a nutrition database search."""

    provider: MatchSource
    product_id: str
    name: str
    brand: str | None
    nutrition: NutritionData | None


@dataclass
class LookupTrace:
    """Ordered record of every source the cascade tried."""

    tried: list[str] = field(default_factory=list)
    final_source: str | None = None
    confidence: int = 0


@dataclass(frozen=True)
class BrandedProductMatch:
    """Terminal answer of the branded product cascade."""

    found: bool
    confidence: int
    source: MatchSource
    confidence_label: str
    is_low_confidence: bool
    lookup_trace: LookupTrace
    nutrition: NutritionData | None = None
    product_id: str | None = None
    product_name: str | None = None
    brand_name: str | None = None
    detected_brand: str | None = None
    detected_category: str | None = None
    warning: str | None = None

    @property
    def nutrition_source(self) -> MatchSource:
        """Return where the nutrition values came from."""
        return self.source
