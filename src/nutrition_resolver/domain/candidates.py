"""Domain models for food candidate search."""

from dataclasses import dataclass
from enum import Enum


class CandidateSource(str, Enum):
    """Search strategy that produced a candidate."""

    LEXICAL = "lexical"
    ALIAS = "alias"
    EMBEDDING = "embedding"
    RERANKED = "reranked"


class CandidateKind(str, Enum):
    """Whether a candidate is a generic food or a branded product."""

    GENERIC = "generic"
    BRAND = "brand"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SearchResult:
    """Raw result returned by the food search capability."""

    id: str
    name: str
    calories_per_100g: float | None = None
    protein_per_100g: float | None = None
    carbs_per_100g: float | None = None
    fat_per_100g: float | None = None
    image_url: str | None = None
    serving_grams: float | None = None
    serving_text: str | None = None
    brand: str | None = None
    code: str | None = None
    is_generic: bool = False


@dataclass(frozen=True)
class FoodCandidate:
    """Scored search result offered to the user."""

    id: str
    name: str
    score: float
    confidence: float
    source: CandidateSource
    explanation: str
    kind: CandidateKind = CandidateKind.UNKNOWN
    class_id: str | None = None
    calories: float | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None
    fiber: float | None = None
    sugar: float | None = None
    sodium: float | None = None
    image_url: str | None = None
    serving_grams: float | None = None
    serving_text: str | None = None


@dataclass(frozen=True)
class CandidateOptions:
    """Ranking policy applied after scoring. The defaults keep plain score order."""

    prefer_generic: bool = False
    require_core_token: bool = False
    max_per_family: int = 0
    interleave_brands: bool = True
    brand_limit: int = 2

