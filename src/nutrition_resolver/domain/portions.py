"""Domain models for portion estimation."""

from dataclasses import dataclass, field
from enum import Enum


class PortionSource(str, Enum):
    """Where a portion size came from."""

    CLASS_DEFAULT = "class_default"
    UNIT_COUNT = "unit_count"
    KEYWORD_CLASS = "keyword_class"
    CUSTOM_AMOUNT = "custom_amount"
    USER_SET = "user_set"
    DB_DECLARED = "db_declared"
    OCR_DECLARED = "ocr_declared"
    OCR_INFERRED_RATIO = "ocr_inferred_ratio"
    MODEL_ESTIMATE = "model_estimate"
    FALLBACK_DEFAULT = "fallback_default"


class ConfidenceLevel(str, Enum):
    """Coarse trust level attached to a portion."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class PortionEstimate:
    """Best-guess mass for a named food."""

    grams: float
    unit: str
    source: PortionSource
    confidence: ConfidenceLevel
    display: str


@dataclass(frozen=True)
class PortionInfo:
    """Portion resolved for a packaged product."""

    grams: float
    is_estimated: bool
    source: PortionSource
    confidence: ConfidenceLevel
    display: str


SAFE_FALLBACK = PortionInfo(
    grams=30,
    is_estimated=True,
    source=PortionSource.FALLBACK_DEFAULT,
    confidence=ConfidenceLevel.LOW,
    display="30g",
)


@dataclass(frozen=True)
class UserPortionPref:
    """A user's saved portion for one product."""

    product_key: str
    portion_grams: float
    portion_display: str | None = None


@dataclass(frozen=True)
class StageOutcome:
    """Result of one detection stage, kept for the trace."""

    stage: str
    ok: bool
    detail: str | None = None
    elapsed_ms: int = 0


@dataclass
class PortionTrace:
    """Observable record of a single portion detection run."""

    entry_source: str
    enabled: bool = False
    disabled_reason: str | None = None
    stages: list[StageOutcome] = field(default_factory=list)
    chosen_source: str | None = None
    chosen_grams: float | None = None
    clamped: bool = False
    total_ms: int = 0
