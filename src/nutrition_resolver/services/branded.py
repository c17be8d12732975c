"""Branded product matching cascade.

Sources are tried in strict priority, each less trustworthy than the last:
barcode -> nutrition database search -> LLM estimate -> category table.
The first source that clears its confidence bar answers; otherwise the
lookup fails explicitly and is recorded for later tuning.
"""

import asyncio
import itertools
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

from nutrition_resolver.domain.branded import (
    BrandedProductMatch,
    LookupTrace,
    MatchSource,
    NutritionData,
    ProductCandidate,
)
from nutrition_resolver.services.llm import LlmService
from nutrition_resolver.services.outcomes import attempt
from nutrition_resolver.services.portions import round_half_up

BARCODE_CONFIDENCE = 99
ACCEPT_CONFIDENCE = 70
MEDIUM_CONFIDENCE = 20
CATEGORY_ONLY_CONFIDENCE = 50
LLM_MAX_CONFIDENCE = 95

MAX_VARIATIONS = 4
WORD_MATCH_RATIO = 80
BRAND_BONUS = 10

BRAND_KEYWORDS: dict[str, tuple[str, ...]] = {
    "mcdonalds": (
        "mcdonald's",
        "mcdonalds",
        "mcdonald",
        "big mac",
        "mcnugget",
        "mcnuggets",
        "mcflurry",
        "mcmuffin",
        "mcchicken",
        "quarter pounder",
    ),
    "burger king": ("burger king", "whopper"),
    "wendys": ("wendy's", "wendys", "baconator", "frosty"),
    "taco bell": ("taco bell", "crunchwrap", "doritos locos"),
    "subway": ("subway", "footlong"),
    "kfc": ("kfc", "kentucky fried"),
    "chipotle": ("chipotle",),
    "starbucks": ("starbucks", "frappuccino"),
    "dominos": ("domino's", "dominos"),
    "pizza hut": ("pizza hut",),
    "chick-fil-a": ("chick-fil-a", "chick fil a", "chickfila"),
}

BRAND_PRODUCT_SYNONYMS: tuple[tuple[str, str], ...] = (
    ("whopper", "burger king whopper"),
    ("big mac", "mcdonalds big mac"),
    ("quarter pounder", "mcdonalds quarter pounder"),
    ("mcflurry", "mcdonalds mcflurry"),
    ("mcnugget", "mcdonalds chicken mcnuggets"),
    ("baconator", "wendys baconator"),
    ("frosty", "wendys frosty"),
    ("crunchwrap", "taco bell crunchwrap supreme"),
    ("footlong", "subway footlong"),
    ("frappuccino", "starbucks frappuccino"),
)

# Checked in order; specific dishes come before the generic ones they contain.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("milkshake", ("milkshake", "shake", "frosty")),
    ("ice_cream", ("ice cream", "mcflurry", "blizzard", "sundae", "gelato")),
    ("coffee_drink", ("latte", "frappuccino", "cappuccino", "mocha", "macchiato", "coffee")),
    ("energy_drink", ("energy drink", "red bull", "monster energy")),
    ("soda", ("soda", "cola", "coke", "pepsi", "sprite", "fanta", "soft drink")),
    ("chicken_nuggets", ("nugget", "nuggets", "mcnuggets", "chicken tenders", "popcorn chicken")),
    ("fried_chicken", ("fried chicken", "chicken wings", "drumstick", "original recipe")),
    ("chicken_sandwich", ("chicken sandwich", "mcchicken")),
    ("burger", ("burger", "cheeseburger", "whopper", "big mac", "quarter pounder", "baconator")),
    ("pizza", ("pizza", "pepperoni", "margherita")),
    ("fries", ("fries", "french fries", "hash brown")),
    ("burrito", ("burrito", "crunchwrap")),
    ("taco", ("taco", "tacos", "chalupa", "gordita")),
    ("hot_dog", ("hot dog", "hotdog")),
    ("sandwich", ("sandwich", "sub", "footlong", "hoagie", "wrap")),
    ("salad", ("salad",)),
    ("donut", ("donut", "doughnut")),
    ("cookie", ("cookie", "cookies")),
    ("muffin", ("muffin", "croissant", "pastry")),
    ("chips", ("chips", "crisps", "doritos", "pringles", "cheetos")),
    ("candy_bar", ("chocolate bar", "candy bar", "snickers", "kit kat", "twix")),
    ("granola_bar", ("granola bar", "protein bar", "cereal bar")),
    ("cereal", ("cereal", "corn flakes", "cheerios", "granola")),
    ("yogurt", ("yogurt", "yoghurt", "skyr")),
)

# Typical single serving of each category (sodium in mg).
CATEGORY_NUTRITION: dict[str, NutritionData] = {
    "burger": NutritionData(540, 25, 45, 28, 2, 9, 950),
    "chicken_sandwich": NutritionData(450, 28, 44, 18, 2, 6, 1100),
    "sandwich": NutritionData(420, 22, 46, 16, 3, 6, 1000),
    "pizza": NutritionData(285, 12, 36, 10, 2.5, 3.8, 640),
    "fries": NutritionData(365, 4, 48, 17, 4.4, 0.3, 246),
    "chicken_nuggets": NutritionData(290, 15, 18, 18, 1, 0, 540),
    "fried_chicken": NutritionData(390, 30, 11, 25, 0.5, 0, 1000),
    "burrito": NutritionData(600, 26, 71, 22, 8, 4, 1400),
    "taco": NutritionData(170, 8, 13, 9, 2, 1, 300),
    "hot_dog": NutritionData(290, 10, 24, 17, 1, 4, 780),
    "salad": NutritionData(250, 10, 15, 17, 4, 5, 550),
    "milkshake": NutritionData(530, 12, 85, 15, 1, 70, 350),
    "ice_cream": NutritionData(340, 7, 50, 12, 1, 42, 170),
    "coffee_drink": NutritionData(190, 10, 19, 7, 0, 17, 150),
    "energy_drink": NutritionData(110, 0, 28, 0, 0, 27, 200),
    "soda": NutritionData(150, 0, 39, 0, 0, 39, 45),
    "donut": NutritionData(260, 3, 31, 14, 1, 12, 250),
    "cookie": NutritionData(160, 2, 22, 8, 1, 13, 110),
    "muffin": NutritionData(420, 6, 58, 18, 2, 30, 380),
    "chips": NutritionData(160, 2, 15, 10, 1, 0.5, 170),
    "candy_bar": NutritionData(250, 4, 32, 12, 1.5, 27, 120),
    "granola_bar": NutritionData(190, 6, 27, 7, 3, 11, 120),
    "cereal": NutritionData(150, 3, 33, 1.5, 3, 12, 190),
    "yogurt": NutritionData(150, 8, 20, 4, 0, 17, 100),
}

_logger = logging.getLogger(__name__)


class ProductSearchProvider(Protocol):
    """A nutrition database that can search products by name."""

    async def search_products(self, query: str, limit: int = 5) -> list[ProductCandidate]:
        """Return products matching ``query``."""


class BarcodeLookup(Protocol):
    """A product database that resolves barcodes."""

    async def lookup_barcode(self, barcode: str) -> ProductCandidate | None:
        """Return the product for a barcode, or None when unknown."""


class FailedLookupRepository(Protocol):
    """Append-only sink for lookups that found nothing."""

    def record_failure(self, food_name: str, confidence: int, failure_reason: str) -> None:
        """Store one failed lookup."""


@dataclass(frozen=True)
class ScoredProduct:
    """Database product with its fuzzy match confidence."""

    product: ProductCandidate
    confidence: int


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])")


_BRAND_PATTERNS = [
    (brand, [_keyword_pattern(keyword) for keyword in keywords])
    for brand, keywords in BRAND_KEYWORDS.items()
]
_CATEGORY_PATTERNS = [
    (category, [_keyword_pattern(keyword) for keyword in keywords])
    for category, keywords in CATEGORY_KEYWORDS
]


def detect_brand(text: str | None) -> str | None:
    """Return the restaurant chain named or implied by ``text``."""
    lowered = (text or "").lower()
    for brand, patterns in _BRAND_PATTERNS:
        if any(pattern.search(lowered) for pattern in patterns):
            return brand
    return None


def detect_category(text: str | None) -> str | None:
    """Return the first food category whose keyword occurs in ``text``."""
    lowered = (text or "").lower()
    for category, patterns in _CATEGORY_PATTERNS:
        if any(pattern.search(lowered) for pattern in patterns):
            return category
    return None


def generate_search_variations(product_name: str, ocr_text: str | None = None) -> list[str]:
    """Return de-duplicated search strings, the original name first."""
    name = " ".join((product_name or "").split())
    if not name:
        return []
    lowered = name.lower()
    variations = [name]

    for keyword, expansion in BRAND_PRODUCT_SYNONYMS:
        if keyword in lowered:
            variations.append(expansion)
    brand = detect_brand(lowered)
    if brand and _clean(brand) not in _clean(lowered):
        variations.append(f"{brand} {name}")

    ocr_words = _clean(ocr_text or "").split()[:6]
    if ocr_words:
        variations.append(f"{name} {' '.join(ocr_words)}")

    words = name.split()
    if 2 <= len(words) <= 3:
        variations.extend(" ".join(order) for order in itertools.permutations(words))
    elif len(words) > 3:
        variations.append(" ".join(reversed(words)))

    unique: list[str] = []
    seen: set[str] = set()
    for variation in variations:
        key = variation.lower()
        if key not in seen:
            seen.add(key)
            unique.append(variation)
    return unique


def calculate_match_confidence(
    query: str,
    product_name: str,
    product_brand: str | None = None,
    detected_brand: str | None = None,
) -> int:
    """Score how well a database product matches the query, 0-100.

    Exact name (or brand + name) matches score 100. Otherwise 60% word
    similarity, 30% edit-distance similarity and a brand bonus.
    """
    cleaned_query = _clean(query)
    name = _clean(product_name)
    if not cleaned_query or not name:
        return 0
    full = _clean(f"{product_brand} {product_name}") if product_brand else name
    if cleaned_query in {name, full}:
        return 100

    query_words = cleaned_query.split()
    product_words = full.split()
    matched = sum(
        1
        for word in query_words
        if any(fuzz.ratio(word, other) >= WORD_MATCH_RATIO for other in product_words)
    )
    word_similarity = matched / len(query_words)
    string_similarity = max(
        Levenshtein.normalized_similarity(cleaned_query, name),
        Levenshtein.normalized_similarity(cleaned_query, full),
    )
    bonus = BRAND_BONUS if detected_brand and _clean(detected_brand) in full else 0
    score = 60 * word_similarity + 30 * string_similarity + bonus
    return min(100, round_half_up(score))


def confidence_label(confidence: int) -> str:
    """Return the user-facing label for a 0-100 confidence."""
    if confidence >= 90:
        return "High confidence"
    if confidence >= 70:
        return "Good match"
    if confidence >= 50:
        return "Moderate confidence - please verify"
    return "Low confidence - consider manual entry"


@dataclass
class BrandedProductMatcher:
    """Resolve a packaged or restaurant product to nutrition facts."""

    providers: Mapping[MatchSource, ProductSearchProvider]
    barcode_lookup: BarcodeLookup | None = None
    llm: LlmService | None = None
    failed_lookups: FailedLookupRepository | None = None
    trust_category_when_branded: bool = True
    max_variations: int = MAX_VARIATIONS
    results_per_query: int = 5

    async def match(
        self,
        product_name: str | None,
        ocr_text: str | None = None,
        barcode: str | None = None,
    ) -> BrandedProductMatch:
        """Return exactly one answer; failure is a result, not an exception."""
        trace = LookupTrace()
        name = " ".join((product_name or "").split())
        try:
            result = await self._match(name, ocr_text, barcode, trace)
        except Exception:
            _logger.exception("branded.match name=%r unexpected failure", name)
            result = await self._fail(name, 0, "unexpected_error", trace, None, None)
        trace.final_source = result.source.value
        trace.confidence = result.confidence
        _logger.info(
            "branded.trace name=%r tried=%s final=%s confidence=%s found=%s",
            name,
            ",".join(trace.tried),
            trace.final_source,
            trace.confidence,
            result.found,
        )
        return result

    async def _match(
        self,
        name: str,
        ocr_text: str | None,
        barcode: str | None,
        trace: LookupTrace,
    ) -> BrandedProductMatch:
        code = (barcode or "").strip() if isinstance(barcode, str) else ""
        if code and self.barcode_lookup is not None:
            trace.tried.append(MatchSource.BARCODE.value)
            outcome = await attempt(
                "branded.barcode", lambda: self.barcode_lookup.lookup_barcode(code)
            )
            product = outcome.value if outcome.ok else None
            if product is not None and _has_calories(product.nutrition):
                self._log_step(name, MatchSource.BARCODE, True, BARCODE_CONFIDENCE)
                return _found(
                    MatchSource.BARCODE,
                    BARCODE_CONFIDENCE,
                    trace,
                    nutrition=product.nutrition,
                    product_id=product.product_id or code,
                    product_name=product.name or name,
                    brand_name=product.brand,
                )
            self._log_step(name, MatchSource.BARCODE, False, 0, outcome.error or "not_found")

        text = f"{name} {ocr_text}" if isinstance(ocr_text, str) and ocr_text else name
        brand = detect_brand(text)
        category = detect_category(name) or detect_category(text)
        if not name:
            return await self._fail(name, 0, "empty_product_name", trace, brand, category)

        best = await self._search_databases(name, ocr_text, brand, trace)
        best_seen = best.confidence if best else 0

        if best is not None and best.confidence >= ACCEPT_CONFIDENCE:
            return _from_product(best, trace, brand, category)

        if best is not None and best.confidence >= MEDIUM_CONFIDENCE:
            return await self._medium_confidence(name, best, brand, category, trace)

        if self.llm is not None:
            trace.tried.append(MatchSource.GPT_FALLBACK.value)
            estimate = await attempt(
                "branded.llm", lambda: self.llm.estimate_nutrition(name, brand, category)
            )
            if estimate.ok:
                confidence = 75 if brand and category else 60 if category else 45
                self._log_step(name, MatchSource.GPT_FALLBACK, True, confidence)
                return _found(
                    MatchSource.GPT_FALLBACK,
                    confidence,
                    trace,
                    nutrition=estimate.value,
                    product_name=name,
                    detected_brand=brand,
                    detected_category=category,
                    warning="Nutrition estimated by AI - please verify",
                )
            self._log_step(name, MatchSource.GPT_FALLBACK, False, 0, estimate.error)

        if category is not None:
            trace.tried.append(MatchSource.CATEGORY_FALLBACK.value)
            self._log_step(name, MatchSource.CATEGORY_FALLBACK, True, CATEGORY_ONLY_CONFIDENCE)
            return _category_match(
                name,
                category,
                CATEGORY_ONLY_CONFIDENCE,
                trace,
                brand,
                f"Using typical {category.replace('_', ' ')} nutrition - please verify",
            )

        return await self._fail(name, best_seen, "no_match", trace, brand, category)

    async def _search_databases(
        self,
        name: str,
        ocr_text: str | None,
        brand: str | None,
        trace: LookupTrace,
    ) -> ScoredProduct | None:
        variations = generate_search_variations(name, ocr_text)[: self.max_variations]
        jobs = [
            (source, provider, variation)
            for source, provider in self.providers.items()
            for variation in variations
        ]
        trace.tried.extend(source.value for source in self.providers)
        outcomes = await asyncio.gather(
            *(
                attempt(
                    f"branded.{source.value}",
                    lambda provider=provider, variation=variation: provider.search_products(
                        variation, self.results_per_query
                    ),
                )
                for source, provider, variation in jobs
            )
        )

        # Ties keep the earliest product in provider, variation, result order.
        best: ScoredProduct | None = None
        for (source, _, variation), outcome in zip(jobs, outcomes, strict=True):
            if not outcome.ok:
                continue
            for product in outcome.value or []:
                if not _has_calories(product.nutrition):
                    continue
                confidence = max(
                    calculate_match_confidence(name, product.name, product.brand, brand),
                    calculate_match_confidence(variation, product.name, product.brand, brand),
                )
                if best is None or confidence > best.confidence:
                    best = ScoredProduct(product=product, confidence=confidence)
        if best is not None:
            self._log_step(name, best.product.provider, True, best.confidence)
        else:
            _logger.info("branded.step name=%r step=database ok=False detail=no_candidates", name)
        return best

    async def _medium_confidence(
        self,
        name: str,
        best: ScoredProduct,
        brand: str | None,
        category: str | None,
        trace: LookupTrace,
    ) -> BrandedProductMatch:
        trust_category = self.trust_category_when_branded and bool(brand and category)
        if self.llm is not None and not trust_category:
            trace.tried.append(MatchSource.GPT_FALLBACK.value)
            estimate = await attempt(
                "branded.llm", lambda: self.llm.estimate_nutrition(name, brand, category)
            )
            if estimate.ok:
                floor = 80 if brand and category else 65
                confidence = min(LLM_MAX_CONFIDENCE, max(best.confidence + 20, floor))
                self._log_step(name, MatchSource.GPT_FALLBACK, True, confidence)
                return _found(
                    MatchSource.GPT_FALLBACK,
                    confidence,
                    trace,
                    nutrition=estimate.value,
                    product_name=name,
                    detected_brand=brand,
                    detected_category=category,
                )
            self._log_step(name, MatchSource.GPT_FALLBACK, False, 0, estimate.error)

        if category is not None:
            trace.tried.append(MatchSource.CATEGORY_FALLBACK.value)
            self._log_step(name, MatchSource.CATEGORY_FALLBACK, True, best.confidence)
            return _category_match(
                name,
                category,
                best.confidence,
                trace,
                brand,
                "Exact product not found; using typical "
                f"{category.replace('_', ' ')} nutrition - please verify",
            )

        return _from_product(
            best,
            trace,
            brand,
            category,
            warning="Closest database match is uncertain - please verify",
        )

    async def _fail(
        self,
        name: str,
        confidence: int,
        reason: str,
        trace: LookupTrace,
        brand: str | None,
        category: str | None,
    ) -> BrandedProductMatch:
        self._log_step(name, MatchSource.FAILED, False, confidence, reason)
        if self.failed_lookups is not None:
            repository = self.failed_lookups
            await attempt(
                "branded.failed_lookup",
                lambda: asyncio.to_thread(
                    repository.record_failure, name, confidence, reason
                ),
            )
        return BrandedProductMatch(
            found=False,
            confidence=confidence,
            source=MatchSource.FAILED,
            confidence_label=confidence_label(confidence),
            is_low_confidence=True,
            lookup_trace=trace,
            product_name=name or None,
            detected_brand=brand,
            detected_category=category,
            warning="No nutrition data found - please enter it manually",
        )

    def _log_step(
        self,
        name: str,
        source: MatchSource,
        ok: bool,
        confidence: int,
        detail: str | None = None,
    ) -> None:
        _logger.info(
            "branded.step name=%r step=%s ok=%s confidence=%s detail=%s",
            name,
            source.value,
            ok,
            confidence,
            detail,
        )


def _found(
    source: MatchSource,
    confidence: int,
    trace: LookupTrace,
    **fields: object,
) -> BrandedProductMatch:
    return BrandedProductMatch(
        found=True,
        confidence=confidence,
        source=source,
        confidence_label=confidence_label(confidence),
        is_low_confidence=confidence < ACCEPT_CONFIDENCE,
        lookup_trace=trace,
        **fields,
    )


def _from_product(
    best: ScoredProduct,
    trace: LookupTrace,
    brand: str | None,
    category: str | None,
    warning: str | None = None,
) -> BrandedProductMatch:
    product = best.product
    return _found(
        product.provider,
        best.confidence,
        trace,
        nutrition=product.nutrition,
        product_id=product.product_id,
        product_name=product.name,
        brand_name=product.brand,
        detected_brand=brand,
        detected_category=category,
        warning=warning,
    )


def _category_match(
    name: str,
    category: str,
    confidence: int,
    trace: LookupTrace,
    brand: str | None,
    warning: str,
) -> BrandedProductMatch:
    return _found(
        MatchSource.CATEGORY_FALLBACK,
        confidence,
        trace,
        nutrition=CATEGORY_NUTRITION[category],
        product_name=name,
        detected_brand=brand,
        detected_category=category,
        warning=warning,
    )


def _has_calories(nutrition: NutritionData | None) -> bool:
    return nutrition is not None and nutrition.calories > 0


def _clean(text: str) -> str:
    lowered = (text or "").lower().replace("'", "").replace("’", "")
    return " ".join(re.sub(r"[^a-z0-9]+", " ", lowered).split())
