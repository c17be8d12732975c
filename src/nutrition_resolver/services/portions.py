"""Portion inference for named foods.

Resolution order, first hit wins:

1. explicit portion class id
2. unit + count parsed from the query ("2 slices")
3. the club sandwich special case
4. keyword match on the food name, scaled by a size word in the original text
5. a 100 g custom amount
"""

import math
import re
from dataclasses import dataclass

from nutrition_resolver.domain.facets import ParsedFacets
from nutrition_resolver.domain.portions import (
    ConfidenceLevel,
    PortionEstimate,
    PortionSource,
)


@dataclass(frozen=True)
class PortionClass:
    """Default serving for a food archetype."""

    grams: float
    unit: str


PORTION_CLASSES: dict[str, PortionClass] = {
    "pizza_slice": PortionClass(grams=125, unit="1 slice"),
    "hot_dog_link": PortionClass(grams=98, unit="1 hot dog"),
    "teriyaki_bowl": PortionClass(grams=350, unit="1 bowl"),
    "california_roll": PortionClass(grams=180, unit="1 roll"),
    "rice_cooked": PortionClass(grams=158, unit="1 cup"),
    "egg_large": PortionClass(grams=50, unit="1 egg"),
    "oatmeal_cooked": PortionClass(grams=234, unit="1 cup"),
    "chicken_breast": PortionClass(grams=140, unit="1 breast"),
    "sandwich_whole": PortionClass(grams=200, unit="1 sandwich"),
    "burger_single": PortionClass(grams=220, unit="1 burger"),
    "burrito_whole": PortionClass(grams=300, unit="1 burrito"),
    "taco_single": PortionClass(grams=90, unit="1 taco"),
    "salad_bowl": PortionClass(grams=200, unit="1 bowl"),
    "soup_bowl": PortionClass(grams=245, unit="1 bowl"),
    "pasta_cooked": PortionClass(grams=140, unit="1 cup"),
    "bread_slice": PortionClass(grams=30, unit="1 slice"),
    "fries_medium": PortionClass(grams=117, unit="1 medium order"),
    "cookie_single": PortionClass(grams=30, unit="1 cookie"),
    "bagel_whole": PortionClass(grams=105, unit="1 bagel"),
}

# Checked in order; multi-word and dish keywords come before ingredients.
KEYWORD_CLASSES: tuple[tuple[str, str], ...] = (
    ("hot dog", "hot_dog_link"),
    ("hotdog", "hot_dog_link"),
    ("pizza", "pizza_slice"),
    ("teriyaki", "teriyaki_bowl"),
    ("california roll", "california_roll"),
    ("sushi", "california_roll"),
    ("sandwich", "sandwich_whole"),
    ("burger", "burger_single"),
    ("burrito", "burrito_whole"),
    ("taco", "taco_single"),
    ("salad", "salad_bowl"),
    ("soup", "soup_bowl"),
    ("fries", "fries_medium"),
    ("bagel", "bagel_whole"),
    ("cookie", "cookie_single"),
    ("oatmeal", "oatmeal_cooked"),
    ("oats", "oatmeal_cooked"),
    ("pasta", "pasta_cooked"),
    ("spaghetti", "pasta_cooked"),
    ("noodle", "pasta_cooked"),
    ("rice", "rice_cooked"),
    ("toast", "bread_slice"),
    ("bread", "bread_slice"),
    ("egg", "egg_large"),
    ("chicken", "chicken_breast"),
)

UNIT_CLASSES: dict[str, str] = {
    "slice": "pizza_slice",
    "bowl": "soup_bowl",
    "roll": "california_roll",
    "cup": "rice_cooked",
    "egg": "egg_large",
}

SIZE_MULTIPLIERS: tuple[tuple[str, float], ...] = (
    ("extra-large", 2.0),
    ("extra large", 2.0),
    ("xl", 2.0),
    ("jumbo", 2.5),
    ("large", 1.5),
    ("regular", 1.0),
    ("medium", 1.0),
    ("small", 0.75),
    ("mini", 0.5),
)

_CLUB_SANDWICH = re.compile(r"\bclub\s+sand(wich)?\b", re.IGNORECASE)
_CLUB_SANDWICH_GRAMS = 150
_FALLBACK_GRAMS = 100


def infer_portion(
    food_name: str | None,
    original_text: str | None = None,
    facets: ParsedFacets | None = None,
    class_id: str | None = None,
) -> PortionEstimate:
    """Return a best-guess portion for a food, never failing."""
    name = (food_name or "").lower().strip()
    text = (original_text or food_name or "").lower()

    if class_id and class_id in PORTION_CLASSES:
        portion_class = PORTION_CLASSES[class_id]
        return _estimate(
            portion_class.grams,
            portion_class.unit,
            PortionSource.CLASS_DEFAULT,
            ConfidenceLevel.HIGH,
        )

    if facets is not None and facets.units is not None:
        unit_class = _class_for_unit(facets.units.unit, name)
        if unit_class is not None:
            count = facets.units.count if facets.units.count > 0 else 1
            portion_class = PORTION_CLASSES[unit_class]
            return _estimate(
                portion_class.grams * count,
                _unit_label(count, facets.units.unit),
                PortionSource.UNIT_COUNT,
                ConfidenceLevel.HIGH,
            )

    if _CLUB_SANDWICH.search(name) or _CLUB_SANDWICH.search(text):
        return _estimate(
            _CLUB_SANDWICH_GRAMS,
            "1 sandwich",
            PortionSource.CLASS_DEFAULT,
            ConfidenceLevel.HIGH,
        )

    keyword_class = class_for_name(name)
    if keyword_class is not None:
        portion_class = PORTION_CLASSES[keyword_class]
        multiplier = size_multiplier(text)
        return _estimate(
            portion_class.grams * multiplier,
            portion_class.unit,
            PortionSource.KEYWORD_CLASS,
            ConfidenceLevel.MEDIUM,
        )

    return _estimate(
        _FALLBACK_GRAMS,
        "custom amount",
        PortionSource.CUSTOM_AMOUNT,
        ConfidenceLevel.LOW,
    )


def estimate_portion_from_name(name: str | None) -> float:
    """Return only the grams inferred for a food name."""
    return infer_portion(name, name).grams


def class_for_name(name: str | None) -> str | None:
    """Return the first portion class whose keyword occurs in ``name``."""
    lowered = (name or "").lower()
    for keyword, class_id in KEYWORD_CLASSES:
        if keyword in lowered:
            return class_id
    return None


def size_multiplier(text: str | None) -> float:
    """Return the multiplier for the first size word found in ``text``."""
    lowered = (text or "").lower()
    for word, multiplier in SIZE_MULTIPLIERS:
        if re.search(rf"\b{re.escape(word)}\b", lowered):
            return multiplier
    return 1.0


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values."""
    return math.floor(value + 0.5)


def _class_for_unit(unit: str, name: str) -> str | None:
    keyword_class = class_for_name(name)
    if keyword_class is not None:
        keyword_unit = PORTION_CLASSES[keyword_class].unit
        if keyword_unit.split(" ", 1)[-1] == unit:
            return keyword_class
    return UNIT_CLASSES.get(unit)


def _unit_label(count: float, unit: str) -> str:
    display_count = int(count) if float(count).is_integer() else count
    plural = "" if count <= 1 else ("es" if unit.endswith("h") else "s")
    return f"{display_count} {unit}{plural}"


def _estimate(
    grams: float, unit: str, source: PortionSource, confidence: ConfidenceLevel
) -> PortionEstimate:
    rounded = max(round_half_up(grams), 1)
    return PortionEstimate(
        grams=rounded,
        unit=unit,
        source=source,
        confidence=confidence,
        display=f"{unit} ({rounded}g)",
    )
