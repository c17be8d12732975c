"""Serving size calculation for packaged products.

Precedence: user_set -> db_declared -> ocr_declared -> ocr_inferred_ratio
-> model_estimate -> fallback_default.
"""

import re
from collections.abc import Mapping

from nutrition_resolver.domain.branded import NutritionData
from nutrition_resolver.domain.portions import (
    ConfidenceLevel,
    PortionInfo,
    PortionSource,
    UserPortionPref,
)
from nutrition_resolver.services.portions import round_half_up

DEFAULT_PORTION_GRAMS = 30
RATIO_MIN_GRAMS = 5
RATIO_MAX_GRAMS = 250
OZ_TO_G = 28.349523125

SERVING_UNIT_GRAMS: dict[str, float] = {
    "bar": 40,
    "piece": 25,
    "cookie": 30,
    "cracker": 10,
    "cup": 240,
    "bottle": 500,
    "can": 355,
    "serving": 30,
    "portion": 30,
    "pack": 25,
    "sachet": 15,
}

CUP_DENSITY_GRAMS: dict[str, float] = {
    "cereals": 55,
    "grains": 45,
    "nuts": 120,
    "dairy": 240,
    "beverages": 240,
    "default": 60,
}

ML_DENSITY: dict[str, float] = {
    "oils": 0.92,
    "beverages": 1.0,
    "dairy": 1.03,
    "default": 1.0,
}

CATEGORY_PORTIONS: tuple[tuple[re.Pattern[str], float], ...] = (
    (re.compile(r"juice|drink|soda|water|milk|tea|coffee", re.IGNORECASE), 240),
    (re.compile(r"cereal|flakes|granola|muesli|oats", re.IGNORECASE), 30),
    (re.compile(r"yogurt|yoghurt", re.IGNORECASE), 150),
    (re.compile(r"chips|crackers|cookies|bar", re.IGNORECASE), 25),
    (re.compile(r"butter|jam|peanut butter|nutella", re.IGNORECASE), 15),
    (re.compile(r"apple|banana|orange|fruit", re.IGNORECASE), 150),
    (re.compile(r"nuts|almonds|walnuts", re.IGNORECASE), 30),
    (re.compile(r"rice|quinoa|pasta", re.IGNORECASE), 100),
    (re.compile(r"vegetables|salad", re.IGNORECASE), 80),
)

_NUMBER = r"(\d+(?:\.\d+)?)"
_GRAMS = re.compile(rf"{_NUMBER}\s*g(?:rams?)?\b")
_OUNCES = re.compile(rf"{_NUMBER}\s*(?:oz|ounces?)\b")
_MILLILITRES = re.compile(rf"{_NUMBER}\s*ml\b")
_SERVING_PARENS = re.compile(rf"serving\s+size.*?\(\s*{_NUMBER}\s*g\s*\)")
_PER_GRAMS = re.compile(rf"per\s+{_NUMBER}\s*g\b")
_FRACTION_CUPS = re.compile(r"(\d+)\s*/\s*(\d+)\s*cups?\b")
_DECIMAL_CUPS = re.compile(rf"{_NUMBER}\s*cups?\b")


def parse_portion_grams(
    product_data: Mapping[str, object] | None = None,
    ocr_text: str | None = None,
    user_preference: UserPortionPref | None = None,
    default_grams: float = DEFAULT_PORTION_GRAMS,
) -> PortionInfo:
    """Pick the most trustworthy serving size available."""
    if user_preference is not None and user_preference.portion_grams > 0:
        grams = user_preference.portion_grams
        return PortionInfo(
            grams=grams,
            is_estimated=False,
            source=PortionSource.USER_SET,
            confidence=ConfidenceLevel.HIGH,
            display=user_preference.portion_display or f"{_format(grams)}g",
        )

    product = product_data if isinstance(product_data, Mapping) else {}

    declared = _declared_serving_grams(product)
    if declared > 0:
        return _info(declared, PortionSource.DB_DECLARED, ConfidenceLevel.HIGH)

    category = _text(product.get("category"))
    if ocr_text:
        grams = extract_declared_portion_from_ocr(ocr_text, category)
        if grams > 0:
            return _info(grams, PortionSource.OCR_DECLARED, ConfidenceLevel.MEDIUM)

    inferred = infer_portion_from_nutrition_ratio(product)
    if inferred > 0:
        return _info(inferred, PortionSource.OCR_INFERRED_RATIO, ConfidenceLevel.MEDIUM)

    estimated = estimate_portion_from_category(_product_name(product))
    if estimated > 0:
        return _info(
            estimated,
            PortionSource.MODEL_ESTIMATE,
            ConfidenceLevel.LOW,
            is_estimated=True,
        )

    return _info(
        default_grams,
        PortionSource.FALLBACK_DEFAULT,
        ConfidenceLevel.LOW,
        is_estimated=True,
    )


def parse_serving_size(serving: object) -> float:
    """Convert a serving string like "1 bar (40 g)" or "2 cookies" to grams."""
    if not isinstance(serving, str) or not serving.strip():
        return 0
    text = serving.lower().strip()
    grams = _GRAMS.search(text)
    if grams:
        return float(grams.group(1))
    ounces = _OUNCES.search(text)
    if ounces:
        return round(float(ounces.group(1)) * OZ_TO_G, 1)
    millilitres = _MILLILITRES.search(text)
    if millilitres:
        return float(millilitres.group(1))
    for unit, unit_grams in SERVING_UNIT_GRAMS.items():
        if unit in text:
            quantity = re.search(rf"{_NUMBER}\s*{unit}", text)
            return (float(quantity.group(1)) if quantity else 1.0) * unit_grams
    return 0


def extract_declared_portion_from_ocr(ocr_text: str, category: str | None = None) -> float:
    """Find a declared serving size in label text, or return 0."""
    if not isinstance(ocr_text, str):
        return 0
    text = ocr_text.lower()

    parens = _SERVING_PARENS.search(text)
    if parens:
        return float(parens.group(1))

    for line in text.splitlines():
        if "serving size" in line or "portion size" in line:
            grams = parse_serving_size(line)
            if grams > 0:
                return grams

    per_grams = _PER_GRAMS.search(text)
    if per_grams:
        return float(per_grams.group(1))

    grams = _GRAMS.search(text)
    if grams:
        return float(grams.group(1))

    density_key = category if category in CUP_DENSITY_GRAMS else "default"
    fraction = _FRACTION_CUPS.search(text)
    if fraction and float(fraction.group(2)) > 0:
        cups = float(fraction.group(1)) / float(fraction.group(2))
        return round_half_up(cups * CUP_DENSITY_GRAMS[density_key])
    decimal = _DECIMAL_CUPS.search(text)
    if decimal:
        return round_half_up(float(decimal.group(1)) * CUP_DENSITY_GRAMS[density_key])

    millilitres = _MILLILITRES.search(text)
    if millilitres:
        density = ML_DENSITY.get(category or "default", ML_DENSITY["default"])
        return round_half_up(float(millilitres.group(1)) * density)
    return 0


def infer_portion_from_nutrition_ratio(product: Mapping[str, object]) -> float:
    """Infer serving grams from per-serving vs per-100g values, or return 0."""
    per_100g, per_serving = _nutrition_pair(product)
    if not per_100g or not per_serving:
        return 0

    candidates: list[float] = []
    calories_100 = per_100g.get("calories", 0)
    calories_serving = per_serving.get("calories", 0)
    if calories_100 > 0 and calories_serving > 0:
        candidates.append(calories_serving / calories_100)
    else:
        ratios = sorted(
            per_serving[key] / per_100g[key]
            for key in ("protein", "carbs", "fat")
            if per_100g.get(key, 0) > 0 and per_serving.get(key, 0) > 0
        )
        if ratios:
            candidates.append(ratios[len(ratios) // 2])

    for ratio in candidates:
        grams = round_half_up(ratio * 100)
        if RATIO_MIN_GRAMS <= grams <= RATIO_MAX_GRAMS:
            return round_half_up(grams / 5) * 5
    return 0


def estimate_portion_from_category(product_name: str | None) -> float:
    """Return a typical serving for the product's category, or 0."""
    if not product_name:
        return 0
    for pattern, grams in CATEGORY_PORTIONS:
        if pattern.search(product_name):
            return grams
    return 0


def to_per_portion(per_100g: NutritionData | None, grams: float) -> NutritionData | None:
    """Scale per-100g nutrition to a portion."""
    if per_100g is None or grams <= 0:
        return None
    return per_100g.scaled(grams / 100)


def _declared_serving_grams(product: Mapping[str, object]) -> float:
    for key in ("serving_size_g", "serving_grams"):
        value = product.get(key)
        if isinstance(value, int | float) and not isinstance(value, bool) and value > 0:
            return float(value)
    return parse_serving_size(product.get("serving_size"))


_OFF_KEYS = {
    "calories": "energy-kcal",
    "protein": "proteins",
    "carbs": "carbohydrates",
    "fat": "fat",
}


def _nutrition_pair(
    product: Mapping[str, object],
) -> tuple[dict[str, float], dict[str, float]]:
    per_100g = _numeric_map(product.get("nutrition_per_100g"))
    per_serving = _numeric_map(product.get("nutrition_per_serving"))
    if per_100g and per_serving:
        return per_100g, per_serving
    nutriments = product.get("nutriments")
    if not isinstance(nutriments, Mapping):
        return {}, {}
    per_100g = {}
    per_serving = {}
    for field, off_key in _OFF_KEYS.items():
        per_100g_value = _number(nutriments.get(f"{off_key}_100g"))
        per_serving_value = _number(nutriments.get(f"{off_key}_serving"))
        if per_100g_value is not None:
            per_100g[field] = per_100g_value
        if per_serving_value is not None:
            per_serving[field] = per_serving_value
    return per_100g, per_serving


def _numeric_map(value: object) -> dict[str, float]:
    if not isinstance(value, Mapping):
        return {}
    numbers: dict[str, float] = {}
    for key, raw in value.items():
        number = _number(raw)
        if number is not None:
            numbers[str(key)] = number
    return numbers


def _number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _product_name(product: Mapping[str, object]) -> str:
    for key in ("product_name", "name", "item_name"):
        name = _text(product.get(key))
        if name:
            return name
    return ""


def _text(value: object) -> str | None:
    return value if isinstance(value, str) and value else None


def _format(grams: float) -> str:
    return str(int(grams)) if float(grams).is_integer() else f"{grams:g}"


def _info(
    grams: float,
    source: PortionSource,
    confidence: ConfidenceLevel,
    *,
    is_estimated: bool = False,
) -> PortionInfo:
    return PortionInfo(
        grams=grams,
        is_estimated=is_estimated,
        source=source,
        confidence=confidence,
        display=f"{_format(grams)}g",
    )
