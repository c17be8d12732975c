"""Query normalization and facet extraction for free-text food entries."""

import re

from nutrition_resolver.domain.facets import ParsedFacets, UnitCount

TYPO_FIXES: dict[str, str] = {
    "chiken": "chicken",
    "chikken": "chicken",
    "piza": "pizza",
    "pizzza": "pizza",
    "sandwhich": "sandwich",
    "sanwich": "sandwich",
    "brocoli": "broccoli",
    "brocolli": "broccoli",
    "spagetti": "spaghetti",
    "spagheti": "spaghetti",
    "yoghurt": "yogurt",
    "yougurt": "yogurt",
    "avacado": "avocado",
    "bannana": "banana",
    "banan": "banana",
    "tomatoe": "tomato",
    "potatoe": "potato",
    "hambuger": "hamburger",
    "hamburguer": "hamburger",
    "burito": "burrito",
    "buritto": "burrito",
    "cesar": "caesar",
    "letuce": "lettuce",
    "omlette": "omelette",
    "omelet": "omelette",
    "expresso": "espresso",
    "cappucino": "cappuccino",
    "mozarella": "mozzarella",
    "parmesean": "parmesan",
    "teriyake": "teriyaki",
    "quinao": "quinoa",
    "oatmeel": "oatmeal",
    "salmom": "salmon",
    "brocolini": "broccolini",
    "sushie": "sushi",
    "donught": "donut",
    "frys": "fries",
}

STOP_WORDS = frozenset(
    {
        "a",
        "an",
        "the",
        "of",
        "with",
        "and",
        "or",
        "some",
        "my",
        "i",
        "had",
        "ate",
        "have",
        "for",
        "in",
        "on",
        "to",
        "please",
        "log",
        "just",
    }
)

_TYPO_PATTERNS = [
    (re.compile(rf"\b{re.escape(typo)}\b"), fixed) for typo, fixed in TYPO_FIXES.items()
]

_UNIT_WORDS = r"(slices?|bowls?|rolls?|cups?|eggs?|pieces?|servings?|plates?)"

NUMBER_WORDS: dict[str, float] = {
    "a": 1,
    "an": 1,
    "one": 1,
    "single": 1,
    "two": 2,
    "couple": 2,
    "three": 3,
    "few": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "half": 0.5,
    "quarter": 0.25,
}

FRACTION_CHARS: dict[str, float] = {"½": 0.5, "¼": 0.25, "¾": 0.75}

_NOUN_UNITS = frozenset({"egg", "roll"})

FACET_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "core": [
        re.compile(r"\b(pizza)s?\b", re.IGNORECASE),
        re.compile(r"\b((?:cheese|ham)?burger)s?\b", re.IGNORECASE),
        re.compile(r"\b(sandwich)(?:es)?\b", re.IGNORECASE),
        re.compile(r"\b(hot ?dog)s?\b", re.IGNORECASE),
        re.compile(r"\b(salad)s?\b", re.IGNORECASE),
        re.compile(r"\b(soup)s?\b", re.IGNORECASE),
        re.compile(r"\b(sushi)\b", re.IGNORECASE),
        re.compile(r"\b(taco)s?\b", re.IGNORECASE),
        re.compile(r"\b(burrito)s?\b", re.IGNORECASE),
        re.compile(r"\b(bowl)s?\b", re.IGNORECASE),
        re.compile(r"\b(roll)s?\b", re.IGNORECASE),
        re.compile(r"\b(rice)\b", re.IGNORECASE),
        re.compile(r"\b(pasta|spaghetti|noodle)s?\b", re.IGNORECASE),
        re.compile(r"\b(egg)s?\b", re.IGNORECASE),
        re.compile(r"\b(chicken)\b", re.IGNORECASE),
        re.compile(r"\b(bread|toast|bagel)s?\b", re.IGNORECASE),
        re.compile(r"\b(fries)\b", re.IGNORECASE),
        re.compile(r"\b(cookie)s?\b", re.IGNORECASE),
        re.compile(r"\b(oatmeal|oats)\b", re.IGNORECASE),
        re.compile(r"\b(steak|salmon|tofu)s?\b", re.IGNORECASE),
        re.compile(r"\b(yogurt|smoothie|cereal)s?\b", re.IGNORECASE),
        re.compile(r"\b(wrap|pancake|waffle|nugget)s?\b", re.IGNORECASE),
    ],
    "prep": [
        re.compile(r"\b(deep[- ]fried|air[- ]fried|stir[- ]fried|pan[- ]fried)\b", re.IGNORECASE),
        re.compile(
            r"\b(grilled|fried|baked|roasted|steamed|boiled|sauteed|sautéed|"
            r"scrambled|poached|smoked|braised|broiled|toasted|raw|bbq|barbecued?)\b",
            re.IGNORECASE,
        ),
    ],
    "form": [
        re.compile(
            r"\b(sliced|diced|chopped|shredded|mashed|whole|ground|minced|pulled)\b",
            re.IGNORECASE,
        ),
        re.compile(r"\b(strip|patt(?:y|ie)|fillet|filet|wedge|cube)s?\b", re.IGNORECASE),
    ],
    "cuisine": [
        re.compile(
            r"\b(italian|mexican|chinese|japanese|thai|indian|korean|greek|"
            r"mediterranean|vietnamese|french|american|spanish|cajun|hawaiian)\b",
            re.IGNORECASE,
        ),
    ],
    "protein": [
        re.compile(
            r"\b(chicken|beef|pork|turkey|salmon|tuna|shrimp|tofu|lamb|fish|"
            r"bacon|ham|sausage|tempeh|egg)s?\b",
            re.IGNORECASE,
        ),
    ],
    "size": [
        re.compile(r"\b(extra[- ]large|king[- ]size)\b", re.IGNORECASE),
        re.compile(r"\b(xl|small|medium|large|regular|mini|jumbo)\b", re.IGNORECASE),
    ],
    "quantity": [
        re.compile(
            r"\b\d+(?:\.\d+)?\s*(?:g|grams?|oz|ounces?|ml|lbs?|kg)\b", re.IGNORECASE
        ),
        re.compile(r"\b(double|triple)\b", re.IGNORECASE),
    ],
}

UNIT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(rf"\b(\d+)\s*/\s*(\d+)\s*{_UNIT_WORDS}\b", re.IGNORECASE),
    re.compile(rf"\b(\d+(?:\.\d+)?)\s*{_UNIT_WORDS}\b", re.IGNORECASE),
    re.compile(rf"([½¼¾])\s*{_UNIT_WORDS}\b", re.IGNORECASE),
    re.compile(
        r"\b(a|an|one|single|two|couple|three|few|four|five|six|seven|eight|nine|"
        rf"ten|half|quarter)\s+(?:of\s+)?(?:a\s+|an\s+)?{_UNIT_WORDS}\b",
        re.IGNORECASE,
    ),
    re.compile(rf"\b{_UNIT_WORDS}\s+of\b", re.IGNORECASE),
]


def normalize_query(query: str | None) -> str:
    """Lowercase, fix common typos and collapse whitespace."""
    text = (query or "").lower().strip()
    for pattern, fixed in _TYPO_PATTERNS:
        text = pattern.sub(fixed, text)
    return re.sub(r"\s+", " ", text).strip()


def clean_query(query: str | None) -> str:
    """Normalize a query and drop English stop-words."""
    words = normalize_query(query).split(" ")
    return " ".join(word for word in words if word and word not in STOP_WORDS)


def parse_facets(query: str | None) -> ParsedFacets:
    """Extract facet sets and an optional unit+count from a query."""
    text = normalize_query(query)
    if not text:
        return ParsedFacets()
    collected: dict[str, set[str]] = {name: set() for name in FACET_PATTERNS}
    for name, patterns in FACET_PATTERNS.items():
        for pattern in patterns:
            for match in pattern.finditer(text):
                token = match.group(1) if match.groups() else match.group(0)
                collected[name].add(re.sub(r"[- ]+", " ", token.lower()))
    return ParsedFacets(
        core=frozenset(collected["core"]),
        prep=frozenset(collected["prep"]),
        cuisine=frozenset(collected["cuisine"]),
        form=frozenset(collected["form"]),
        protein=frozenset(collected["protein"]),
        size=frozenset(collected["size"]),
        quantity=frozenset(collected["quantity"]),
        units=parse_units(text),
    )


def parse_units(text: str) -> UnitCount | None:
    """Return the unit+count of the first matching unit pattern."""
    lowered = text.lower()
    for index, pattern in enumerate(UNIT_PATTERNS):
        match = pattern.search(lowered)
        if match is None:
            continue
        groups = match.groups()
        if index == 0:
            denominator = float(groups[1])
            if denominator == 0:
                continue
            count = float(groups[0]) / denominator
        elif index == 1:
            count = float(groups[0])
        elif index == 2:
            count = FRACTION_CHARS[groups[0]]
        elif index == 3:
            count = NUMBER_WORDS[groups[0]]
        else:
            count = 1.0
        if count <= 0:
            continue
        return UnitCount(count=count, unit=_singular_unit(groups[-1]))
    return None


def extract_core_food_name(query: str | None) -> str:
    """Strip every non-core facet and stop-word, leaving the bare food noun."""
    text = normalize_query(query)
    stripped = text
    for name in ("prep", "form", "cuisine", "size", "quantity"):
        for pattern in FACET_PATTERNS[name]:
            stripped = pattern.sub(" ", stripped)
    for pattern in UNIT_PATTERNS:
        stripped = pattern.sub(_keep_noun_unit, stripped)
    words = [
        word
        for word in re.split(r"\s+", stripped)
        if word and word not in STOP_WORDS and not word.isdigit()
    ]
    return " ".join(words) or text


def _keep_noun_unit(match: re.Match[str]) -> str:
    # "2 eggs" keeps "eggs": the unit is the food itself
    unit = match.group(match.lastindex or 0)
    if _singular_unit(unit) in _NOUN_UNITS:
        return f" {unit} "
    return " "


def _singular_unit(unit: str) -> str:
    unit = unit.lower()
    return unit[:-1] if unit.endswith("s") else unit
