"""Synonym expansion for food search queries."""

from nutrition_resolver.services.facets import normalize_query

FOOD_ALIASES: dict[str, tuple[str, ...]] = {
    "chicken breast": ("grilled chicken", "chicken fillet", "chicken filet", "boneless chicken"),
    "chicken nuggets": ("nuggets", "chicken tenders", "chicken strips"),
    "french fries": ("fries", "potato fries", "frites"),
    "hamburger": ("burger", "beef burger", "cheeseburger"),
    "hot dog": ("hotdog", "frankfurter", "wiener", "frank"),
    "pizza": ("pizza slice", "cheese pizza", "pepperoni pizza"),
    "soda": ("pop", "soft drink", "cola", "coke"),
    "oatmeal": ("oats", "porridge", "rolled oats"),
    "yogurt": ("yoghurt", "greek yogurt", "plain yogurt"),
    "eggs": ("egg", "scrambled eggs", "fried egg", "boiled egg"),
    "rice": ("white rice", "steamed rice", "cooked rice"),
    "pasta": ("spaghetti", "noodles", "penne", "macaroni"),
    "sandwich": ("sub", "hoagie", "hero", "grinder"),
    "sushi": ("california roll", "maki", "sushi roll", "nigiri"),
    "burrito": ("wrap", "bean burrito"),
    "burrito bowl": ("rice bowl", "chipotle bowl"),
    "teriyaki bowl": ("teriyaki chicken", "chicken teriyaki", "teriyaki rice bowl"),
    "taco": ("tacos", "soft taco", "hard shell taco"),
    "salad": ("green salad", "garden salad", "side salad"),
    "soup": ("broth", "stew", "chowder"),
    "bagel": ("plain bagel", "everything bagel"),
    "pancakes": ("pancake", "flapjacks", "hotcakes"),
    "waffle": ("waffles", "belgian waffle"),
    "cereal": ("corn flakes", "bran flakes", "granola"),
    "toast": ("bread", "white bread", "whole wheat bread"),
    "coffee": ("latte", "cappuccino", "americano", "espresso"),
    "smoothie": ("shake", "protein shake", "fruit smoothie"),
    "ice cream": ("gelato", "frozen yogurt", "soft serve"),
    "donut": ("doughnut", "glazed donut"),
    "cookie": ("cookies", "biscuit", "chocolate chip cookie"),
    "chips": ("crisps", "potato chips", "tortilla chips"),
    "steak": ("beef steak", "sirloin", "ribeye"),
    "salmon": ("salmon fillet", "smoked salmon", "grilled salmon"),
    "shrimp": ("prawns", "prawn", "shrimps"),
    "banana": ("bananas",),
    "apple": ("apples", "green apple", "red apple"),
    "avocado": ("guacamole", "avocado toast"),
    "peanut butter": ("pb", "nut butter"),
    "mac and cheese": ("macaroni and cheese", "mac n cheese", "mac & cheese"),
    "milk": ("whole milk", "skim milk", "2% milk"),
    "tofu": ("bean curd",),
}

_MIN_WORD_LENGTH = 4


def expand_aliases(query: str | None) -> list[str]:
    """Return the query followed by every related canonical term and alias."""
    normalized = normalize_query(query)
    if not normalized:
        return []
    expanded = [normalized]
    seen = {normalized}
    needles = [normalized] + [
        word for word in normalized.split(" ") if len(word) >= _MIN_WORD_LENGTH
    ]
    for canonical, aliases in FOOD_ALIASES.items():
        terms = (canonical, *aliases)
        if not any(_related(needle, term) for needle in needles for term in terms):
            continue
        for term in terms:
            if term not in seen:
                seen.add(term)
                expanded.append(term)
    return expanded


def _related(needle: str, term: str) -> bool:
    return term in needle or needle in term
