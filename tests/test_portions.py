"""Tests for portion inference."""

from nutrition_resolver.domain.portions import ConfidenceLevel, PortionSource
from nutrition_resolver.services.facets import parse_facets
from nutrition_resolver.services.portions import (
    estimate_portion_from_name,
    infer_portion,
    round_half_up,
    size_multiplier,
)


def test_class_id_wins() -> None:
    estimate = infer_portion("whatever", "large whatever", class_id="egg_large")

    assert estimate.grams == 50
    assert estimate.unit == "1 egg"
    assert estimate.source is PortionSource.CLASS_DEFAULT
    assert estimate.confidence is ConfidenceLevel.HIGH


def test_unknown_class_id_is_ignored() -> None:
    estimate = infer_portion("pizza", "pizza", class_id="not_a_class")

    assert estimate.source is PortionSource.KEYWORD_CLASS


def test_unit_count_multiplies_class_grams() -> None:
    text = "2 slices of pizza"
    estimate = infer_portion("pizza", text, facets=parse_facets(text))

    assert estimate.grams == 250
    assert estimate.unit == "2 slices"
    assert estimate.display == "2 slices (250g)"
    assert estimate.source is PortionSource.UNIT_COUNT
    assert estimate.confidence is ConfidenceLevel.HIGH


def test_unit_count_prefers_matching_keyword_class() -> None:
    text = "2 slices of toast"
    estimate = infer_portion("toast", text, facets=parse_facets(text))

    assert estimate.grams == 60


def test_unit_count_eggs() -> None:
    text = "3 eggs"
    estimate = infer_portion("eggs", text, facets=parse_facets(text))

    assert estimate.grams == 150
    assert estimate.unit == "3 eggs"


def test_club_sandwich_special_case() -> None:
    estimate = infer_portion("club sandwich", "club sandwich")

    assert estimate.grams == 150
    assert estimate.unit == "1 sandwich"
    assert estimate.confidence is ConfidenceLevel.HIGH


def test_size_multiplier_scales_keyword_class() -> None:
    estimate = infer_portion("pizza", "large pizza slice")

    assert estimate.grams == 188
    assert estimate.confidence is ConfidenceLevel.MEDIUM
    assert estimate.source is PortionSource.KEYWORD_CLASS


def test_small_burger() -> None:
    assert infer_portion("burger", "small burger").grams == 165


def test_fallback_custom_amount() -> None:
    estimate = infer_portion("quinoa surprise")

    assert estimate.grams == 100
    assert estimate.unit == "custom amount"
    assert estimate.confidence is ConfidenceLevel.LOW


def test_none_input_falls_back() -> None:
    assert infer_portion(None).grams == 100


def test_inference_is_repeatable() -> None:
    first = infer_portion("teriyaki bowl", "jumbo teriyaki bowl")
    second = infer_portion("teriyaki bowl", "jumbo teriyaki bowl")

    assert first == second
    assert first.grams == 875


def test_estimate_portion_from_name() -> None:
    assert estimate_portion_from_name("large pizza") == 188
    assert estimate_portion_from_name("") == 100


def test_size_multiplier_prefers_longest_phrase() -> None:
    assert size_multiplier("extra large fries") == 2.0
    assert size_multiplier("mini bagel") == 0.5
    assert size_multiplier("bagel") == 1.0


def test_round_half_up() -> None:
    assert round_half_up(187.5) == 188
    assert round_half_up(2.5) == 3
