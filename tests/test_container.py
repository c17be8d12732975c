"""Tests for container wiring."""

import asyncio

from nutrition_resolver.containers import build_container
from nutrition_resolver.domain.branded import MatchSource


def test_build_container_creates_services(settings) -> None:
    container = build_container(settings)

    assert container.candidate_search is not None
    assert container.portion_detection is not None
    assert list(container.branded_matcher.providers) == [
        MatchSource.USDA,
        MatchSource.OPENFOODFACTS,
    ]
    assert container.branded_matcher.barcode_lookup is not None
    asyncio.run(container.close_resources())
