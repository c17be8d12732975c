"""Tests for flag-gated portion detection."""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from uuid import UUID, uuid4

import pytest

from nutrition_resolver.domain.portions import (
    SAFE_FALLBACK,
    PortionInfo,
    PortionSource,
    UserPortionPref,
)
from nutrition_resolver.services import portion_detection
from nutrition_resolver.services.feature_flags import PORTION_DETECTION_FLAG
from nutrition_resolver.services.portion_detection import PortionDetectionService
from nutrition_resolver.services.portion_preferences import PortionPreferenceService
from tests.conftest import (
    InMemoryFeatureFlagRepository,
    InMemoryPortionPreferenceRepository,
    build_flags,
)


@dataclass
class SlowPreferenceRepository(InMemoryPortionPreferenceRepository):
    delay_seconds: float = 0.3

    def get_preference(self, user_id: UUID, product_key: str) -> UserPortionPref | None:
        time.sleep(self.delay_seconds)
        return super().get_preference(user_id, product_key)


def _service(
    repository: InMemoryPortionPreferenceRepository | None = None,
    timeout_seconds: float = 3.0,
    **flags: bool,
) -> PortionDetectionService:
    return PortionDetectionService(
        flags=build_flags(**flags),
        preferences=PortionPreferenceService(repository or InMemoryPortionPreferenceRepository()),
        preference_timeout_seconds=timeout_seconds,
    )


def test_disabled_flag_returns_safe_fallback() -> None:
    service = _service(**{PORTION_DETECTION_FLAG: False})

    portion, trace = asyncio.run(service.detect_with_trace({"serving_size": "40 g"}))

    assert portion == SAFE_FALLBACK
    assert trace.enabled is False
    assert trace.disabled_reason == "flag_disabled"


def test_flag_error_returns_safe_fallback() -> None:
    service = _service()
    service.flags.repository = InMemoryFeatureFlagRepository(error=RuntimeError("db down"))

    portion, trace = asyncio.run(service.detect_with_trace({"serving_size": "40 g"}))

    assert portion == SAFE_FALLBACK
    assert trace.disabled_reason is not None
    assert trace.disabled_reason.startswith("flag_error")


def test_declared_serving_is_used() -> None:
    portion, trace = asyncio.run(_service().detect_with_trace({"serving_size": "40 g"}))

    assert portion.grams == 40
    assert portion.source is PortionSource.DB_DECLARED
    assert [stage.stage for stage in trace.stages] == [
        "flag",
        "preference",
        "compute",
        "validate",
        "clamp",
    ]
    assert trace.chosen_source == "db_declared"
    assert trace.chosen_grams == 40


def test_user_preference_is_used() -> None:
    user_id = uuid4()
    repository = InMemoryPortionPreferenceRepository()
    repository.preferences[(user_id, "barcode:0123")] = UserPortionPref(
        product_key="barcode:0123", portion_grams=75
    )
    service = _service(repository)

    portion = asyncio.run(
        service.detect_portion_safe(
            {"barcode": "0123", "serving_size": "40 g"}, user_id=user_id
        )
    )

    assert portion.grams == 75
    assert portion.source is PortionSource.USER_SET


def test_preference_timeout_is_abandoned() -> None:
    user_id = uuid4()
    repository = SlowPreferenceRepository()
    repository.preferences[(user_id, "barcode:0123")] = UserPortionPref(
        product_key="barcode:0123", portion_grams=75
    )
    service = _service(repository, timeout_seconds=0.01)

    portion, trace = asyncio.run(
        service.detect_with_trace({"barcode": "0123", "serving_size": "40 g"}, user_id=user_id)
    )

    assert portion.grams == 40
    preference_stage = next(stage for stage in trace.stages if stage.stage == "preference")
    assert preference_stage.ok is False
    assert preference_stage.detail == "timeout"


def test_preference_error_is_skipped() -> None:
    service = _service(InMemoryPortionPreferenceRepository(error=RuntimeError("boom")))

    portion = asyncio.run(
        service.detect_portion_safe({"barcode": "0123", "serving_size": "40 g"}, user_id=uuid4())
    )

    assert portion.grams == 40


def test_large_portion_is_clamped() -> None:
    portion, trace = asyncio.run(_service().detect_with_trace({"serving_size": "500 ml"}))

    assert portion.grams == 250
    assert portion.is_estimated is True
    assert portion.display == "250g"
    assert trace.clamped is True


def test_small_portion_is_clamped() -> None:
    portion = asyncio.run(_service().detect_portion_safe({"serving_size_g": 2}))

    assert portion.grams == 5
    assert portion.is_estimated is True


@pytest.mark.parametrize(
    ("product_data", "ocr_text"),
    [
        (None, None),
        ("not a mapping", 12345),
        ({"serving_size": object()}, None),
        ({"nutrition_per_100g": "bad", "nutrition_per_serving": [1, 2]}, "???"),
        ({"serving_size_g": float("inf")}, None),
    ],
)
def test_malformed_input_stays_in_bounds(product_data: object, ocr_text: object) -> None:
    portion = asyncio.run(_service().detect_portion_safe(product_data, ocr_text))

    assert 5 <= portion.grams <= 250
    assert math.isfinite(portion.grams)


def test_invalid_computed_portion_returns_safe_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    invalid = PortionInfo(
        grams=float("nan"),
        is_estimated=False,
        source=PortionSource.DB_DECLARED,
        confidence=SAFE_FALLBACK.confidence,
        display="nang",
    )
    monkeypatch.setattr(portion_detection, "parse_portion_grams", lambda *args: invalid)

    portion, trace = asyncio.run(_service().detect_with_trace({"serving_size": "40 g"}))

    assert portion == SAFE_FALLBACK
    assert trace.stages[-1].stage == "validate"


def test_calculator_failure_returns_safe_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    def explode(*args: object) -> PortionInfo:
        raise ValueError("broken")

    monkeypatch.setattr(portion_detection, "parse_portion_grams", explode)

    portion = asyncio.run(_service().detect_portion_safe({"serving_size": "40 g"}))

    assert portion == SAFE_FALLBACK


def test_every_stage_is_logged(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.setattr(portion_detection, "_logger", logging.getLogger("tests.portion_stage"))

    with caplog.at_level(logging.INFO, logger="tests.portion_stage"):
        _, trace = asyncio.run(_service().detect_with_trace({"serving_size": "500 ml"}))

    logged = [
        record.getMessage().split("stage=")[1].split(" ")[0]
        for record in caplog.records
        if record.getMessage().startswith("portion.stage")
    ]
    assert logged == [stage.stage for stage in trace.stages]
    assert logged == ["flag", "preference", "compute", "validate", "clamp"]
    assert trace.clamped is True
