"""Exception-proof portion detection for packaged products."""

import logging
import math
import time
from collections.abc import Mapping
from dataclasses import dataclass, replace
from uuid import UUID

from nutrition_resolver.domain.portions import (
    SAFE_FALLBACK,
    PortionInfo,
    PortionTrace,
    StageOutcome,
    UserPortionPref,
)
from nutrition_resolver.services.feature_flags import (
    PORTION_DETECTION_FLAG,
    FeatureFlagService,
)
from nutrition_resolver.services.outcomes import attempt, attempt_sync
from nutrition_resolver.services.portion_calculator import parse_portion_grams
from nutrition_resolver.services.portion_preferences import (
    PortionPreferenceService,
    product_key_from_data,
)

MIN_PORTION_GRAMS = 5
MAX_PORTION_GRAMS = 250

_logger = logging.getLogger(__name__)


@dataclass
class PortionDetectionService:
    """Flag-gated portion detection that always returns a usable portion."""

    flags: FeatureFlagService
    preferences: PortionPreferenceService
    preference_timeout_seconds: float = 3.0

    async def detect_portion_safe(
        self,
        product_data: Mapping[str, object] | None,
        ocr_text: str | None = None,
        entry_source: str = "unknown",
        user_id: UUID | None = None,
    ) -> PortionInfo:
        """Return a portion clamped to [5, 250] grams, never raising."""
        portion, _ = await self.detect_with_trace(
            product_data, ocr_text, entry_source, user_id
        )
        return portion

    async def detect_with_trace(
        self,
        product_data: Mapping[str, object] | None,
        ocr_text: str | None = None,
        entry_source: str = "unknown",
        user_id: UUID | None = None,
    ) -> tuple[PortionInfo, PortionTrace]:
        """Detect a portion and return it with the per-stage trace."""
        trace = PortionTrace(entry_source=str(entry_source or "unknown"))
        started = time.monotonic()
        try:
            portion = await self._detect(product_data, ocr_text, user_id, trace)
        except Exception:
            _logger.exception("portion.detect entry=%s unexpected failure", trace.entry_source)
            trace.stages.append(StageOutcome(stage="detect", ok=False, detail="unexpected"))
            portion = SAFE_FALLBACK
        trace.chosen_source = portion.source.value
        trace.chosen_grams = portion.grams
        trace.total_ms = _elapsed_ms(started)
        _logger.info(
            "portion.trace entry=%s enabled=%s disabled_reason=%s stages=%s "
            "chosen=%s grams=%s clamped=%s total_ms=%s",
            trace.entry_source,
            trace.enabled,
            trace.disabled_reason,
            [f"{stage.stage}:{'ok' if stage.ok else stage.detail}" for stage in trace.stages],
            trace.chosen_source,
            trace.chosen_grams,
            trace.clamped,
            trace.total_ms,
        )
        return portion, trace

    async def _detect(
        self,
        product_data: Mapping[str, object] | None,
        ocr_text: str | None,
        user_id: UUID | None,
        trace: PortionTrace,
    ) -> PortionInfo:
        started = time.monotonic()
        flag = await attempt(
            "portion.flag", lambda: self.flags.is_enabled(PORTION_DETECTION_FLAG)
        )
        trace.enabled = bool(flag.ok and flag.value)
        if not flag.ok:
            trace.disabled_reason = f"flag_error: {flag.error}"
        elif not flag.value:
            trace.disabled_reason = "flag_disabled"
        self._record(trace, "flag", trace.enabled, trace.disabled_reason, started)
        if not trace.enabled:
            return SAFE_FALLBACK

        preference = await self._load_preference(product_data, user_id, trace)

        started = time.monotonic()
        text = ocr_text if isinstance(ocr_text, str) else None
        computed = attempt_sync(
            "portion.compute",
            lambda: parse_portion_grams(product_data, text, preference),
        )
        self._record(trace, "compute", computed.ok, computed.error, started)
        started = time.monotonic()
        if not computed.ok or not _is_valid(computed.value):
            self._record(trace, "validate", False, "invalid", started)
            return SAFE_FALLBACK
        self._record(trace, "validate", True, None, started)

        return self._clamp(computed.value, trace)

    async def _load_preference(
        self,
        product_data: Mapping[str, object] | None,
        user_id: UUID | None,
        trace: PortionTrace,
    ) -> UserPortionPref | None:
        key = product_key_from_data(product_data)
        started = time.monotonic()
        if user_id is None or key is None:
            self._record(trace, "preference", True, "skipped", started)
            return None
        outcome = await attempt(
            "portion.preference",
            lambda: self.preferences.get(user_id, key),
            timeout_seconds=self.preference_timeout_seconds,
        )
        self._record(trace, "preference", outcome.ok, outcome.error, started)
        return outcome.value if outcome.ok else None

    def _clamp(self, portion: PortionInfo, trace: PortionTrace) -> PortionInfo:
        started = time.monotonic()
        grams = min(max(portion.grams, MIN_PORTION_GRAMS), MAX_PORTION_GRAMS)
        if grams == portion.grams:
            self._record(trace, "clamp", True, None, started)
            return portion
        trace.clamped = True
        self._record(trace, "clamp", True, f"{portion.grams}->{grams}", started)
        return replace(
            portion,
            grams=grams,
            is_estimated=True,
            display=f"{grams}g",
        )

    def _record(
        self,
        trace: PortionTrace,
        stage: str,
        ok: bool,
        detail: str | None,
        started: float,
    ) -> None:
        outcome = StageOutcome(
            stage=stage, ok=ok, detail=detail, elapsed_ms=_elapsed_ms(started)
        )
        trace.stages.append(outcome)
        _logger.info(
            "portion.stage entry=%s stage=%s ok=%s detail=%s ms=%s",
            trace.entry_source,
            outcome.stage,
            outcome.ok,
            outcome.detail,
            outcome.elapsed_ms,
        )


def _is_valid(portion: PortionInfo | None) -> bool:
    if portion is None:
        return False
    grams = portion.grams
    if isinstance(grams, bool) or not isinstance(grams, int | float):
        return False
    return math.isfinite(grams) and grams >= 1


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
