"""Feature flag lookups."""

import asyncio
from dataclasses import dataclass, field
from typing import Protocol

PORTION_DETECTION_FLAG = "portion_detection_enabled"
AI_RERANK_FLAG = "ai_rerank_enabled"


class FeatureFlagRepository(Protocol):
    """Persistence interface for feature flags."""

    def get_flag(self, key: str) -> bool | None:
        """Return the stored flag value, or None when the flag is unknown."""


@dataclass
class FeatureFlagService:
    """Resolve feature flags with per-flag defaults."""

    repository: FeatureFlagRepository
    defaults: dict[str, bool] = field(default_factory=dict)

    async def is_enabled(self, key: str) -> bool:
        """Return whether a flag is on; storage errors propagate."""
        value = await asyncio.to_thread(self.repository.get_flag, key)
        if value is None:
            return self.defaults.get(key, False)
        return bool(value)
