"""User portion preferences keyed by product."""

import asyncio
import hashlib
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from nutrition_resolver.domain.portions import UserPortionPref


class PortionPreferenceRepository(Protocol):
    """Persistence interface for user portion preferences."""

    def get_preference(self, user_id: UUID, product_key: str) -> UserPortionPref | None:
        """Return the user's saved portion for a product."""

    def upsert_preference(self, user_id: UUID, preference: UserPortionPref) -> None:
        """Create or replace the user's portion for a product."""


def product_key(
    barcode: str | None = None,
    brand: str | None = None,
    name: str | None = None,
) -> str | None:
    """Derive a stable product key from a barcode, else brand and name."""
    if barcode and barcode.strip():
        return f"barcode:{barcode.strip()}"
    brand_part = (brand or "").strip().lower()
    name_part = (name or "").strip().lower()
    if not brand_part and not name_part:
        return None
    digest = hashlib.sha256(f"{brand_part}:{name_part}".encode()).hexdigest()
    return f"name:{digest[:16]}"


def product_key_from_data(product_data: Mapping[str, object] | None) -> str | None:
    """Derive a product key from an opaque product record."""
    if not isinstance(product_data, Mapping):
        return None

    def _field(*keys: str) -> str | None:
        for key in keys:
            value = product_data.get(key)
            if isinstance(value, str) and value.strip():
                return value
        return None

    return product_key(
        barcode=_field("barcode", "code"),
        brand=_field("brand", "brands"),
        name=_field("product_name", "name", "item_name"),
    )


@dataclass
class PortionPreferenceService:
    """Service for reading and saving user portion overrides."""

    repository: PortionPreferenceRepository

    async def get(self, user_id: UUID, key: str) -> UserPortionPref | None:
        """Return a saved preference without blocking the event loop."""
        return await asyncio.to_thread(self.repository.get_preference, user_id, key)

    def save(
        self,
        user_id: UUID,
        key: str,
        grams: float,
        display: str | None = None,
    ) -> UserPortionPref:
        """Persist the user's usual portion for a product."""
        if grams <= 0:
            raise ValueError("Portion grams must be positive")
        preference = UserPortionPref(
            product_key=key, portion_grams=grams, portion_display=display
        )
        self.repository.upsert_preference(user_id, preference)
        return preference
