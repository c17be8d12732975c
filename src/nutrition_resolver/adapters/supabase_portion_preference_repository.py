"""Supabase repository for user portion preferences."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from nutrition_resolver.domain.portions import UserPortionPref
from nutrition_resolver.services.portion_preferences import PortionPreferenceRepository


@dataclass
class SupabasePortionPreferenceRepository(PortionPreferenceRepository):
    """Supabase implementation for per-product portion overrides."""

    client: Client

    def get_preference(self, user_id: UUID, product_key: str) -> UserPortionPref | None:
        """Return the user's saved portion for a product."""
        response = (
            self.client.table("user_portion_preferences")
            .select("product_key, portion_grams, portion_display")
            .eq("user_id", str(user_id))
            .eq("product_key", product_key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        grams = row.get("portion_grams")
        if not isinstance(grams, int | float) or grams <= 0:
            return None
        return UserPortionPref(
            product_key=row.get("product_key") or product_key,
            portion_grams=float(grams),
            portion_display=row.get("portion_display"),
        )

    def upsert_preference(self, user_id: UUID, preference: UserPortionPref) -> None:
        """Create or replace the user's portion for a product."""
        self.client.table("user_portion_preferences").upsert(
            {
                "user_id": str(user_id),
                "product_key": preference.product_key,
                "portion_grams": preference.portion_grams,
                "portion_display": preference.portion_display,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="user_id,product_key",
        ).execute()
