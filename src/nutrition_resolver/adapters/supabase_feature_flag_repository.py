"""Supabase repository for feature flags."""

from dataclasses import dataclass

from supabase import Client

from nutrition_resolver.services.feature_flags import FeatureFlagRepository


@dataclass
class SupabaseFeatureFlagRepository(FeatureFlagRepository):
    """Supabase implementation for feature flags."""

    client: Client

    def get_flag(self, key: str) -> bool | None:
        """Return the stored flag value, or None when no row exists."""
        response = (
            self.client.table("feature_flags")
            .select("enabled")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        enabled = response.data[0].get("enabled")
        return None if enabled is None else bool(enabled)
