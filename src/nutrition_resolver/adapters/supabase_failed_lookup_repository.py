"""Supabase repository for failed food lookups."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from nutrition_resolver.services.branded import FailedLookupRepository


@dataclass
class SupabaseFailedLookupRepository(FailedLookupRepository):
    """Append-only Supabase sink for lookups that found nothing."""

    client: Client

    def record_failure(self, food_name: str, confidence: int, failure_reason: str) -> None:
        """Insert one failed lookup row."""
        self.client.table("failed_food_lookups").insert(
            {
                "food_name": food_name,
                "confidence": confidence,
                "failure_reason": failure_reason,
                "created_at": datetime.now(tz=UTC).isoformat(),
            }
        ).execute()
