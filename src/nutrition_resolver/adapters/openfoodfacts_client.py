"""Open Food Facts API client."""

from dataclasses import dataclass
from typing import Protocol

import httpx

_USER_AGENT = "nutrition-resolver/0.1"
_NOT_FOUND = 404


class OpenFoodFactsClient(Protocol):
    """Interface for Open Food Facts product lookups."""

    async def get_product(self, barcode: str) -> dict[str, object]:
        """Return the raw product payload for a barcode."""

    async def search(self, query: str, page_size: int = 5) -> dict[str, object]:
        """Search products by free text and return raw API data."""


@dataclass
class HttpxOpenFoodFactsClient(OpenFoodFactsClient):
    """HTTPX-backed Open Food Facts client."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 15

    @classmethod
    def create(cls, base_url: str) -> "HttpxOpenFoodFactsClient":
        """Create a client with a managed httpx session."""
        return cls(
            base_url=base_url,
            http_client=httpx.AsyncClient(headers={"User-Agent": _USER_AGENT}),
        )

    async def get_product(self, barcode: str) -> dict[str, object]:
        """Fetch a product by barcode; unknown barcodes yield ``status`` 0."""
        response = await self.http_client.get(
            f"{self.base_url}/api/v2/product/{barcode}.json",
            timeout=self.timeout_seconds,
        )
        if response.status_code == _NOT_FOUND:
            return {"status": 0}
        response.raise_for_status()
        return response.json()

    async def search(self, query: str, page_size: int = 5) -> dict[str, object]:
        """Search products by free text."""
        response = await self.http_client.get(
            f"{self.base_url}/cgi/search.pl",
            params={
                "search_terms": query,
                "search_simple": 1,
                "json": 1,
                "page_size": page_size,
            },
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
