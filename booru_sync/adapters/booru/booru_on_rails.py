"""Booru-on-Rails boorus (Twibooru)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from booru_sync.adapters.booru.client import BooruClient
from booru_sync.adapters.booru.models import HashSearchResult

if TYPE_CHECKING:
    from booru_sync.adapters.booru.models import ImageRecord

# Hosts whose uploads Booru-on-Rails mirrors and records as ``location``.
MIRRORED_LOCATIONS = {
    "derpibooru.org": "derpibooru",
    "trixiebooru.org": "derpibooru",
}


class BooruOnRailsClient(BooruClient):
    """Booru-on-Rails has no reverse search, but can look up mirrored uploads
    by their id on the original site."""

    results_prop = "search"
    interaction_id_prop = "post_id"
    search_path = "/search.json"
    reverse_search_path = None

    async def search_by_source_location(self, image: ImageRecord) -> HashSearchResult | None:
        site = MIRRORED_LOCATIONS.get(image.service_host)
        if site is None:
            return None
        page = await self._search(f"location:{site} && id_at_location:{image.id}")
        if page.total <= 0:
            return None
        return HashSearchResult.from_page(page)

    async def apply_fave(self, image_id: str) -> bool:
        return await self._interaction_request(
            "PUT",
            "/api/v2/interactions/fave",
            {"class": "Image", "id": str(image_id), "value": "true", "_method": "PUT"},
        )

    async def apply_like(self, image_id: str) -> bool:
        return await self._interaction_request(
            "PUT",
            "/api/v2/interactions/vote",
            {"class": "Image", "id": str(image_id), "value": "up", "_method": "PUT"},
        )
