"""Philomena-based boorus (Derpibooru, Ponybooru, Ponerpics)."""

from __future__ import annotations

from booru_sync.adapters.booru.client import BooruClient


class PhilomenaClient(BooruClient):
    results_prop = "images"
    interaction_id_prop = "image_id"
    search_path = "/api/v1/json/search/images"
    reverse_search_path = "/api/v1/json/search/reverse"

    async def apply_fave(self, image_id: str) -> bool:
        return await self._interaction_request(
            "POST", f"/images/{image_id}/fave", {"_method": "POST"}
        )

    async def apply_like(self, image_id: str) -> bool:
        return await self._interaction_request(
            "POST", f"/images/{image_id}/vote", {"up": True, "_method": "POST"}
        )
