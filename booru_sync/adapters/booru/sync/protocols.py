"""Protocol definitions (ports) for booru sync.

The matcher and the orchestrator only talk to services through
:class:`BooruClientProtocol`, never to a concrete API family.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from contextlib import AbstractAsyncContextManager

    from booru_sync.adapters.booru.models import HashSearchResult, ImageRecord, SearchPage
    from booru_sync.adapters.booru.sync.hash_store import HashStore
    from booru_sync.config.boorus import BooruConfig
    from booru_sync.config.settings import HttpConfig


class BooruClientProtocol(Protocol):
    key: str
    name: str
    host: str

    async def search_page(self, query: str, *, page: int, per_page: int) -> SearchPage: ...

    async def search_by_content_hash(
        self, hashes: Iterable[str | None]
    ) -> HashSearchResult | None: ...

    async def search_by_source_location(self, image: ImageRecord) -> HashSearchResult | None: ...

    async def search_by_visual_similarity(self, image: ImageRecord) -> list[ImageRecord]: ...

    async def apply_fave(self, image_id: str) -> bool: ...

    async def apply_like(self, image_id: str) -> bool: ...

    async def fetch_token(self) -> str: ...

    def transform_record(
        self, raw: Mapping[str, Any], *, results_path: str | None = None
    ) -> ImageRecord: ...

    async def download(self, url: str) -> bytes: ...


class BooruClientFactory(Protocol):
    def __call__(
        self, config: BooruConfig, http_config: HttpConfig, *, hash_store: HashStore
    ) -> AbstractAsyncContextManager[BooruClientProtocol]: ...
