"""Pytest configuration and shared test helpers.

Helpers are plain functions and classes so both pytest-style and
``unittest.TestCase`` tests can import them from ``tests.conftest``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pytest

from booru_sync.adapters.booru.errors import BooruClientError
from booru_sync.adapters.booru.models import (
    HashSearchResult,
    ImageRecord,
    SearchPage,
)
from booru_sync.adapters.booru.sync.constants import FAVES_QUERY, LIKES_QUERY
from booru_sync.config import (
    KNOWN_BOORUS,
    AppConfig,
    BooruConfig,
    HttpConfig,
    RuntimeConfig,
    SyncSettings,
)

TEST_API_KEY = "test-api-key-0123"
TEST_SESSION_COOKIE = "_philomena_key=abc123"


def make_booru_configs(api_key: str = TEST_API_KEY) -> dict[str, BooruConfig]:
    return {
        key: BooruConfig(key=key, api_key=api_key, session_cookie=TEST_SESSION_COOKIE, **defaults)
        for key, defaults in KNOWN_BOORUS.items()
    }


def make_test_app_config(
    *,
    source: str = "derpibooru",
    destinations: Iterable[str] = ("ponybooru",),
    sync_faves: bool = True,
    sync_likes: bool = True,
    use_fallback: bool = False,
    tag_filter: str = "",
    autorun_interval_hours: int = 0,
    hash_store_path: str = "hash_store.json",
    api_key: str = TEST_API_KEY,
    request_timeout_sec: float = 30.0,
) -> AppConfig:
    return AppConfig(
        sync=SyncSettings(
            source=source,
            destinations=tuple(destinations),
            sync_faves=sync_faves,
            sync_likes=sync_likes,
            use_fallback=use_fallback,
            tag_filter=tag_filter,
            autorun_interval_hours=autorun_interval_hours,
            hash_store_path=hash_store_path,
        ),
        http=HttpConfig(request_timeout_sec=request_timeout_sec),
        runtime=RuntimeConfig(),
        boorus=make_booru_configs(api_key),
    )


def make_record(
    image_id: str | int,
    *,
    host: str = "derpibooru.org",
    content_hash: str | None = None,
    original_hash: str | None = None,
    **fields: Any,
) -> ImageRecord:
    return ImageRecord(
        service_host=host,
        id=image_id,
        content_hash=content_hash,
        original_content_hash=original_hash,
        **fields,
    )


def image_payload(
    image_id: int,
    *,
    sha512_hash: str | None = None,
    orig_sha512_hash: str | None = None,
    mime_type: str = "image/png",
    width: int = 800,
    height: int = 600,
    tags: Any = ("safe", "pony"),
    full: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """A search API image object as the services return it."""
    return {
        "id": image_id,
        "sha512_hash": sha512_hash,
        "orig_sha512_hash": orig_sha512_hash,
        "mime_type": mime_type,
        "width": width,
        "height": height,
        "aspect_ratio": width / height,
        "tags": list(tags) if not isinstance(tags, str) else tags,
        "representations": {"full": full or f"/img/view/2024/1/1/{image_id}.png"},
        "duplicate_of": None,
        "deletion_reason": None,
        **extra,
    }


class FakeBooruClient:
    """In-memory booru implementing the client protocol.

    ``catalog`` holds every image on the service; ``listings`` maps a search
    query to the images it returns, in order. Applying a fave or like adds the
    image to the matching listing, like the real service would.
    """

    def __init__(
        self,
        key: str = "ponybooru",
        *,
        catalog: Iterable[ImageRecord] = (),
        listings: dict[str, list[ImageRecord]] | None = None,
        location_hits: dict[str, HashSearchResult] | None = None,
        reverse_results: Iterable[ImageRecord] = (),
        downloads: dict[str, bytes] | None = None,
        apply_result: bool = True,
    ) -> None:
        defaults = KNOWN_BOORUS[key]
        self.key = key
        self.name = defaults["name"]
        self.host = defaults["host"]
        self.catalog = {image.id: image for image in catalog}
        self.listings = {query: list(images) for query, images in (listings or {}).items()}
        self.location_hits = location_hits or {}
        self.reverse_results = list(reverse_results)
        self.downloads = downloads or {}
        self.apply_result = apply_result

        self.search_error: Exception | None = None
        self.hash_search_error: Exception | None = None
        self.download_error: Exception | None = None

        self.search_calls: list[tuple[str, int]] = []
        self.hash_searches: list[list[str]] = []
        self.reverse_searches: list[str] = []
        self.downloaded: list[str] = []
        self.applied: list[tuple[str, str]] = []

    async def __aenter__(self) -> FakeBooruClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        return None

    async def search_page(self, query: str, *, page: int, per_page: int) -> SearchPage:
        self.search_calls.append((query, page))
        if self.search_error is not None:
            raise self.search_error
        images = self.listings.get(query, [])
        start = (page - 1) * per_page
        return SearchPage(images=images[start : start + per_page], total=len(images))

    async def search_by_content_hash(
        self, hashes: Iterable[str | None]
    ) -> HashSearchResult | None:
        wanted = [h for h in hashes if h]
        self.hash_searches.append(wanted)
        if self.hash_search_error is not None:
            raise self.hash_search_error
        for image in self.catalog.values():
            if {h for h in image.hashes if h} & set(wanted):
                return HashSearchResult(
                    destination_id=image.id,
                    has_fave=self._listed(FAVES_QUERY, image.id),
                    has_like=self._listed(LIKES_QUERY, image.id),
                )
        return None

    async def search_by_source_location(self, image: ImageRecord) -> HashSearchResult | None:
        return self.location_hits.get(image.id)

    async def search_by_visual_similarity(self, image: ImageRecord) -> list[ImageRecord]:
        self.reverse_searches.append(image.id)
        return list(self.reverse_results)

    async def apply_fave(self, image_id: str) -> bool:
        return self._apply(FAVES_QUERY, "fave", image_id)

    async def apply_like(self, image_id: str) -> bool:
        return self._apply(LIKES_QUERY, "like", image_id)

    async def fetch_token(self) -> str:
        return "csrf-token"

    def transform_record(
        self, raw: dict[str, Any], *, results_path: str | None = None
    ) -> ImageRecord:
        return ImageRecord(service_host=self.host, id=raw["id"], results_path=results_path)

    async def download(self, url: str) -> bytes:
        self.downloaded.append(url)
        if self.download_error is not None:
            raise self.download_error
        if url not in self.downloads:
            raise BooruClientError(f"No such file: {url}")
        return self.downloads[url]

    def _listed(self, query: str, image_id: str) -> bool:
        return any(image.id == image_id for image in self.listings.get(query, []))

    def _apply(self, query: str, kind: str, image_id: str) -> bool:
        self.applied.append((kind, image_id))
        if self.apply_result and image_id in self.catalog:
            if not self._listed(query, image_id):
                self.listings.setdefault(query, []).insert(0, self.catalog[image_id])
        return self.apply_result


def client_factory(*clients: FakeBooruClient):
    """A ``BooruClientFactory`` handing out the given fakes by booru key."""
    by_key = {client.key: client for client in clients}

    def factory(config: BooruConfig, http_config: HttpConfig, *, hash_store: Any) -> Any:
        return by_key[config.key]

    return factory


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials and sync settings out of tests."""
    import os

    for name in list(os.environ):
        if (
            name.startswith("BOORU_SYNC_")
            or name.endswith(("_API_KEY", "_SESSION_COOKIE"))
            or name in {"LOG_LEVEL", "LOG_FILE", "LOG_JSON"}
        ):
            monkeypatch.delenv(name, raising=False)
