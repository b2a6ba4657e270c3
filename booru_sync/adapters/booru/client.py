"""Behaviour shared by every booru API family."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar
from urllib.parse import urlencode

from booru_sync.adapters.booru.errors import BooruClientError, BooruConfigurationError
from booru_sync.adapters.booru.models import (
    HashSearchResult,
    ImageRecord,
    SearchInteraction,
    SearchPage,
)
from booru_sync.adapters.booru.sync.constants import TOKEN_MAX_AGE_SECONDS, TOKEN_MAX_USES
from booru_sync.core.html_utils import extract_meta_content
from booru_sync.core.time_utils import epoch_seconds

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from typing import Self

    from booru_sync.adapters.booru.http import RateLimitedClient
    from booru_sync.adapters.booru.sync.hash_store import HashStore
    from booru_sync.config.boorus import BooruConfig

logger = logging.getLogger(__name__)


def make_absolute(path: str, host: str) -> str:
    if path.startswith(("http://", "https://", "//")):
        return f"https:{path}" if path.startswith("//") else path
    return f"https://{host}{path}"


class BooruClient:
    """Async client for one booru.

    Subclasses describe where their API differs (paths, response property names)
    and implement the interaction calls.
    """

    results_prop: ClassVar[str] = "images"
    interaction_id_prop: ClassVar[str] = "image_id"
    search_path: ClassVar[str] = "/api/v1/json/search/images"
    reverse_search_path: ClassVar[str | None] = None

    def __init__(
        self,
        config: BooruConfig,
        http: RateLimitedClient,
        *,
        hash_store: HashStore | None = None,
        token_max_uses: int = TOKEN_MAX_USES,
        token_max_age: float = TOKEN_MAX_AGE_SECONDS,
        clock: Callable[[], float] = epoch_seconds,
    ) -> None:
        self.config = config
        self.key = config.key
        self.name = config.name
        self.host = config.host
        self.http = http
        self.hash_store = hash_store
        self.token_max_uses = token_max_uses
        self.token_max_age = token_max_age
        self._clock = clock
        self._token: str | None = None
        self._token_uses = 0
        self._token_created_at = 0.0

    async def __aenter__(self) -> Self:
        await self.http.__aenter__()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.http.__aexit__(*args)

    def url(self, path: str) -> str:
        return f"{self.config.base_url}{path}"

    def _api_key(self) -> str:
        try:
            return self.config.validated_api_key()
        except ValueError as exc:
            raise BooruConfigurationError(str(exc)) from exc

    def _session_headers(self) -> dict[str, str]:
        if not self.config.session_cookie:
            return {}
        return {"Cookie": self.config.session_cookie}

    # Searching

    async def search_page(self, query: str, *, page: int, per_page: int) -> SearchPage:
        return await self._search(query, page=page, per_page=per_page)

    async def search_by_content_hash(
        self, hashes: Iterable[str | None]
    ) -> HashSearchResult | None:
        unique = list(dict.fromkeys(h for h in hashes if h))
        if not unique:
            return None
        query = " || ".join(f"orig_sha512_hash:{h} || sha512_hash:{h}" for h in unique)
        return HashSearchResult.from_page(await self._search(query))

    async def search_by_source_location(self, image: ImageRecord) -> HashSearchResult | None:
        return None

    async def search_by_visual_similarity(self, image: ImageRecord) -> list[ImageRecord]:
        if self.reverse_search_path is None or not image.file_url:
            return []
        url = self.url(self.reverse_search_path)
        result = await self.http.request(url, method="POST", params={"url": image.file_url})
        body = result.unwrap(url)
        return self._parse_page(body, results_path=None).images

    async def _search(
        self, query: str, *, page: int | None = None, per_page: int | None = None
    ) -> SearchPage:
        params: dict[str, str | int] = {
            "q": query,
            "filter_id": self.config.filter_id,
            "key": self._api_key(),
        }
        if per_page is not None:
            params["per_page"] = per_page
        if page is not None:
            params["page"] = page

        url = self.url(self.search_path)
        result = await self.http.request(url, params=params)
        body = result.unwrap(url)
        return self._parse_page(body, results_path=f"/search?{urlencode({'q': query})}")

    def _parse_page(self, body: Any, *, results_path: str | None) -> SearchPage:
        try:
            images = [
                self.transform_record(raw, results_path=results_path)
                for raw in body[self.results_prop]
            ]
            interactions = [
                SearchInteraction(
                    image_id=raw[self.interaction_id_prop],
                    interaction_type=raw["interaction_type"],
                    value=raw.get("value"),
                )
                for raw in body.get("interactions") or []
            ]
            total = int(body.get("total") or 0)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            msg = f"Malformed search response from {self.host}: {exc}"
            raise BooruClientError(msg) from exc
        return SearchPage(images=images, interactions=interactions, total=total)

    def transform_record(
        self, raw: Mapping[str, Any], *, results_path: str | None = None
    ) -> ImageRecord:
        """Normalise one API image object.

        A hash computed locally earlier wins over the API's, since the API hash
        of an optimised upload does not describe the file that was downloaded.
        """
        image_id = str(raw["id"])
        cached = self.hash_store.get(self.host, image_id) if self.hash_store else None
        representations = raw.get("representations") or {}
        file_path = representations.get("full") or raw.get("view_url") or ""
        return ImageRecord(
            service_host=self.host,
            id=image_id,
            content_hash=cached or raw.get("sha512_hash"),
            original_content_hash=raw.get("orig_sha512_hash"),
            computed_hash=bool(cached),
            file_url=make_absolute(file_path, self.host) if file_path else "",
            mime_type=raw.get("mime_type"),
            width=raw.get("width"),
            height=raw.get("height"),
            aspect_ratio=raw.get("aspect_ratio"),
            tags=raw.get("tags"),
            results_path=results_path,
            duplicate_of=raw.get("duplicate_of"),
            deletion_reason=raw.get("deletion_reason"),
        )

    async def download(self, url: str) -> bytes:
        result = await self.http.request(url, response_type="bytes")
        return result.unwrap(url)

    # Interactions

    async def fetch_token(self) -> str:
        """Return a CSRF token, reusing the cached one until it is too old or overused."""
        age = self._clock() - self._token_created_at
        if self._token and self._token_uses < self.token_max_uses and age < self.token_max_age:
            self._token_uses += 1
            return self._token

        url = self.config.base_url
        result = await self.http.request(
            url, response_type="text", headers=self._session_headers()
        )
        token = extract_meta_content(result.unwrap(url), "csrf-token")
        if not token:
            msg = f"No CSRF token found on {self.host}"
            raise BooruClientError(msg)

        self._token = token
        self._token_uses = 1
        self._token_created_at = self._clock()
        logger.debug("booru_token_refreshed", extra={"host": self.host})
        return token

    async def apply_fave(self, image_id: str) -> bool:
        raise NotImplementedError

    async def apply_like(self, image_id: str) -> bool:
        raise NotImplementedError

    async def _interaction_request(self, method: str, path: str, body: dict[str, Any]) -> bool:
        try:
            token = await self.fetch_token()
        except BooruClientError as exc:
            logger.warning(
                "booru_token_fetch_failed", extra={"host": self.host, "error": str(exc)}
            )
            return False

        url = self.url(path)
        headers = {"x-csrf-token": token, **self._session_headers()}
        result = await self.http.request(url, method=method, headers=headers, body=body)
        if result.ok:
            return True

        if result.error:
            logger.warning(
                "booru_interaction_transport_failed",
                extra={"url": url, "timed_out": result.timed_out, "error": result.error_message},
            )
        else:
            logger.warning(
                "booru_interaction_failed",
                extra={
                    "url": url,
                    "status": result.status,
                    "server_message": result.server_message,
                },
            )
        return False
