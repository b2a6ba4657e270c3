"""Find a source image on a destination service."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from booru_sync.adapters.booru.errors import (
    BooruClientError,
    BooruConfigurationError,
    BooruHTTPError,
    BooruTransportError,
)
from booru_sync.adapters.booru.models import MatchResult
from booru_sync.adapters.booru.sync.hashing import download_url_for, sha512_hex
from booru_sync.adapters.booru.sync.progress import ProgressReporter
from booru_sync.adapters.booru.sync.similarity import pick_best_candidate
from booru_sync.core.async_utils import race_with_timeout

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from booru_sync.adapters.booru.models import ImageRecord
    from booru_sync.adapters.booru.sync.hash_store import HashStore
    from booru_sync.adapters.booru.sync.protocols import BooruClientProtocol

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_TIMEOUT_SEC = 30.0


class ImageMatcher:
    """Looks an image up on a destination, trying cheaper strategies first.

    1. Location lookup, for services that mirror the source (exact).
    2. Search by the source's primary and original hashes (exact).
    3. With fallback: download the file, hash it locally, search again (exact).
    4. With fallback: reverse image search ranked by metadata (suspected).

    A timeout anywhere stops the lookup and reports a timeout; any other client
    error stops it and reports not found. Configuration errors propagate.
    """

    def __init__(
        self,
        hash_store: HashStore,
        *,
        use_fallback: bool = False,
        download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT_SEC,
        progress: ProgressReporter | None = None,
        download: Callable[[str], Awaitable[bytes]] | None = None,
        correlation_id: str | None = None,
    ) -> None:
        self.hash_store = hash_store
        self.download = download
        self.use_fallback = use_fallback
        self.download_timeout = download_timeout
        self.progress = progress or ProgressReporter()
        self.correlation_id = correlation_id

    async def find_match(self, image: ImageRecord, client: BooruClientProtocol) -> MatchResult:
        try:
            return await self._find_match(image, client)
        except BooruConfigurationError:
            raise
        except TimeoutError:
            self._log_failure("booru_match_timeout", image, client)
            return MatchResult.timeout()
        except BooruTransportError as exc:
            if exc.timed_out:
                self._log_failure("booru_match_timeout", image, client)
                return MatchResult.timeout()
            self._log_failure("booru_match_transport_failed", image, client, error=str(exc))
            self.progress("[Error] Something went wrong")
            return MatchResult.not_found()
        except BooruHTTPError as exc:
            self._log_failure(
                "booru_match_http_failed",
                image,
                client,
                error=str(exc),
                status=exc.status_code,
                server_message=exc.server_message,
            )
            self.progress(f"[Error] Status code {exc.status_code}")
            if exc.server_message:
                self.progress(f"Error message: {exc.server_message}")
            return MatchResult.not_found()
        except BooruClientError as exc:
            self._log_failure("booru_match_failed", image, client, error=str(exc))
            self.progress("[Error] Something went wrong")
            return MatchResult.not_found()

    async def _find_match(self, image: ImageRecord, client: BooruClientProtocol) -> MatchResult:
        # Read before any await; a sibling destination may compute the hash meanwhile.
        computed = image.computed_hash
        hit = await client.search_by_source_location(image)
        if hit is not None:
            return MatchResult.exact(hit)

        hit = await client.search_by_content_hash(image.hashes)
        if hit is not None:
            return MatchResult.exact(hit)

        if not self.use_fallback:
            return MatchResult.not_found()

        if not computed:
            digest = await race_with_timeout(
                self.compute_hash(image, client), self.download_timeout
            )
            hit = await client.search_by_content_hash([digest])
            if hit is not None:
                return MatchResult.exact(hit)

        self.progress(f"Performing reverse image search for {image.page_url}")
        candidates = await client.search_by_visual_similarity(image)
        best = pick_best_candidate(image, candidates)
        if best is None:
            return MatchResult.not_found()
        return MatchResult.suspected(best.id)

    async def compute_hash(self, image: ImageRecord, client: BooruClientProtocol) -> str:
        """Download the full file, hash it, and remember the hash for later runs."""
        if image.computed_hash and image.content_hash:
            return image.content_hash

        self.progress(f"Downloading image {image.page_url} for client-side hashing")
        download = self.download or client.download
        data = await download(download_url_for(image))
        digest = sha512_hex(data)
        image.content_hash = digest
        image.computed_hash = True
        self.hash_store.set(image.service_host, image.id, digest)
        return digest

    def _log_failure(
        self, event: str, image: ImageRecord, client: BooruClientProtocol, **fields: object
    ) -> None:
        logger.warning(
            event,
            extra={
                "correlation_id": self.correlation_id,
                "destination": client.host,
                "source_host": image.service_host,
                "image_id": image.id,
                **fields,
            },
        )
