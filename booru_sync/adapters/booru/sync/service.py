"""Public booru sync service: fetch, diff, match and apply interactions."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING

from booru_sync.adapters.booru.errors import BooruClientError, BooruConfigurationError
from booru_sync.adapters.booru.factory import create_client
from booru_sync.adapters.booru.models import InteractionKind, MatchStatus
from booru_sync.adapters.booru.sync.cancellation import CancellationToken
from booru_sync.adapters.booru.sync.constants import FAVES_QUERY, LIKES_QUERY, RESULTS_PER_PAGE
from booru_sync.adapters.booru.sync.errors import record_error
from booru_sync.adapters.booru.sync.hash_store import HashStore, HashStoreFile
from booru_sync.adapters.booru.sync.hashing import filter_unmatched
from booru_sync.adapters.booru.sync.matcher import ImageMatcher
from booru_sync.adapters.booru.sync.progress import ProgressReporter
from booru_sync.adapters.booru.sync.report import (
    SuspectedMatch,
    SyncReport,
    SyncRunResult,
    SyncState,
    TimeoutRecord,
)
from booru_sync.core.async_utils import raise_if_cancelled
from booru_sync.core.logging_utils import generate_correlation_id

if TYPE_CHECKING:
    from booru_sync.adapters.booru.models import ImageRecord
    from booru_sync.adapters.booru.sync.progress import ProgressSink
    from booru_sync.adapters.booru.sync.protocols import (
        BooruClientFactory,
        BooruClientProtocol,
    )
    from booru_sync.config.settings import AppConfig

logger = logging.getLogger(__name__)

Interactions = tuple[list["ImageRecord"], list["ImageRecord"]]

_KIND_LABELS = {InteractionKind.FAVE: "faves", InteractionKind.LIKE: "likes"}


class BooruSyncService:
    """Copies faves and upvotes from the source booru to every destination.

    The source is fetched first; destinations are then fetched and synced
    concurrently, each in its own failure and cancellation scope. ``run`` never
    raises: every failure ends up in the returned :class:`SyncRunResult`.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        hash_store: HashStore | None = None,
        hash_store_file: HashStoreFile | None = None,
        client_factory: BooruClientFactory | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self.config = config
        self.settings = config.sync
        self.state = SyncState.IDLE
        self._hash_store = hash_store
        if hash_store_file is None and hash_store is None:
            hash_store_file = HashStoreFile(self.settings.hash_store_path)
        self._hash_store_file = hash_store_file
        self._client_factory = client_factory or create_client
        self._progress = ProgressReporter(progress)

    def _set_state(self, state: SyncState, result: SyncRunResult) -> None:
        self.state = state
        result.state = state
        logger.debug(
            "booru_sync_state", extra={"correlation_id": result.correlation_id, "state": state}
        )

    async def run(self, token: CancellationToken | None = None) -> SyncRunResult:
        token = token or CancellationToken()
        correlation_id = generate_correlation_id()
        result = SyncRunResult(correlation_id=correlation_id, source=self.settings.source)
        start_time = time.time()

        logger.info(
            "booru_sync_start",
            extra={
                "correlation_id": correlation_id,
                "source": self.settings.source,
                "destinations": list(self.settings.destinations),
                "sync_faves": self.settings.sync_faves,
                "sync_likes": self.settings.sync_likes,
                "use_fallback": self.settings.use_fallback,
            },
        )

        hash_store = self._load_hash_store()
        try:
            await self._run(result, token, hash_store)
        except Exception as exc:
            record_error(result, f"Sync failed: {exc}")
            logger.exception("booru_sync_failed", extra={"correlation_id": correlation_id})
        finally:
            result.cancelled = result.cancelled or token.cancelled
            self._save_hash_store(hash_store, result)
            result.duration_seconds = time.time() - start_time
            self._set_state(SyncState.DONE, result)

        self._print_reports(result)
        logger.info(
            "booru_sync_complete",
            extra={
                "correlation_id": correlation_id,
                "success": result.success,
                "cancelled": result.cancelled,
                "new": {key: report.total_new for key, report in result.reports.items()},
                "errors": len(result.errors),
                "duration_sec": round(result.duration_seconds, 2),
            },
        )
        return result

    async def _run(
        self, result: SyncRunResult, token: CancellationToken, hash_store: HashStore
    ) -> None:
        source_config = self.config.source
        destination_configs = self.config.destinations
        if not destination_configs:
            record_error(result, "No sync destinations configured")
            return

        self._progress(f"Syncing from: {source_config.name}")
        self._progress("Syncing to: " + ", ".join(d.name for d in destination_configs))

        async with AsyncExitStack() as stack:
            source = await stack.enter_async_context(
                self._client_factory(source_config, self.config.http, hash_store=hash_store)
            )
            destinations = [
                await stack.enter_async_context(
                    self._client_factory(config, self.config.http, hash_store=hash_store)
                )
                for config in destination_configs
            ]
            for client in destinations:
                result.reports[client.key] = SyncReport(
                    destination=client.key,
                    destination_name=client.name,
                    destination_host=client.host,
                )

            self._set_state(SyncState.FETCHING_SOURCE, result)
            source_progress = self._progress.for_service(source.name)
            source_progress("Begin fetching image interactions")
            try:
                source_faves, source_likes = await self._fetch_interactions(
                    source, token, source_progress, source_counts=None
                )
            except BooruClientError as exc:
                record_error(result, f"{source.name}: failed to fetch interactions: {exc}")
                logger.error(
                    "booru_source_fetch_failed",
                    extra={
                        "correlation_id": result.correlation_id,
                        "source": source.key,
                        "error": str(exc),
                    },
                )
                return
            if token.cancelled:
                return

            result.source_faves = len(source_faves)
            result.source_likes = len(source_likes)
            source_progress()
            source_progress(f"Result: {len(source_faves)} faves and {len(source_likes)} likes")

            tokens = {client.key: token.child() for client in destinations}

            self._set_state(SyncState.FETCHING_DESTINATIONS, result)
            self._progress("Begin fetching image interactions from sync targets")
            source_counts = (len(source_faves), len(source_likes))
            fetched = await asyncio.gather(
                *(
                    self._fetch_interactions(
                        client,
                        tokens[client.key],
                        self._progress.for_service(client.name),
                        source_counts=source_counts,
                    )
                    for client in destinations
                ),
                return_exceptions=True,
            )

            ready: list[tuple[BooruClientProtocol, Interactions]] = []
            for client, outcome in zip(destinations, fetched, strict=True):
                report = result.reports[client.key]
                if isinstance(outcome, BaseException):
                    raise_if_cancelled(outcome)
                    record_error(report, f"Failed to fetch interactions: {outcome}")
                    logger.warning(
                        "booru_destination_fetch_failed",
                        extra={
                            "correlation_id": result.correlation_id,
                            "destination": client.key,
                            "error": str(outcome),
                        },
                    )
                elif tokens[client.key].cancelled:
                    report.cancelled = True
                else:
                    ready.append((client, outcome))

            if token.cancelled:
                return

            self._set_state(SyncState.SYNCING, result)
            synced = await asyncio.gather(
                *(
                    self._sync_destination(
                        client,
                        result.reports[client.key],
                        source_faves,
                        source_likes,
                        existing,
                        token=tokens[client.key],
                        source=source,
                        hash_store=hash_store,
                        correlation_id=result.correlation_id,
                    )
                    for client, existing in ready
                ),
                return_exceptions=True,
            )
            for (client, _), outcome in zip(ready, synced, strict=True):
                if isinstance(outcome, BaseException):
                    raise_if_cancelled(outcome)
                    record_error(result.reports[client.key], f"Sync failed: {outcome}")
                    logger.error(
                        "booru_destination_sync_failed",
                        extra={
                            "correlation_id": result.correlation_id,
                            "destination": client.key,
                            "error": str(outcome),
                        },
                    )

    async def _fetch_interactions(
        self,
        client: BooruClientProtocol,
        token: CancellationToken,
        progress: ProgressReporter,
        *,
        source_counts: tuple[int, int] | None,
    ) -> Interactions:
        """Page through the user's faves and likes on ``client``.

        ``source_counts`` is given for destinations; it enables the shortcut of
        skipping a listing that would take more pages than there are source images
        to look up one by one.
        """
        faves: list[ImageRecord] = []
        likes: list[ImageRecord] = []
        if self.settings.sync_faves:
            faves = await self._fetch_kind(
                client,
                InteractionKind.FAVE,
                token,
                progress,
                source_total=source_counts[0] if source_counts else None,
            )
        if self.settings.sync_likes and not token.cancelled:
            likes = await self._fetch_kind(
                client,
                InteractionKind.LIKE,
                token,
                progress,
                source_total=source_counts[1] if source_counts else None,
            )
        if not token.cancelled:
            progress("Getting interactions... Done.")
        return faves, likes

    async def _fetch_kind(
        self,
        client: BooruClientProtocol,
        kind: InteractionKind,
        token: CancellationToken,
        progress: ProgressReporter,
        *,
        source_total: int | None,
    ) -> list[ImageRecord]:
        is_source = source_total is None
        query = FAVES_QUERY if kind is InteractionKind.FAVE else LIKES_QUERY
        if is_source and self.settings.tag_filter:
            query = f"{query} && ({self.settings.tag_filter})"

        label = _KIND_LABELS[kind]
        records: list[ImageRecord] = []
        page = 1
        while not token.cancelled:
            progress(f"Getting {label}... Page {page}")
            result = await client.search_page(query, page=page, per_page=RESULTS_PER_PAGE)

            if page == 1 and source_total is not None:
                total_pages = math.ceil(result.total / RESULTS_PER_PAGE)
                if total_pages > source_total or source_total == 0:
                    logger.info(
                        "booru_destination_fetch_shortcut",
                        extra={
                            "destination": client.key,
                            "kind": kind,
                            "total": result.total,
                            "source_total": source_total,
                        },
                    )
                    return []

            if not result.images:
                break
            if is_source:
                for image in result.images:
                    image.interaction = kind
            records.extend(result.images)
            page += 1
        return records

    async def _sync_destination(
        self,
        client: BooruClientProtocol,
        report: SyncReport,
        source_faves: list[ImageRecord],
        source_likes: list[ImageRecord],
        existing: Interactions,
        *,
        token: CancellationToken,
        source: BooruClientProtocol,
        hash_store: HashStore,
        correlation_id: str,
    ) -> SyncReport:
        start_time = time.time()
        progress = self._progress.for_service(client.name)
        matcher = ImageMatcher(
            hash_store,
            use_fallback=self.settings.use_fallback,
            download_timeout=self.config.http.request_timeout_sec,
            progress=progress,
            download=source.download,
            correlation_id=correlation_id,
        )

        existing_faves, existing_likes = existing
        queue = [
            (kind, image)
            for kind, sources, present in (
                (InteractionKind.FAVE, source_faves, existing_faves),
                (InteractionKind.LIKE, source_likes, existing_likes),
            )
            for image in filter_unmatched(sources, present)
        ]
        total = len(queue)
        logger.info(
            "booru_destination_sync_start",
            extra={"correlation_id": correlation_id, "destination": client.key, "queued": total},
        )

        try:
            for index, (kind, image) in enumerate(queue, start=1):
                if token.cancelled:
                    report.cancelled = True
                    break
                progress(f"Searching for image {image.page_url} ({index}/{total})")
                match = await matcher.find_match(image, client)
                if token.cancelled:
                    report.cancelled = True
                    break

                status = match.status
                if status is MatchStatus.EXACT and match.destination_id:
                    await self._apply(
                        client,
                        report,
                        kind,
                        match.destination_id,
                        already_synced=match.already_has(kind),
                        progress=progress,
                    )
                elif status is MatchStatus.SUSPECTED and match.destination_id:
                    progress(
                        f"Possible match found for image {image.page_url} as "
                        f"https://{client.host}/images/{match.destination_id}"
                    )
                    report.suspected.append(
                        SuspectedMatch(
                            source_host=image.service_host,
                            source_id=image.id,
                            destination_id=match.destination_id,
                            collection_path=image.results_path,
                            interaction=kind,
                        )
                    )
                elif status is MatchStatus.TIMEOUT:
                    progress("[Error] Connection timed out")
                    report.timeouts.append(
                        TimeoutRecord(
                            image_id=image.id,
                            host=image.service_host,
                            collection_path=image.results_path,
                        )
                    )
                else:
                    progress(f"Not found: {image.page_url}")
                    report.record_not_found(kind)
            else:
                progress("Sync complete")
        except BooruConfigurationError as exc:
            record_error(report, f"Configuration error: {exc}")
            logger.error(
                "booru_destination_config_error",
                extra={
                    "correlation_id": correlation_id,
                    "destination": client.key,
                    "error": str(exc),
                },
            )
        finally:
            report.duration_seconds = time.time() - start_time

        return report

    async def _apply(
        self,
        client: BooruClientProtocol,
        report: SyncReport,
        kind: InteractionKind,
        destination_id: str,
        *,
        already_synced: bool,
        progress: ProgressReporter,
    ) -> None:
        if already_synced:
            progress("Image already synced")
            report.already_synced += 1
            return

        apply = client.apply_fave if kind is InteractionKind.FAVE else client.apply_like
        if await apply(destination_id):
            progress("Success")
            report.record_new(kind)
        else:
            progress(f"[Error] Unable to sync: https://{client.host}/images/{destination_id}")
            report.failed_applies += 1

    def _load_hash_store(self) -> HashStore:
        if self._hash_store is not None:
            return self._hash_store
        if self._hash_store_file is None:
            return HashStore()
        return self._hash_store_file.load()

    def _save_hash_store(self, hash_store: HashStore, result: SyncRunResult) -> None:
        if self._hash_store_file is None:
            return
        try:
            self._hash_store_file.save(hash_store)
        except OSError as exc:
            record_error(result, f"Failed to save hash store: {exc}")
            logger.warning(
                "booru_hash_store_save_failed",
                extra={"correlation_id": result.correlation_id, "error": str(exc)},
            )

    def _print_reports(self, result: SyncRunResult) -> None:
        for error in result.errors:
            self._progress(f"[Error] {error}")
        for report in result.reports.values():
            progress = self._progress.for_service(report.destination_name)
            self._progress()
            for line in report.render_lines(self.settings.sync_faves, self.settings.sync_likes):
                progress(line)
        self._progress()
        self._progress("All done!")
