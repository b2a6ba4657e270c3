"""Bounded, age-aware store of locally computed image hashes."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from booru_sync.adapters.booru.sync.constants import (
    HASH_MAX_AGE_SECONDS,
    HASH_MAX_ENTRIES_PER_SERVICE,
    HASH_STORE_VERSION,
)
from booru_sync.core.time_utils import epoch_seconds

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@dataclass
class HashEntry:
    hash: str
    timestamp: float


class HashStore:
    """``(service_host, image_id) -> hash`` cache with per-service LRU eviction.

    Entries older than ``max_age`` are reported as absent but kept until a later
    ``set`` refreshes them or eviction drops them.
    """

    def __init__(
        self,
        *,
        max_age: float = HASH_MAX_AGE_SECONDS,
        max_entries_per_service: int = HASH_MAX_ENTRIES_PER_SERVICE,
        clock: Callable[[], float] = epoch_seconds,
    ) -> None:
        self.max_age = max_age
        self.max_entries_per_service = max_entries_per_service
        self.modified = False
        self._clock = clock
        self._services: dict[str, OrderedDict[str, HashEntry]] = {}

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._services.values())

    def get(self, service: str, image_id: str) -> str | None:
        entries = self._services.get(service)
        if not entries:
            return None
        key = str(image_id)
        entry = entries.get(key)
        if entry is None:
            return None
        entries.move_to_end(key)
        if self._clock() - entry.timestamp > self.max_age:
            return None
        return entry.hash

    def set(self, service: str, image_id: str, hash_value: str) -> None:
        entries = self._services.setdefault(service, OrderedDict())
        key = str(image_id)
        entries[key] = HashEntry(hash=hash_value, timestamp=self._clock())
        entries.move_to_end(key)
        if len(entries) > self.max_entries_per_service:
            evicted, _ = entries.popitem(last=False)
            logger.debug("hash_store_evicted", extra={"service": service, "image_id": evicted})
        self.modified = True

    def load(self, blob: Any) -> None:
        """Replace the contents with a blob produced by :meth:`serialize`.

        A blob of another version, or one that does not parse, leaves the store empty.
        """
        self._services = {}
        self.modified = False
        if not isinstance(blob, dict) or blob.get("version") != HASH_STORE_VERSION:
            if blob:
                logger.info(
                    "hash_store_discarded",
                    extra={"version": blob.get("version") if isinstance(blob, dict) else None},
                )
            return

        services = blob.get("services")
        if not isinstance(services, dict):
            return
        try:
            for service, raw_entries in services.items():
                entries: OrderedDict[str, HashEntry] = OrderedDict()
                for image_id, raw in raw_entries.items():
                    entries[str(image_id)] = HashEntry(
                        hash=str(raw["hash"]), timestamp=float(raw["timestamp"])
                    )
                while len(entries) > self.max_entries_per_service:
                    entries.popitem(last=False)
                self._services[str(service)] = entries
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("hash_store_malformed", extra={"error": str(exc)})
            self._services = {}

    def serialize(self) -> dict[str, Any]:
        return {
            "version": HASH_STORE_VERSION,
            "services": {
                service: {
                    image_id: {"hash": entry.hash, "timestamp": entry.timestamp}
                    for image_id, entry in entries.items()
                }
                for service, entries in self._services.items()
            },
        }


class HashStoreFile:
    """JSON file holding a serialized :class:`HashStore`."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self, store: HashStore | None = None) -> HashStore:
        if store is None:
            store = HashStore()
        try:
            blob = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            blob = None
        except (OSError, ValueError) as exc:
            logger.warning(
                "hash_store_read_failed", extra={"path": str(self.path), "error": str(exc)}
            )
            blob = None
        store.load(blob)
        logger.debug("hash_store_loaded", extra={"path": str(self.path), "entries": len(store)})
        return store

    def save(self, store: HashStore) -> bool:
        """Write the store if it changed since it was loaded. Returns whether it wrote."""
        if not store.modified:
            return False

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(store.serialize(), handle, separators=(",", ":"))
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        store.modified = False
        logger.info("hash_store_saved", extra={"path": str(self.path), "entries": len(store)})
        return True
