"""Error collection helpers for sync reports."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from booru_sync.adapters.booru.sync.report import SyncReport, SyncRunResult


def record_error(result: SyncReport | SyncRunResult, message: str) -> None:
    if message not in result.errors:
        result.errors.append(message)
