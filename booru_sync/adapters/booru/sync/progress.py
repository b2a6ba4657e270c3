"""Human-readable progress lines, separate from structured logs."""

from __future__ import annotations

import logging
from collections.abc import Callable

ProgressSink = Callable[[str], None]

progress_logger = logging.getLogger("booru_sync.progress")


def log_progress(message: str) -> None:
    progress_logger.info(message)


class ProgressReporter:
    """Writes lines to a sink, prefixed with the service name when one is set."""

    def __init__(self, sink: ProgressSink | None = None, name: str | None = None) -> None:
        self._sink = sink or log_progress
        self._name = name

    def __call__(self, message: str = "") -> None:
        self._sink(f"{self._name}: {message}" if self._name else message)

    def for_service(self, name: str) -> ProgressReporter:
        return ProgressReporter(self._sink, name)
