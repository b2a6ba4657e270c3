from __future__ import annotations

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def epoch_seconds() -> float:
    """Wall-clock seconds since the epoch, as used in rate-limit reset headers."""
    return time.time()
