"""Exponential backoff with jitter, used when a server asks us to slow down
without saying for how long."""

from __future__ import annotations

import random


def backoff_delay(
    attempt: int,
    backoff_base: float = 1.0,
    max_delay: float = 60.0,
) -> float:
    """Return the delay for ``attempt`` (0-indexed).

    Delay formula: ``min(max_delay, max(0, backoff_base * 2^attempt)) * (1 + uniform(-0.25, 0.25))``
    """
    base_delay = min(max_delay, max(0.0, backoff_base * (2**attempt)))
    jitter = 1.0 + random.uniform(-0.25, 0.25)
    return base_delay * jitter
