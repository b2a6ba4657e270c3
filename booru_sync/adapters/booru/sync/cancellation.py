"""Cooperative cancellation shared by every pipeline of a sync run."""

from __future__ import annotations


class CancellationToken:
    """Flag polled at page and image boundaries.

    A child token is cancelled when it or any ancestor is, so one destination can
    be stopped without touching its siblings while cancelling the root stops all.
    """

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._parent = parent
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._parent is not None and self._parent.cancelled

    def child(self) -> CancellationToken:
        return CancellationToken(parent=self)
