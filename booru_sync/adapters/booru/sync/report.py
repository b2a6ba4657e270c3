"""Per-destination sync reports."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from booru_sync.adapters.booru.models import InteractionKind


class SyncState(StrEnum):
    IDLE = "idle"
    FETCHING_SOURCE = "fetching_source"
    FETCHING_DESTINATIONS = "fetching_destinations"
    SYNCING = "syncing"
    DONE = "done"


class SuspectedMatch(BaseModel):
    """Destination image found only by reverse search; never applied automatically."""

    source_host: str
    source_id: str
    destination_id: str
    collection_path: str | None = None
    interaction: InteractionKind


class TimeoutRecord(BaseModel):
    image_id: str
    host: str
    collection_path: str | None = None


def _indent(level: int = 0) -> str:
    return "  " * level


class SyncReport(BaseModel):
    """What happened on one destination."""

    destination: str
    destination_name: str
    destination_host: str
    new_faves: int = 0
    new_likes: int = 0
    not_found_faves: int = 0
    not_found_likes: int = 0
    already_synced: int = 0
    failed_applies: int = 0
    suspected: list[SuspectedMatch] = Field(default_factory=list)
    timeouts: list[TimeoutRecord] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    cancelled: bool = False
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.errors and self.failed_applies == 0

    @property
    def total_new(self) -> int:
        return self.new_faves + self.new_likes

    def record_new(self, kind: InteractionKind) -> None:
        if kind is InteractionKind.FAVE:
            self.new_faves += 1
        else:
            self.new_likes += 1

    def record_not_found(self, kind: InteractionKind) -> None:
        if kind is InteractionKind.FAVE:
            self.not_found_faves += 1
        else:
            self.not_found_likes += 1

    def suspected_for(self, kind: InteractionKind) -> list[SuspectedMatch]:
        return [s for s in self.suspected if s.interaction is kind]

    def render_lines(self, sync_faves: bool = True, sync_likes: bool = True) -> list[str]:
        """Text report for this destination, one entry per line."""
        lines = ["Syncing report:"]
        if sync_faves:
            lines += [
                "",
                f"{_indent(1)}Faved images imported: {self.new_faves}",
                f"{_indent(1)}Faved images not found: {self.not_found_faves}",
            ]
        if sync_likes:
            lines += [
                "",
                f"{_indent(1)}Upvoted images imported: {self.new_likes}",
                f"{_indent(1)}Upvoted images not found: {self.not_found_likes}",
            ]

        # Faves first, then likes, each in encounter order.
        records = self.suspected_for(InteractionKind.FAVE) + self.suspected_for(
            InteractionKind.LIKE
        )
        if records:
            lines += [
                "",
                "Exact matches for the following images could not be found via hash.",
                "But potential match was found through reverse image search:",
            ]
            for record in records:
                source_url = f"https://{record.source_host}/images/{record.source_id}"
                target_url = f"https://{self.destination_host}/images/{record.destination_id}"
                lines += [
                    "",
                    f"{_indent(1)}source: {source_url}",
                    f"{_indent(1)}=> target: {target_url}",
                ]

        if self.timeouts:
            lines += ["", "The sync timed out while downloading the following files:"]
            lines += [
                f"{_indent(1)}https://{timeout.host}/images/{timeout.image_id}"
                for timeout in self.timeouts
            ]

        if self.failed_applies:
            lines += ["", f"Failed to apply {self.failed_applies} interaction(s)."]
        if self.errors:
            lines += ["", "Errors:"]
            lines += [f"{_indent(1)}{error}" for error in self.errors]
        if self.cancelled:
            lines += ["", "Sync was cancelled before it finished."]
        return lines


class SyncRunResult(BaseModel):
    """Result of one run across the source and every destination."""

    correlation_id: str
    source: str
    state: SyncState = SyncState.IDLE
    source_faves: int = 0
    source_likes: int = 0
    reports: dict[str, SyncReport] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    cancelled: bool = False
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        if self.errors or self.cancelled:
            return False
        return all(report.ok for report in self.reports.values())
