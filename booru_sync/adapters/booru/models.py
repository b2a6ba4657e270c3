"""Pydantic models for booru search results and sync outcomes."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class InteractionKind(StrEnum):
    FAVE = "fave"
    LIKE = "like"


class ImageRecord(BaseModel):
    """One image on some service, normalised from a search or reverse-search result.

    Records are mutated in place while a sync runs (interaction, resolved hash),
    so the model is intentionally not frozen.
    """

    service_host: str
    id: str
    content_hash: str | None = None
    original_content_hash: str | None = None
    computed_hash: bool = False  # hash came from the local store, not the API
    file_url: str = ""
    mime_type: str | None = None
    width: int = 0
    height: int = 0
    aspect_ratio: float = 0.0
    tags: frozenset[str] = Field(default_factory=frozenset)
    interaction: InteractionKind | None = None
    results_path: str | None = None
    duplicate_of: str | None = None
    deletion_reason: str | None = None

    model_config = {"extra": "ignore"}

    @field_validator("id", "duplicate_of", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("width", "height", mode="before")
    @classmethod
    def _coerce_dimension(cls, value: Any) -> int:
        return int(value or 0)

    @field_validator("aspect_ratio", mode="before")
    @classmethod
    def _coerce_ratio(cls, value: Any) -> float:
        return float(value or 0.0)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> frozenset[str]:
        if value is None:
            return frozenset()
        pieces = value.split(",") if isinstance(value, str) else value
        return frozenset(tag for tag in (str(p).strip() for p in pieces) if tag)

    @property
    def hashes(self) -> tuple[str | None, str | None]:
        return (self.content_hash, self.original_content_hash)

    @property
    def page_url(self) -> str:
        return f"https://{self.service_host}/images/{self.id}"


class SearchInteraction(BaseModel):
    """Entry of the ``interactions`` list a search response carries for the caller."""

    image_id: str
    interaction_type: str
    value: str | None = None

    @field_validator("image_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @property
    def is_fave(self) -> bool:
        return self.interaction_type == "faved"

    @property
    def is_like(self) -> bool:
        return self.interaction_type == "voted" and self.value == "up"


class SearchPage(BaseModel):
    """One page of search results."""

    images: list[ImageRecord] = Field(default_factory=list)
    interactions: list[SearchInteraction] = Field(default_factory=list)
    total: int = 0

    def flags_for(self, image_id: str) -> tuple[bool, bool]:
        """Return ``(has_fave, has_like)`` of the current user for ``image_id``."""
        has_fave = any(i.image_id == image_id and i.is_fave for i in self.interactions)
        has_like = any(i.image_id == image_id and i.is_like for i in self.interactions)
        return has_fave, has_like


class HashSearchResult(BaseModel):
    """Destination image found by an exact lookup, with the user's current state on it."""

    destination_id: str
    has_fave: bool = False
    has_like: bool = False

    @classmethod
    def from_page(cls, page: SearchPage) -> HashSearchResult | None:
        if not page.images:
            return None
        destination_id = page.images[0].id
        has_fave, has_like = page.flags_for(destination_id)
        return cls(destination_id=destination_id, has_fave=has_fave, has_like=has_like)


class MatchStatus(StrEnum):
    EXACT = "exact"
    SUSPECTED = "suspected"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"


class MatchResult(BaseModel):
    """Outcome of matching one source image against one destination."""

    destination_id: str | None = None
    is_exact_match: bool = False
    is_timeout: bool = False
    destination_has_fave: bool = False
    destination_has_like: bool = False

    model_config = {"frozen": True}

    @classmethod
    def exact(cls, hit: HashSearchResult) -> MatchResult:
        return cls(
            destination_id=hit.destination_id,
            is_exact_match=True,
            destination_has_fave=hit.has_fave,
            destination_has_like=hit.has_like,
        )

    @classmethod
    def suspected(cls, destination_id: str) -> MatchResult:
        return cls(destination_id=destination_id)

    @classmethod
    def timeout(cls) -> MatchResult:
        return cls(is_timeout=True)

    @classmethod
    def not_found(cls) -> MatchResult:
        return cls()

    @property
    def status(self) -> MatchStatus:
        if self.destination_id and self.is_exact_match:
            return MatchStatus.EXACT
        if self.destination_id:
            return MatchStatus.SUSPECTED
        if self.is_timeout:
            return MatchStatus.TIMEOUT
        return MatchStatus.NOT_FOUND

    def already_has(self, kind: InteractionKind) -> bool:
        if kind is InteractionKind.FAVE:
            return self.destination_has_fave
        return self.destination_has_like
