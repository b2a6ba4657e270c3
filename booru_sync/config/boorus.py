from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ._validators import _ensure_api_key


class BooruVariant(StrEnum):
    """Backend API families. Each one has its own client implementation."""

    PHILOMENA = "philomena"
    BOORU_ON_RAILS = "booru_on_rails"


class BooruConfig(BaseModel):
    """Connection settings for one booru."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    host: str
    filter_id: int
    variant: BooruVariant = BooruVariant.PHILOMENA
    api_key: str = Field(default="", repr=False)
    session_cookie: str = Field(default="", repr=False)

    @field_validator("host", mode="before")
    @classmethod
    def _validate_host(cls, value: Any) -> str:
        host = str(value or "").strip().lower()
        if host.startswith(("http://", "https://")):
            host = host.split("://", 1)[1]
        host = host.rstrip("/")
        if not host or "/" in host:
            msg = f"Invalid booru host: {value!r}"
            raise ValueError(msg)
        return host

    @field_validator("api_key", "session_cookie", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        return str(value or "").strip()

    @property
    def base_url(self) -> str:
        return f"https://{self.host}"

    def validated_api_key(self) -> str:
        """Return the API key or raise ``ValueError`` when it is missing or malformed."""
        return _ensure_api_key(self.api_key, name=self.name)


# Built-in services. Filter ids select an "everything" filter on each site so
# searches are not silently narrowed by the account's default filter.
KNOWN_BOORUS: dict[str, dict[str, Any]] = {
    "derpibooru": {
        "name": "Derpibooru",
        "host": "derpibooru.org",
        "filter_id": 56027,
    },
    "ponybooru": {
        "name": "Ponybooru",
        "host": "ponybooru.org",
        "filter_id": 1554,
    },
    "ponerpics": {
        "name": "Ponerpics",
        "host": "ponerpics.org",
        "filter_id": 2,
    },
    "twibooru": {
        "name": "Twibooru",
        "host": "twibooru.org",
        "filter_id": 2,
        "variant": BooruVariant.BOORU_ON_RAILS,
    },
}


def load_boorus(environ: Mapping[str, str]) -> dict[str, BooruConfig]:
    """Build configs for every known booru, taking credentials from ``environ``.

    Credentials are read from ``<KEY>_API_KEY`` and ``<KEY>_SESSION_COOKIE``,
    e.g. ``DERPIBOORU_API_KEY``.
    """
    boorus: dict[str, BooruConfig] = {}
    for key, defaults in KNOWN_BOORUS.items():
        prefix = key.upper()
        boorus[key] = BooruConfig(
            key=key,
            api_key=environ.get(f"{prefix}_API_KEY", ""),
            session_cookie=environ.get(f"{prefix}_SESSION_COOKIE", ""),
            **defaults,
        )
    return boorus
