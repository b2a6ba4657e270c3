"""Pick the client implementation for a configured booru."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from booru_sync.adapters.booru.booru_on_rails import BooruOnRailsClient
from booru_sync.adapters.booru.http import RateLimitedClient
from booru_sync.adapters.booru.philomena import PhilomenaClient
from booru_sync.config.boorus import BooruVariant

if TYPE_CHECKING:
    from booru_sync.adapters.booru.client import BooruClient
    from booru_sync.adapters.booru.sync.hash_store import HashStore
    from booru_sync.config.boorus import BooruConfig
    from booru_sync.config.settings import HttpConfig

_CLIENTS: dict[BooruVariant, type[BooruClient]] = {
    BooruVariant.PHILOMENA: PhilomenaClient,
    BooruVariant.BOORU_ON_RAILS: BooruOnRailsClient,
}


def create_client(
    config: BooruConfig,
    http_config: HttpConfig,
    *,
    hash_store: HashStore | None = None,
    **http_kwargs: Any,
) -> BooruClient:
    """Build an (unopened) client; use it as an async context manager.

    Extra keyword arguments go to :class:`RateLimitedClient` (``transport``,
    ``clock``, ``sleep``).
    """
    http = RateLimitedClient(
        timeout=http_config.request_timeout_sec,
        user_agent=http_config.user_agent,
        safety_margin=http_config.rate_limit_margin_sec,
        max_rate_limit_retries=http_config.max_rate_limit_retries,
        **http_kwargs,
    )
    return _CLIENTS[config.variant](config, http, hash_store=hash_store)
