from booru_sync.adapters.booru.client import BooruClient
from booru_sync.adapters.booru.errors import (
    BooruClientError,
    BooruConfigurationError,
    BooruHTTPError,
    BooruTransportError,
)
from booru_sync.adapters.booru.factory import create_client
from booru_sync.adapters.booru.http import RateLimitedClient, RequestResult
from booru_sync.adapters.booru.models import (
    HashSearchResult,
    ImageRecord,
    InteractionKind,
    MatchResult,
    MatchStatus,
    SearchPage,
)

__all__ = [
    "BooruClient",
    "BooruClientError",
    "BooruConfigurationError",
    "BooruHTTPError",
    "BooruTransportError",
    "HashSearchResult",
    "ImageRecord",
    "InteractionKind",
    "MatchResult",
    "MatchStatus",
    "RateLimitedClient",
    "RequestResult",
    "SearchPage",
    "create_client",
]
