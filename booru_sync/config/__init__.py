from booru_sync.config.boorus import KNOWN_BOORUS, BooruConfig, BooruVariant, load_boorus
from booru_sync.config.settings import (
    AppConfig,
    HttpConfig,
    RuntimeConfig,
    Settings,
    SyncSettings,
    load_config,
)

__all__ = [
    "KNOWN_BOORUS",
    "AppConfig",
    "BooruConfig",
    "BooruVariant",
    "HttpConfig",
    "RuntimeConfig",
    "Settings",
    "SyncSettings",
    "load_boorus",
    "load_config",
]
