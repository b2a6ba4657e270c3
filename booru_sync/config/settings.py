from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from typing import Self

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from booru_sync import __version__

from ._validators import _parse_bool, _parse_key_list
from .boorus import KNOWN_BOORUS, BooruConfig, load_boorus

logger = logging.getLogger(__name__)

DEFAULT_HASH_STORE_PATH = "~/.booru_sync/hash_store.json"


class SyncSettings(BaseModel):
    """What to sync and where. Read once at the start of a run."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str = Field(default="derpibooru", validation_alias="BOORU_SYNC_SOURCE")
    destinations: tuple[str, ...] = Field(
        default=(), validation_alias="BOORU_SYNC_DESTINATIONS"
    )
    sync_faves: bool = Field(default=True, validation_alias="BOORU_SYNC_FAVES")
    sync_likes: bool = Field(default=True, validation_alias="BOORU_SYNC_LIKES")
    use_fallback: bool = Field(default=False, validation_alias="BOORU_SYNC_FALLBACK")
    tag_filter: str = Field(default="", validation_alias="BOORU_SYNC_TAG_FILTER")
    autorun_interval_hours: int = Field(
        default=0, validation_alias="BOORU_SYNC_AUTORUN_INTERVAL_HOURS"
    )
    hash_store_path: str = Field(
        default=DEFAULT_HASH_STORE_PATH, validation_alias="BOORU_SYNC_HASH_STORE_PATH"
    )

    @field_validator("source", mode="before")
    @classmethod
    def _validate_source(cls, value: Any) -> str:
        source = str(value or "derpibooru").strip().lower()
        if source not in KNOWN_BOORUS:
            msg = f"Unknown sync source: {source}. Must be one of {sorted(KNOWN_BOORUS)}"
            raise ValueError(msg)
        return source

    @field_validator("destinations", mode="before")
    @classmethod
    def _validate_destinations(cls, value: Any) -> tuple[str, ...]:
        destinations = _parse_key_list(value)
        unknown = [key for key in destinations if key not in KNOWN_BOORUS]
        if unknown:
            msg = f"Unknown sync destination(s): {', '.join(unknown)}"
            raise ValueError(msg)
        return destinations

    @field_validator("sync_faves", "sync_likes", "use_fallback", mode="before")
    @classmethod
    def _validate_flags(cls, value: Any, info: ValidationInfo) -> bool:
        default = cls.model_fields[info.field_name].default
        return _parse_bool(value, default=default)

    @field_validator("tag_filter", mode="before")
    @classmethod
    def _validate_tag_filter(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("autorun_interval_hours", mode="before")
    @classmethod
    def _validate_autorun_interval(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 0))
        except ValueError as exc:
            msg = "Autorun interval must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 24 * 7:
            msg = "Autorun interval must be between 0 (disabled) and 168 hours"
            raise ValueError(msg)
        return parsed

    @field_validator("hash_store_path", mode="before")
    @classmethod
    def _validate_hash_store_path(cls, value: Any) -> str:
        raw = str(value or DEFAULT_HASH_STORE_PATH).strip()
        if "\x00" in raw:
            msg = "Hash store path contains invalid characters"
            raise ValueError(msg)
        return str(Path(raw).expanduser())

    @model_validator(mode="after")
    def _drop_source_from_destinations(self) -> Self:
        if self.source in self.destinations:
            remaining = tuple(key for key in self.destinations if key != self.source)
            object.__setattr__(self, "destinations", remaining)
        return self


class HttpConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    request_timeout_sec: float = Field(
        default=30.0, validation_alias="BOORU_SYNC_REQUEST_TIMEOUT_SEC"
    )
    rate_limit_margin_sec: float = Field(
        default=5.0, validation_alias="BOORU_SYNC_RATE_LIMIT_MARGIN_SEC"
    )
    max_rate_limit_retries: int = Field(
        default=3, validation_alias="BOORU_SYNC_MAX_RATE_LIMIT_RETRIES"
    )
    user_agent: str = Field(
        default=f"BooruSync/{__version__}", validation_alias="BOORU_SYNC_USER_AGENT"
    )

    @field_validator("request_timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        try:
            timeout = float(str(value or 30))
        except ValueError as exc:
            msg = "Timeout must be a valid number"
            raise ValueError(msg) from exc
        if timeout <= 0:
            msg = "Timeout must be positive"
            raise ValueError(msg)
        if timeout > 600:
            msg = "Timeout too large (max 600 seconds)"
            raise ValueError(msg)
        return timeout

    @field_validator("rate_limit_margin_sec", mode="before")
    @classmethod
    def _validate_margin(cls, value: Any) -> float:
        try:
            margin = float(str(value if value not in (None, "") else 5))
        except ValueError as exc:
            msg = "Rate limit margin must be a valid number"
            raise ValueError(msg) from exc
        if margin < 0:
            msg = "Rate limit margin cannot be negative"
            raise ValueError(msg)
        return margin

    @field_validator("max_rate_limit_retries", mode="before")
    @classmethod
    def _validate_retries(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 3))
        except ValueError as exc:
            msg = "Max rate limit retries must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 10:
            msg = "Max rate limit retries must be between 0 and 10"
            raise ValueError(msg)
        return parsed


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    log_json: bool = Field(
        default=False, validation_alias=AliasChoices("LOG_JSON", "BOORU_SYNC_LOG_JSON")
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> str:
        log_level = str(value or "INFO").upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if log_level not in valid_levels:
            msg = f"Invalid log level: {value}. Must be one of {valid_levels}"
            raise ValueError(msg)
        return log_level

    @field_validator("log_file", mode="before")
    @classmethod
    def _validate_log_file(cls, value: Any) -> str | None:
        if value is None:
            return None
        trimmed = str(value).strip()
        return trimmed or None

    @field_validator("log_json", mode="before")
    @classmethod
    def _validate_log_json(cls, value: Any) -> bool:
        return _parse_bool(value, default=False)


@dataclass(frozen=True)
class AppConfig:
    sync: SyncSettings
    http: HttpConfig
    runtime: RuntimeConfig
    boorus: dict[str, BooruConfig]

    @property
    def source(self) -> BooruConfig:
        return self.boorus[self.sync.source]

    @property
    def destinations(self) -> list[BooruConfig]:
        return [self.boorus[key] for key in self.sync.destinations]


class Settings(BaseSettings):
    """Settings loaded automatically from environment variables and ``.env``.

    Nested models are populated by matching validation_alias on each field.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    sync: SyncSettings = Field(default_factory=SyncSettings)
    http: HttpConfig = Field(default_factory=HttpConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    @model_validator(mode="before")
    @classmethod
    def _build_nested_from_env(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Build nested config objects from flat environment variables.

        Constructor arguments take precedence over the environment.
        """
        if not isinstance(data, dict):
            return data

        result = dict(data)
        merged_source = {**dict(os.environ), **data}

        for field_name, field_info in cls.model_fields.items():
            annotation = field_info.annotation
            if not isinstance(annotation, type) or not issubclass(annotation, BaseModel):
                continue

            nested_data: dict[str, Any] = {}
            for nested_field_name, nested_field in annotation.model_fields.items():
                env_value = cls._resolve_env_value(merged_source, nested_field)
                if env_value is not None:
                    nested_data[nested_field_name] = env_value

            if nested_data:
                if field_name in result and isinstance(result[field_name], dict):
                    result[field_name] = {**nested_data, **result[field_name]}
                else:
                    result[field_name] = nested_data

        return result

    @staticmethod
    def _resolve_env_value(data: dict[str, Any], field: Any) -> Any | None:
        """Resolve environment variable value for a field using its aliases."""
        aliases: list[str] = []
        alias = field.validation_alias
        if isinstance(alias, AliasChoices):
            aliases.extend(choice for choice in alias.choices if isinstance(choice, str))
        elif isinstance(alias, str):
            aliases.append(alias)

        for name in aliases:
            if name in data:
                return data[name]
        return None


def load_config(
    *,
    sync_overrides: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> AppConfig:
    """Load configuration from environment variables and ``.env``.

    Args:
        sync_overrides: Values (by field name) that win over the environment,
            typically from command-line flags.
        environ: Environment used for per-booru credentials; defaults to
            ``os.environ``.

    Returns:
        Immutable AppConfig instance.

    Raises:
        RuntimeError: If configuration validation fails.
    """
    overrides: dict[str, Any] = {}
    if sync_overrides:
        overrides["sync"] = {k: v for k, v in sync_overrides.items() if v is not None}

    try:
        settings = Settings(**overrides)
        boorus = load_boorus(os.environ if environ is None else environ)
    except ValidationError as exc:
        msg = f"Configuration validation failed: {exc}"
        raise RuntimeError(msg) from exc

    config = AppConfig(
        sync=settings.sync,
        http=settings.http,
        runtime=settings.runtime,
        boorus=boorus,
    )
    logger.debug(
        "config_loaded",
        extra={
            "source": config.sync.source,
            "destinations": list(config.sync.destinations),
            "use_fallback": config.sync.use_fallback,
        },
    )
    return config
