"""Validated configuration models.

``AppConfig`` is the single validated result of ``load_config``. The HTTP
and logging settings are flat attributes that accept both their flat name and
their YAML section path. Cache, providers and aggregation are nested models.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]


def _flat_or_sectioned(flat: str, section: str, key: str) -> AliasChoices:
    return AliasChoices(flat, AliasPath(section, key))


def _as_path(value: Any) -> Path:
    """``~``-expand a path-like value; never touches the filesystem."""
    if isinstance(value, (str, Path)):
        return Path(value).expanduser()
    raise TypeError(f"expected a path, got {type(value).__name__}")


class CacheConfig(BaseModel):
    """Location and concurrency of the on-disk favorites store."""

    model_config = ConfigDict(populate_by_name=True)

    directory: Path = Field(default=Path("./.cache/sourcerr"), alias="dir")
    max_concurrent: int = Field(default=10, ge=1)

    @field_validator("directory", mode="before")
    @classmethod
    def _expand_directory(cls, v: Any) -> Path:
        return _as_path(v)


class ProvidersConfig(BaseModel):
    """Provider backend location and the user's provider selection.

    ``enabled_all`` wins over ``enabled``; with ``enabled_all=False`` only
    the listed provider keys are queried, in catalogue order.
    """

    api_base_url: str = "http://localhost:3000"
    enabled_all: bool = True
    enabled: list[str] = Field(default_factory=list)

    @field_validator("api_base_url")
    @classmethod
    def _http_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_base_url must be an http(s) URL")
        return v.rstrip("/")


class AggregationConfig(BaseModel):
    """Per-session limits of the aggregation engine."""

    max_play_sources: int = Field(default=8, ge=1)
    max_concurrent_source_requests: int = Field(default=3, ge=1)
    detail_cache_max_entries: int = Field(default=8, ge=1)
    probe_timeout_seconds: float = Field(default=5.0, gt=0)


class AppConfig(BaseModel):
    app_name: str = "sourcerr"
    environment: Environment = "dev"

    http_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        validation_alias=_flat_or_sectioned(
            "http_timeout_seconds", "http", "timeout_seconds"
        ),
    )
    http_user_agent: str = Field(
        default="Sourcerr/0.1.0",
        validation_alias=_flat_or_sectioned("http_user_agent", "http", "user_agent"),
    )
    http_max_retries: int = Field(
        default=3,
        ge=0,
        validation_alias=_flat_or_sectioned("http_max_retries", "http", "max_retries"),
    )

    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=_flat_or_sectioned("log_level", "logging", "level"),
    )
    # None means "pick from environment": json in prod, console elsewhere.
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=_flat_or_sectioned("log_format", "logging", "format"),
    )

    cache: CacheConfig = Field(default_factory=CacheConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)

    @model_validator(mode="after")
    def _resolve_log_format(self) -> "AppConfig":
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """Dump in the shape a YAML config file uses."""
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "user_agent": self.http_user_agent,
                "max_retries": self.http_max_retries,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
            "cache": self.cache.model_dump(by_alias=True, mode="json"),
            "providers": self.providers.model_dump(),
            "aggregation": self.aggregation.model_dump(),
        }


class EnvOverrides(BaseSettings):
    """``SOURCERR_*`` environment variables, all optional and flat.

    List values are JSON, e.g. ``SOURCERR_PROVIDERS_ENABLED='["bfzy"]'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SOURCERR_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None
    http_max_retries: Optional[int] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    cache_dir: Optional[str] = None

    api_base_url: Optional[str] = None
    providers_enabled_all: Optional[bool] = None
    providers_enabled: Optional[list[str]] = None

    max_play_sources: Optional[int] = None
    max_concurrent_source_requests: Optional[int] = None
    detail_cache_max_entries: Optional[int] = None
    probe_timeout_seconds: Optional[float] = None

    def to_update_dict(self) -> dict[str, Any]:
        """Only the variables that are actually set."""
        return self.model_dump(exclude_none=True)
