"""Connection configuration."""

import os
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PgQueryConfig(BaseModel):
    """Connection settings for a PgQuery instance.

    Accepts snake_case names or the camelCase aliases
    (``maxPoolSize``, ``minPoolSize``).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    dsn: str = ""
    max_pool_size: int = Field(default=1, ge=1, alias="maxPoolSize")
    min_pool_size: int = Field(default=0, ge=0, alias="minPoolSize")
    stream_prefetch: int = Field(default=50, ge=1, alias="streamPrefetch")

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "PgQueryConfig":
        if self.min_pool_size > self.max_pool_size:
            raise ValueError(
                f"min_pool_size ({self.min_pool_size}) exceeds max_pool_size ({self.max_pool_size})"
            )
        return self

    @classmethod
    def from_env(cls, prefix: str = "PGQUERY_") -> "PgQueryConfig":
        """Load configuration from ``<prefix>DSN``, ``<prefix>MAX_POOL_SIZE``, etc.

        Unset variables keep their defaults.
        """
        values = {}
        for name in ("dsn", "max_pool_size", "min_pool_size", "stream_prefetch"):
            raw = os.getenv(f"{prefix}{name.upper()}")
            if raw is not None:
                values[name] = raw
        return cls(**values)


ConfigLike = Union[PgQueryConfig, Mapping[str, Any], str, None]


def load_config(config: ConfigLike) -> PgQueryConfig:
    """Normalize a config object, mapping, or bare DSN string."""
    if isinstance(config, PgQueryConfig):
        return config
    if config is None:
        return PgQueryConfig()
    if isinstance(config, str):
        return PgQueryConfig(dsn=config)
    return PgQueryConfig.model_validate(dict(config))
