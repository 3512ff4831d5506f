"""Pydantic models describing a harvest run."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_START_URL = "https://www.gsmarena.com/makers.php3"


class ProxyPoolConfig(BaseModel):
    """Proxy supplier and watermark settings."""

    enabled: bool = True
    api_url: str | None = None
    min_threshold: int = Field(default=5, ge=0)
    request_timeout: float = Field(default=10.0, gt=0)
    proxies: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_source(self) -> "ProxyPoolConfig":
        if self.enabled and not self.api_url and not self.proxies:
            raise ValueError("Enabled proxy pool needs api_url or a static proxies list")
        return self


class StoreConfig(BaseModel):
    """Location of the visited-URL store."""

    path: Path = Field(default=Path("data/crawler.db"))
    bucket: str = "visited_urls"

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("bucket")
    @classmethod
    def _validate_bucket(cls, value: str) -> str:
        if not value or not (value[0].isalpha() or value[0] == "_"):
            raise ValueError("bucket must start with a letter or underscore")
        if not all(ch.isalnum() or ch == "_" for ch in value):
            raise ValueError("bucket may only contain letters, digits and underscores")
        return value


class FetchConfig(BaseModel):
    """Transport-level knobs for the fetcher and worker pool."""

    parallelism: int = Field(default=10, ge=1)
    request_timeout: float = Field(default=15.0, gt=0)
    delay_range: tuple[float, float] = (0.5, 1.0)
    allowed_domains: list[str] = Field(
        default_factory=lambda: ["www.gsmarena.com", "gsmarena.com"]
    )
    user_agent_list: list[str] | Path | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("delay_range", mode="before")
    @classmethod
    def _coerce_delay(cls, value: Any) -> tuple[float, float]:
        if value in (None, ""):
            return (0.0, 0.0)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            low, high = float(value[0]), float(value[1])
            if low < 0 or high < 0:
                raise ValueError("Delay range values must be non-negative")
            if high < low:
                raise ValueError("Delay range upper bound must be >= lower bound")
            return (low, high)
        raise ValueError("Delay range expects a two-item list or tuple")

    @model_validator(mode="after")
    def _apply_user_agents(self) -> "FetchConfig":
        if isinstance(self.user_agent_list, Path):
            if not self.user_agent_list.exists():
                raise ValueError(f"UA file not found: {self.user_agent_list}")
            content = self.user_agent_list.read_text(encoding="utf-8").splitlines()
            self.user_agent_list = [line.strip() for line in content if line.strip()]
        return self


class RetryConfig(BaseModel):
    """Retry budget for retryable outcomes.

    ``max_attempts=None`` retries without limit while each attempt can rotate
    to another proxy; a positive value caps the total number of attempts per
    target. Attempts that cannot rotate (no pool, or no proxy assigned) are
    capped at ``unrotated_max_attempts`` and back off from at least
    ``unrotated_backoff`` seconds.
    """

    max_attempts: int | None = Field(default=None, ge=1)
    backoff_base: float = Field(default=0.0, ge=0)
    backoff_max: float = Field(default=30.0, ge=0)
    unrotated_max_attempts: int = Field(default=3, ge=1)
    unrotated_backoff: float = Field(default=1.0, ge=0)


class OutputConfig(BaseModel):
    """JSON-lines sink location."""

    path: Path = Field(default=Path("data/outputs/results.jsonl"))

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)


class HarvestConfig(BaseModel):
    """Top-level configuration for a harvest run."""

    start_url: str = DEFAULT_START_URL
    proxy_pool: ProxyPoolConfig = Field(
        default_factory=lambda: ProxyPoolConfig(enabled=False)
    )
    store: StoreConfig = Field(default_factory=StoreConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    def resolve_paths(self, base_dir: Path) -> "HarvestConfig":
        """Return a copy whose relative store/output paths sit under ``base_dir``."""

        def _resolve(path: Path) -> Path:
            return path if path.is_absolute() else (base_dir / path).resolve()

        return self.model_copy(
            update={
                "store": self.store.model_copy(update={"path": _resolve(self.store.path)}),
                "output": self.output.model_copy(update={"path": _resolve(self.output.path)}),
            }
        )


__all__ = [
    "DEFAULT_START_URL",
    "FetchConfig",
    "HarvestConfig",
    "OutputConfig",
    "ProxyPoolConfig",
    "RetryConfig",
    "StoreConfig",
]
