"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    DEFAULT_START_URL,
    FetchConfig,
    HarvestConfig,
    OutputConfig,
    ProxyPoolConfig,
    RetryConfig,
    StoreConfig,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "DEFAULT_START_URL",
    "FetchConfig",
    "HarvestConfig",
    "OutputConfig",
    "ProxyPoolConfig",
    "RetryConfig",
    "StoreConfig",
]
