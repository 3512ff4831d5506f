"""Error hierarchy shared by the pool, store and orchestrator."""

from __future__ import annotations


class HarvesterError(Exception):
    """Base error for all harvester-specific failures."""

    message: str = "Harvester error"

    def __init__(self, message: str | None = None, **details: object) -> None:
        self.message = message or self.__class__.message
        self.details = details
        super().__init__(self.message)


class NoProxyAvailable(HarvesterError):
    """The pool is empty and replenishment produced nothing."""

    message = "No proxy available"


class ProxySupplyError(HarvesterError):
    """The proxy supplier endpoint could not provide a usable list."""

    message = "Proxy supplier request failed"


class StorageFault(HarvesterError):
    """The dedup store could not complete a read or write."""

    message = "Dedup store fault"


class InitializationFatal(HarvesterError):
    """Store, pool or sink construction failed; the run cannot start."""

    message = "Initialization failed"


__all__ = [
    "HarvesterError",
    "InitializationFatal",
    "NoProxyAvailable",
    "ProxySupplyError",
    "StorageFault",
]
