"""Infra layer utilities (locks, storage, proxy and UA pools)."""

from .locks import ReadWriteLock
from .proxy_pool import HttpProxySupplier, ProxyPool, ProxySupplier, normalize_proxy, parse_proxy_list
from .storage import SQLiteManager
from .ua_pool import UserAgentPool

__all__ = [
    "HttpProxySupplier",
    "ProxyPool",
    "ProxySupplier",
    "ReadWriteLock",
    "SQLiteManager",
    "UserAgentPool",
    "normalize_proxy",
    "parse_proxy_list",
]
