"""Concurrent GSMArena spec harvester with a rotating proxy pool."""

__version__ = "0.1.0"
