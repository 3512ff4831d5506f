"""Engine components orchestrating fetch → classify → dedup → export."""

from .classifier import Decision, ErrorKind, RetryController, Verdict, classify
from .dedup import VisitedStore
from .fetcher import FetchOutcome, Fetcher
from .parser import ListingPage, Parser, PhoneRecord
from .thread_pool import ThreadPoolManager

__all__ = [
    "Decision",
    "ErrorKind",
    "FetchOutcome",
    "Fetcher",
    "ListingPage",
    "Parser",
    "PhoneRecord",
    "RetryController",
    "ThreadPoolManager",
    "Verdict",
    "VisitedStore",
    "classify",
]
