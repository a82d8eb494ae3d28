"""Caching utilities for expensive operations"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Generic, Optional, TypeVar

from ecr_manager.logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A computed value and the instant it stops being served"""
    value: T
    expires_at: datetime


class TimedCache(Generic[T]):
    """Single-value cache that recomputes once its time window has passed

    The value and its expiry live in one immutable CacheEntry that is swapped
    under a lock, so a reader never sees a value paired with another value's
    expiry. Concurrent callers that find the entry stale each run ``compute``;
    the last one to finish wins.
    """

    def __init__(self, compute: Callable[[], T], ttl_seconds: int,
                 clock: Optional[Callable[[], datetime]] = None, name: str = "cache"):
        """Initialize the cache

        Args:
            compute: Zero-argument function producing a fresh value
            ttl_seconds: Window, measured from the end of a computation, during which the value is served
            clock: Returns the current time (default: timezone-aware UTC now)
            name: Label used in log lines
        """
        self.compute = compute
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock or utc_now
        self.name = name
        self._entry: Optional[CacheEntry[T]] = None
        self._lock = threading.Lock()

    def peek(self) -> Optional[CacheEntry[T]]:
        """Return the current entry, fresh or not, without computing"""
        with self._lock:
            return self._entry

    @property
    def expires_at(self) -> Optional[datetime]:
        entry = self.peek()
        return entry.expires_at if entry else None

    def get(self) -> T:
        """Return the cached value if still fresh, otherwise compute and store a new one.

        If ``compute`` raises, the previous entry is left in place and the error propagates.
        """
        entry = self.peek()
        if entry is not None and self.clock() < entry.expires_at:
            logger.info(f"Returning cached {self.name} (expires at {entry.expires_at.isoformat()})")
            return entry.value

        logger.info(f"Calculating fresh {self.name}...")
        value = self.compute()
        entry = CacheEntry(value=value, expires_at=self.clock() + self.ttl)
        with self._lock:
            self._entry = entry
        logger.info(f"{self.name.capitalize()} cached until {entry.expires_at.isoformat()}")
        return value

    def invalidate(self) -> None:
        """Drop the cached entry so the next get() recomputes"""
        with self._lock:
            self._entry = None
