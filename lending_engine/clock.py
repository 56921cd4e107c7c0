"""
Time sources

The engine reads "now" once per run from a Clock so that every loan in a
batch is evaluated against the same instant.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Abstract source of the current UTC time"""
    
    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):
    """Wall clock time"""
    
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant, moved only by advance() or set()"""
    
    def __init__(self, now: Optional[datetime] = None):
        self._now = now or datetime.now(timezone.utc)
        if self._now.tzinfo is None:
            self._now = self._now.replace(tzinfo=timezone.utc)
    
    def now(self) -> datetime:
        return self._now
    
    def set(self, now: datetime) -> None:
        self._now = now
    
    def advance(self, **kwargs) -> datetime:
        """Move the clock forward, accepts timedelta keyword arguments"""
        self._now = self._now + timedelta(**kwargs)
        return self._now
