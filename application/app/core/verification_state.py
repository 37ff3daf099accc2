"""
Verification state: which PhoneKeys have completed OTP confirmation.

A coarse authorization flag read by downstream messaging gating (for
instance the inbound webhook auto-reply). Flags are only ever set, never
cleared.
"""
import threading
from abc import ABC, abstractmethod
from typing import Set

from app.connections.redis_wrapper import RedisJSONWrapper, RedisKeyProcessor


class VerifiedStore(ABC):

    @abstractmethod
    def mark_verified(self, phone_key: str) -> None:
        ...

    @abstractmethod
    def is_verified(self, phone_key: str) -> bool:
        ...


class InMemoryVerifiedStore(VerifiedStore):
    """Process-lifetime set of verified PhoneKeys."""

    def __init__(self):
        self._verified: Set[str] = set()
        self._lock = threading.Lock()

    def mark_verified(self, phone_key: str) -> None:
        with self._lock:
            self._verified.add(phone_key)

    def is_verified(self, phone_key: str) -> bool:
        return phone_key in self._verified


class RedisVerifiedStore(VerifiedStore):
    """Flags stored as ``verified:{phone}`` without expiry."""

    def __init__(self, redis_wrapper: RedisJSONWrapper):
        self.redis = redis_wrapper
        self.key_processor = RedisKeyProcessor()

    def mark_verified(self, phone_key: str) -> None:
        self.redis.set(self.key_processor.verified_key(phone_key), True)

    def is_verified(self, phone_key: str) -> bool:
        return self.redis.exists(self.key_processor.verified_key(phone_key))
