"""
Storage backends for OTP records.

The ledger only talks to the narrow OTPStore interface; per-key atomicity is
the store's job. Two backends are provided: a process-local dict guarded by
striped locks, and Redis for deployments running several workers.
"""
import threading
import zlib
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from app.connections.redis_wrapper import RedisJSONWrapper, RedisKeyProcessor


class OTPRecord(BaseModel):
    """A live one-time code for a single PhoneKey. Replaced, never mutated."""

    model_config = ConfigDict(frozen=True)

    code: str
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class OTPStore(ABC):
    """Key-value store of OTPRecords keyed by PhoneKey."""

    @abstractmethod
    def get(self, phone_key: str) -> Optional[OTPRecord]:
        """Return the stored record without any expiry check."""

    @abstractmethod
    def put(self, phone_key: str, record: OTPRecord, ttl_seconds: int) -> None:
        """Store *record*, replacing any previous one for the key."""

    @abstractmethod
    def delete(self, phone_key: str) -> bool:
        """Remove the key unconditionally."""

    @abstractmethod
    def compare_and_delete(self, phone_key: str, expected: OTPRecord) -> bool:
        """Atomically remove the key only if it still holds *expected*."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Snapshot of the PhoneKeys currently stored."""


class InMemoryOTPStore(OTPStore):
    """
    Dict-backed store for a single process.

    Writes and compare-and-delete for one key are serialized by one of a fixed
    set of lock stripes chosen by hashing the key, so unrelated phones rarely
    share a lock. No lock is ever held across I/O.
    """

    def __init__(self, stripes: int = 64):
        self._records: Dict[str, OTPRecord] = {}
        self._stripes = [threading.Lock() for _ in range(stripes)]

    def _lock_for(self, phone_key: str) -> threading.Lock:
        return self._stripes[zlib.crc32(phone_key.encode('utf-8')) % len(self._stripes)]

    def get(self, phone_key: str) -> Optional[OTPRecord]:
        return self._records.get(phone_key)

    def put(self, phone_key: str, record: OTPRecord, ttl_seconds: int) -> None:
        # expiry is enforced lazily by the ledger, ttl is only a Redis concern
        with self._lock_for(phone_key):
            self._records[phone_key] = record

    def delete(self, phone_key: str) -> bool:
        with self._lock_for(phone_key):
            return self._records.pop(phone_key, None) is not None

    def compare_and_delete(self, phone_key: str, expected: OTPRecord) -> bool:
        with self._lock_for(phone_key):
            if self._records.get(phone_key) != expected:
                return False
            del self._records[phone_key]
            return True

    def keys(self) -> List[str]:
        return list(self._records.copy())

    def __len__(self):
        return len(self._records)


class RedisOTPStore(OTPStore):
    """
    Redis-backed store. Records live under ``otp:{phone}`` with a TTL matching
    their validity window, so Redis also evicts keys nobody reads again.
    """

    def __init__(self, redis_wrapper: RedisJSONWrapper):
        self.redis = redis_wrapper
        self.key_processor = RedisKeyProcessor()

    def get(self, phone_key: str) -> Optional[OTPRecord]:
        data = self.redis.get(self.key_processor.otp_key(phone_key))
        if data is None:
            return None
        return OTPRecord.model_validate(data)

    def put(self, phone_key: str, record: OTPRecord, ttl_seconds: int) -> None:
        self.redis.set_with_ttl(self.key_processor.otp_key(phone_key), record.model_dump(mode="json"), ttl_seconds)

    def delete(self, phone_key: str) -> bool:
        return self.redis.delete(self.key_processor.otp_key(phone_key))

    def compare_and_delete(self, phone_key: str, expected: OTPRecord) -> bool:
        return self.redis.compare_and_delete(
            self.key_processor.otp_key(phone_key),
            expected.model_dump(mode="json"),
        )

    def keys(self) -> List[str]:
        return [self.key_processor.phone_from_key(key) for key in self.redis.keys(self.key_processor.otp_key())]
