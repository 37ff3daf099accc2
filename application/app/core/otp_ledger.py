"""
OTP Ledger

Authoritative store of live one-time codes, at most one per PhoneKey.
Expiry is detected lazily on access (plus an optional periodic sweep);
successful consumption deletes the record, which is what makes a code
single-use.
"""
import hmac
import math
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.core.constants import ConsumeResult
from app.core.otp_generator import DEFAULT_OTP_LENGTH, generate_otp
from app.core.otp_store import OTPRecord, OTPStore
from app.logging.utils import get_app_logger, mask_phone
from app.utils.datetime_helpers import utc_now

logger = get_app_logger(__name__)

DEFAULT_OTP_TTL_SECONDS = 300


class OTPLedger:

    def __init__(
        self,
        store: OTPStore,
        ttl_seconds: int = DEFAULT_OTP_TTL_SECONDS,
        otp_length: int = DEFAULT_OTP_LENGTH,
        generator: Callable[[int], str] = generate_otp,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.otp_length = otp_length
        self.generator = generator
        self.clock = clock

    def issue(self, phone_key: str) -> OTPRecord:
        """
        Generate a fresh code for *phone_key*, replacing any live one.

        The previous code, if any, stops working immediately even if its SMS
        or WhatsApp message is still in flight.
        """
        now = self.clock()
        record = OTPRecord(
            code=self.generator(self.otp_length),
            issued_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        self.store.put(phone_key, record, self.ttl_seconds)
        logger.info(f"otp_issued | phone={mask_phone(phone_key)} expires_at={record.expires_at.isoformat()}")
        return record

    def peek(self, phone_key: str) -> Optional[OTPRecord]:
        """Return the live record, dropping it first if it has expired."""
        record = self.store.get(phone_key)
        if record is None:
            return None
        if record.is_expired(self.clock()):
            self.store.compare_and_delete(phone_key, record)
            logger.info(f"otp_expired | phone={mask_phone(phone_key)}")
            return None
        return record

    def consume(self, phone_key: str, supplied_code: str) -> str:
        """
        Check *supplied_code* against the live record and burn it on success.

        Returns one of the ConsumeResult values. A wrong code leaves the
        record in place so the user can retry until it expires. Codes are
        compared as exact strings.
        """
        record = self.store.get(phone_key)
        if record is None:
            return ConsumeResult.NOT_FOUND

        if record.is_expired(self.clock()):
            self.store.compare_and_delete(phone_key, record)
            logger.info(f"otp_expired | phone={mask_phone(phone_key)}")
            return ConsumeResult.EXPIRED

        if not isinstance(supplied_code, str) or not hmac.compare_digest(
            record.code.encode('utf-8'), supplied_code.encode('utf-8')
        ):
            logger.warning(f"otp_mismatch | phone={mask_phone(phone_key)}")
            return ConsumeResult.MISMATCH

        # only the caller that actually removes this exact record wins
        if not self.store.compare_and_delete(phone_key, record):
            logger.warning(f"otp_consume_lost_race | phone={mask_phone(phone_key)}")
            return ConsumeResult.NOT_FOUND

        logger.info(f"otp_consumed | phone={mask_phone(phone_key)}")
        return ConsumeResult.SUCCESS

    def sweep_expired(self) -> int:
        """Remove every expired record; returns how many were removed."""
        now = self.clock()
        removed = 0
        for phone_key in self.store.keys():
            record = self.store.get(phone_key)
            if record is not None and record.is_expired(now) and self.store.compare_and_delete(phone_key, record):
                removed += 1
        if removed:
            logger.info(f"otp_sweep | removed={removed}")
        return removed

    def remaining_seconds(self, record: OTPRecord) -> int:
        return max(0, math.ceil((record.expires_at - self.clock()).total_seconds()))
