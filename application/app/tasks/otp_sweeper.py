"""
Periodic removal of expired OTP records.

Expiry is already enforced on every read; this loop only bounds memory for
phones that request a code and never come back.
"""
import asyncio

from app.core.otp_ledger import OTPLedger
from app.logging.utils import get_app_logger

logger = get_app_logger(__name__)


async def otp_sweeper_task(ledger: OTPLedger, interval_seconds: int):
    logger.info(f"otp_sweeper_started | interval={interval_seconds}s")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            # store calls are blocking for the Redis backend
            await asyncio.to_thread(ledger.sweep_expired)
        except Exception as e:
            logger.error(f"otp_sweeper_error | error={e}", exc_info=True)


def start_otp_sweeper(ledger: OTPLedger, interval_seconds: int) -> asyncio.Task | None:
    if interval_seconds <= 0:
        logger.info("otp_sweeper_disabled")
        return None
    return asyncio.create_task(otp_sweeper_task(ledger, interval_seconds))
