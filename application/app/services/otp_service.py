import asyncio
from typing import Optional, Set, Tuple

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from app.config.sentry import capture_exception
from app.config.settings import GatewayConfigs
from app.core.constants import (
    OTP_MESSAGES,
    OTP_SENT_MESSAGE,
    OTP_VERIFIED_MESSAGE,
    ConsumeResult,
    LeadStatus,
    OTPErrorCode,
)
from app.core.exceptions import DuplicateLeadError
from app.core.otp_ledger import OTPLedger
from app.core.phone import is_valid_mobile, normalize_phone
from app.core.verification_state import VerifiedStore
from app.dto.leads import LeadProfile
from app.integrations.base import DeliveryResult, MessageDeliveryProvider
from app.logging.utils import get_app_logger, mask_phone
from app.middlewares.request_context import request_context
from app.repository.leads import LeadRepository
from app.services.redirect_service import RedirectService
from app.utils.datetime_helpers import utc_now

logger = get_app_logger(__name__)

PERSISTENCE_TIMEOUT_SECONDS = 5


class IssueResult(BaseModel):
    success: bool
    message: str
    phone_key: Optional[str] = None
    error: Optional[str] = None
    expires_in: Optional[int] = None


class ConfirmResult(BaseModel):
    verified: bool
    message: str
    phone_key: Optional[str] = None
    error: Optional[str] = None
    redirect_url: Optional[str] = None
    lead_id: Optional[int] = None
    lead_status: str = LeadStatus.SKIPPED


class OTPService:
    """
    Issuance and confirmation flows on top of the OTP ledger:
    - request_code: normalize, validate, issue, deliver
    - confirm_code: normalize, consume, mark verified, redirect
    """

    def __init__(
        self,
        ledger: OTPLedger,
        verified_store: VerifiedStore,
        delivery: MessageDeliveryProvider,
        redirects: RedirectService,
        lead_repository: Optional[LeadRepository] = None,
        configs: Optional[GatewayConfigs] = None,
    ):
        self.configs = configs or GatewayConfigs()
        self.ledger = ledger
        self.verified_store = verified_store
        self.delivery = delivery
        self.redirects = redirects
        self.lead_repository = lead_repository
        self.persistence_timeout = PERSISTENCE_TIMEOUT_SECONDS
        self._background_tasks: Set[asyncio.Task] = set()

    def _fail_issue(self, error: str, phone_key: Optional[str] = None) -> IssueResult:
        return IssueResult(success=False, message=OTP_MESSAGES[error], phone_key=phone_key, error=error)

    def _fail_confirm(self, error: str, phone_key: Optional[str] = None) -> ConfirmResult:
        return ConfirmResult(verified=False, message=OTP_MESSAGES[error], phone_key=phone_key, error=error)

    async def request_code(self, raw_phone: Optional[str]) -> IssueResult:
        """
        Issue a code for *raw_phone* and hand it to the delivery provider.

        An invalid phone never touches the ledger. A delivery failure is
        reported to the caller while the issued code stays live; asking again
        simply replaces it.
        """
        phone_key = normalize_phone(raw_phone, self.configs.PHONE_COUNTRY_CODE)
        if not is_valid_mobile(phone_key):
            logger.warning(f"otp_request_invalid_phone | phone={mask_phone(phone_key)}")
            return self._fail_issue(OTPErrorCode.INVALID_PHONE)

        request_context.phone_key = mask_phone(phone_key)
        # store calls block on I/O for the Redis backend
        record = await asyncio.to_thread(self.ledger.issue, phone_key)

        delivery = await self.delivery.send_template(
            phone_key,
            self.configs.OTP_TEMPLATE_NAME,
            body_values=[record.code],
            button_values=[[record.code]],
        )
        if not delivery.success:
            logger.warning(f"otp_delivery_failed | phone={mask_phone(phone_key)} reason={delivery.message}")
            return self._fail_issue(OTPErrorCode.DELIVERY_FAILED, phone_key)

        logger.info(f"otp_request_success | phone={mask_phone(phone_key)}")
        return IssueResult(
            success=True,
            message=OTP_SENT_MESSAGE,
            phone_key=phone_key,
            expires_in=self.ledger.remaining_seconds(record),
        )

    async def confirm_code(
        self,
        raw_phone: Optional[str],
        supplied_code: str,
        profile: Optional[LeadProfile] = None,
    ) -> ConfirmResult:
        """
        Consume the code for *raw_phone*; on success mark the phone verified
        and return the redirect target.

        Verification is committed before any follow-up work: neither the
        unlock notice nor lead storage can undo it.
        """
        phone_key = normalize_phone(raw_phone, self.configs.PHONE_COUNTRY_CODE)
        if phone_key is None:
            return self._fail_confirm(OTPErrorCode.NOT_FOUND)

        request_context.phone_key = mask_phone(phone_key)
        outcome = await asyncio.to_thread(self.ledger.consume, phone_key, supplied_code)
        if outcome != ConsumeResult.SUCCESS:
            logger.info(f"otp_confirm_failed | phone={mask_phone(phone_key)} outcome={outcome}")
            return self._fail_confirm(outcome, phone_key)

        await asyncio.to_thread(self.verified_store.mark_verified, phone_key)
        logger.info(f"otp_confirm_success | phone={mask_phone(phone_key)}")

        if self.configs.UNLOCK_NOTIFICATION_ENABLED:
            self._schedule_unlock_notice(phone_key)

        lead_status, lead_id = await self._persist_lead(phone_key, profile)

        return ConfirmResult(
            verified=True,
            message=OTP_VERIFIED_MESSAGE,
            phone_key=phone_key,
            redirect_url=self.redirects.build_url(profile),
            lead_id=lead_id,
            lead_status=lead_status,
        )

    async def is_verified(self, raw_phone: Optional[str]) -> bool:
        phone_key = normalize_phone(raw_phone, self.configs.PHONE_COUNTRY_CODE)
        return phone_key is not None and await asyncio.to_thread(self.verified_store.is_verified, phone_key)

    def _schedule_unlock_notice(self, phone_key: str) -> None:
        task = asyncio.create_task(
            self.delivery.send_template(phone_key, self.configs.UNLOCK_TEMPLATE_NAME, body_values=[])
        )
        self._background_tasks.add(task)
        task.add_done_callback(lambda t: self._log_unlock_notice(t, phone_key))

    def _log_unlock_notice(self, task: asyncio.Task, phone_key: str) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            logger.warning(f"unlock_notice_cancelled | phone={mask_phone(phone_key)}")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"unlock_notice_error | phone={mask_phone(phone_key)} error={error}", exc_info=error)
            return
        result: DeliveryResult = task.result()
        if result.success:
            logger.info(f"unlock_notice_sent | phone={mask_phone(phone_key)}")
        else:
            logger.warning(f"unlock_notice_failed | phone={mask_phone(phone_key)} reason={result.message}")

    async def _persist_lead(self, phone_key: str, profile: Optional[LeadProfile]) -> Tuple[str, Optional[int]]:
        if self.lead_repository is None or profile is None:
            return LeadStatus.SKIPPED, None
        try:
            lead_id = await asyncio.wait_for(
                asyncio.to_thread(self.lead_repository.save_lead, phone_key, profile, utc_now()),
                timeout=self.persistence_timeout,
            )
        except DuplicateLeadError:
            logger.info(f"lead_duplicate | phone={mask_phone(phone_key)}")
            return LeadStatus.DUPLICATE, None
        except asyncio.TimeoutError as e:
            # the worker thread cannot be cancelled, so the insert may still land
            logger.warning(
                f"lead_persist_pending | phone={mask_phone(phone_key)} error={type(e).__name__} "
                f"timeout={self.persistence_timeout}s"
            )
            capture_exception(e)
            return LeadStatus.PENDING, None
        except SQLAlchemyError as e:
            logger.error(f"lead_persist_failed | phone={mask_phone(phone_key)} error={type(e).__name__}: {e}")
            capture_exception(e)
            return LeadStatus.FAILED, None
        request_context.lead_id = str(lead_id)
        return LeadStatus.SAVED, lead_id

    async def drain_background_tasks(self) -> None:
        """Wait for pending best-effort notifications (shutdown and tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
