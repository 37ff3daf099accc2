"""
Tests for the issuance and confirmation flows.
"""

import asyncio
import threading
import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.connections.database import Base
from app.core.constants import LeadStatus, OTPErrorCode
from app.core.otp_ledger import OTPLedger
from app.core.otp_store import InMemoryOTPStore
from app.dto.leads import LeadProfile
from app.repository.leads import LeadRepository
from app.services.otp_service import OTPService
from app.services.redirect_service import RedirectService

PHONE = "9876543210"
REDIRECT = "https://wa.me/919999999999?text=Hello%20I%20am%20verified"


@pytest.fixture
def lead_repository():
    from app.models import leads  # noqa: F401

    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    yield LeadRepository(session_factory=sessionmaker(bind=engine, autoflush=False))
    engine.dispose()


class TestRequestCode:

    @pytest.mark.asyncio
    async def test_sends_code_over_template(self, otp_service, delivery, ledger):
        result = await otp_service.request_code(PHONE)

        assert result.success is True
        assert result.message == "OTP sent successfully"
        assert result.expires_in == 300
        assert len(delivery.sent) == 1
        sent = delivery.sent[0]
        record = ledger.peek(PHONE)
        assert sent["destination"] == PHONE
        assert sent["template_name"] == "otp_verification"
        assert sent["body_values"] == [record.code]
        assert sent["button_values"] == [[record.code]]

    @pytest.mark.asyncio
    async def test_prefixed_phone_uses_national_key(self, otp_service, delivery, ledger):
        result = await otp_service.request_code("+91 98765 43210")

        assert result.success is True
        assert result.phone_key == PHONE
        assert ledger.peek(PHONE) is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["1234567890", "98765", "", None, "abc"])
    async def test_invalid_phone_leaves_ledger_untouched(self, otp_service, delivery, otp_store, raw):
        result = await otp_service.request_code(raw)

        assert result.success is False
        assert result.error == OTPErrorCode.INVALID_PHONE
        assert result.message == "Invalid phone number"
        assert otp_store.keys() == []
        assert delivery.sent == []

    @pytest.mark.asyncio
    async def test_delivery_failure_keeps_code_live(self, otp_service, delivery, ledger):
        delivery.failing_templates.add("otp_verification")

        result = await otp_service.request_code(PHONE)

        assert result.success is False
        assert result.error == OTPErrorCode.DELIVERY_FAILED
        assert ledger.peek(PHONE) is not None

    @pytest.mark.asyncio
    async def test_retry_after_delivery_failure_replaces_code(self, otp_service, delivery, ledger):
        delivery.failing_templates.add("otp_verification")
        await otp_service.request_code(PHONE)
        stale = ledger.peek(PHONE)

        delivery.failing_templates.clear()
        result = await otp_service.request_code(PHONE)

        assert result.success is True
        assert ledger.peek(PHONE) != stale


class TestConfirmCode:

    @pytest.mark.asyncio
    async def test_scenario_issue_then_confirm_twice(self, otp_service, delivery, verified_store):
        await otp_service.request_code(PHONE)
        code = delivery.last_code()

        result = await otp_service.confirm_code(PHONE, code)

        assert result.verified is True
        assert result.redirect_url == REDIRECT
        assert verified_store.is_verified(PHONE) is True

        again = await otp_service.confirm_code(PHONE, code)
        assert again.verified is False
        assert again.error == OTPErrorCode.NOT_FOUND
        assert again.message == "OTP not found"

    @pytest.mark.asyncio
    async def test_confirm_with_prefixed_phone(self, otp_service, delivery):
        await otp_service.request_code(PHONE)

        result = await otp_service.confirm_code("919876543210", delivery.last_code())

        assert result.verified is True
        assert await otp_service.is_verified("+91 98765 43210") is True

    @pytest.mark.asyncio
    async def test_wrong_code_allows_retry(self, otp_service, delivery, verified_store):
        await otp_service.request_code(PHONE)
        code = delivery.last_code()
        wrong = "000000" if code != "000000" else "111111"

        result = await otp_service.confirm_code(PHONE, wrong)
        assert result.verified is False
        assert result.error == OTPErrorCode.MISMATCH
        assert result.message == "Wrong OTP"
        assert verified_store.is_verified(PHONE) is False

        assert (await otp_service.confirm_code(PHONE, code)).verified is True

    @pytest.mark.asyncio
    async def test_expired_code(self, otp_service, delivery, clock, verified_store):
        await otp_service.request_code(PHONE)
        clock.advance(301)

        result = await otp_service.confirm_code(PHONE, delivery.last_code())

        assert result.verified is False
        assert result.error == OTPErrorCode.EXPIRED
        assert result.message == "OTP expired"
        assert verified_store.is_verified(PHONE) is False

    @pytest.mark.asyncio
    async def test_reissue_invalidates_first_code(self, otp_service, delivery):
        await otp_service.request_code(PHONE)
        first = delivery.last_code()
        await otp_service.request_code(PHONE)
        second = delivery.last_code()

        if first != second:
            assert (await otp_service.confirm_code(PHONE, first)).verified is False
        assert (await otp_service.confirm_code(PHONE, second)).verified is True

    @pytest.mark.asyncio
    async def test_missing_phone_is_not_found(self, otp_service):
        result = await otp_service.confirm_code(None, "123456")
        assert result.error == OTPErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_concurrent_confirmations_verify_once(self, otp_service, delivery):
        await otp_service.request_code(PHONE)
        code = delivery.last_code()

        results = await asyncio.gather(*[otp_service.confirm_code(PHONE, code) for _ in range(20)])

        assert sum(1 for r in results if r.verified) == 1

    @pytest.mark.asyncio
    async def test_redirect_with_profile(self, ledger, verified_store, delivery, configs):
        redirects = RedirectService("919999999999", "Hello I am verified", include_profile=True)
        service = OTPService(ledger, verified_store, delivery, redirects, configs=configs)
        await service.request_code(PHONE)

        result = await service.confirm_code(PHONE, delivery.last_code(), profile=LeadProfile(name="Asha", city="Pune"))

        assert result.redirect_url == "https://wa.me/919999999999?text=Hello%20I%20am%20verified%2C%20Name%3A%20Asha%2C%20City%3A%20Pune"


class TestUnlockNotice:

    @pytest.mark.asyncio
    async def test_notice_sent_after_verification(self, otp_service, delivery, configs):
        configs.UNLOCK_NOTIFICATION_ENABLED = True
        await otp_service.request_code(PHONE)

        result = await otp_service.confirm_code(PHONE, delivery.last_code())
        await otp_service.drain_background_tasks()

        assert result.verified is True
        assert [s["template_name"] for s in delivery.sent] == ["otp_verification", "chat_unlocked"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", ["failing", "raising"])
    async def test_notice_failure_does_not_undo_verification(self, otp_service, delivery, configs, verified_store, mode):
        configs.UNLOCK_NOTIFICATION_ENABLED = True
        getattr(delivery, f"{mode}_templates").add("chat_unlocked")
        await otp_service.request_code(PHONE)

        result = await otp_service.confirm_code(PHONE, delivery.last_code())
        await otp_service.drain_background_tasks()

        assert result.verified is True
        assert verified_store.is_verified(PHONE) is True


class TestLeadPersistence:

    @pytest.mark.asyncio
    async def test_lead_saved_after_confirmation(self, ledger, verified_store, delivery, redirects, configs, lead_repository):
        service = OTPService(ledger, verified_store, delivery, redirects, lead_repository=lead_repository, configs=configs)
        await service.request_code(PHONE)

        result = await service.confirm_code(PHONE, delivery.last_code(), profile=LeadProfile(name="Asha", email="asha@example.com", city="Pune"))

        assert result.verified is True
        assert result.lead_status == LeadStatus.SAVED
        assert result.lead_id == lead_repository.get_lead_id(PHONE)

    @pytest.mark.asyncio
    async def test_duplicate_lead_is_reported_distinctly(self, ledger, verified_store, delivery, redirects, configs, lead_repository):
        service = OTPService(ledger, verified_store, delivery, redirects, lead_repository=lead_repository, configs=configs)
        profile = LeadProfile(name="Asha")
        for _ in range(2):
            await service.request_code(PHONE)
            result = await service.confirm_code(PHONE, delivery.last_code(), profile=profile)

        assert result.verified is True
        assert result.lead_status == LeadStatus.DUPLICATE
        assert result.lead_id is None

    @pytest.mark.asyncio
    async def test_no_profile_skips_persistence(self, ledger, verified_store, delivery, redirects, configs, lead_repository):
        service = OTPService(ledger, verified_store, delivery, redirects, lead_repository=lead_repository, configs=configs)
        await service.request_code(PHONE)

        result = await service.confirm_code(PHONE, delivery.last_code())

        assert result.lead_status == LeadStatus.SKIPPED
        assert lead_repository.get_lead_id(PHONE) is None

    @pytest.mark.asyncio
    async def test_slow_save_is_reported_pending(self, ledger, verified_store, delivery, redirects, configs, lead_repository):
        saved = threading.Event()

        class SlowRepository:
            def save_lead(self, phone_key, profile, verified_at):
                time.sleep(0.3)
                try:
                    return lead_repository.save_lead(phone_key, profile, verified_at)
                finally:
                    saved.set()

        service = OTPService(ledger, verified_store, delivery, redirects, lead_repository=SlowRepository(), configs=configs)
        service.persistence_timeout = 0.05
        await service.request_code(PHONE)

        result = await service.confirm_code(PHONE, delivery.last_code(), profile=LeadProfile(name="Asha"))

        assert result.verified is True
        assert result.lead_status == LeadStatus.PENDING
        assert result.lead_id is None

        # the insert keeps running after the deadline and still commits
        assert await asyncio.to_thread(saved.wait, 5)
        assert lead_repository.get_lead_id(PHONE) is not None


class BlockingOTPStore(InMemoryOTPStore):
    """Reads for one phone hang until released, like a stalled Redis socket."""

    def __init__(self, blocked_key):
        super().__init__()
        self.blocked_key = blocked_key
        self.entered = threading.Event()
        self.release = threading.Event()

    def get(self, phone_key):
        if phone_key == self.blocked_key:
            self.entered.set()
            self.release.wait(timeout=5)
        return super().get(phone_key)


class TestEventLoopIsolation:

    @pytest.mark.asyncio
    async def test_stalled_store_call_does_not_block_other_requests(self, clock, verified_store, delivery, redirects, configs):
        store = BlockingOTPStore(PHONE)
        service = OTPService(OTPLedger(store, ttl_seconds=300, clock=clock), verified_store, delivery, redirects, configs=configs)

        stalled = asyncio.create_task(service.confirm_code(PHONE, "123456"))
        try:
            assert await asyncio.to_thread(store.entered.wait, 5)
            other = await asyncio.wait_for(service.request_code("9123456789"), timeout=2)

            assert other.success is True
            assert stalled.done() is False
        finally:
            store.release.set()

        assert (await stalled).error == OTPErrorCode.NOT_FOUND
