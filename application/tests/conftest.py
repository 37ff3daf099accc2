import os
import tempfile
from datetime import datetime, timedelta, timezone

# Settings are read at import time, so the environment goes first
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="lead-gateway-logs-")
os.environ["DEBUG"] = "true"
os.environ["INTERAKT_API_KEY"] = "test-api-key"
os.environ["WHATSAPP_CHAT_NUMBER"] = "919999999999"
os.environ["OTP_STORE_BACKEND"] = "memory"
os.environ["OTP_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["LEAD_PERSISTENCE_ENABLED"] = "false"
os.environ["UNLOCK_NOTIFICATION_ENABLED"] = "false"
os.environ["AUTO_REPLY_ENABLED"] = "false"
os.environ["SENTRY_ENABLED"] = "false"
os.environ["FIREHOSE_ENABLED"] = "false"
os.environ.pop("SLACK_WEBHOOK_URL", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config.settings import GatewayConfigs
from app.core.otp_ledger import OTPLedger
from app.core.otp_store import InMemoryOTPStore
from app.core.verification_state import InMemoryVerifiedStore
from app.integrations.base import DeliveryResult, MessageDeliveryProvider
from app.services.otp_service import OTPService
from app.services.redirect_service import RedirectService


class FakeDelivery(MessageDeliveryProvider):
    """Records every template send; failures can be scripted per template."""

    def __init__(self):
        self.sent = []
        self.failing_templates = set()
        self.raising_templates = set()
        self.closed = False

    async def send_template(self, destination, template_name, body_values, button_values=None, language_code=None):
        self.sent.append({
            "destination": destination,
            "template_name": template_name,
            "body_values": body_values,
            "button_values": button_values,
        })
        if template_name in self.raising_templates:
            raise RuntimeError("provider exploded")
        if template_name in self.failing_templates:
            return DeliveryResult(success=False, message="Template rejected")
        return DeliveryResult(success=True, message="Message queued", message_id=f"msg-{len(self.sent)}")

    async def close(self):
        self.closed = True

    def last_code(self, template_name="otp_verification"):
        for sent in reversed(self.sent):
            if sent["template_name"] == template_name:
                return sent["body_values"][0]
        return None


class ManualClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def configs():
    return GatewayConfigs()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def otp_store():
    return InMemoryOTPStore()


@pytest.fixture
def ledger(otp_store, clock):
    return OTPLedger(otp_store, ttl_seconds=300, clock=clock)


@pytest.fixture
def verified_store():
    return InMemoryVerifiedStore()


@pytest.fixture
def delivery():
    return FakeDelivery()


@pytest.fixture
def redirects(configs):
    return RedirectService(configs.WHATSAPP_CHAT_NUMBER, configs.REDIRECT_TEXT)


@pytest.fixture
def otp_service(ledger, verified_store, delivery, redirects, configs):
    return OTPService(ledger, verified_store, delivery, redirects, configs=configs)


@pytest.fixture
def container(configs, delivery):
    from app.dependencies import build_container
    return build_container(configs, delivery=delivery)


@pytest_asyncio.fixture
async def api_client(container):
    from app.main import app

    app.state.container = container
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
    finally:
        app.state.container = None
