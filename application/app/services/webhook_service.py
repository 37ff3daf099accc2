import asyncio
from typing import Optional

from app.config.settings import GatewayConfigs
from app.core.phone import normalize_phone
from app.core.verification_state import VerifiedStore
from app.dto.webhooks import InteraktWebhookEvent
from app.integrations.base import MessageDeliveryProvider
from app.logging.utils import get_app_logger, mask_phone

logger = get_app_logger(__name__)

MESSAGE_RECEIVED = "message_received"


class WebhookAction:
    IGNORED = "ignored"
    ALREADY_VERIFIED = "already_verified"
    AUTO_REPLY_DISABLED = "auto_reply_disabled"
    AUTO_REPLIED = "auto_replied"
    AUTO_REPLY_FAILED = "auto_reply_failed"


class WebhookService:
    """
    Auto-reply policy for inbound WhatsApp messages: a sender who has not
    completed OTP verification is nudged with a template, verified senders
    are left to the human chat.
    """

    def __init__(
        self,
        verified_store: VerifiedStore,
        delivery: MessageDeliveryProvider,
        configs: Optional[GatewayConfigs] = None,
    ):
        self.configs = configs or GatewayConfigs()
        self.verified_store = verified_store
        self.delivery = delivery

    async def handle_event(self, event: InteraktWebhookEvent) -> str:
        if event.type != MESSAGE_RECEIVED:
            return WebhookAction.IGNORED

        phone_key = normalize_phone(event.sender_phone, self.configs.PHONE_COUNTRY_CODE)
        if phone_key is None:
            logger.warning(f"webhook_missing_sender | type={event.type}")
            return WebhookAction.IGNORED

        if await asyncio.to_thread(self.verified_store.is_verified, phone_key):
            return WebhookAction.ALREADY_VERIFIED

        if not self.configs.AUTO_REPLY_ENABLED:
            return WebhookAction.AUTO_REPLY_DISABLED

        result = await self.delivery.send_template(phone_key, self.configs.AUTO_REPLY_TEMPLATE_NAME, body_values=[])
        if not result.success:
            logger.warning(f"auto_reply_failed | phone={mask_phone(phone_key)} reason={result.message}")
            return WebhookAction.AUTO_REPLY_FAILED

        logger.info(f"auto_reply_sent | phone={mask_phone(phone_key)}")
        return WebhookAction.AUTO_REPLIED
