"""
Service wiring.

Stores and flows are built once per process and handed to the routes through
FastAPI dependencies, so tests can swap any collaborator by assigning
``app.state.container``.
"""
from typing import Optional

from fastapi import Request

from app.config.settings import GatewayConfigs
from app.connections.redis_wrapper import RedisJSONWrapper
from app.core.otp_ledger import OTPLedger
from app.core.otp_store import InMemoryOTPStore, OTPStore, RedisOTPStore
from app.core.verification_state import InMemoryVerifiedStore, RedisVerifiedStore, VerifiedStore
from app.integrations.base import MessageDeliveryProvider
from app.integrations.interakt_service import InteraktService
from app.logging.utils import get_app_logger
from app.repository.leads import LeadRepository
from app.services.otp_service import OTPService
from app.services.redirect_service import RedirectService
from app.services.webhook_service import WebhookService

logger = get_app_logger(__name__)


class ServiceContainer:
    def __init__(
        self,
        configs: GatewayConfigs,
        otp_store: OTPStore,
        verified_store: VerifiedStore,
        delivery: MessageDeliveryProvider,
        lead_repository: Optional[LeadRepository] = None,
    ):
        self.configs = configs
        self.otp_store = otp_store
        self.verified_store = verified_store
        self.delivery = delivery
        self.ledger = OTPLedger(
            otp_store,
            ttl_seconds=configs.OTP_EXPIRY_SECONDS,
            otp_length=configs.OTP_LENGTH,
        )
        self.otp_service = OTPService(
            self.ledger,
            verified_store,
            delivery,
            RedirectService(configs.WHATSAPP_CHAT_NUMBER, configs.REDIRECT_TEXT, configs.REDIRECT_INCLUDE_PROFILE),
            lead_repository=lead_repository,
            configs=configs,
        )
        self.webhook_service = WebhookService(verified_store, delivery, configs=configs)

    async def close(self):
        await self.otp_service.drain_background_tasks()
        await self.delivery.close()


def _build_stores(configs: GatewayConfigs):
    if configs.OTP_STORE_BACKEND == "redis":
        redis_wrapper = RedisJSONWrapper(database=configs.REDIS_CACHE_DB)
        if not redis_wrapper.connected:
            raise RuntimeError("OTP_STORE_BACKEND=redis but Redis is unreachable")
        logger.info("Using Redis OTP and verification stores")
        return RedisOTPStore(redis_wrapper), RedisVerifiedStore(redis_wrapper)
    if configs.OTP_STORE_BACKEND != "memory":
        raise ValueError(f"Unknown OTP_STORE_BACKEND: {configs.OTP_STORE_BACKEND}")
    logger.info("Using in-memory OTP and verification stores")
    return InMemoryOTPStore(), InMemoryVerifiedStore()


def build_container(
    configs: Optional[GatewayConfigs] = None,
    delivery: Optional[MessageDeliveryProvider] = None,
) -> ServiceContainer:
    configs = configs or GatewayConfigs()
    otp_store, verified_store = _build_stores(configs)
    lead_repository = LeadRepository() if configs.LEAD_PERSISTENCE_ENABLED else None
    return ServiceContainer(
        configs,
        otp_store,
        verified_store,
        delivery or InteraktService(),
        lead_repository=lead_repository,
    )


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        container = build_container()
        request.app.state.container = container
    return container


def get_otp_service(request: Request) -> OTPService:
    return get_container(request).otp_service


def get_webhook_service(request: Request) -> WebhookService:
    return get_container(request).webhook_service
