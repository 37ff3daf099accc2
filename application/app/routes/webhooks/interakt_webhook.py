from fastapi import APIRouter, Depends

from app.dependencies import get_webhook_service
from app.dto.webhooks import InteraktWebhookEvent, WebhookAckResponse
from app.logging.utils import get_app_logger
from app.middlewares.request_context import request_context
from app.services.webhook_service import WebhookService

logger = get_app_logger(__name__)

interakt_webhook_router = APIRouter(tags=["webhooks"])


@interakt_webhook_router.post("/interakt", response_model=WebhookAckResponse)
async def interakt_webhook(event: InteraktWebhookEvent, webhook_service: WebhookService = Depends(get_webhook_service)):
    """Acknowledge every delivery so Interakt does not retry; act on inbound messages only."""
    request_context.module_name = 'interakt_webhook'
    action = await webhook_service.handle_event(event)
    logger.info(f"interakt_webhook | type={event.type} action={action}")
    return WebhookAckResponse(action=action)
