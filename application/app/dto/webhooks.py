from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional


class InteraktCustomer(BaseModel):
    model_config = ConfigDict(extra="allow")

    phone_number: Optional[str] = None
    country_code: Optional[str] = None
    channel_phone_number: Optional[str] = None


class InteraktWebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    customer: Optional[InteraktCustomer] = None
    message: Optional[Dict[str, Any]] = None


class InteraktWebhookEvent(BaseModel):
    """Inbound notification posted by Interakt (only message events are acted on)"""
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="Event type, e.g. message_received")
    data: InteraktWebhookData = Field(default_factory=InteraktWebhookData)

    @property
    def sender_phone(self) -> Optional[str]:
        customer = self.data.customer
        if customer is None or not customer.phone_number:
            return None
        country_code = (customer.country_code or '').lstrip('+')
        return f"{country_code}{customer.phone_number}"


class WebhookAckResponse(BaseModel):
    success: bool = True
    action: str
