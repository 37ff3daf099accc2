from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel


class DeliveryResult(BaseModel):
    success: bool
    message: str
    message_id: Optional[str] = None


class MessageDeliveryProvider(ABC):
    """Outbound template messaging used by the OTP flows."""

    @abstractmethod
    async def send_template(
        self,
        destination: str,
        template_name: str,
        body_values: List[str],
        button_values: Optional[List[List[str]]] = None,
        language_code: Optional[str] = None,
    ) -> DeliveryResult:
        """
        Send a pre-approved template message to *destination* (a PhoneKey).

        Implementations report failures through DeliveryResult.success and do
        not raise for transport or provider errors.
        """

    async def close(self) -> None:
        return None
