import asyncio

import httpx
from httpx_retry import AsyncRetryTransport, RetryPolicy
from typing import Any, Dict, List, Optional

from app.integrations.base import DeliveryResult, MessageDeliveryProvider
from app.logging.utils import get_app_logger, mask_phone
from app.config.settings import GatewayConfigs

logger = get_app_logger(__name__)
configs = GatewayConfigs()


class InteraktService(MessageDeliveryProvider):
    """
    Interakt WhatsApp integration for sending template messages.
    Thin wrapper around the public message API.
    """

    MESSAGE_PATH = "/v1/public/message/"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        send_deadline: Optional[float] = None,
        country_code: Optional[str] = None,
        language_code: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize with Interakt credentials from config unless given explicitly."""
        self.api_key = api_key if api_key is not None else configs.INTERAKT_API_KEY
        self.base_url = (base_url or configs.INTERAKT_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else configs.INTERAKT_TIMEOUT
        self.send_deadline = send_deadline if send_deadline is not None else configs.INTERAKT_SEND_DEADLINE
        self.country_code = country_code or configs.PHONE_COUNTRY_CODE
        self.language_code = language_code or configs.TEMPLATE_LANGUAGE_CODE

        if not self.api_key:
            logger.error("Interakt API key not configured")
            raise ValueError("Interakt API key not configured")

        if transport is None:
            # Network-level retries for throttling and provider outages
            retry_policy = RetryPolicy(
                max_retries=1,
                initial_delay=0.5,
                multiplier=2.0,
                retry_on=[429, 502, 503, 504]
            )
            transport = AsyncRetryTransport(policy=retry_policy)

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=self.timeout,
            headers={
                "Authorization": f"Basic {self.api_key}",
                "Content-Type": "application/json",
            },
        )

    async def close(self):
        """Explicitly close the HTTP client to free resources."""
        await self.client.aclose()

    def build_payload(
        self,
        destination: str,
        template_name: str,
        body_values: List[str],
        button_values: Optional[List[List[str]]] = None,
        language_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        template: Dict[str, Any] = {
            "name": template_name,
            "languageCode": language_code or self.language_code,
            "bodyValues": [str(value) for value in body_values],
        }
        if button_values:
            # authentication templates need the code on the copy button too
            template["buttonValues"] = [[str(value) for value in row] for row in button_values]
        return {
            "countryCode": self.country_code,
            "phoneNumber": destination,
            "type": "Template",
            "template": template,
        }

    async def send_template(
        self,
        destination: str,
        template_name: str,
        body_values: List[str],
        button_values: Optional[List[List[str]]] = None,
        language_code: Optional[str] = None,
    ) -> DeliveryResult:
        """
        Send a WhatsApp template message through Interakt.

        Returns:
            DeliveryResult: success flag, provider message and message id
        """
        payload = self.build_payload(destination, template_name, body_values, button_values, language_code)
        try:
            # bounds the whole send, retries included
            response = await asyncio.wait_for(
                self.client.post(self.MESSAGE_PATH, json=payload),
                timeout=self.send_deadline,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.error(f"Interakt request timed out | template={template_name} phone={mask_phone(destination)}")
            return DeliveryResult(success=False, message="Messaging provider timed out")
        except httpx.HTTPError as e:
            logger.error(f"Interakt request failed | template={template_name} phone={mask_phone(destination)} error={e}")
            return DeliveryResult(success=False, message="Failed to connect to messaging provider")

        body = self._json_or_empty(response)
        if response.is_success and body.get("result", True):
            logger.info(f"Interakt template sent | template={template_name} phone={mask_phone(destination)}")
            return DeliveryResult(success=True, message=body.get("message", "Message queued"), message_id=body.get("id"))

        logger.warning(
            f"Interakt template rejected | template={template_name} phone={mask_phone(destination)} "
            f"status={response.status_code} response={response.text[:500]}"
        )
        return DeliveryResult(success=False, message=body.get("message", "Failed to send message"))

    @staticmethod
    def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
