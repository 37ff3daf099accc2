from typing import Optional
from urllib.parse import quote

from app.dto.leads import LeadProfile
from app.logging.utils import get_app_logger

logger = get_app_logger(__name__)

WHATSAPP_BASE_URL = "https://wa.me"


class RedirectService:
    """Builds the WhatsApp chat link a verified visitor is sent to."""

    def __init__(self, chat_number: str, text: str, include_profile: bool = False):
        if not chat_number:
            logger.error("WhatsApp chat number not configured")
            raise ValueError("WHATSAPP_CHAT_NUMBER not configured")
        self.chat_number = chat_number
        self.text = text
        self.include_profile = include_profile

    def build_text(self, profile: Optional[LeadProfile] = None) -> str:
        if not (self.include_profile and profile):
            return self.text
        parts = [self.text]
        if profile.name:
            parts.append(f"Name: {profile.name}")
        if profile.city:
            parts.append(f"City: {profile.city}")
        return ", ".join(parts)

    def build_url(self, profile: Optional[LeadProfile] = None) -> str:
        return f"{WHATSAPP_BASE_URL}/{self.chat_number}?text={quote(self.build_text(profile), safe='')}"
