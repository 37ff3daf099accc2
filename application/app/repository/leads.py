"""
Lead Repository

Handles database operations for verified leads.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError

from app.connections.database import get_db_session
from app.core.exceptions import DuplicateLeadError
from app.dto.leads import LeadProfile
from app.logging.utils import get_app_logger, mask_phone
from app.models.leads import Lead

logger = get_app_logger("app.lead_repository")


class LeadRepository:
    """Repository for verified lead records"""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def save_lead(self, phone_key: str, profile: LeadProfile, verified_at: datetime) -> int:
        """
        Insert a verified lead.

        Returns:
            int: id of the new lead

        Raises:
            DuplicateLeadError: a lead with this phone already exists
        """
        try:
            with get_db_session(self.session_factory) as db:
                lead = Lead(
                    name=profile.name,
                    phone=phone_key,
                    email=profile.email,
                    city=profile.city,
                    verified_at=verified_at,
                )
                db.add(lead)
                db.flush()
                lead_id = lead.id
        except IntegrityError as e:
            logger.warning(f"save_lead_duplicate | phone={mask_phone(phone_key)}")
            raise DuplicateLeadError("Lead already exists for this phone", phone_key=phone_key) from e

        logger.info(f"save_lead | phone={mask_phone(phone_key)} lead_id={lead_id}")
        return lead_id

    def get_lead_id(self, phone_key: str) -> Optional[int]:
        with get_db_session(self.session_factory) as db:
            lead = db.query(Lead).filter(Lead.phone == phone_key).one_or_none()
            return lead.id if lead else None
