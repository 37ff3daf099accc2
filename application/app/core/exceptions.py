from typing import Optional


class LeadPersistenceError(Exception):
    """Base exception for lead storage failures."""
    def __init__(self, message: str, phone_key: Optional[str] = None):
        self.message = message
        self.phone_key = phone_key
        super().__init__(message)


class DuplicateLeadError(LeadPersistenceError):
    """Raised when a lead for the same phone is already stored."""
    pass
