from pydantic import BaseModel, Field, field_validator
from typing import Optional


def clean_text(v):
    """Blank profile fields are treated as missing"""
    if v is None:
        return None
    v = v.strip()
    return v or None


def check_email(v):
    if v is not None and '@' not in v:
        raise ValueError('Invalid email address')
    return v


class LeadProfile(BaseModel):
    """Contact details submitted alongside the phone number"""
    name: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=255)

    @field_validator('name', 'email', 'city')
    @classmethod
    def strip_blank(cls, v):
        return clean_text(v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return check_email(v)
