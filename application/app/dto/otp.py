from pydantic import BaseModel, Field, field_validator
from typing import Optional

from app.dto.leads import LeadProfile, check_email, clean_text


def _coerce_to_str(v):
    """JSON clients often send phones and codes as numbers"""
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return str(v)
    return v


class _ProfileFields(BaseModel):
    """Optional lead details; validated with the request so a bad email is a 422"""
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

    def profile(self) -> Optional[LeadProfile]:
        if not any((self.name, self.email, self.city)):
            return None
        return LeadProfile(name=self.name, email=self.email, city=self.city)


class SendOTPRequest(_ProfileFields):
    """Request model for sending an OTP"""
    phone: str = Field(..., max_length=32, description="Mobile number, with or without the 91 prefix")

    @field_validator('phone', mode='before')
    @classmethod
    def coerce_phone(cls, v):
        return _coerce_to_str(v)


class SendOTPResponse(BaseModel):
    """Response model for an OTP request"""
    success: bool
    message: str
    expires_in: Optional[int] = Field(None, description="Seconds until the code expires")


class VerifyOTPRequest(_ProfileFields):
    """Request model for verifying an OTP"""
    phone: str = Field(..., max_length=32)
    otp: str = Field(..., max_length=12, description="6-digit OTP code")

    @field_validator('phone', 'otp', mode='before')
    @classmethod
    def coerce_str(cls, v):
        return _coerce_to_str(v)

    @field_validator('otp')
    @classmethod
    def strip_otp(cls, v):
        return v.strip()


class VerifyOTPResponse(BaseModel):
    """Response model for OTP verification"""
    verified: bool
    message: str
    redirect_url: Optional[str] = Field(None, alias="redirectUrl")
    lead_id: Optional[int] = None
    lead_status: Optional[str] = None

    model_config = {"populate_by_name": True}
