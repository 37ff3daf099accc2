"""
Lead Model
Stores contact details of phones that completed OTP verification
"""

from sqlalchemy import Column, Integer, String, TIMESTAMP
from app.models.common import CommonModel


class Lead(CommonModel):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    phone = Column(String(15), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    city = Column(String(255), nullable=True)
    verified_at = Column(TIMESTAMP(timezone=True), nullable=False)
