"""
Phone number normalization.

Every phone entering the system is reduced to its national subscriber form
(PhoneKey), which is the only key used by the OTP ledger and the verified
store.
"""
import re
from typing import Optional

NATIONAL_NUMBER_LENGTH = 10
DEFAULT_COUNTRY_CODE = "91"

MOBILE_PATTERN = re.compile(r'^[6-9]\d{9}$')
NON_DIGITS = re.compile(r'\D')


def normalize_phone(raw: Optional[str], country_code: str = DEFAULT_COUNTRY_CODE) -> Optional[str]:
    """
    Canonicalize a raw phone input into a PhoneKey.

    Strips formatting characters, then the international prefix or trunk
    zero when the number is longer than a national number. Returns None for
    missing or digit-less input. No format validation happens here.

    Args:
        raw: Phone as typed by the user, e.g. "+91 98765-43210"
        country_code: International prefix to strip

    Returns:
        str: Digits-only national number, or None
    """
    if raw is None:
        return None
    digits = NON_DIGITS.sub('', str(raw))
    if not digits:
        return None

    if len(digits) > NATIONAL_NUMBER_LENGTH:
        if digits.startswith('00' + country_code):
            digits = digits[2 + len(country_code):]
        elif digits.startswith(country_code) and len(digits) == NATIONAL_NUMBER_LENGTH + len(country_code):
            digits = digits[len(country_code):]
        elif digits.startswith('0') and len(digits) == NATIONAL_NUMBER_LENGTH + 1:
            digits = digits[1:]
    return digits


def is_valid_mobile(phone_key: Optional[str]) -> bool:
    """National mobile pattern: 10 digits, leading digit 6-9."""
    return bool(phone_key) and MOBILE_PATTERN.match(phone_key) is not None
