"""
Core constants for the lead verification gateway

Outcome codes shared by the OTP ledger, the issuance/confirmation flows and
the HTTP layer. Plain string constants so they serialize as-is.
"""

class ConsumeResult:
    """Outcome of OTPLedger.consume"""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MISMATCH = "mismatch"


class OTPErrorCode:
    """Failure codes surfaced by the issuance and confirmation flows"""

    INVALID_PHONE = "invalid_phone"
    NOT_FOUND = ConsumeResult.NOT_FOUND
    EXPIRED = ConsumeResult.EXPIRED
    MISMATCH = ConsumeResult.MISMATCH
    DELIVERY_FAILED = "delivery_failed"


class LeadStatus:
    """Result of the optional lead persistence step after confirmation"""

    SKIPPED = "skipped"
    SAVED = "saved"
    DUPLICATE = "duplicate"
    # save outlived the request deadline and may still commit
    PENDING = "pending"
    FAILED = "failed"


# User-facing messages, kept identical to the public API contract
OTP_MESSAGES = {
    OTPErrorCode.INVALID_PHONE: "Invalid phone number",
    OTPErrorCode.DELIVERY_FAILED: "Failed to send OTP",
    OTPErrorCode.NOT_FOUND: "OTP not found",
    OTPErrorCode.EXPIRED: "OTP expired",
    OTPErrorCode.MISMATCH: "Wrong OTP",
}

OTP_SENT_MESSAGE = "OTP sent successfully"
OTP_VERIFIED_MESSAGE = "OTP verified successfully"
