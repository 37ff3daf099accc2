from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.core.constants import OTPErrorCode, OTP_MESSAGES
from app.dto.otp import SendOTPRequest, SendOTPResponse, VerifyOTPRequest, VerifyOTPResponse
from app.dependencies import get_otp_service
from app.logging.utils import get_app_logger
from app.middlewares.request_context import request_context
from app.services.otp_service import OTPService

logger = get_app_logger(__name__)

router = APIRouter(tags=["otp"])

ISSUE_ERROR_STATUS = {
    OTPErrorCode.INVALID_PHONE: status.HTTP_400_BAD_REQUEST,
    OTPErrorCode.DELIVERY_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _send_failure(error: str) -> JSONResponse:
    payload = SendOTPResponse(success=False, message=OTP_MESSAGES[error])
    return JSONResponse(status_code=ISSUE_ERROR_STATUS[error], content=payload.model_dump(exclude_none=True))


@router.post("/send-otp", response_model=SendOTPResponse, response_model_exclude_none=True)
async def send_otp(request: SendOTPRequest, otp_service: OTPService = Depends(get_otp_service)):
    """
    Send an OTP to the given phone over WhatsApp.
    Steps:
    1. Normalize and validate the phone
    2. Issue a code in the ledger (replacing any live one)
    3. Deliver it through the template provider
    """
    request_context.module_name = 'otp'
    try:
        result = await otp_service.request_code(request.phone)
    except Exception as e:
        logger.error(f"Unexpected error in send_otp: {str(e)}", exc_info=True)
        return _send_failure(OTPErrorCode.DELIVERY_FAILED)

    if not result.success:
        return _send_failure(result.error)
    return SendOTPResponse(success=True, message=result.message, expires_in=result.expires_in)


@router.post("/verify-otp", response_model=VerifyOTPResponse, response_model_exclude_none=True)
async def verify_otp(request: VerifyOTPRequest, otp_service: OTPService = Depends(get_otp_service)):
    """
    Verify an OTP. Failures are reported in the body with HTTP 200 so the
    form can show the message inline; success carries the WhatsApp redirect.
    """
    request_context.module_name = 'otp'
    result = await otp_service.confirm_code(request.phone, request.otp, profile=request.profile())

    if not result.verified:
        return VerifyOTPResponse(verified=False, message=result.message)

    return VerifyOTPResponse(
        verified=True,
        message=result.message,
        redirect_url=result.redirect_url,
        lead_id=result.lead_id,
        lead_status=result.lead_status,
    )
