"""
Verification Router

API endpoints used by the identity-verification pages.

Endpoints:
- POST /student/{student_id}/verify/send - Issue and deliver a code
- POST /student/{student_id}/verify - Check a code
- GET /student/{student_id}/verification-contacts - Contact details and flags
- POST /verification/link/{token} - One-click verification from an SMS link

Security:
- Code sending is rate limited per student
- Check failures never say whether a code was wrong, expired or already used
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from otp_relay.core.database import get_db
from otp_relay.core.delivery import DeliveryGateway, get_delivery_gateway
from otp_relay.core.rate_limit import rate_limit, student_path_key
from otp_relay.modules.verification import service
from otp_relay.modules.verification.schemas import (
    CheckVerificationRequest,
    CheckVerificationResponse,
    LinkVerificationResponse,
    SendVerificationRequest,
    SendVerificationResponse,
    VerificationContactsResponse,
)
from otp_relay.modules.verification.service import (
    InvalidCodeError,
    VerificationServiceError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Codes sent per student per window
SEND_RATE_LIMIT = 5
SEND_RATE_LIMIT_WINDOW_SECONDS = 600


def _to_http_exception(error: VerificationServiceError) -> HTTPException:
    return HTTPException(
        status_code=error.status_code,
        detail={
            "error": error.error_code,
            "message": error.message,
        },
    )


@router.post(
    "/student/{student_id}/verify/send",
    response_model=SendVerificationResponse,
    summary="Send Verification Code",
    responses={
        400: {"description": "No usable contact on file for the channel"},
        404: {"description": "Student not found"},
        429: {"description": "Too many codes requested"},
        502: {"description": "The code could not be delivered"},
    },
)
@rate_limit(
    limit=SEND_RATE_LIMIT,
    window_seconds=SEND_RATE_LIMIT_WINDOW_SECONDS,
    key_func=student_path_key,
)
async def send_verification(
    request: Request,
    student_id: UUID,
    data: SendVerificationRequest,
    db: AsyncSession = Depends(get_db),
    gateway: DeliveryGateway = Depends(get_delivery_gateway),
) -> SendVerificationResponse:
    """
    Issue a new code and deliver it by SMS or email.

    A new code is issued on every call; earlier codes stay valid until they expire.
    """
    try:
        return await service.send_verification(db, gateway, student_id, data.type)
    except VerificationServiceError as e:
        logger.warning(f"Send verification failed for student {student_id}: {e.error_code}")
        raise _to_http_exception(e) from e


@router.post(
    "/student/{student_id}/verify",
    response_model=CheckVerificationResponse,
    summary="Check Verification Code",
    responses={400: {"description": "Invalid or expired verification code"}},
)
async def check_verification(
    student_id: UUID,
    data: CheckVerificationRequest,
    db: AsyncSession = Depends(get_db),
) -> CheckVerificationResponse:
    """Check a code and mark the matching contact verified."""
    if not await service.check_verification(db, student_id, data.code, data.type):
        raise _to_http_exception(InvalidCodeError())

    return CheckVerificationResponse(success=True, type=data.type)


@router.get(
    "/student/{student_id}/verification-contacts",
    response_model=VerificationContactsResponse,
    summary="Get Verification Contacts",
    responses={404: {"description": "Student not found"}},
)
async def get_verification_contacts(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> VerificationContactsResponse:
    """Return raw contact details; the client masks them for display."""
    try:
        return await service.get_verification_contacts(db, student_id)
    except VerificationServiceError as e:
        raise _to_http_exception(e) from e


@router.post(
    "/verification/link/{token}",
    response_model=LinkVerificationResponse,
    summary="Verify One-Click Link",
    responses={400: {"description": "Invalid, expired or used link"}},
)
async def verify_link(
    token: str,
    db: AsyncSession = Depends(get_db),
) -> LinkVerificationResponse:
    """Consume the code behind a one-click link sent by SMS."""
    try:
        student_id, type = await service.verify_url_token(db, token)
    except VerificationServiceError as e:
        raise _to_http_exception(e) from e

    return LinkVerificationResponse(success=True, type=type, student_id=student_id)
