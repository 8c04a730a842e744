"""
Verification Service Layer

Issues, delivers and checks one-time verification codes for the SMS and email
channels.

1. Code lifecycle:
   - 6-digit codes drawn uniformly from [100000, 999999]
   - Fixed 10 minute lifetime from issue
   - Every issue inserts a new row; older unexpired codes stay valid
   - Verification consumes a code atomically, at most once

2. Sending:
   - SMS: normalized number, code plus a one-click link carrying a URL token
   - Email: code in a plain-text body
   - Delivery failures surface as a single DeliveryFailedError

3. Checking:
   - Wrong, expired and already-used codes all look the same to the caller
   - A successful check sets the student's mobile/email verified flag
   - Development bypass code, gated like the other development-only features

Security considerations:
- Codes come from the secrets module, URL tokens from 128 bits of randomness
- Codes are never logged outside mock delivery and the bypass notice
"""

import logging
import os
import secrets
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from otp_relay.core.config import settings
from otp_relay.core.delivery import DeliveryGateway
from otp_relay.modules.students import repository as student_repository
from otp_relay.modules.students.models import Student
from otp_relay.modules.verification import repository
from otp_relay.modules.verification.helpers import (
    mask_email,
    mask_mobile,
    normalize_mobile_number,
)
from otp_relay.modules.verification.models import VerificationType
from otp_relay.modules.verification.schemas import (
    SendVerificationResponse,
    VerificationContacts,
    VerificationContactsResponse,
)

logger = logging.getLogger(__name__)

# Constants
CODE_TTL_MINUTES = 10
CODE_MIN = 100000
CODE_MAX = 999999
URL_TOKEN_BYTES = 16  # 32 hex characters
DEV_BYPASS_CODE = "123456"

EMAIL_SUBJECT = "Your verification code"


class VerificationServiceError(Exception):
    """Base exception for verification service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class StudentNotFoundError(VerificationServiceError):
    """Raised when the student does not exist."""

    def __init__(self, student_id: UUID):
        super().__init__(
            message=f"Student {student_id} not found",
            error_code="STUDENT_NOT_FOUND",
            status_code=404,
        )


class ContactMissingError(VerificationServiceError):
    """Raised when the student has no contact on file for the requested channel."""

    def __init__(self, type: VerificationType):
        label = "mobile number" if type == VerificationType.SMS else "email address"
        super().__init__(
            message=f"No {label} on file for this student.",
            error_code="CONTACT_MISSING",
            status_code=400,
        )


class InvalidContactError(VerificationServiceError):
    """Raised when the mobile number on file cannot be normalized."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"The mobile number on file is not valid: {reason}",
            error_code="INVALID_CONTACT",
            status_code=400,
        )


class InvalidCodeError(VerificationServiceError):
    """Raised for a wrong, expired or already-used code or link."""

    def __init__(self):
        super().__init__(
            message="Invalid or expired verification code.",
            error_code="INVALID_CODE",
            status_code=400,
        )


class DeliveryFailedError(VerificationServiceError):
    """Raised when the code could not be delivered."""

    def __init__(self, type: VerificationType):
        channel = "text message" if type == VerificationType.SMS else "email"
        super().__init__(
            message=f"We couldn't send the verification {channel}. Please try again.",
            error_code="DELIVERY_FAILED",
            status_code=502,
        )


def generate_code() -> str:
    """Generate a random 6-digit verification code."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def generate_url_token() -> str:
    """Generate a 32 hex character token for one-click verification links."""
    return secrets.token_hex(URL_TOKEN_BYTES)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _is_dev_bypass_enabled() -> bool:
    """
    Check whether the development bypass code is accepted.

    Requires development mode in settings AND PYTHON_ENV explicitly set to
    "development" in the process environment. An unset PYTHON_ENV disables it,
    even though the settings default to development.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()
    return settings.is_development and not settings.is_production and env_var == "development"


async def issue_code(
    db: AsyncSession,
    student_id: UUID,
    type: VerificationType,
    url_token: str | None = None,
) -> str:
    """
    Create and store a new verification code.

    Args:
        db: Database session
        student_id: Owning student (not checked for existence)
        type: Delivery channel
        url_token: Optional one-click link token stored on the same row

    Returns:
        The generated code
    """
    code = generate_code()
    expires_at = _utcnow() + timedelta(minutes=CODE_TTL_MINUTES)

    await repository.create_code(
        db,
        student_id=student_id,
        code=code,
        type=type,
        expires_at=expires_at,
        url_token=url_token,
    )
    logger.info(f"Issued {type.value} verification code for student {student_id}")

    return code


async def verify_code(
    db: AsyncSession,
    student_id: UUID,
    code: str,
    type: VerificationType,
) -> bool:
    """
    Check and consume a verification code.

    Returns:
        True if an unexpired, unused code matched and was consumed by this call
    """
    if _is_dev_bypass_enabled() and code == DEV_BYPASS_CODE:
        logger.warning(
            f'DEV MODE: Accepting default code "{DEV_BYPASS_CODE}" for {type.value} verification'
        )
        return True

    consumed_id = await repository.consume_code(
        db,
        student_id=student_id,
        code=code,
        type=type,
        now=_utcnow(),
    )
    if consumed_id is None:
        logger.info(f"Rejected {type.value} verification attempt for student {student_id}")
        return False

    logger.info(f"Consumed {type.value} verification code {consumed_id}")
    return True


async def _get_student(db: AsyncSession, student_id: UUID) -> Student:
    student = await student_repository.get_by_id(db, student_id)
    if student is None:
        raise StudentNotFoundError(student_id)
    return student


async def _mark_contact_verified(
    db: AsyncSession,
    student_id: UUID,
    type: VerificationType,
) -> None:
    if type == VerificationType.SMS:
        await student_repository.mark_mobile_verified(db, student_id)
    else:
        await student_repository.mark_email_verified(db, student_id)


def build_sms_message(code: str, url_token: str) -> str:
    link = f"{settings.frontend_url.rstrip('/')}/verify/{url_token}"
    return (
        f"Your verification code is {code}. "
        f"Or tap to verify: {link} "
        f"This code expires in {CODE_TTL_MINUTES} minutes."
    )


def build_email_body(first_name: str, code: str) -> str:
    return (
        f"Hello {first_name},\n\n"
        f"Your verification code is: {code}\n\n"
        f"This code expires in {CODE_TTL_MINUTES} minutes. "
        "If you did not request this code, you can ignore this email."
    )


async def send_verification(
    db: AsyncSession,
    gateway: DeliveryGateway,
    student_id: UUID,
    type: VerificationType,
) -> SendVerificationResponse:
    """
    Issue a new code for the student and deliver it on the requested channel.

    Args:
        db: Database session
        gateway: Delivery gateway
        student_id: Student to verify
        type: Channel to deliver on

    Returns:
        SendVerificationResponse with the masked destination

    Raises:
        StudentNotFoundError: If the student does not exist
        ContactMissingError: If there is no contact on file for the channel
        InvalidContactError: If the mobile number cannot be normalized
        DeliveryFailedError: If the gateway reports failure
    """
    student = await _get_student(db, student_id)

    if type == VerificationType.SMS:
        if not student.mobile:
            raise ContactMissingError(type)
        try:
            mobile = normalize_mobile_number(student.mobile)
        except ValueError as e:
            raise InvalidContactError(str(e)) from e

        url_token = generate_url_token()
        code = await issue_code(db, student_id, type, url_token=url_token)
        delivered = await gateway.send_sms(mobile, build_sms_message(code, url_token))
        destination = mask_mobile(mobile)
    else:
        if not student.email:
            raise ContactMissingError(type)

        code = await issue_code(db, student_id, type)
        delivered = await gateway.send_email(
            student.email,
            EMAIL_SUBJECT,
            build_email_body(student.first_name, code),
        )
        destination = mask_email(student.email)

    if not delivered:
        logger.error(f"Failed to deliver {type.value} verification code to student {student_id}")
        raise DeliveryFailedError(type)

    return SendVerificationResponse(success=True, type=type, destination=destination)


async def check_verification(
    db: AsyncSession,
    student_id: UUID,
    code: str,
    type: VerificationType,
) -> bool:
    """
    Check a code entered by the student and record the verified contact.

    Returns:
        True if the code was accepted
    """
    if not await verify_code(db, student_id, code, type):
        return False

    await _mark_contact_verified(db, student_id, type)
    return True


async def verify_url_token(
    db: AsyncSession,
    url_token: str,
) -> tuple[UUID, VerificationType]:
    """
    Consume a one-click verification link.

    Returns:
        (student_id, type) of the verified contact

    Raises:
        InvalidCodeError: If the token is unknown, expired or already used
    """
    consumed = await repository.consume_url_token(db, url_token=url_token, now=_utcnow())
    if consumed is None:
        raise InvalidCodeError()

    student_id, type = consumed
    await _mark_contact_verified(db, student_id, type)
    logger.info(f"Verified {type.value} for student {student_id} via one-click link")
    return student_id, type


async def get_verification_contacts(
    db: AsyncSession,
    student_id: UUID,
) -> VerificationContactsResponse:
    """
    Get the student's raw contact details and verification flags.

    Raises:
        StudentNotFoundError: If the student does not exist
    """
    student = await _get_student(db, student_id)
    return VerificationContactsResponse(
        contacts=VerificationContacts(mobile=student.mobile, email=student.email),
        mobile_verified=student.mobile_verified,
        email_verified=student.email_verified,
    )
