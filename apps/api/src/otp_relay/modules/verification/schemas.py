"""
Verification Schemas

Pydantic schemas for request validation and response serialization.
Response fields use camelCase aliases to match the frontend contract.
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from otp_relay.modules.verification.models import VerificationType


class SendVerificationRequest(BaseModel):
    """Request body for POST /student/{student_id}/verify/send."""

    type: VerificationType


class SendVerificationResponse(BaseModel):
    """Response after a code was sent."""

    success: bool
    type: VerificationType
    destination: str = Field(..., description="Masked mobile number or email address")


class CheckVerificationRequest(BaseModel):
    """Request body for POST /student/{student_id}/verify."""

    code: str = Field(..., min_length=1, max_length=16)
    type: VerificationType


class CheckVerificationResponse(BaseModel):
    success: bool
    type: VerificationType


class VerificationContacts(BaseModel):
    mobile: str | None = None
    email: str | None = None


class VerificationContactsResponse(BaseModel):
    """Raw contact details and verification flags for a student."""

    model_config = ConfigDict(populate_by_name=True)

    contacts: VerificationContacts
    mobile_verified: bool = Field(..., alias="mobileVerified")
    email_verified: bool = Field(..., alias="emailVerified")


class LinkVerificationResponse(BaseModel):
    """Response after a one-click link was consumed."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    type: VerificationType
    student_id: UUID = Field(..., alias="studentId")
