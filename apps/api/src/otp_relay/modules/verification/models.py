"""
Verification Models

One row per issued verification code. Codes are single-use and expire ten
minutes after issue. Several codes for the same student and channel may be
outstanding at once; each stays usable until its own expiry.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from otp_relay.core.database import Base


class VerificationType(str, enum.Enum):
    """Channel a code was delivered through."""

    SMS = "sms"
    EMAIL = "email"


class VerificationCode(Base):
    """
    An issued one-time verification code.

    student_id is not a foreign key: the code store does not check that the
    student exists.
    """

    __tablename__ = "verification_codes"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    student_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    code: Mapped[str] = mapped_column(String(6), nullable=False)
    type: Mapped[VerificationType] = mapped_column(
        Enum(
            VerificationType,
            name="verification_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )

    # One-click link token (SMS only)
    url_token: Mapped[str | None] = mapped_column(String(32), nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_verification_codes_student_type", "student_id", "type"),
        Index("ix_verification_codes_url_token", "url_token", unique=True),
        Index("ix_verification_codes_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<VerificationCode(student_id={self.student_id}, type={self.type.value}, "
            f"expires_at={self.expires_at}, verified={self.verified})>"
        )
