"""
Verification Code Repository

Database operations for verification codes.

Consumption is a single conditional UPDATE (match-and-flip): the row is only
flipped to verified if it is still unverified and unexpired at write time.
Two concurrent consumers of the same code therefore get exactly one success,
with no separate read-then-write window.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import VerificationCode, VerificationType


async def create_code(
    db: AsyncSession,
    *,
    student_id: UUID,
    code: str,
    type: VerificationType,
    expires_at: datetime,
    url_token: str | None = None,
) -> VerificationCode:
    """Insert a new, unverified code. Never updates an existing row."""
    verification_code = VerificationCode(
        student_id=student_id,
        code=code,
        type=type,
        expires_at=expires_at,
        verified=False,
        url_token=url_token,
    )

    db.add(verification_code)
    await db.commit()
    await db.refresh(verification_code)

    return verification_code


async def consume_code(
    db: AsyncSession,
    *,
    student_id: UUID,
    code: str,
    type: VerificationType,
    now: datetime,
) -> UUID | None:
    """
    Atomically mark one matching code as verified.

    A row matches when it belongs to the student, carries the code and type,
    is unverified, and expires after `now`. Any matching row is accepted, not
    only the most recent one.

    Returns:
        The consumed row's id, or None if nothing matched
    """
    candidate = (
        select(VerificationCode.id)
        .where(
            VerificationCode.student_id == student_id,
            VerificationCode.code == code,
            VerificationCode.type == type,
            VerificationCode.verified == False,  # noqa: E712
            VerificationCode.expires_at > now,
        )
        .limit(1)
        .scalar_subquery()
    )

    result = await db.execute(
        update(VerificationCode)
        .where(
            VerificationCode.id == candidate,
            # Re-checked at write time so a concurrent consumer cannot win twice
            VerificationCode.verified == False,  # noqa: E712
            VerificationCode.expires_at > now,
        )
        .values(verified=True)
        .returning(VerificationCode.id)
        .execution_options(synchronize_session=False)
    )
    consumed_id = result.scalar_one_or_none()
    await db.commit()

    return consumed_id


async def consume_url_token(
    db: AsyncSession,
    *,
    url_token: str,
    now: datetime,
) -> tuple[UUID, VerificationType] | None:
    """
    Atomically mark the code carrying a one-click URL token as verified.

    Returns:
        (student_id, type) of the consumed row, or None if the token is
        unknown, expired or already used
    """
    result = await db.execute(
        update(VerificationCode)
        .where(
            VerificationCode.url_token == url_token,
            VerificationCode.verified == False,  # noqa: E712
            VerificationCode.expires_at > now,
        )
        .values(verified=True)
        .returning(VerificationCode.student_id, VerificationCode.type)
        .execution_options(synchronize_session=False)
    )
    row = result.one_or_none()
    await db.commit()

    if row is None:
        return None
    return row.student_id, row.type


async def get_by_id(db: AsyncSession, id: UUID) -> VerificationCode | None:
    """Get a code row by ID."""
    return await db.get(VerificationCode, id, populate_existing=True)


async def delete_expired_before(db: AsyncSession, cutoff: datetime) -> int:
    """
    Delete code rows that expired before `cutoff`.

    Returns:
        Number of rows deleted
    """
    result = await db.execute(
        delete(VerificationCode)
        .where(VerificationCode.expires_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0
