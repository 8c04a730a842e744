"""
Student Repository

Database operations on student records used by the verification flow.
"""

import logging
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from otp_relay.modules.students.models import Student

logger = logging.getLogger(__name__)


async def get_by_id(db: AsyncSession, student_id: UUID) -> Student | None:
    """Get student by ID."""
    return await db.get(Student, student_id)


async def mark_mobile_verified(db: AsyncSession, student_id: UUID) -> None:
    """Set the mobile_verified flag."""
    await db.execute(
        update(Student).where(Student.id == student_id).values(mobile_verified=True)
    )
    await db.commit()
    logger.info(f"Marked mobile verified for student {student_id}")


async def mark_email_verified(db: AsyncSession, student_id: UUID) -> None:
    """Set the email_verified flag."""
    await db.execute(update(Student).where(Student.id == student_id).values(email_verified=True))
    await db.commit()
    logger.info(f"Marked email verified for student {student_id}")
