"""
Verification Background Jobs

Scheduled cleanup of verification codes that are long past their expiry.

Rows are kept for a day after they expire so recent attempts stay visible for
support; only then are they deleted. Unexpired rows are never touched, so the
job cannot change the outcome of a verification attempt.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from otp_relay.core.database import async_session_maker
from otp_relay.core.scheduler import register_job
from otp_relay.modules.verification import repository

logger = logging.getLogger(__name__)

EXPIRED_CODE_RETENTION_HOURS = 24

JOB_ID_PURGE_EXPIRED_CODES = "verification_purge_expired_codes"


async def purge_expired_codes() -> dict[str, Any]:
    """
    Delete verification codes that expired more than the retention window ago.

    Returns:
        Dict with the cutoff used and the number of rows deleted
    """
    cutoff = datetime.now(UTC) - timedelta(hours=EXPIRED_CODE_RETENTION_HOURS)

    async with async_session_maker() as db:
        deleted = await repository.delete_expired_before(db, cutoff)

    logger.info(f"Purged {deleted} verification codes that expired before {cutoff.isoformat()}")
    return {"cutoff": cutoff.isoformat(), "deleted": deleted}


def register_verification_jobs() -> None:
    """Register verification background jobs. Call before the scheduler starts."""
    register_job(
        job_id=JOB_ID_PURGE_EXPIRED_CODES,
        func=purge_expired_codes,
        trigger=IntervalTrigger(hours=1),
    )
    logger.info(f"Registered job: {JOB_ID_PURGE_EXPIRED_CODES} (interval: 1 hour)")
