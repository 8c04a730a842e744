"""
Record store tests for verification codes, run against SQLite.

These tests cover:
- Single-use consumption
- Expiry
- Concurrent consumption of the same code
- Several outstanding codes per student
- One-click URL tokens
- Purging long-expired rows
"""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from otp_relay.modules.students import repository as student_repository
from otp_relay.modules.verification import jobs, repository, service
from otp_relay.modules.verification.models import VerificationType


def _now() -> datetime:
    return datetime.now(UTC)


async def _issue(session_maker, student_id, type=VerificationType.SMS, url_token=None) -> str:
    async with session_maker() as db:
        return await service.issue_code(db, student_id, type, url_token=url_token)


async def _verify(session_maker, student_id, code, type=VerificationType.SMS) -> bool:
    async with session_maker() as db:
        return await service.verify_code(db, student_id, code, type)


class TestConsumeCode:
    """Tests for code issue and consumption."""

    @pytest.mark.asyncio
    async def test_code_verifies_once(self, session_maker, production_mode):
        student_id = uuid4()
        code = await _issue(session_maker, student_id)

        assert await _verify(session_maker, student_id, code) is True
        assert await _verify(session_maker, student_id, code) is False

    @pytest.mark.asyncio
    async def test_wrong_code(self, session_maker, production_mode):
        student_id = uuid4()
        code = await _issue(session_maker, student_id)
        wrong = "100000" if code != "100000" else "100001"

        assert await _verify(session_maker, student_id, wrong) is False
        assert await _verify(session_maker, student_id, code) is True

    @pytest.mark.asyncio
    async def test_wrong_type(self, session_maker, production_mode):
        student_id = uuid4()
        code = await _issue(session_maker, student_id, VerificationType.EMAIL)

        assert await _verify(session_maker, student_id, code, VerificationType.SMS) is False
        assert await _verify(session_maker, student_id, code, VerificationType.EMAIL) is True

    @pytest.mark.asyncio
    async def test_other_student(self, session_maker, production_mode):
        code = await _issue(session_maker, uuid4())
        assert await _verify(session_maker, uuid4(), code) is False

    @pytest.mark.asyncio
    async def test_expired_code_rejected_and_left_unverified(self, session_maker, production_mode):
        student_id = uuid4()
        async with session_maker() as db:
            row = await repository.create_code(
                db,
                student_id=student_id,
                code="482913",
                type=VerificationType.SMS,
                expires_at=_now() - timedelta(seconds=1),
            )

        assert await _verify(session_maker, student_id, "482913") is False

        async with session_maker() as db:
            stored = await repository.get_by_id(db, row.id)
        assert stored is not None
        assert stored.verified is False

    @pytest.mark.asyncio
    async def test_consumed_row_is_marked_verified(self, session_maker, production_mode):
        student_id = uuid4()
        async with session_maker() as db:
            row = await repository.create_code(
                db,
                student_id=student_id,
                code="482913",
                type=VerificationType.SMS,
                expires_at=_now() + timedelta(minutes=10),
            )

        assert await _verify(session_maker, student_id, "482913") is True

        async with session_maker() as db:
            stored = await repository.get_by_id(db, row.id)
        assert stored.verified is True

    @pytest.mark.asyncio
    async def test_concurrent_verification_succeeds_once(self, session_maker, production_mode):
        """
        Two simultaneous checks of the same code: exactly one wins.

        SQLite takes the write lock at BEGIN IMMEDIATE, so the two transactions
        run one after the other. This shows the second consumer sees the first
        one's commit; it does not race two UPDATEs against each other. The
        write-time re-check itself is asserted in
        test_update_rechecks_unverified_and_unexpired.
        """
        student_id = uuid4()
        code = await _issue(session_maker, student_id)

        results = await asyncio.gather(
            _verify(session_maker, student_id, code),
            _verify(session_maker, student_id, code),
        )

        assert sorted(results) == [False, True]

    @pytest.mark.asyncio
    async def test_update_rechecks_unverified_and_unexpired(self):
        """The UPDATE filters on verified and expiry itself, not only inside the row lookup."""
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        db = AsyncMock()
        db.execute.return_value = result
        now = _now()

        consumed = await repository.consume_code(
            db,
            student_id=uuid4(),
            code="482913",
            type=VerificationType.SMS,
            now=now,
        )

        assert consumed is None
        statement = db.execute.await_args.args[0]
        filtered_columns = {
            clause.left.name
            for clause in statement.whereclause.clauses
            if hasattr(clause, "left")
        }
        assert filtered_columns == {"id", "verified", "expires_at"}
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_older_code_stays_valid_after_reissue(self, session_maker, production_mode):
        """Issuing a new code does not invalidate earlier unexpired codes."""
        student_id = uuid4()
        first = await _issue(session_maker, student_id)
        second = await _issue(session_maker, student_id)

        assert await _verify(session_maker, student_id, first) is True
        if second != first:
            assert await _verify(session_maker, student_id, second) is True

    @pytest.mark.asyncio
    async def test_dev_bypass_without_issued_code(self, session_maker):
        with patch.object(service, "_is_dev_bypass_enabled", return_value=True):
            assert await _verify(session_maker, uuid4(), service.DEV_BYPASS_CODE) is True


class TestConsumeUrlToken:
    """Tests for one-click link tokens."""

    @pytest.mark.asyncio
    async def test_token_consumes_its_code(self, session_maker, production_mode):
        student_id = uuid4()
        token = service.generate_url_token()
        code = await _issue(session_maker, student_id, url_token=token)

        async with session_maker() as db:
            consumed = await repository.consume_url_token(db, url_token=token, now=_now())
        assert consumed == (student_id, VerificationType.SMS)

        # The link and the typed code share one row
        assert await _verify(session_maker, student_id, code) is False

        async with session_maker() as db:
            assert await repository.consume_url_token(db, url_token=token, now=_now()) is None

    @pytest.mark.asyncio
    async def test_unknown_token(self, session_maker):
        async with session_maker() as db:
            assert await repository.consume_url_token(db, url_token="0" * 32, now=_now()) is None

    @pytest.mark.asyncio
    async def test_expired_token(self, session_maker):
        token = service.generate_url_token()
        async with session_maker() as db:
            await repository.create_code(
                db,
                student_id=uuid4(),
                code="482913",
                type=VerificationType.SMS,
                expires_at=_now() - timedelta(minutes=1),
                url_token=token,
            )

        async with session_maker() as db:
            assert await repository.consume_url_token(db, url_token=token, now=_now()) is None

    @pytest.mark.asyncio
    async def test_link_marks_student_mobile_verified(self, session_maker, student):
        token = service.generate_url_token()
        await _issue(session_maker, student.id, url_token=token)

        async with session_maker() as db:
            student_id, type = await service.verify_url_token(db, token)

        assert student_id == student.id
        assert type == VerificationType.SMS

        async with session_maker() as db:
            record = await student_repository.get_by_id(db, student.id)
        assert record.mobile_verified is True
        assert record.email_verified is False


class TestPurgeExpiredCodes:
    """Tests for the purge job."""

    @pytest.mark.asyncio
    async def test_deletes_only_rows_past_retention(self, session_maker):
        now = _now()
        async with session_maker() as db:
            old = await repository.create_code(
                db,
                student_id=uuid4(),
                code="111111",
                type=VerificationType.SMS,
                expires_at=now - timedelta(hours=25),
            )
            recent = await repository.create_code(
                db,
                student_id=uuid4(),
                code="222222",
                type=VerificationType.SMS,
                expires_at=now - timedelta(hours=1),
            )
            live = await repository.create_code(
                db,
                student_id=uuid4(),
                code="333333",
                type=VerificationType.EMAIL,
                expires_at=now + timedelta(minutes=10),
            )

        with patch.object(jobs, "async_session_maker", session_maker):
            result = await jobs.purge_expired_codes()

        assert result["deleted"] == 1

        async with session_maker() as db:
            assert await repository.get_by_id(db, old.id) is None
            assert await repository.get_by_id(db, recent.id) is not None
            assert await repository.get_by_id(db, live.id) is not None
