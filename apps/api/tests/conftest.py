"""
Shared fixtures: a SQLite-backed record store and delivery settings.

SQLite transactions start with BEGIN IMMEDIATE so concurrent writers queue on
the database lock instead of deadlocking, which keeps the atomic-consumption
tests deterministic.
"""

from unittest.mock import patch
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from otp_relay.core.config import Settings
from otp_relay.core.database import Base
from otp_relay.modules.students.models import Student
from otp_relay.modules.verification.models import VerificationCode  # noqa: F401


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a file-backed SQLite engine with the schema in place."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'verification.db'}",
        connect_args={"timeout": 15},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_transactions(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def student(session_maker):
    """A student with both a mobile number and an email on file."""
    async with session_maker() as db:
        record = Student(
            id=uuid4(),
            first_name="John",
            last_name="Doe",
            mobile="(555) 123-4567",
            email="john.doe@parisjc.edu",
        )
        db.add(record)
        await db.commit()
    return record


@pytest.fixture
def production_mode():
    """Disable the development bypass code."""
    with patch(
        "otp_relay.modules.verification.service._is_dev_bypass_enabled",
        return_value=False,
    ):
        yield


@pytest.fixture
def mock_settings():
    """Settings with no SMS or email credentials (mock delivery)."""
    return Settings(
        _env_file=None,
        sms_jump_server=None,
        sms_ssh_key=None,
        sms_tenant_app_key=None,
        resend_api_key=None,
    )


@pytest.fixture
def live_settings():
    """Settings with SMS and email credentials present."""
    return Settings(
        _env_file=None,
        sms_api_host="sms-gateway.internal",
        sms_api_port=9191,
        sms_api_path="/sms",
        sms_tenant_id="tenant-1",
        sms_tenant_app_key="app-key",
        sms_provider_id="4",
        sms_jump_server="jump.example.com",
        sms_ssh_user="ec2-user",
        sms_ssh_key="Zm9v",
        sms_ssh_port=22,
        resend_api_key="re_test_key",
        email_from="Verify <verify@example.com>",
    )
