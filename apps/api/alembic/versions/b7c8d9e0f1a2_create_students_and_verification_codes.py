"""create students and verification_codes tables

Revision ID: b7c8d9e0f1a2
Revises:
Create Date: 2026-10-18 12:00:00.000000

This migration:
1. Creates the students table with contact details and verification flags
2. Creates the verification_type enum and the verification_codes table

verification_codes.student_id is not a foreign key.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "b7c8d9e0f1a2"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create students and verification_codes tables."""
    op.create_table(
        "students",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("mobile", sa.String(20), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("mobile_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )

    verification_type_enum = postgresql.ENUM(
        "sms", "email", name="verification_type", create_type=False
    )
    verification_type_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "verification_codes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("code", sa.String(6), nullable=False),
        sa.Column("type", verification_type_enum, nullable=False),
        sa.Column("url_token", sa.String(32), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index(
        "ix_verification_codes_student_type", "verification_codes", ["student_id", "type"]
    )
    op.create_index(
        "ix_verification_codes_url_token", "verification_codes", ["url_token"], unique=True
    )
    op.create_index("ix_verification_codes_expires_at", "verification_codes", ["expires_at"])


def downgrade() -> None:
    """Drop verification_codes and students tables."""
    op.drop_index("ix_verification_codes_expires_at", table_name="verification_codes")
    op.drop_index("ix_verification_codes_url_token", table_name="verification_codes")
    op.drop_index("ix_verification_codes_student_type", table_name="verification_codes")
    op.drop_table("verification_codes")
    postgresql.ENUM(name="verification_type").drop(op.get_bind(), checkfirst=True)
    op.drop_table("students")
