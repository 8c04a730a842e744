"""
Seed Demo Student

Creates a student with a mobile number and email so the verification flow can
be exercised locally (with mock delivery the codes appear in the API logs).

Usage:
    cd apps/api
    python scripts/seed_student.py --mobile "(555) 123-4567" --email student@example.edu
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from otp_relay.core.config import settings
from otp_relay.modules.students.models import Student


async def seed_student(first_name: str, last_name: str, mobile: str, email: str) -> None:
    """Create the demo student if no student has this email yet."""
    engine = create_async_engine(settings.database_url, echo=False)
    async_session = async_sessionmaker(engine, expire_on_commit=False)

    async with async_session() as db:
        result = await db.execute(select(Student).where(Student.email == email))
        existing = result.scalar_one_or_none()

        if existing:
            print(f"Student already exists: {email}")
            print(f"  ID: {existing.id}")
            return

        student = Student(
            first_name=first_name,
            last_name=last_name,
            mobile=mobile,
            email=email,
        )
        db.add(student)
        await db.commit()
        await db.refresh(student)

        print("Student created successfully!")
        print(f"  Name: {first_name} {last_name}")
        print(f"  ID: {student.id}")
        print(f"  Send a code: POST /api/student/{student.id}/verify/send")

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--first-name", default="Demo")
    parser.add_argument("--last-name", default="Student")
    parser.add_argument("--mobile", default="5551234567")
    parser.add_argument("--email", default="demo.student@example.edu")
    args = parser.parse_args()

    asyncio.run(seed_student(args.first_name, args.last_name, args.mobile, args.email))
