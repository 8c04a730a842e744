"""
Students module - The student record as seen by the verification flow.
"""

from otp_relay.modules.students.models import Student

__all__ = ["Student"]
