"""
Verification Module

Issues, delivers and checks one-time verification codes:
1. Codes are 6 digits, valid for 10 minutes, and single-use
2. SMS codes travel to the internal gateway through the SSH tunnel and carry
   a one-click verification link
3. Email codes are sent through Resend
4. Expired codes are purged hourly by a background job

API Endpoints:
- POST /student/{student_id}/verify/send - Issue and deliver a code
- POST /student/{student_id}/verify - Check a code
- GET /student/{student_id}/verification-contacts - Contact details and flags
- POST /verification/link/{token} - One-click verification
"""

from .jobs import register_verification_jobs
from .router import router

__all__ = ["router", "register_verification_jobs"]
