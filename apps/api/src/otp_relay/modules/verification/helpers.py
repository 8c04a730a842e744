"""
Verification Helpers

Pure functions for contact details: privacy-preserving display masks and
mobile number normalization. The masks are total and never raise.
"""

import re

_NON_DIGITS = re.compile(r"\D")

MALFORMED_EMAIL_MASK = "***@***.***"


def mask_mobile(mobile: str | None) -> str:
    """
    Mask a mobile number, showing only its trailing digits.

    Example: "+12345678901" -> "***-***-8901"

    Returns "***" for values shorter than three characters.
    """
    if not mobile or len(mobile) < 3:
        return "***"
    return f"***-***-{mobile[-4:]}"


def mask_email(email: str | None) -> str:
    """
    Mask an email address, showing the first and last character of the local part.

    Examples:
        "john.doe@parisjc.edu" -> "j***e@parisjc.edu"
        "a@x.com" -> "a@x.com"
    """
    if not email or "@" not in email:
        return MALFORMED_EMAIL_MASK

    local_part, domain = email.split("@")[:2]
    if not local_part:
        return f"***@{domain}"
    if len(local_part) == 1:
        return f"{local_part}@{domain}"

    return f"{local_part[0]}***{local_part[-1]}@{domain}"


def normalize_mobile_number(value: str) -> str:
    """
    Normalize a mobile number to +<digits>.

    - 10 digits are treated as US/Canada and get a +1 prefix
    - 11 or more digits are prefixed with + unchanged

    Raises:
        ValueError: If the value is empty, has no digits, or has fewer than 10 digits
    """
    if not value:
        raise ValueError("Mobile number cannot be empty")

    digits = _NON_DIGITS.sub("", value)
    if not digits:
        raise ValueError("Mobile number must contain digits")
    if len(digits) < 10:
        raise ValueError("Mobile number too short")

    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"
