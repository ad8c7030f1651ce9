"""
Field Normalization

Canonical forms of email, phone and name values used for duplicate
comparison. All functions are total: ``None`` becomes an empty string.
"""

import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D")
_WHITESPACE = re.compile(r"\s+")


def normalize_email(email: Optional[str]) -> str:
    """Lowercase and trim an email address."""
    if not email:
        return ""
    return email.strip().lower()


def normalize_phone(phone: Optional[str]) -> str:
    """Strip every non-digit character from a phone number."""
    if not phone:
        return ""
    return _NON_DIGITS.sub("", phone)


def normalize_name(first: Optional[str], last: Optional[str]) -> str:
    """Build a comparable full name: ``"first last"``, lowercased, single-spaced."""
    full_name = f"{first or ''} {last or ''}"
    return _WHITESPACE.sub(" ", full_name.lower().strip())
