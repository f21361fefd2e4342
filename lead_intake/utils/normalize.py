from __future__ import annotations

import re
from typing import Optional

DEFAULT_COUNTRY_CODE = "91"

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: Optional[str]) -> str:
    if not value:
        return ""
    return _NON_DIGITS.sub("", str(value))


def normalize_mobile(mobile: Optional[str], country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Reduce a phone number to its 10-digit national form.

    ``+91 98765 43210``, ``919876543210`` and ``09876543210`` all normalize to
    ``9876543210``. Anything that does not carry a recognised prefix is
    returned as plain digits.
    """
    cleaned = digits_only(mobile)
    if len(cleaned) == 10 + len(country_code) and cleaned.startswith(country_code):
        return cleaned[len(country_code):]
    if len(cleaned) == 11 and cleaned.startswith("0"):
        return cleaned[1:]
    return cleaned


def normalize_email(email: Optional[str]) -> str:
    if not email:
        return ""
    return str(email).strip().lower()
