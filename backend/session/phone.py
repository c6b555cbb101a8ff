"""
Destination normalization.

"+880 1712-345678" -> "8801712345678" -> "8801712345678@c.us"
"""

from __future__ import annotations

import re

from constants import (
    CHAT_ID_SUFFIX,
    DEFAULT_COUNTRY_PREFIX,
    NATIONAL_NUMBER_LEN,
    TRUNK_PREFIX,
)

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_destination(raw: str, *, country_prefix: str = DEFAULT_COUNTRY_PREFIX) -> str:
    """
    Rewrite a free-form phone number into the all-digit international form.

    Rules, applied after stripping every non-digit:
    - a leading trunk "0" is replaced by the country prefix
    - an 11-digit national number lacking the prefix gets it prepended
    - anything else is assumed to already be international

    Returns "" when the input holds no digits at all; callers treat that as
    a validation failure.
    """
    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        return ""

    if digits.startswith(TRUNK_PREFIX):
        return country_prefix + digits[len(TRUNK_PREFIX):]

    if len(digits) == NATIONAL_NUMBER_LEN and not digits.startswith(country_prefix):
        return country_prefix + digits

    return digits


def to_chat_id(normalized: str) -> str:
    return normalized + CHAT_ID_SUFFIX
