"""Contact detail validation: email syntax and Nigerian mobile numbers."""

import re

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# 234 + network prefix (70x, 80x, 81x, 90x, 91x) + 8 digits
NIGERIAN_MOBILE_PATTERN = re.compile(r"^234[789][01]\d{8}$")

COUNTRY_CODE = "234"


def is_valid_email(value: str | None) -> bool:
    """Check an address against the notification email syntax rule."""
    if not value:
        return False
    return bool(EMAIL_PATTERN.match(value.strip()))


def normalize_phone(raw: str | None, e164: bool = False) -> str | None:
    """
    Convert a user-entered phone number to canonical Nigerian mobile form.

    Returns digits-only ``234XXXXXXXXXX`` or ``+234XXXXXXXXXX`` when ``e164``
    is set (the form the SMS gateway expects). Returns None when the cleaned
    number is not a valid Nigerian mobile number.
    """
    if not raw:
        return None

    digits = re.sub(r"\D", "", raw)
    if not digits:
        return None

    if digits.startswith("0"):
        digits = COUNTRY_CODE + digits[1:]
    elif not digits.startswith(COUNTRY_CODE):
        digits = COUNTRY_CODE + digits

    if not NIGERIAN_MOBILE_PATTERN.match(digits):
        return None

    return f"+{digits}" if e164 else digits
