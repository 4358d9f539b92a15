"""
Normalization helpers shared by the student and analytics services.

- Phone numbers are compared digits-only.
- Yes/No flags accept booleans or "yes"/"no" strings and are stored as "Yes"/"No".
- Timestamps are written in Indian Standard Time with an explicit +05:30
  offset (not UTC), e.g. ``2025-01-15T14:30:00+05:30``.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from exam_verification.logging_config import get_logger, log_with_context

logger = get_logger("students")

IST = timezone(timedelta(hours=5, minutes=30), name="IST")


def normalize_phone(phone: Any) -> str:
    """
    Strip every non-digit character.

    Examples:
        "98765 43210"       → "9876543210"
        "+91 (987) 654-3210" → "919876543210"
    """
    if phone is None:
        return ""
    return re.sub(r"\D", "", str(phone))


def normalize_yes_no(value: Any) -> str:
    """
    ``True`` and the string "yes" (any case, surrounding spaces ignored) are
    "Yes". Everything else is "No", including "true", "y" and 1.
    """
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, str):
        return "Yes" if value.strip().lower() == "yes" else "No"
    return "No"


def now_ist() -> datetime:
    return datetime.now(IST)


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` in IST, to the second, with the +05:30 suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=IST)
    return moment.astimezone(IST).isoformat(timespec="seconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a stored timestamp. Values without an offset are taken as IST.
    Returns None for blank or unparseable values.
    """
    if not value or not str(value).strip():
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        log_with_context(logger, "WARNING", "Unparseable timestamp in sheet: {}".format(value))
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=IST)
    return parsed
