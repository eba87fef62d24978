import datetime
import re
import secrets
import string

from django.utils import timezone

REF_ALPHABET = string.digits + string.ascii_uppercase


def gen_booking_ref() -> str:
    # e.g., PZ-2025-7K3Q
    code = "".join(secrets.choice(REF_ALPHABET) for _ in range(4))
    return f"PZ-{timezone.localdate().year}-{code}"


def normalize_phone(phone: str | None) -> tuple[str, str]:
    """Split a free-form phone number into ``(country_code, number)``.

    Indian numbers are the common case: a bare 10-digit number, a 12-digit
    number with the 91 prefix and an 11-digit number with a trunk 0 all map
    to country code 91. Anything else is read as a 2-digit country code
    followed by the subscriber number.
    """
    cleaned = re.sub(r"\D", "", phone or "")
    if len(cleaned) == 10:
        return "91", cleaned
    if len(cleaned) == 12 and cleaned.startswith("91"):
        return "91", cleaned[2:]
    if len(cleaned) == 11 and cleaned.startswith("0"):
        return "91", cleaned[1:]
    return (cleaned[:2] or "91"), (cleaned[2:] or cleaned)


def format_time(value) -> str:
    """24-hour ``HH:MM`` (or a ``datetime.time``) -> ``h:MM AM/PM``."""
    if isinstance(value, datetime.time):
        value = value.strftime("%H:%M")
    hours, _, minutes = str(value).partition(":")
    hour = int(hours)
    minutes = (minutes[:2] or "0").zfill(2)
    ampm = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minutes} {ampm}"


def format_date(value, long=False) -> str:
    """``2025-03-07`` -> ``07 Mar 2025`` (``07 March 2025`` with ``long``)."""
    if isinstance(value, str):
        value = datetime.date.fromisoformat(value)
    return value.strftime("%d %B %Y" if long else "%d %b %Y")


def paise_to_rupees(paise: int):
    # Whole rupees stay ints so JSON shows 599, not 599.0
    if paise % 100 == 0:
        return paise // 100
    return paise / 100
