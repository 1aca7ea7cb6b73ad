"""Phone number helpers shared by the engine and the conversation layer.

Parsing and validation go through ``phonenumbers``; numbers written
without a country code are read in ``settings.phone_region``.
"""

from __future__ import annotations

import re

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

from ridebooking.config import settings

# Numbers in the home region are often written in calendar text with the
# trunk prefix "0" instead of the country code.
LOCAL_PREFIX = "0"


def redact_pii(value: str) -> str:
    """Mask PII for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


def _e164(number: phonenumbers.PhoneNumber) -> str:
    return phonenumbers.format_number(number, PhoneNumberFormat.E164)


def _parse_valid(candidate: str, region: str | None) -> phonenumbers.PhoneNumber | None:
    try:
        number = phonenumbers.parse(candidate, region)
    except NumberParseException:
        return None
    if phonenumbers.is_possible_number(number) and phonenumbers.is_valid_number(number):
        return number
    return None


def normalize_phone(raw: str) -> str:
    """Return the E.164 form of ``raw`` when it is a real number.

    ``03001234567`` becomes ``+923001234567``; bare international digits
    and ``00``-prefixed numbers gain a leading ``+``. Anything that is not
    a valid number comes back stripped of separators, so ``is_valid_phone``
    rejects it.
    """
    cleaned = re.sub(r"[^\d+]", "", (raw or "").replace("whatsapp:", ""))
    if not cleaned:
        return ""
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]

    candidates = [cleaned] if cleaned.startswith("+") else [cleaned, "+" + cleaned]
    for candidate in candidates:
        number = _parse_valid(candidate, settings.phone_region)
        if number is not None:
            return _e164(number)
    return cleaned


def is_valid_phone(value: str) -> bool:
    """``value`` is a valid number already in E.164 form."""
    if not value or not value.startswith("+"):
        return False
    number = _parse_valid(value, None)
    return number is not None and _e164(number) == value


def phone_variants(phone: str) -> list[str]:
    """Forms of ``phone`` that may appear in free-text calendar entries.

    The raw identifier, the locally dialed form when the number belongs to
    the home region, and the identifier without its first character.
    """
    if not phone:
        return []
    variants = [phone]
    number = _parse_valid(phone, None) if phone.startswith("+") else None
    home_code = phonenumbers.country_code_for_region(settings.phone_region)
    if number is not None and number.country_code == home_code:
        variants.append(LOCAL_PREFIX + str(number.national_number))
    if len(phone) > 1:
        variants.append(phone[1:])
    return list(dict.fromkeys(variants))


def find_phone(text: str) -> str | None:
    """The first valid phone number in a free-text message, in E.164."""
    for match in phonenumbers.PhoneNumberMatcher(text or "", settings.phone_region):
        return _e164(match.number)
    return None
