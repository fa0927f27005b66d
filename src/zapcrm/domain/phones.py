"""Phone canonicalization - Brazilian 9th-digit aware.

Pure functions, no I/O. Used by identity resolution (every inbound contact)
and by the duplicate scanner / merge batch job.

Canonical form: ``whatsapp:+55{area}{subscriber}`` where Brazilian mobile
subscribers always carry 9 digits. Landline and international numbers keep
their digits; only the ``whatsapp:`` prefix and leading ``+`` are normalized.

Malformed input is never rejected: it passes through with prefix/``+``
normalization only, so no inbound contact is dropped because of formatting.
"""

from __future__ import annotations

import re

TRANSPORT_PREFIX = "whatsapp:"
DOMESTIC_COUNTRY_CODE = "55"

# Mobile subscriber numbers start with one of these digits
MOBILE_FIRST_DIGITS = frozenset("6789")

_DOMESTIC_PREFIX = "+" + DOMESTIC_COUNTRY_CODE
_DIGITS = re.compile(r"[0-9]+")
_NON_PHONE_CHARS = re.compile(r"[^0-9+]")


def _strip_prefix(phone: str) -> str:
    if phone.startswith(TRANSPORT_PREFIX):
        return phone[len(TRANSPORT_PREFIX):]
    return phone


def _split_domestic(phone: str) -> tuple[str, str] | None:
    """Split a ``+55...`` number into (area_code, subscriber).

    Returns None when the number is not domestic, too short, or the area
    code is outside 11-99.
    """
    if not phone.startswith(_DOMESTIC_PREFIX):
        return None

    national = phone[len(_DOMESTIC_PREFIX):]
    if len(national) < 10:
        return None

    area_code, subscriber = national[:2], national[2:]
    if not _DIGITS.fullmatch(area_code) or not 11 <= int(area_code) <= 99:
        return None

    return area_code, subscriber


def canonicalize(raw: str) -> str:
    """Normalize a raw phone string to its canonical form.

    Args:
        raw: Phone as received from the transport, with or without the
             ``whatsapp:`` prefix, ``+`` or country code.

    Returns:
        Canonical phone (``whatsapp:+...``). Empty input is returned as-is.

    Examples:
        >>> canonicalize("+554899330297")
        'whatsapp:+5548999330297'
        >>> canonicalize("whatsapp:+15551234567")
        'whatsapp:+15551234567'
    """
    if not raw:
        return raw

    phone = _strip_prefix(raw.strip())

    if not phone.startswith("+"):
        if _DIGITS.fullmatch(phone):
            phone = _DOMESTIC_PREFIX + phone
        else:
            phone = "+" + phone

    parts = _split_domestic(phone)
    if parts is not None:
        area_code, subscriber = parts
        if subscriber[:1] in MOBILE_FIRST_DIGITS:
            if len(subscriber) == 8:
                subscriber = "9" + subscriber
            elif len(subscriber) > 9:
                subscriber = subscriber[:9]
        phone = f"{_DOMESTIC_PREFIX}{area_code}{subscriber}"

    return TRANSPORT_PREFIX + phone


def phone_variations(phone: str) -> list[str]:
    """Return the phone plus its alternate Brazilian mobile digit-count form.

    The input itself always comes first. Only Brazilian mobile numbers get a
    second entry:

    - 9-digit subscriber starting with 9 -> 8-digit form (leading 9 removed)
    - 8-digit subscriber -> 9-digit form (9 prepended)

    Landline, international and malformed numbers yield a single entry.

    Args:
        phone: Phone string, canonical or not.

    Returns:
        Duplicate-free list of equivalent strings, in generation order.
    """
    variations = [phone]

    digits = _NON_PHONE_CHARS.sub("", _strip_prefix(phone))
    parts = _split_domestic(digits)
    if parts is not None:
        area_code, subscriber = parts
        if len(subscriber) == 9 and subscriber.startswith("9"):
            variations.append(f"{TRANSPORT_PREFIX}{_DOMESTIC_PREFIX}{area_code}{subscriber[1:]}")
        elif len(subscriber) == 8 and subscriber[0] in MOBILE_FIRST_DIGITS:
            variations.append(f"{TRANSPORT_PREFIX}{_DOMESTIC_PREFIX}{area_code}9{subscriber}")

    return list(dict.fromkeys(variations))


def are_equivalent(phone_a: str, phone_b: str) -> bool:
    """True if the two phones share at least one variation."""
    return not set(phone_variations(phone_a)).isdisjoint(phone_variations(phone_b))


def format_phone_for_display(phone: str) -> str:
    """Drop the transport prefix for display (``+5548999330297``)."""
    return _strip_prefix(phone)
