"""
Phone Number Normalization Utilities

WhatsApp identifies contacts by their E.164 number without the leading "+"
(the `wa_id`, e.g. "919876543210"). Numbers typed by operators on the manual
send path are normalized to the same shape with Google's libphonenumber
(via the phonenumbers package) so they match webhook-originated records.
"""
import re
import logging
from dataclasses import dataclass
from typing import Optional

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

from wacrm.shared.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class PhoneValidationResult:
    """Result of phone number validation."""
    is_valid: bool
    normalized: str  # wa_id shape, E.164 without + (e.g., "919876543210")
    e164: str        # Full E.164 (e.g., "+919876543210")
    country: str     # ISO region (e.g., "IN")
    error: Optional[str] = None


def validate_phone(phone: str, default_country: Optional[str] = None) -> PhoneValidationResult:
    """
    Validate and parse a phone number.

    Numbers starting with "+" or "00" are parsed as international; anything
    else is parsed against `default_country` (DEFAULT_PHONE_REGION if omitted).
    """
    if not phone or not phone.strip():
        return PhoneValidationResult(False, "", "", "", error="Phone number is empty")

    phone = phone.strip()
    region = None if phone.startswith(("+", "00")) else (default_country or settings.DEFAULT_PHONE_REGION)
    if phone.startswith("00"):
        phone = "+" + phone[2:]

    try:
        parsed = phonenumbers.parse(phone, region)
    except NumberParseException as e:
        return PhoneValidationResult(False, "", "", "", error=f"Invalid phone number: {e}")

    if not phonenumbers.is_valid_number(parsed):
        return PhoneValidationResult(
            False, "", "", "",
            error="Phone number has invalid length" if not phonenumbers.is_possible_number(parsed)
            else "Phone number format is invalid for the region"
        )

    e164 = phonenumbers.format_number(parsed, PhoneNumberFormat.E164)
    return PhoneValidationResult(
        is_valid=True,
        normalized=e164.lstrip("+"),
        e164=e164,
        country=phonenumbers.region_code_for_number(parsed) or ""
    )


def normalize_phone_number(phone: str, default_country: Optional[str] = None) -> str:
    """
    Normalize a phone number to the wa_id shape (E.164 without +).

    Falls back to a digits-only version for numbers libphonenumber rejects
    (test numbers, new ranges), since WhatsApp itself may still accept them.

    Examples:
        >>> normalize_phone_number("+91 98765 43210")
        "919876543210"

        >>> normalize_phone_number("9876543210")
        "919876543210"
    """
    result = validate_phone(phone, default_country)
    if result.is_valid:
        return result.normalized

    logger.debug(f"Falling back to digits-only normalization for {phone!r}: {result.error}")
    return re.sub(r"\D", "", phone or "").lstrip("0")
