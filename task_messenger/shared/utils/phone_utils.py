"""
Phone Number Normalization and Masking Utilities

Uses Google's libphonenumber (via phonenumbers package) for:
- Validation of phone numbers
- Normalization to E.164 format (with leading +)
- Mobile vs landline detection
- Masking numbers before they reach logs or stored text
"""
import re
import logging
from typing import Optional
from dataclasses import dataclass

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat, PhoneNumberType
from phonenumbers import is_valid_number, format_number, number_type

logger = logging.getLogger(__name__)

MOBILE_TYPES = (PhoneNumberType.MOBILE, PhoneNumberType.FIXED_LINE_OR_MOBILE)


@dataclass
class PhoneValidationResult:
    """Result of phone number validation."""
    is_valid: bool
    e164: str  # Full E.164 format (e.g., "+972528765432")
    country: str  # ISO region (e.g., "IL")
    is_mobile: bool
    error: Optional[str] = None


def _clean(phone: str, default_country: str) -> str:
    """Keep digits and a leading +, turn 00 into +, and add + when the country code is already present."""
    cleaned = phone.strip()
    has_plus = cleaned.startswith("+")
    digits = re.sub(r"\D", "", cleaned)

    if has_plus:
        return "+" + digits
    if digits.startswith("00"):
        return "+" + digits[2:]

    country_code = str(phonenumbers.country_code_for_region(default_country) or "")
    if country_code and digits.startswith(country_code) and not digits.startswith("0"):
        return "+" + digits
    return digits


def validate_phone(phone: str, default_country: str = "IL") -> PhoneValidationResult:
    """
    Validate and parse a phone number using libphonenumber.

    Examples:
        >>> validate_phone("052-876-5432").e164
        '+972528765432'

        >>> validate_phone("invalid").is_valid
        False
    """
    if not phone or not phone.strip():
        return PhoneValidationResult(False, "", "", False, error="Phone number is empty")

    try:
        parsed = phonenumbers.parse(_clean(phone, default_country), default_country)
    except NumberParseException as e:
        error_messages = {
            NumberParseException.INVALID_COUNTRY_CODE: "Invalid country code",
            NumberParseException.NOT_A_NUMBER: "Not a valid phone number",
            NumberParseException.TOO_SHORT_AFTER_IDD: "Number too short after country code",
            NumberParseException.TOO_SHORT_NSN: "National number too short",
            NumberParseException.TOO_LONG: "Phone number too long",
        }
        return PhoneValidationResult(
            False, "", "", False,
            error=error_messages.get(e.error_type, "Invalid phone number")
        )

    if not is_valid_number(parsed):
        return PhoneValidationResult(False, "", "", False, error="Phone number is invalid for the region")

    return PhoneValidationResult(
        is_valid=True,
        e164=format_number(parsed, PhoneNumberFormat.E164),
        country=phonenumbers.region_code_for_number(parsed) or "",
        is_mobile=number_type(parsed) in MOBILE_TYPES
    )


class PhoneNormalizer:
    """
    Normalizes raw CRM phone values to E.164.

    Landlines are rejected unless permit_landlines is set, since WhatsApp
    delivery needs a mobile number.
    """

    def __init__(self, default_country: str = "IL", permit_landlines: bool = False):
        self.default_country = default_country
        self.permit_landlines = permit_landlines

    def normalize(self, raw: Optional[str]) -> Optional[str]:
        """Return the E.164 form of raw, or None when it is unusable."""
        if not raw:
            return None

        result = validate_phone(str(raw), self.default_country)
        if not result.is_valid:
            logger.debug(f"Phone rejected ({mask(str(raw))}): {result.error}")
            return None

        if not self.permit_landlines and not result.is_mobile:
            logger.debug(f"Phone rejected ({mask(result.e164)}): not a mobile number")
            return None

        return result.e164


def mask(phone: str) -> str:
    """
    Mask a phone number for diagnostics.

    Keeps the first 5 and last 2 characters, e.g. +972528765432 -> +9725******32.
    """
    if not phone:
        return "none"
    if len(phone) <= 7:
        return "*" * len(phone)
    return phone[:5] + "*" * (len(phone) - 7) + phone[-2:]


# Nine to fifteen digits, optional leading "+", single spaces or hyphens between digits.
# Not preceded by a word character so record ids like 00T000000000001 stay intact.
PHONE_RUN_RE = re.compile(r"(?<![\w+])\+?\d(?:[ \-]?\d){8,14}(?!\w)")


def mask_phone_numbers(text: str) -> str:
    """Mask every phone-like digit run in free text (provider bodies, exception messages)."""
    if not text:
        return text
    return PHONE_RUN_RE.sub(lambda m: mask(re.sub(r"[^\d+]", "", m.group(0))), text)
