"""Recipient validation and normalization to the upstream's bare international format.

Accepted inputs (cc = configured country calling code, N = 9-digit national number
starting with 2, 3 or 4): `0N`, `+ccN`, `ccN`. Inputs of that shape must also be a valid
number for the country according to libphonenumber.
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional

import phonenumbers

NATIONAL_NUMBER = r"[234][0-9]{8}"


@lru_cache(maxsize=8)
def _input_pattern(country_code: str) -> re.Pattern[str]:
    return re.compile(rf"^(?:\+{country_code}|{country_code}|0){NATIONAL_NUMBER}$")


@lru_cache(maxsize=8)
def _wire_pattern(country_code: str) -> re.Pattern[str]:
    return re.compile(rf"^{country_code}{NATIONAL_NUMBER}$")


def _parse(phone: str, country_code: str) -> phonenumbers.PhoneNumber:
    region = phonenumbers.region_code_for_country_code(int(country_code))
    if phone.startswith(country_code):
        phone = "+" + phone
    return phonenumbers.parse(phone, region)


def is_valid_recipient(phone: Optional[str], country_code: str = "233") -> bool:
    if not phone:
        return False
    phone = phone.strip()
    if not _input_pattern(country_code).match(phone):
        return False
    try:
        parsed = _parse(phone, country_code)
    except phonenumbers.NumberParseException:
        return False
    return parsed.country_code == int(country_code) and phonenumbers.is_valid_number(parsed)


def is_wire_recipient(phone: Optional[str], country_code: str = "233") -> bool:
    """True when `phone` is already in the upstream's required `ccN` form."""
    if not phone:
        return False
    return bool(_wire_pattern(country_code).match(phone))


def normalize_recipient(phone: str, country_code: str = "233") -> str:
    """Return the E.164 form of `phone` without the leading `+`.

    A leading `0` is read as a national number in the country's region. Call
    `is_valid_recipient` first; unparseable input raises `phonenumbers.NumberParseException`.
    """
    parsed = _parse(phone.strip(), country_code)
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164).lstrip("+")


__all__ = ["is_valid_recipient", "is_wire_recipient", "normalize_recipient"]
