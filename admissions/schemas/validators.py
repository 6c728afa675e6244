"""Custom validators and types."""

import re
from decimal import Decimal
from typing import Annotated

from pydantic import AfterValidator, BeforeValidator, Field, PlainSerializer

# Indian mobile numbers are entered without country code: exactly 10 digits
MOBILE_PATTERN = re.compile(r"^[0-9]{10}$")

AADHAR_MAX_DIGITS = 12
AADHAR_PATTERN = re.compile(rf"^[0-9]{{0,{AADHAR_MAX_DIGITS}}}$")


def validate_mobile_number(value: str) -> str:
    """
    Validate a 10 digit mobile number.

    Anything shorter, longer or containing non-digits is rejected; the value
    is not normalized so that the operator sees exactly what was stored.
    """
    if not MOBILE_PATTERN.match(value):
        raise ValueError("Mobile number must be exactly 10 digits")
    return value


def validate_aadhar_number(value: str) -> str:
    """Validate an identity (Aadhar) number of up to 12 digits."""
    if not AADHAR_PATTERN.match(value):
        raise ValueError(f"Aadhar number must contain at most {AADHAR_MAX_DIGITS} digits")
    return value


def truncate_aadhar_input(value: str | None) -> str:
    """Keep only digits and cut the input down to 12 of them."""
    if not value:
        return ""
    return re.sub(r"\D", "", str(value))[:AADHAR_MAX_DIGITS]


def empty_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


MobileNumber = Annotated[str, AfterValidator(validate_mobile_number)]

OptionalMobileNumber = Annotated[
    MobileNumber | None,
    BeforeValidator(empty_to_none),
]

AadharNumber = Annotated[
    str | None,
    BeforeValidator(empty_to_none),
    AfterValidator(lambda v: v if v is None else validate_aadhar_number(v)),
]

# Money travels to the ERP as a JSON number
Amount = Annotated[
    Decimal,
    Field(ge=0, decimal_places=2),
    PlainSerializer(float, return_type=float, when_used="json"),
]
