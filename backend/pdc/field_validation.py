"""Type conformance checks for bulk upload cell values.

``field_value_is_valid`` decides whether a raw CSV cell conforms to the data
type of the base field its column maps to.  The result is stored on the
proposal field value; it never blocks ingestion.

Usage::

    from pdc.field_validation import field_value_is_valid

    field_value_is_valid("42.5", "number")        # True
    field_value_is_valid("forty-two", "number")   # False
"""

import logging
import re
from typing import Callable
from urllib.parse import urlparse

import phonenumbers
from email_validator import EmailNotValidError, validate_email

from pdc.models.enums import BaseFieldDataType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

# Decimal literal with optional sign, fraction, and exponent.  Stricter than
# ``float()``, which accepts "nan", "inf", and "1_000".
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")

_BOOLEAN_TOKENS = frozenset({"true", "false"})

_URL_SCHEMES = frozenset({"http", "https"})

# Region applied to numbers written without a country code.
DEFAULT_PHONE_REGION = "US"


# ---------------------------------------------------------------------------
# Per-type checks
# ---------------------------------------------------------------------------


def _is_string(value: str) -> bool:
    return True


def _is_number(value: str) -> bool:
    return _NUMBER_RE.match(value) is not None


def _is_boolean(value: str) -> bool:
    return value.lower() in _BOOLEAN_TOKENS


def _is_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _is_phone_number(value: str) -> bool:
    try:
        parsed = phonenumbers.parse(value, DEFAULT_PHONE_REGION)
    except phonenumbers.NumberParseException:
        return False
    return phonenumbers.is_possible_number(parsed)


def _is_url(value: str) -> bool:
    if any(ch.isspace() for ch in value):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme.lower() in _URL_SCHEMES and bool(parsed.netloc)


_VALIDATORS: dict[BaseFieldDataType, Callable[[str], bool]] = {
    BaseFieldDataType.STRING: _is_string,
    BaseFieldDataType.NUMBER: _is_number,
    BaseFieldDataType.BOOLEAN: _is_boolean,
    BaseFieldDataType.EMAIL: _is_email,
    BaseFieldDataType.PHONE_NUMBER: _is_phone_number,
    BaseFieldDataType.URL: _is_url,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def field_value_is_valid(value: str, data_type: BaseFieldDataType | str) -> bool:
    """Return whether *value* conforms to *data_type*.

    Unknown data types and non-string values yield ``False``.  This function
    never raises.
    """
    if not isinstance(value, str):
        return False
    try:
        validator = _VALIDATORS[BaseFieldDataType(data_type)]
    except (KeyError, ValueError):
        logger.debug("No validator for data type %r", data_type)
        return False
    return validator(value)
