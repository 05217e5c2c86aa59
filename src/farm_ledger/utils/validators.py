"""
Input validation functions for the Farm Ledger application.

UI forms and outbox payloads hand raw values (strings, floats, ints) to the
services. These functions coerce them into the typed values the models use
and raise ValidationError on failure, before any transaction is opened.

- Numeric coercion (Decimal and int, positive and non-negative)
- String validation (required, length)
- Choice validation against enums
- Date parsing
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from datetime import date
from enum import Enum
from typing import Any, Callable, List, Optional, Type, TypeVar

from farm_ledger.services.exceptions import ValidationError
from farm_ledger.utils.datetime_utils import parse_date

from .constants import (
    CURRENCY_DECIMAL_PLACES,
    ERROR_INVALID_CHOICE,
    ERROR_INVALID_DATE,
    ERROR_INVALID_INTEGER,
    ERROR_INVALID_NON_NEGATIVE,
    ERROR_INVALID_NUMBER,
    ERROR_INVALID_POSITIVE,
    ERROR_REQUIRED_FIELD,
    QUANTITY_DECIMAL_PLACES,
)

E = TypeVar("E", bound=Enum)


def validate_required_string(value: Optional[str], field_name: str = "Field") -> str:
    """
    Validate that a string field is not empty.

    Args:
        value: The string value to validate
        field_name: Name of the field for error messages

    Returns:
        The stripped string

    Raises:
        ValidationError: If the value is None or blank
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        raise ValidationError(f"{field_name}: {ERROR_REQUIRED_FIELD}")
    return str(value).strip()


def validate_string_length(
    value: Optional[str], max_length: int, field_name: str = "Field"
) -> Optional[str]:
    """
    Validate that a string doesn't exceed maximum length.

    Raises:
        ValidationError: If the string is longer than max_length
    """
    if value and len(value) > max_length:
        raise ValidationError(f"{field_name}: Must be {max_length} characters or less")
    return value


def round_to(value: Decimal, places: int) -> Decimal:
    """Round half-up to a fixed number of decimal places."""
    return Decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def round_money(value: Decimal) -> Decimal:
    """Round an amount to the scale of the money columns."""
    return round_to(value, CURRENCY_DECIMAL_PLACES)


def parse_decimal(
    value: Any,
    field_name: str = "Field",
    positive: bool = False,
    required: bool = True,
    places: Optional[int] = None,
) -> Optional[Decimal]:
    """
    Coerce a value into a non-negative (or strictly positive) Decimal.

    Floats are converted through their string representation so that 0.1
    becomes Decimal("0.1") rather than its binary expansion.

    Args:
        value: Raw value (str, int, float, Decimal)
        field_name: Name of the field for error messages
        positive: If True, zero (after rounding) is rejected
        required: If False, None and "" are returned as None
        places: If given, round half-up to this many decimal places so the
            value matches what the column stores

    Returns:
        Decimal value, or None for an omitted optional value

    Raises:
        ValidationError: If the value is missing, non-numeric or out of range
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        if required:
            raise ValidationError(f"{field_name}: {ERROR_REQUIRED_FIELD}")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field_name}: {ERROR_INVALID_NUMBER}")

    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name}: {ERROR_INVALID_NUMBER}")

    if not number.is_finite():
        raise ValidationError(f"{field_name}: {ERROR_INVALID_NUMBER}")
    if places is not None:
        try:
            number = round_to(number, places)
        except InvalidOperation:
            raise ValidationError(f"{field_name}: {ERROR_INVALID_NUMBER}")
    if positive and number <= 0:
        raise ValidationError(f"{field_name}: {ERROR_INVALID_POSITIVE}")
    if number < 0:
        raise ValidationError(f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}")
    return number


def parse_money(
    value: Any, field_name: str = "Amount", positive: bool = False, required: bool = True
) -> Optional[Decimal]:
    """parse_decimal rounded to cents."""
    return parse_decimal(value, field_name, positive, required, places=CURRENCY_DECIMAL_PLACES)


def parse_quantity(
    value: Any, field_name: str = "Quantity", positive: bool = False, required: bool = True
) -> Optional[Decimal]:
    """parse_decimal rounded to the three places stock quantities keep."""
    return parse_decimal(value, field_name, positive, required, places=QUANTITY_DECIMAL_PLACES)


def parse_int(
    value: Any,
    field_name: str = "Field",
    positive: bool = False,
    required: bool = True,
) -> Optional[int]:
    """
    Coerce a value into a non-negative (or strictly positive) integer.

    Accepts integral strings and floats such as "5" or 5.0; rejects 5.5.

    Raises:
        ValidationError: If the value is missing, not a whole number or out of range
    """
    number = parse_decimal(value, field_name, positive=positive, required=required)
    if number is None:
        return None
    if number != number.to_integral_value():
        raise ValidationError(f"{field_name}: {ERROR_INVALID_INTEGER}")
    return int(number)


def parse_choice(value: Any, enum_cls: Type[E], field_name: str = "Field") -> E:
    """
    Resolve a raw value to a member of enum_cls by value or by name.

    Raises:
        ValidationError: If the value does not name a member
    """
    if isinstance(value, enum_cls):
        return value
    if value is None:
        raise ValidationError(f"{field_name}: {ERROR_REQUIRED_FIELD}")
    text = str(value).strip()
    for member in enum_cls:
        if text == member.value or text.upper() == member.name:
            return member
    allowed = ", ".join(member.value for member in enum_cls)
    raise ValidationError(f"{field_name}: {ERROR_INVALID_CHOICE} '{text}' (expected one of {allowed})")


def parse_record_date(
    value: Any, field_name: str = "Date", default: Optional[date] = None
) -> date:
    """
    Parse a record date, falling back to default when omitted.

    Raises:
        ValidationError: If the value is not a valid date or is missing with no default
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        if default is None:
            raise ValidationError(f"{field_name}: {ERROR_REQUIRED_FIELD}")
        return default
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name}: {ERROR_INVALID_DATE}")


def validate_all(*checks: Callable[[], Any]) -> List[Any]:
    """
    Run several validation callables and report every failure at once.

    Args:
        *checks: Zero-argument callables, usually lambdas wrapping the
            parse_* functions above

    Returns:
        The value returned by each check, in order

    Raises:
        ValidationError: With the combined messages of every failing check

    Example:
        >>> quantity, price = validate_all(
        ...     lambda: parse_int(data["quantity"], "Quantity", positive=True),
        ...     lambda: parse_decimal(data["unit_price"], "Unit price"),
        ... )
    """
    values = []
    errors: List[str] = []
    for check in checks:
        try:
            values.append(check())
        except ValidationError as e:
            errors.extend(e.errors)
            values.append(None)
    if errors:
        raise ValidationError(errors)
    return values
