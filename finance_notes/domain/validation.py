"""Input validation and authorization helpers shared by the ledger and chat"""

import re
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any

from finance_notes.domain.exceptions import ForbiddenError, ValidationError
from finance_notes.domain.models import AccountContext

IDENTITY_NUMBER_PATTERN = re.compile(r"^[0-9]{12}$")
OTP_PATTERN = re.compile(r"^[0-9]{6}$")
AMOUNT_QUANTUM = Decimal("0.01")
# Column precision less the two decimal places: Numeric(14, 2) and Numeric(8, 2)
AMOUNT_MAX_INTEGER_DIGITS = 12
INTEREST_MAX_INTEGER_DIGITS = 6


def normalize_identity(value: Any) -> str:
    """Trim an identity number; anything that is not a string counts as unset"""
    if not isinstance(value, str):
        return ""
    return value.strip()


def validate_identity_number(value: Any, field: str = "identity_number") -> str:
    identity = normalize_identity(value)
    if not identity:
        raise ValidationError("Identity number is required", field)
    if not IDENTITY_NUMBER_PATTERN.match(identity):
        raise ValidationError("Identity number must be 12 digits", field)
    return identity


def validate_otp_code(value: Any) -> str:
    code = value.strip() if isinstance(value, str) else ""
    if not code:
        raise ValidationError("OTP is required", "otp")
    if not OTP_PATTERN.match(code):
        raise ValidationError("OTP must be 6 digits", "otp")
    return code


def validate_amount(value: Any) -> Decimal:
    """
    Parse a positive monetary amount rounded to two decimal places.

    Floats go through str() so 0.1 stays 0.10 instead of its binary expansion.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError("Amount is required", "amount")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError("Amount must be a number", "amount") from e
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be a positive number", "amount")
    amount = quantize_bounded(amount, AMOUNT_MAX_INTEGER_DIGITS, "amount")
    if amount <= 0:
        raise ValidationError("Amount must be a positive number", "amount")
    return amount


def quantize_bounded(value: Decimal, max_integer_digits: int, field: str) -> Decimal:
    """Round to cents, rejecting values wider than the column holding them"""
    limit = Decimal(10) ** max_integer_digits
    if abs(value) >= limit or abs(value.quantize(AMOUNT_QUANTUM)) >= limit:
        raise ValidationError(
            f"{field.capitalize()} cannot exceed {max_integer_digits} digits before the decimal point", field
        )
    return value.quantize(AMOUNT_QUANTUM)


def validate_message_body(value: Any) -> str:
    body = value.strip() if isinstance(value, str) else ""
    if not body:
        raise ValidationError("Message is required", "message")
    return body


def require_identity(account: AccountContext) -> str:
    """Caller's identity number, or ValidationError when the profile lacks one"""
    identity = normalize_identity(account.identity_number)
    if not identity:
        raise ValidationError("Identity number is required. Please complete your profile.", "identity_number")
    return identity


def require_verified_identity(account: AccountContext) -> str:
    identity = normalize_identity(account.identity_number)
    if not identity or not account.identity_verified:
        raise ForbiddenError("A verified identity number is required to create transactions")
    return identity


def same_identity(left: Any, right: Any) -> bool:
    """Plain string equality on identity numbers; an unset side never matches"""
    left_id = normalize_identity(left)
    right_id = normalize_identity(right)
    return bool(left_id) and left_id == right_id


def mask_identity(value: Any) -> str:
    """Mask an identity number for logs, keeping the last four digits"""
    identity = normalize_identity(value)
    if not identity:
        return "EMPTY"
    return "*" * max(len(identity) - 4, 0) + identity[-4:]


def parse_uuid(value: Any, field: str = "transaction_id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {field} format", field) from e
