# Overview: Input coercion helpers for request payloads.

from __future__ import annotations

from typing import Any

from .errors import ValidationError

# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


def to_int(value: Any, field: str, *, default: int | None = None, minimum: int | None = None) -> int | None:
    """
    Strict integer coercion.

    Rejects booleans, floats with a fractional part, decimals in strings and
    scientific notation.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer, not a decimal")
        result = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return result


def to_cents(value: Any, field: str, *, default: int | None = None) -> int | None:
    """Money amounts travel as integer cents."""
    cents = to_int(value, field, default=default)
    if cents is not None and abs(cents) > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_PRICE_CENTS} cents")
    return cents


def to_text(value: Any, field: str, *, required: bool = False, max_length: int = 255) -> str | None:
    if value is None:
        text = None
    else:
        text = str(value).strip() or None
    if text is None:
        if required:
            raise ValidationError(f"{field} required")
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def to_choice(value: Any, field: str, choices, *, default: str | None = None) -> str | None:
    if value is None or value == "":
        return default
    text = str(value).strip().lower()
    if text not in choices:
        raise ValidationError(f"{field} must be one of {sorted(choices)}")
    return text
