# Overview: Request payload helpers; coerce and check JSON fields before they reach services.

from __future__ import annotations

from datetime import datetime
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime


def require_fields(data: dict | None, *fields: str) -> dict:
    """Ensure the payload is an object and every named field is present and not null."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    missing = [f for f in fields if data.get(f) is None]
    if missing:
        raise ValidationError(f"Missing required field: {', '.join(missing)}")
    return data


def require_str(data: dict, field: str) -> str:
    """Required non-blank string, returned stripped."""
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def optional_str(data: dict, field: str) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    return value or None


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Rejects booleans, floats with a fractional part, decimals in strings
    and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer, not a decimal")
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def coerce_non_negative_int(value: Any, field: str) -> int:
    number = coerce_int(value, field)
    if number < 0:
        raise ValidationError(f"{field} must be zero or greater")
    return number


def coerce_positive_int(value: Any, field: str) -> int:
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return number


def coerce_amount(value: Any, field: str) -> float:
    """Money amounts in major currency units; must be a finite number >= 0."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if amount != amount or amount in (float("inf"), float("-inf")):
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} must be zero or greater")
    return round(amount, 2)


def coerce_bool(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value


def coerce_datetime(value: Any, field: str) -> datetime | None:
    """ISO-8601 string -> UTC-naive datetime; None and "" pass through as None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {field} format")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"Invalid {field} format")


def coerce_list(value: Any, field: str, *, allow_empty: bool = False) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list")
    if not value and not allow_empty:
        raise ValidationError(f"{field} must not be empty")
    return value


def split_csv(value: str | None) -> list[str] | None:
    """Query-string list parameter ("a,b,c") -> list, or None when absent."""
    if value is None:
        return None
    items = [part.strip() for part in value.split(",") if part.strip()]
    return items or None
