"""Request body validation helpers.

Each helper raises `ValidationError` (400) with a human readable message naming
the offending field.
"""
from __future__ import annotations

import math
import re
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from flask import request

from .errors import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_MISSING = object()


def json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


def require_str(data: dict[str, Any], key: str, *, max_len: int = 255) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(f"{key} must be at most {max_len} characters")
    return value


def optional_str(data: dict[str, Any], key: str, *, max_len: int = 5000) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(f"{key} must be at most {max_len} characters")
    return value or None


def parse_enum(value: Any, allowed: Iterable[str], field: str) -> str:
    allowed = tuple(allowed)
    if not isinstance(value, str) or value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
    return value


def parse_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")
    value = value.strip()
    try:
        # Full ISO timestamps are accepted; only the date part is kept
        if len(value) > 10:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)") from e


def parse_progress(value: Any, field: str = "progress") -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number between 0 and 100")
    if not math.isfinite(value):
        raise ValidationError(f"{field} must be a finite number")
    if value < 0 or value > 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return int(round(value))


def parse_number(value: Any, field: str, *, positive: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number")
    if not math.isfinite(value):
        raise ValidationError(f"{field} must be a finite number")
    if positive and value <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return float(value)


def check_date_range(start: date | None, end: date | None) -> None:
    if start and end and end <= start:
        raise ValidationError("end_date must be after start_date")


def parse_email(value: Any, field: str = "email") -> str:
    if not isinstance(value, str) or not EMAIL_RE.match(value.strip()):
        raise ValidationError(f"{field} must be a valid email address")
    return value.strip().lower()


def parse_bool_arg(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


__all__ = [
    "json_body",
    "require_str",
    "optional_str",
    "parse_enum",
    "parse_date",
    "parse_progress",
    "parse_number",
    "check_date_range",
    "parse_email",
    "parse_bool_arg",
]
