from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any

from flask import request

from app.scholartrack.errors import ValidationError


def json_body() -> dict[str, Any]:
    """The request body as a JSON object; anything else is a 400."""
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def parse_bool(value: Any) -> bool | None:
    """Accept JSON booleans and the usual query-string spellings."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in ("true", "1", "yes"):
        return True
    if s in ("false", "0", "no"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def parse_int(value: Any, *, field: str, errors: list[str], minimum: int | None = 0) -> int | None:
    """Parse an optional integer, appending to `errors` instead of raising."""
    if value is None or value == "":
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        errors.append(f"{field} must be a number")
        return None
    try:
        n = int(value)
    except (TypeError, ValueError):
        errors.append(f"{field} must be a number")
        return None
    if minimum is not None and n < minimum:
        errors.append(f"{field} must be non-negative" if minimum == 0 else f"{field} must be >= {minimum}")
        return None
    return n


def parse_number(value: Any, *, field: str, errors: list[str]) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        errors.append(f"{field} must be a number")
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        errors.append(f"{field} must be a number")
        return None
    if not math.isfinite(n):
        errors.append(f"{field} must be a number")
        return None
    if n < 0:
        errors.append(f"{field} must be non-negative")
        return None
    return n


def query_int(name: str, default: int, *, maximum: int | None = None) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        n = int(raw)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer") from e
    if n < 0:
        raise ValidationError(f"{name} must be non-negative")
    if maximum is not None:
        n = min(n, maximum)
    return n


def query_bool(name: str) -> bool | None:
    try:
        return parse_bool(request.args.get(name))
    except ValueError as e:
        raise ValidationError(f"{name} must be true or false") from e


def slugify(name: str) -> str:
    s = re.sub(r"[^a-z0-9]+", "-", (name or "").strip().lower())
    return s.strip("-") or "item"
