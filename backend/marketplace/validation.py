from __future__ import annotations

from typing import Any

from flask import request

from .errors import InvalidInput

# Largest value a signed BIGINT id column can hold
MAX_ID = (1 << 63) - 1


def json_body() -> dict[str, Any]:
    """The request's JSON object. Raises InvalidInput for anything else."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput("request body must be a JSON object")
    return data


def require_fields(data: dict, *names: str) -> list[Any]:
    """Return the values of names in order; raise InvalidInput if any is blank."""
    missing = [name for name in names if data.get(name) in (None, "")]
    if missing:
        raise InvalidInput(f"missing required fields: {', '.join(missing)}")
    return [data[name] for name in names]


def parse_id(value, field: str = "id") -> int:
    """
    Parse an entity id given as int or decimal string (ids are serialized
    as strings in responses).
    """
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be an id")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
    else:
        raise InvalidInput(f"{field} must be an id")
    if not 0 < parsed <= MAX_ID:
        raise InvalidInput(f"{field} out of range")
    return parsed


def parse_positive_int(value, field: str, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be an integer")
    if parsed < 1:
        raise InvalidInput(f"{field} must be positive")
    return parsed
