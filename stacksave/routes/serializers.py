"""JSON shaping for API responses: camelCase keys, numbers instead of Decimal."""
from datetime import date, datetime
from decimal import Decimal

from flask import request

from stacksave.errors import ValidationError


def _camel(key: str) -> str:
    head, *rest = key.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


def to_json(value):
    """Recursively convert service results into JSON-friendly values."""
    if isinstance(value, dict):
        return {_camel(k) if isinstance(k, str) else k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def int_arg(name: str, default: int, maximum: int = 500) -> int:
    raw = request.args.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"Invalid {name}", field=name)
    if value <= 0:
        raise ValidationError(f"Invalid {name}", field=name)
    return min(value, maximum)
