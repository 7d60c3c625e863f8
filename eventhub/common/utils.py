"""
Small helpers shared by the service blueprints: datetime parsing, row
serialisation, pagination arguments and JSON body access.
"""

from datetime import datetime, date, timezone
from decimal import Decimal
from math import ceil
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from flask import request

from eventhub.common.api_response import BadRequest

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_dt(val: Optional[str]) -> Optional[datetime]:
    """
    Safely parse an ISO-8601 or datetime-local string to an aware datetime.

    Naive values are taken to be UTC.

    Args:
        val (str): The date string to parse.

    Returns:
        datetime: The parsed datetime, or None if invalid.
    """
    if not val or not isinstance(val, str):
        return None
    try:
        # Handles 'YYYY-MM-DDTHH:MM' and '...Z' or '...+00:00'
        if val.endswith('Z'):
            val = val[:-1] + '+00:00'
        parsed = datetime.fromisoformat(val)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_bool(val: Any) -> Optional[bool]:
    """
    Interpret JSON booleans and the usual query-string spellings.
    Returns None for anything unrecognised.
    """
    if isinstance(val, bool):
        return val
    if isinstance(val, str):
        lowered = val.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    return None


def parse_int(val: Any, default: int) -> int:
    try:
        return int(val)
    except (TypeError, ValueError):
        return default


def parse_pagination(args: Mapping[str, Any], default_limit: int = DEFAULT_PAGE_SIZE) -> Tuple[int, int, int]:
    """
    Read ``page`` and ``limit`` from query arguments.

    Returns:
        tuple: (page, limit, offset) with page >= 1 and 1 <= limit <= MAX_PAGE_SIZE.
    """
    page = max(parse_int(args.get("page"), 1), 1)
    limit = parse_int(args.get("limit"), default_limit)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit, (page - 1) * limit


def page_count(total: int, limit: int) -> int:
    return ceil(total / limit) if limit else 0


def serialize_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_dict(row: Optional[Mapping[str, Any]], exclude: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    """
    Convert a DictCursor row into a JSON-ready dict.

    Datetimes become ISO strings and decimals become floats.
    """
    if row is None:
        return None
    skip = set(exclude)
    return {k: serialize_value(v) for k, v in dict(row).items() if k not in skip}


def rows_to_dicts(rows: Iterable[Mapping[str, Any]], exclude: Iterable[str] = ()) -> List[Dict[str, Any]]:
    return [row_to_dict(r, exclude) for r in rows]


def json_body() -> Dict[str, Any]:
    """
    The request's JSON object, or {} when there is no (parseable) body.

    Raises:
        BadRequest: the body is JSON but not an object (array, string, number).
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data
