"""Coercion helpers for loosely typed vendor payloads.

Every reducer reads vendor JSON through these so that a missing, null or
mistyped field turns into an explicit default instead of leaking through.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def as_records(value: Any) -> List[Dict[str, Any]]:
    return [item for item in as_list(value) if isinstance(item, dict)]


def as_number(value: Any, default: float = 0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value
    return default


def as_int(value: Any, default: int = 0) -> int:
    number = as_number(value, default)
    return int(number)


def as_str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def as_str_list(value: Any) -> List[str]:
    return [item for item in as_list(value) if isinstance(item, str)]


def as_bool(value: Any) -> bool:
    return value is True


def as_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    text = value.strip().replace("Z", "+00:00")
    for candidate in (text, text.replace(" +00:00", "+00:00")):
        try:
            return datetime.fromisoformat(candidate)
        except ValueError:
            continue
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        return None


def dig(record: Any, *path: str) -> Any:
    current = record
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current
