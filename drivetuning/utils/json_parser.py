# drivetuning/utils/json_parser.py
"""
Helpers for reading loosely-shaped JSON: user-supplied modification
parameters, dictionary parameter blocks and bundled reference files.
"""

import json
import math
from typing import Optional, Any


def safe_parse_object(raw) -> Optional[dict]:
    """Parse a JSON object from str/bytes. Returns None on error or non-object."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def get_nested(data: Optional[dict], *keys: str, default: Any = None) -> Any:
    """Safely navigate nested dict keys. Returns default if any key is missing."""
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return default
        current = current.get(key, default)
        if current is default:
            return default
    return current


def parse_number_or_none(value) -> Optional[float]:
    """Finite numbers and numeric strings → float. Everything else → None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            number = float(value)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def safe_list(value) -> list:
    return value if isinstance(value, list) else []


def read_field(record, name: str, default: Any = None) -> Any:
    """Read a field from a dict, ORM row or dataclass alike."""
    if record is None:
        return default
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)
