"""
Shared helpers for ids, timestamps, slugs and dataclass loading.
"""

import re
import uuid
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def new_id() -> str:
    """Opaque identifier for a new record."""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def to_iso(value) -> Optional[str]:
    """
    Normalize a timestamp argument to an ISO-8601 string.

    Accepts datetimes (naive ones are taken as UTC), ISO strings and None.
    Raises ValueError for strings that do not parse.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.isoformat()


def slugify(name: str) -> str:
    """
    URL-safe slug: lower-case, runs of anything but [a-z0-9] become "-".

    >>> slugify("The International 2025!")
    'the-international-2025'
    """
    slug = _SLUG_STRIP.sub("-", name.strip().lower()).strip("-")
    return slug or "tournament"


def is_valid_slug(slug: str) -> bool:
    return bool(slug) and slugify(slug) == slug


def from_mapping(cls, data: Mapping[str, Any]):
    """
    Build dataclass ``cls`` from a row or JSON object, ignoring unknown keys.

    Works for aiosqlite.Row (has .keys()) and plain dicts alike.
    """
    if hasattr(data, "keys") and not isinstance(data, dict):
        data = {key: data[key] for key in data.keys()}
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in names})


def enum_value(value):
    """``Enum.value`` for enum members, anything else unchanged."""
    return getattr(value, "value", value)
