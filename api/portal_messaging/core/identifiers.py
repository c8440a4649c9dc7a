"""Identifier helpers for employment-service object ids.

The employment service stores MongoDB ObjectIDs: 24 hex characters. An
all-zero id is what the backend emits for an unset reference (e.g. a message
without a job listing).
"""

import re
from typing import Any, Optional

ZERO_OBJECT_ID = "000000000000000000000000"

_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")


def normalize_object_id(value: Any) -> str:
    """Return ``value`` as a plain id string with dashes removed."""
    if value is None:
        return ""
    return str(value).strip().replace("-", "")


def is_valid_object_id(value: Optional[Any]) -> bool:
    """True for a well-formed, non-zero object id."""
    candidate = normalize_object_id(value)
    if not _OBJECT_ID_RE.match(candidate):
        return False
    return candidate != ZERO_OBJECT_ID
