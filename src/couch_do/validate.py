"""
Argument validation for couch-do SDK.

Pure functions with no shared state, callable from any component.
Every check raises a ValidationError subclass before any network call.

Invariants:
    - Database names match ``^[a-z][a-z0-9_$()+/-]*$``
    - Top-level keys starting with ``_`` are reserved for store metadata
    - Revision limits are integers between 1 and 10000
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from .types import DatabaseNameError, ReservedKeyError, RevisionError, RevsLimitError

DATABASE_NAME_RE = re.compile(r"^[a-z][a-z0-9_$()+/-]*$")

REVS_LIMIT_MIN = 1
REVS_LIMIT_MAX = 10000


def check_database_name(name: str) -> str:
    """Validate a database name.

    Args:
        name: Database name

    Returns:
        The name, unchanged

    Raises:
        DatabaseNameError: If the name is empty or not a legal name
    """
    if not name or not isinstance(name, str):
        raise DatabaseNameError("Invalid database name: no name supplied")
    if not DATABASE_NAME_RE.fullmatch(name):
        raise DatabaseNameError(
            f"Invalid database name {name!r}: must start with a lowercase letter "
            "and contain only a-z, 0-9, _, $, (, ), +, - and /"
        )
    return name


def system_keys(obj: Any) -> list[str]:
    """Return the reserved (underscore-prefixed) top-level keys of a mapping."""
    if not isinstance(obj, Mapping):
        return []
    return [key for key in obj if isinstance(key, str) and key.startswith("_")]


def contains_system_key(obj: Any) -> bool:
    """Check if a mapping holds any key reserved for store metadata."""
    return bool(system_keys(obj))


def check_no_system_keys(obj: Any) -> None:
    """Raise ReservedKeyError if the mapping holds reserved keys."""
    keys = system_keys(obj)
    if keys:
        raise ReservedKeyError(
            f"Keys starting with an underscore are reserved system keys: {sorted(keys)}",
            keys,
        )


def check_revs_limit(limit: Any) -> int:
    """Validate a revision limit.

    Raises:
        RevsLimitError: If the limit is not an integer in range
    """
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise RevsLimitError(
            f"Rev limit needs to be a number between {REVS_LIMIT_MIN} and {REVS_LIMIT_MAX}"
        )
    if not REVS_LIMIT_MIN <= limit <= REVS_LIMIT_MAX:
        raise RevsLimitError(
            f"Rev limit needs to be a number between {REVS_LIMIT_MIN} and {REVS_LIMIT_MAX}, "
            f"got {limit}"
        )
    return limit


def check_id_and_rev(doc_id: str | None, rev: str | None) -> None:
    """Raise RevisionError unless both an id and a revision are given."""
    if not doc_id or not rev:
        raise RevisionError("To write or delete a document you need both _id and _rev")
