"""
Security document arithmetic.

The ``_security`` document of a database holds two groups, ``admins``
and ``members``, each with ``names`` and ``roles`` lists. Within a
group the lists are treated as ordered sets: merging is a union that
keeps first-seen order, deleting is a set difference.

None of the functions here mutate or alias their arguments; results are
always built from fresh lists.
"""

from __future__ import annotations

import copy
from typing import Any, Iterable, Mapping

GROUPS = ("admins", "members")
FIELDS = ("names", "roles")


def ordered_union(*sequences: Iterable[Any]) -> list[Any]:
    """Concatenate sequences and drop duplicates, keeping first-seen order."""
    seen: list[Any] = []
    for sequence in sequences:
        for value in sequence or ():
            if value not in seen:
                seen.append(value)
    return seen


def ordered_difference(existing: Iterable[Any], removed: Iterable[Any]) -> list[Any]:
    """Values of ``existing`` that are not in ``removed``, order kept."""
    removed = list(removed or ())
    return [value for value in ordered_union(existing) if value not in removed]


def is_empty(document: Mapping[str, Any] | None) -> bool:
    """True when no security document has been set on the database."""
    if not document:
        return True
    return not any(isinstance(document.get(group), Mapping) for group in GROUPS)


def normalize(document: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a fresh document with every group and field present."""
    document = document or {}
    result: dict[str, Any] = {
        key: copy.deepcopy(value) for key, value in document.items() if key not in GROUPS
    }
    for group in GROUPS:
        section = document.get(group) or {}
        result[group] = {name: ordered_union(section.get(name, ())) for name in FIELDS}
    return result


def merge_security(
    existing: Mapping[str, Any] | None,
    incoming: Mapping[str, Any],
) -> dict[str, Any]:
    """
    Add the names and roles of ``incoming`` to ``existing``.

    Every field of every group is the ordered union of the existing and
    incoming values, so merging the same document twice is a no-op.
    """
    current = normalize(existing)
    for group in GROUPS:
        section = incoming.get(group)
        if not isinstance(section, Mapping):
            continue
        for name in FIELDS:
            current[group][name] = ordered_union(
                current[group][name], section.get(name, ())
            )
    return current


def subtract_security(
    existing: Mapping[str, Any] | None,
    incoming: Mapping[str, Any],
) -> dict[str, Any]:
    """
    Remove the names and roles of ``incoming`` from ``existing``.

    A group absent from ``incoming`` is left as it is.
    """
    current = normalize(existing)
    for group in GROUPS:
        section = incoming.get(group)
        if not isinstance(section, Mapping):
            continue
        for name in FIELDS:
            current[group][name] = ordered_difference(
                current[group][name], section.get(name, ())
            )
    return current
