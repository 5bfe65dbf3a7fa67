"""
DocData - local payload holder for a document handle.

Keeps one JSON payload plus a status flag set. Payloads written by the
application may not contain reserved (underscore-prefixed) top-level
keys; payloads loaded from the store may.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .validate import check_no_system_keys

__all__ = ["DocData", "DocStatus", "deep_merge"]

Listener = Callable[["dict[str, Any] | None"], None]


@dataclass
class DocStatus:
    """
    Status flags of a DocData.

    Attributes:
        pristine: The payload matches what the store last returned or accepted.
        changed: The payload was modified locally since then.
        empty: No payload is held.
    """

    pristine: bool = True
    changed: bool = False
    empty: bool = True


def deep_merge(target: dict[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge ``source`` into ``target`` in place and return ``target``.

    Nested mappings are combined key by key, every other value in
    ``source`` overwrites the one in ``target``.
    """
    for key, value in source.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            deep_merge(current, value)
        else:
            target[key] = copy.deepcopy(value)
    return target


class DocData:
    """
    Mutable payload cell with dirty tracking.

    Example:
        data = DocData()
        data.merge({"a": 1}).merge({"b": 2})
        data.value()            # {"a": 1, "b": 2}
        data.status.changed     # True
    """

    __slots__ = ("_data", "status", "_listeners")

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        """
        Initialize the payload holder.

        Args:
            data: Initial local payload. It counts as a local change, like
                  set(); use load() for bodies read from the store.

        Raises:
            ReservedKeyError: If data holds underscore-prefixed keys.
        """
        self._data: dict[str, Any] | None = None
        self.status = DocStatus()
        self._listeners: list[Listener] = []
        if data is not None:
            self.set(data)

    @property
    def empty(self) -> bool:
        return self._data is None

    def value(self) -> dict[str, Any] | None:
        """Return a copy of the payload, or None when empty."""
        return copy.deepcopy(self._data)

    def set(self, data: Mapping[str, Any]) -> DocData:
        """
        Replace the payload.

        Raises:
            ReservedKeyError: If data holds underscore-prefixed keys.
        """
        check_no_system_keys(data)
        self._replace(copy.deepcopy(dict(data)), changed=True)
        return self

    def merge(self, data: Mapping[str, Any]) -> DocData:
        """
        Deep-merge data into the payload.

        Raises:
            ReservedKeyError: If data holds underscore-prefixed keys.
        """
        check_no_system_keys(data)
        merged = copy.deepcopy(self._data) if self._data is not None else {}
        self._replace(deep_merge(merged, data), changed=True)
        return self

    def load(self, data: Mapping[str, Any] | None) -> DocData:
        """Replace the payload with a body read from the store."""
        self._replace(copy.deepcopy(dict(data)) if data is not None else None, changed=False)
        return self

    def set_rev(self, rev: str | None) -> None:
        """
        Update the ``_rev`` a store-loaded payload carries.

        Status flags are left alone; a payload without ``_rev`` is not
        touched. None removes the key.
        """
        if self._data is None or "_rev" not in self._data:
            return
        data = copy.deepcopy(self._data)
        if rev is None:
            del data["_rev"]
        else:
            data["_rev"] = rev
        self._data = data
        self._notify()

    def mark_saved(self) -> None:
        """Record that the payload matches the store."""
        self.status.pristine = True
        self.status.changed = False

    def clear(self) -> DocData:
        """Drop the payload."""
        self._replace(None, changed=False)
        return self

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call ``listener`` with a copy of the payload after every change.

        Status flags are already up to date when a listener runs.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _replace(self, data: dict[str, Any] | None, changed: bool) -> None:
        self._data = data
        self.status.empty = data is None
        self.status.changed = changed
        self.status.pristine = not changed
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.value())

    def __repr__(self) -> str:
        return f"DocData({self._data!r}, {self.status})"
