"""
Type definitions for couch-do SDK.

Provides result types for document writes, document metadata and
``_find`` queries, plus the exception hierarchy shared by every
component.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence, Union


@dataclass
class DocumentResult:
    """
    Result of a single document write (create, update, delete or one
    item of a bulk write).

    Attributes:
        id: The document _id.
        rev: The new revision, if the write succeeded.
        ok: Whether the write succeeded.
        error: Store error code for a failed bulk item (e.g. "conflict").
        reason: Human readable reason for a failed bulk item.
    """

    id: str | None = None
    rev: str | None = None
    ok: bool = False
    error: str | None = None
    reason: str | None = None

    @classmethod
    def from_response(cls, data: Mapping[str, Any] | None) -> DocumentResult:
        """Build a result from the store's JSON reply."""
        if not isinstance(data, Mapping):
            return cls()
        error = data.get("error")
        return cls(
            id=data.get("id"),
            rev=data.get("rev"),
            ok=bool(data.get("ok", error is None and data.get("rev") is not None)),
            error=error,
            reason=data.get("reason"),
        )


@dataclass
class DocumentInfo:
    """
    Metadata of a document obtained without fetching its body.

    Attributes:
        id: The document _id.
        rev: The current revision (from the ETag header).
        status: HTTP status of the HEAD request.
        headers: Response headers.
    """

    id: str
    rev: str | None
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class FindResult:
    """
    Result of a ``_find`` query.

    Attributes:
        docs: Matching documents.
        execution_stats: Statistics, when requested with execution_stats.
        bookmark: Paging bookmark for the next page.
        warning: Index warning returned by the store.
    """

    docs: list[dict[str, Any]] = field(default_factory=list)
    execution_stats: dict[str, Any] | None = None
    bookmark: str | None = None
    warning: str | None = None

    @classmethod
    def from_response(cls, data: Mapping[str, Any] | None) -> FindResult:
        if not isinstance(data, Mapping):
            return cls()
        docs = data.get("docs")
        return cls(
            docs=list(docs) if isinstance(docs, list) else [],
            execution_stats=data.get("execution_stats"),
            bookmark=data.get("bookmark"),
            warning=data.get("warning"),
        )


# Type aliases for clarity
Document = Mapping[str, Any]
MutableDocument = dict[str, Any]
Selector = Mapping[str, Any]
SortClause = Union[str, Mapping[str, str]]
Sort = Union[SortClause, Sequence[SortClause], None]
BulkGetRequest = Mapping[str, Any]


class CouchError(Exception):
    """Base exception for couch-do operations."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        error: str | None = None,
        reason: str | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.error = error
        self.reason = reason
        self.body = body


class ConnectionError(CouchError):
    """Error raised when the server could not be reached at all."""

    pass


class RequestError(CouchError):
    """Error raised when the server answers with an error status."""

    pass


class BadRequestError(RequestError):
    pass


class UnauthorizedError(RequestError):
    """Error raised when the credentials are missing or wrong (401)."""

    pass


class ForbiddenError(RequestError):
    pass


class NotFoundError(RequestError):
    """Error raised when a database, document or view does not exist."""

    pass


class ViewNotFoundError(NotFoundError):
    """Error raised when a design document or named view does not exist."""

    pass


class ConflictError(RequestError):
    """Error raised when a write is made against a stale revision (409)."""

    pass


class PreconditionFailedError(RequestError):
    """Error raised when a precondition fails, e.g. the database exists (412)."""

    pass


class ValidationError(CouchError):
    """Error raised before any network call when arguments are invalid."""

    pass


class DatabaseNameError(ValidationError):
    pass


class ReservedKeyError(ValidationError):
    """Error raised when a payload sets keys reserved for store metadata."""

    def __init__(self, message: str, keys: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.keys = list(keys)


class RevisionError(ValidationError):
    """Error raised when a write needs an id and a revision but lacks one."""

    pass


class RevsLimitError(ValidationError):
    pass


class QueryError(CouchError):
    """Error raised when a query does not produce the expected results."""

    pass


class NoResultsError(QueryError):
    """Error raised when a query that must match found nothing."""

    pass


class MultipleResultsError(QueryError):
    """Error raised when a query that must match once found several documents."""

    pass


class DocumentError(CouchError):
    """Error raised when a document handle is used in an invalid state."""

    pass
