"""
FindQuery - chainable builder and async cursor for ``_find`` requests.

Normalizes selector and sort before the request is sent and iterates
over the returned documents.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, AsyncIterator, Mapping, Sequence

if TYPE_CHECKING:
    from .database import Database
    from .types import FindResult, Selector, Sort, SortClause

__all__ = ["FindQuery", "build_find_request", "normalize_sort"]


def normalize_sort(sort: Sort) -> list[SortClause] | None:
    """
    Normalize a sort specification to a list of clauses.

    A single clause (``"field"`` or ``{"field": "desc"}``) becomes a
    one-element list; a sequence of clauses is copied as is.

    Example:
        normalize_sort("year")                  # ["year"]
        normalize_sort({"year": "desc"})        # [{"year": "desc"}]
        normalize_sort(["year", "title"])       # ["year", "title"]
    """
    if sort is None:
        return None
    if isinstance(sort, (str, Mapping)):
        return [sort if isinstance(sort, str) else dict(sort)]
    return [clause if isinstance(clause, str) else dict(clause) for clause in sort]


def build_find_request(
    selector: Selector | None = None,
    sort: Sort = None,
    **options: Any,
) -> dict[str, Any]:
    """
    Build a ``_find`` request body.

    Args:
        selector: Mango selector (defaults to matching everything).
        sort: One sort clause or a sequence of clauses.
        **options: fields, limit, skip, use_index, bookmark,
                   execution_stats, r, update, stable, ...

    Returns:
        Request body with ``None`` options dropped.
    """
    request: dict[str, Any] = {"selector": dict(selector or {})}
    clauses = normalize_sort(sort)
    if clauses:
        request["sort"] = clauses
    for key, value in options.items():
        if value is not None:
            request[key] = value
    return request


class FindQuery:
    """
    Async cursor over a ``_find`` query.

    FindQuery provides a lazy, async iterable interface for query
    results. It supports chaining operations like sort, limit, skip,
    and fields before iteration begins.

    Example:
        async for doc in db.find({"status": "active"}):
            print(doc)

        # With chaining
        query = db.find({"year": {"$gt": 2010}}).sort({"year": "desc"}).limit(10)
        docs = await query.to_list()
    """

    __slots__ = (
        "_database",
        "_selector",
        "_fields",
        "_sort",
        "_limit",
        "_skip",
        "_options",
        "_result",
        "_position",
    )

    def __init__(self, database: Database, selector: Selector | None = None) -> None:
        """
        Initialize a query.

        Args:
            database: Database to run the query against.
            selector: Mango selector.
        """
        self._database = database
        self._selector: dict[str, Any] = dict(selector or {})
        self._fields: list[str] | None = None
        self._sort: Sort = None
        self._limit: int | None = None
        self._skip: int | None = None
        self._options: dict[str, Any] = {}
        self._result: FindResult | None = None
        self._position: int = 0

    def sort(self, sort: Sort) -> FindQuery:
        """
        Sort the results.

        Args:
            sort: A field name, a {field: "asc"|"desc"} clause, or a
                  sequence of clauses.

        Returns:
            Self for chaining.
        """
        self._sort = sort
        return self

    def limit(self, limit: int) -> FindQuery:
        """
        Limit the number of results.

        Returns:
            Self for chaining.
        """
        self._limit = limit
        return self

    def skip(self, skip: int) -> FindQuery:
        """
        Skip the first N results.

        Returns:
            Self for chaining.
        """
        self._skip = skip
        return self

    def fields(self, fields: Sequence[str]) -> FindQuery:
        """Only return the given fields of each document."""
        self._fields = list(fields)
        return self

    def use_index(self, index: str | Sequence[str]) -> FindQuery:
        """Instruct the query to use a design document or [ddoc, index]."""
        self._options["use_index"] = index if isinstance(index, str) else list(index)
        return self

    def bookmark(self, bookmark: str) -> FindQuery:
        self._options["bookmark"] = bookmark
        return self

    def execution_stats(self, enabled: bool = True) -> FindQuery:
        self._options["execution_stats"] = enabled
        return self

    def to_request(self) -> dict[str, Any]:
        """Build the request body for this query."""
        return build_find_request(
            self._selector,
            self._sort,
            fields=self._fields,
            limit=self._limit,
            skip=self._skip,
            **self._options,
        )

    async def execute(self) -> FindResult:
        """
        Execute the query and fetch results.

        Returns:
            The FindResult for this query.
        """
        if self._result is None:
            self._result = await self._database.find_raw(self.to_request())
        return self._result

    async def to_list(self, length: int | None = None) -> list[dict[str, Any]]:
        """
        Convert the query results to a list.

        Args:
            length: Maximum number of documents to return.
                    If None, returns all documents.
        """
        result = await self.execute()
        if length is not None:
            return result.docs[:length]
        return list(result.docs)

    async def explain(self) -> dict[str, Any]:
        """Ask the store which index would serve this query."""
        return await self._database.explain_raw(self.to_request())

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        """Return async iterator."""
        return self

    async def __anext__(self) -> dict[str, Any]:
        """
        Get the next document.

        Raises:
            StopAsyncIteration: When all documents have been iterated.
        """
        result = await self.execute()

        if self._position >= len(result.docs):
            raise StopAsyncIteration

        doc = result.docs[self._position]
        self._position += 1
        return doc

    def clone(self) -> FindQuery:
        """
        Clone this query.

        Returns:
            A new, unexecuted query with the same parameters.
        """
        query = FindQuery(self._database, self._selector)
        query._fields = self._fields
        query._sort = self._sort
        query._limit = self._limit
        query._skip = self._skip
        query._options = dict(self._options)
        return query

    def rewind(self) -> FindQuery:
        """
        Rewind the cursor to the beginning.

        Returns:
            Self for chaining.
        """
        self._position = 0
        return self
