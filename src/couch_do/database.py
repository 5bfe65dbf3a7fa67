"""
Database - collection-scoped operations on a CouchDB-compatible store.

The only component that knows the REST path shapes: document CRUD,
bulk reads and writes, ``_find`` queries, views, replication, the
revision limit and the ``_security`` document.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import TYPE_CHECKING, Any, Mapping, Sequence
from urllib.parse import quote

from . import security
from .document import Document
from .query import FindQuery, build_find_request
from .transport import soft_fail
from .types import (
    DocumentInfo,
    DocumentResult,
    FindResult,
    MultipleResultsError,
    NoResultsError,
)
from .validate import check_database_name, check_id_and_rev, check_revs_limit

if TYPE_CHECKING:
    from .server import Server
    from .types import BulkGetRequest, Selector, Sort

__all__ = ["Database"]

logger = logging.getLogger(__name__)

# View query parameters whose values must be sent as JSON.
VIEW_JSON_PARAMS = frozenset(
    {"key", "keys", "startkey", "endkey", "start_key", "end_key"}
)

_PREFIXED_IDS = ("_design/", "_local/")


def doc_path(doc_id: str) -> str:
    """Quote a document id for use in a URL path."""
    for prefix in _PREFIXED_IDS:
        if doc_id.startswith(prefix):
            return prefix + quote(doc_id[len(prefix):], safe="")
    return quote(doc_id, safe="")


def _design_name(ddoc: str) -> str:
    return ddoc[len("_design/"):] if ddoc.startswith("_design/") else ddoc


class Database:
    """
    A named database on a Server.

    Database objects hold no per-request state and can be shared by
    concurrent calls. Document handles are built with subscript
    notation.

    Example:
        db = server["orders"]
        await db.create_if_not_exists()

        # Documents
        created = await db.doc_create_with_id("o1", {"total": 10})
        await db.doc_update({"total": 20}, {"id": "o1", "rev": created.rev})

        # Queries
        order = await db.find_first({"total": {"$gt": 5}}, sort={"total": "desc"})

        # Handles
        doc = db["o1"]
        await doc.fetch()
    """

    __slots__ = ("_name", "_server", "_path")

    def __init__(self, name: str, server: Server) -> None:
        """
        Initialize a database.

        Args:
            name: Database name.
            server: Parent Server instance.
        """
        self._name = check_database_name(name)
        self._server = server
        self._path = quote(name, safe="")

    @property
    def name(self) -> str:
        """Get the database name."""
        return self._name

    @property
    def server(self) -> Server:
        """Get the parent server."""
        return self._server

    @property
    def url(self) -> str:
        """Fully-qualified URL of this database, credentials included."""
        return f"{self._server.base_url}/{self._path}"

    def _sub(self, *parts: str) -> str:
        return "/".join((self._path, *parts))

    def __getitem__(self, doc_id: str) -> Document:
        """
        Get a handle on a document.

        Example:
            doc = db["o1"]
        """
        return Document(self, doc_id)

    def doc(self, doc_id: str | None = None, full_commit: bool = False) -> Document:
        """Get a handle on a document, new when no id is given."""
        return Document(self, doc_id, full_commit)

    # DATABASE

    async def exists(self) -> bool:
        """Check if this database exists."""
        return await self._server.db_exists(self._name)

    async def info(self) -> dict[str, Any] | None:
        """Get info on this database, or None on any failure."""
        return await self._server.db_info(self._name)

    async def create_or_throw(self) -> bool:
        """Create this database."""
        return await self._server.db_create(self._name)

    async def create_if_not_exists(self) -> bool:
        """Create this database only if it does not exist yet."""
        if await self.exists():
            return True
        return await self.create_or_throw()

    async def destroy(self) -> bool:
        """Delete this database."""
        return await self._server.db_destroy(self._name)

    async def all_docs(
        self,
        keys: Sequence[str] | None = None,
        **params: Any,
    ) -> dict[str, Any]:
        """
        Fetch the ``_all_docs`` view.

        Args:
            keys: Only return rows for these ids.
            **params: View parameters (include_docs, limit, ...).
        """
        if keys:
            result = await self._server.post(
                self._sub("_all_docs"), {"keys": list(keys)}, params=params
            )
        else:
            result = await self._server.get(self._sub("_all_docs"), params=params)
        return result if isinstance(result, dict) else {"total_rows": 0, "rows": []}

    async def all_user_docs(
        self,
        keys: Sequence[str] | None = None,
        **params: Any,
    ) -> dict[str, Any]:
        """Fetch ``_all_docs`` without system (underscore-prefixed) rows."""
        result = await self.all_docs(keys, **params)
        rows = [
            row
            for row in result.get("rows") or []
            if not str(row.get("id", "")).startswith("_")
        ]
        result["rows"] = rows
        result["total_rows"] = len(rows)
        return result

    # DOCUMENTS

    async def doc_exists(self, doc_id: str) -> bool:
        """Check if a document exists. Any failure reports False."""
        info = await self.doc_info(doc_id)
        return info is not None

    async def doc_info_or_throw(self, doc_id: str) -> DocumentInfo:
        """Get the current revision of a document without its body."""
        response = await self._server.head(self._sub(doc_path(doc_id)))
        etag = response.headers.get("etag")
        return DocumentInfo(
            id=doc_id,
            rev=etag.strip('"') if etag else None,
            status=response.status_code,
            headers=dict(response.headers),
        )

    async def doc_info(self, doc_id: str) -> DocumentInfo | None:
        """Get document metadata, or None on any failure."""
        return await soft_fail(self.doc_info_or_throw(doc_id))

    async def doc_get_or_throw(
        self,
        doc_id: str,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Get a document.

        Args:
            doc_id: Document id.
            params: Read parameters (rev, revs, revs_info, conflicts, ...).

        Raises:
            NotFoundError: If the document does not exist.
        """
        return await self._server.get(self._sub(doc_path(doc_id)), params=params)

    async def doc_get(
        self,
        doc_id: str,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Get a document, or None on any failure."""
        return await soft_fail(self.doc_get_or_throw(doc_id, params))

    async def doc_create(
        self,
        data: Mapping[str, Any],
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> DocumentResult:
        """
        Create a new document; the store assigns an id if none is given.

        Args:
            data: Document body.
            params: Write parameters (batch, ...).
            headers: Extra request headers (e.g. X-Couch-Full-Commit).
        """
        result = await self._server.post(self._path, dict(data), params=params, headers=headers)
        return DocumentResult.from_response(result)

    async def doc_create_with_id(
        self,
        doc_id: str,
        data: Mapping[str, Any],
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> DocumentResult:
        """Create a new document with the given id."""
        return await self.doc_create({**data, "_id": doc_id}, params, headers)

    async def doc_update(
        self,
        data: Mapping[str, Any],
        params: Mapping[str, Any],
        headers: Mapping[str, str] | None = None,
    ) -> DocumentResult:
        """
        Write a new revision of an existing document.

        Args:
            data: Document body.
            params: Must hold ``id`` and the current ``rev``; any other
                    entry (batch, new_edits) is sent as a query parameter.
            headers: Extra request headers.

        Raises:
            RevisionError: If id or rev is missing.
            ConflictError: If rev is not the current revision.
        """
        params = dict(params or {})
        doc_id = params.pop("id", None)
        rev = params.pop("rev", None)
        check_id_and_rev(doc_id, rev)
        body = {**data, "_id": doc_id, "_rev": rev}
        result = await self._server.post(self._path, body, params=params, headers=headers)
        return DocumentResult.from_response(result)

    async def doc_delete(
        self,
        doc_id: str,
        rev: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> DocumentResult:
        """
        Delete exactly the given revision of a document.

        Raises:
            RevisionError: If doc_id or rev is missing.
            ConflictError: If rev is not the current revision.
        """
        check_id_and_rev(doc_id, rev)
        result = await self._server.delete(
            self._sub(doc_path(doc_id)),
            params={**(params or {}), "rev": rev},
            headers=headers,
        )
        return DocumentResult.from_response(result)

    async def doc_copy(
        self,
        doc_id: str,
        destination: str,
        rev: str | None = None,
    ) -> DocumentResult:
        """Copy a document to a new id; pass ``rev`` to copy a given revision."""
        result = await self._server.copy(
            self._sub(doc_path(doc_id)), destination, params={"rev": rev}
        )
        return DocumentResult.from_response(result)

    # BULK

    async def bulk_get_raw(
        self,
        docs: Sequence[BulkGetRequest],
        list_all_revs: bool = False,
    ) -> dict[str, Any]:
        """
        Fetch several documents in one request.

        Args:
            docs: Items of the form {"id", "rev"?, "atts_since"?}.
            list_all_revs: Include the revision history of each document.

        Returns:
            The store reply: {"results": [{"id", "docs": [...]}, ...]}.
        """
        result = await self._server.post(
            self._sub("_bulk_get"),
            {"docs": [dict(doc) for doc in docs]},
            params={"revs": list_all_revs},
        )
        return result if isinstance(result, dict) else {"results": []}

    async def bulk_get(
        self,
        docs: Sequence[BulkGetRequest],
        list_all_revs: bool = False,
        remove_system_docs: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Fetch several documents and return one body per found id.

        Each result group is flattened to its first open revision. Groups
        whose first entry is an error (e.g. a missing document) are left
        out.

        Args:
            docs: Items of the form {"id", "rev"?, "atts_since"?}.
            list_all_revs: Include the revision history of each document.
            remove_system_docs: Drop ids starting with an underscore.
        """
        result = await self.bulk_get_raw(docs, list_all_revs)
        groups = result.get("results") or []
        if remove_system_docs:
            groups = [g for g in groups if not str(g.get("id", "")).startswith("_")]

        bodies = []
        for group in groups:
            entries = group.get("docs")
            if not isinstance(entries, list) or not entries:
                continue
            first = entries[0]
            if isinstance(first, Mapping) and isinstance(first.get("ok"), Mapping):
                bodies.append(first["ok"])
        return bodies

    async def bulk_insert_raw(
        self,
        docs: Sequence[Mapping[str, Any]],
    ) -> list[DocumentResult]:
        """
        Insert several documents in one request.

        Returns one result per input document; failures are reported per
        item through ``error``/``reason`` and never raised.
        """
        return await self._bulk_docs(docs)

    async def bulk_update_raw(
        self,
        docs: Sequence[Mapping[str, Any]],
        new_edits: bool = True,
    ) -> list[DocumentResult]:
        """
        Update (or delete, with ``_deleted``) several documents in one request.

        Args:
            docs: Documents carrying their ``_id`` and current ``_rev``.
            new_edits: False to store the given revisions as they are.
        """
        return await self._bulk_docs(docs, new_edits)

    async def _bulk_docs(
        self,
        docs: Sequence[Mapping[str, Any]],
        new_edits: bool = True,
    ) -> list[DocumentResult]:
        body: dict[str, Any] = {"docs": [dict(doc) for doc in docs]}
        if not new_edits:
            body["new_edits"] = False
        result = await self._server.post(self._sub("_bulk_docs"), body)
        items = [DocumentResult.from_response(item) for item in result or []]
        failed = sum(1 for item in items if item.error)
        if failed:
            logger.debug("Bulk write on %s: %d of %d items failed", self._name, failed, len(items))
        return items

    # FIND

    async def find_raw(self, request: Mapping[str, Any]) -> FindResult:
        """
        Run a ``_find`` query.

        Args:
            request: {"selector", "sort"?, "limit"?, "skip"?, "fields"?, ...}.
        """
        result = await self._server.post(self._sub("_find"), dict(request))
        return FindResult.from_response(result)

    async def explain_raw(self, request: Mapping[str, Any]) -> dict[str, Any]:
        """Ask which index a ``_find`` request would use."""
        result = await self._server.post(self._sub("_explain"), dict(request))
        return result if isinstance(result, dict) else {}

    def find(self, selector: Selector | None = None) -> FindQuery:
        """
        Build a ``_find`` query.

        Example:
            docs = await db.find({"type": "order"}).sort("date").limit(10).to_list()
        """
        return FindQuery(self, selector)

    async def find_one_or_throw(
        self,
        selector: Selector,
        **options: Any,
    ) -> dict[str, Any]:
        """
        Find the single document matching the selector.

        Raises:
            NoResultsError: If nothing matches.
            MultipleResultsError: If more than one document matches.
        """
        options["limit"] = 2
        result = await self.find_raw(build_find_request(selector, **options))
        if not result.docs:
            raise NoResultsError(f"No document in {self._name} matches {dict(selector)}")
        if len(result.docs) > 1:
            raise MultipleResultsError(
                f"More than one document in {self._name} matches {dict(selector)}"
            )
        return result.docs[0]

    async def find_one(self, selector: Selector, **options: Any) -> dict[str, Any] | None:
        """Find the single matching document, or None on any failure."""
        return await soft_fail(self.find_one_or_throw(selector, **options))

    async def find_first_or_throw(
        self,
        selector: Selector,
        sort: Sort = None,
        **options: Any,
    ) -> dict[str, Any]:
        """
        Find the first matching document under the given sort order.

        Args:
            selector: Mango selector.
            sort: One sort clause or a sequence of clauses.

        Raises:
            NoResultsError: If nothing matches.
        """
        options["limit"] = 1
        result = await self.find_raw(build_find_request(selector, sort, **options))
        if not result.docs:
            raise NoResultsError(f"No document in {self._name} matches {dict(selector)}")
        return result.docs[0]

    async def find_first(
        self,
        selector: Selector,
        sort: Sort = None,
        **options: Any,
    ) -> dict[str, Any] | None:
        """Find the first matching document, or None on any failure."""
        return await soft_fail(self.find_first_or_throw(selector, sort, **options))

    # VIEWS

    async def doc_view_create_with_id(
        self,
        ddoc_id: str,
        design: Mapping[str, Any],
    ) -> DocumentResult:
        """
        Create a design document.

        Args:
            ddoc_id: Design document name, with or without "_design/".
            design: {"views": {...}, "language"?, ...}.
        """
        result = await self._server.put(
            self._sub("_design", quote(_design_name(ddoc_id), safe="")), dict(design)
        )
        return DocumentResult.from_response(result)

    async def doc_view_update(
        self,
        ddoc_id: str,
        design: Mapping[str, Any],
        rev: str,
    ) -> DocumentResult:
        """Write a new revision of a design document."""
        check_id_and_rev(ddoc_id, rev)
        result = await self._server.put(
            self._sub("_design", quote(_design_name(ddoc_id), safe="")),
            {**design, "_rev": rev},
        )
        return DocumentResult.from_response(result)

    async def call_view_or_throw(
        self,
        ddoc: str,
        view: str,
        **params: Any,
    ) -> list[dict[str, Any]]:
        """
        Query a view and return its rows.

        Args:
            ddoc: Design document name.
            view: View name.
            **params: View parameters (key, startkey, include_docs, ...).

        Raises:
            ViewNotFoundError: If the design document or view does not exist.
        """
        query = {
            key: json.dumps(value) if key in VIEW_JSON_PARAMS else value
            for key, value in params.items()
        }
        result = await self._server.get(
            self._sub(
                "_design",
                quote(_design_name(ddoc), safe=""),
                "_view",
                quote(view, safe=""),
            ),
            params=query,
        )
        rows = result.get("rows") if isinstance(result, dict) else None
        return rows if isinstance(rows, list) else []

    async def call_view(self, ddoc: str, view: str, **params: Any) -> list[dict[str, Any]] | None:
        """Query a view, or return None on any failure."""
        return await soft_fail(self.call_view_or_throw(ddoc, view, **params))

    # REPLICATION

    async def replicate_to(
        self,
        target: Database,
        job_id: str | None = None,
        create_target: bool = False,
        continuous: bool = False,
    ) -> DocumentResult:
        """
        Replicate this database into ``target``.

        The job is registered in ``_replicator`` on this database's server.
        """
        return await self._replicate(self, target, job_id, create_target, continuous)

    async def replicate_from(
        self,
        source: Database,
        job_id: str | None = None,
        create_target: bool = False,
        continuous: bool = False,
    ) -> DocumentResult:
        """
        Replicate ``source`` into this database.

        The job is registered in ``_replicator`` on this database's server.
        """
        return await self._replicate(source, self, job_id, create_target, continuous)

    async def _replicate(
        self,
        source: Database,
        target: Database,
        job_id: str | None,
        create_target: bool,
        continuous: bool,
    ) -> DocumentResult:
        if not job_id:
            job_id = await self._server.get_uuid()
        job = {
            "_id": job_id,
            "source": source.url,
            "target": target.url,
            "create_target": create_target,
            "continuous": continuous,
        }
        logger.debug("Replication job %s: %s -> %s", job_id, source.name, target.name)
        result = await self._server.put(f"_replicator/{doc_path(job_id)}", job)
        return DocumentResult.from_response(result)

    # REVISIONS

    async def get_revs_limit(self) -> int:
        """Get the number of revisions the store keeps per document."""
        return await self._server.get(self._sub("_revs_limit"))

    async def set_revs_limit(self, limit: int) -> bool:
        """
        Set the number of revisions the store keeps per document.

        Raises:
            RevsLimitError: If limit is not an integer in 1..10000.

        Returns:
            True if the limit is in place, False on any store failure.
        """
        check_revs_limit(limit)
        return await soft_fail(self._put_revs_limit(limit), False)

    async def _put_revs_limit(self, limit: int) -> bool:
        if await self.get_revs_limit() == limit:
            return True
        result = await self._server.put(self._sub("_revs_limit"), limit)
        return bool(isinstance(result, dict) and result.get("ok"))

    # SECURITY

    async def get_security(self) -> dict[str, Any]:
        """Get the ``_security`` document; empty when none is set."""
        result = await self._server.get(self._sub("_security"))
        return result if isinstance(result, dict) else {}

    async def _put_security(self, document: Mapping[str, Any]) -> bool:
        result = await self._server.put(self._sub("_security"), dict(document))
        return bool(isinstance(result, dict) and result.get("ok"))

    async def add_users_authorization(self, document: Mapping[str, Any]) -> bool:
        """
        Add names and roles to the ``_security`` document.

        Without an existing document the given one is written as is;
        otherwise each group's names and roles are unioned with it.
        """
        existing = await self.get_security()
        if security.is_empty(existing):
            return await self._put_security(copy.deepcopy(dict(document)))
        return await self._put_security(security.merge_security(existing, document))

    async def update_users_authorization(self, document: Mapping[str, Any]) -> bool:
        """Overwrite the ``_security`` document."""
        return await self._put_security(copy.deepcopy(dict(document)))

    async def delete_user_authorization(self, document: Mapping[str, Any]) -> bool:
        """Remove names and roles from the ``_security`` document."""
        existing = await self.get_security()
        return await self._put_security(security.subtract_security(existing, document))

    def __repr__(self) -> str:
        return f"Database({self._name!r})"
