"""
Document - a single document handle with local mutation tracking.

A Document binds an optional id to a Database and keeps the payload in a
DocData. Reads and writes go through the Database and follow the
store's revision discipline: every write must carry the revision read
last, and the handle tracks that revision across fetch and save.

Invariants:
    - ``rev`` is only set by a successful fetch, create or save
    - A handle must not be mutated by concurrent tasks
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from .doc_data import DocData
from .types import DocumentError, DocumentResult, NotFoundError
from .validate import check_id_and_rev

if TYPE_CHECKING:
    from .database import Database

__all__ = ["Document", "random_id"]


def random_id(*prefixes: str, nbytes: int = 8) -> str:
    """
    Mint a random id locally, optionally prefixed.

    Example:
        random_id("order", "eu")    # "order-eu-9f86d081884c7d65"
    """
    token = secrets.token_hex(nbytes)
    return "-".join((*prefixes, token)) if prefixes else token


class Document:
    """
    Handle on one document of a Database.

    Example:
        doc = db["o1"]
        await doc.fetch_if_exists()
        doc.merge({"total": 20})
        await doc.save_if_changed()

        # New document with a store generated id
        doc = db.doc()
        doc.set({"total": 10})
        result = await doc.create()
        doc.id == result.id
    """

    __slots__ = (
        "_id",
        "_database",
        "full_commit",
        "rev",
        "data",
        "get_params",
        "put_params",
    )

    def __init__(
        self,
        database: Database,
        doc_id: str | None = None,
        full_commit: bool = False,
    ) -> None:
        """
        Initialize a document handle.

        Args:
            database: Database the document lives in.
            doc_id: Document id, or None to let the store assign one.
            full_commit: Ask the store to flush every write of this handle
                         to disk before answering.
        """
        self._id = doc_id
        self._database = database
        self.full_commit = full_commit
        self.rev: str | None = None
        self.data = DocData()
        self.get_params: dict[str, Any] = {}
        self.put_params: dict[str, Any] = {}

    @property
    def id(self) -> str | None:
        return self._id

    @id.setter
    def id(self, doc_id: str | None) -> None:
        self._id = doc_id

    @property
    def database(self) -> Database:
        return self._database

    def _require_id(self) -> str:
        if not self._id:
            raise DocumentError("Document has no id")
        return self._id

    # READ PARAMETERS

    def done(self) -> None:
        """Reset read and write parameters."""
        self.get_params = {}
        self.put_params = {}

    def with_revisions(self) -> Document:
        self.get_params["revs_info"] = True
        return self

    def with_attachments(self) -> Document:
        self.get_params["attachments"] = True
        return self

    def with_attachments_info(self) -> Document:
        self.get_params["att_encoding_info"] = True
        return self

    def with_attachments_since(self, revs: Sequence[str]) -> Document:
        self.get_params["atts_since"] = list(revs)
        return self

    def with_conflicts(self) -> Document:
        self.get_params["conflicts"] = True
        return self

    def with_deleted_conflicts(self) -> Document:
        self.get_params["deleted_conflicts"] = True
        return self

    def with_latest(self) -> Document:
        self.get_params["latest"] = True
        return self

    def with_local_seq(self) -> Document:
        self.get_params["local_seq"] = True
        return self

    def with_open_revs(self, revs: str | Sequence[str] = "all") -> Document:
        self.get_params["open_revs"] = revs if isinstance(revs, str) else list(revs)
        return self

    def with_rev(self, rev: str) -> Document:
        self.get_params["rev"] = rev
        return self

    def with_meta(self) -> Document:
        self.get_params["meta"] = True
        return self

    # LOCAL DATA

    def set(self, data: Mapping[str, Any]) -> Document:
        """Replace the local payload."""
        self.data.set(data)
        return self

    def merge(self, data: Mapping[str, Any]) -> Document:
        """Deep-merge into the local payload."""
        self.data.merge(data)
        return self

    def clear(self) -> Document:
        """Drop the local payload and the tracked revision."""
        self.data.clear()
        self.rev = None
        return self

    # READS

    async def exists(self) -> bool:
        """Check if this document exists."""
        return await self._database.doc_exists(self._require_id())

    async def info(self) -> Any:
        """Get the current revision of this document, or None."""
        return await self._database.doc_info(self._require_id())

    async def get(self, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        """Get this document from the store, or None on any failure."""
        return await self._database.doc_get(self._require_id(), params)

    async def get_or_throw(self, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Get this document from the store or raise."""
        return await self._database.doc_get_or_throw(self._require_id(), params)

    async def get_with_revisions(
        self, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Get this document with the information on all its revisions."""
        return await self.get({**(params or {}), "revs_info": True})

    async def fetch(self) -> Document:
        """
        Load the payload and revision from the store.

        Raises:
            NotFoundError: If the document does not exist.
        """
        body = await self.get_or_throw(self.get_params or None)
        if isinstance(body, list):
            # open_revs replies list one {"ok": doc} or {"missing": rev} per revision
            body = next(
                (entry["ok"] for entry in body if isinstance(entry, Mapping) and "ok" in entry),
                None,
            )
            if body is None:
                raise NotFoundError(f"Document {self._id!r} has no open revision", status=404)
        self.data.load(body)
        self.rev = body.get("_rev")
        return self

    async def fetch_if_exists(self) -> Document:
        """Load the payload and revision if the document exists."""
        if await self.exists():
            return await self.fetch()
        return self

    # WRITES

    def _write_headers(self) -> dict[str, str] | None:
        return {"X-Couch-Full-Commit": "true"} if self.full_commit else None

    def _saved(self, result: DocumentResult) -> DocumentResult:
        if result.ok:
            if result.id:
                self._id = result.id
            self.rev = result.rev
            self.data.set_rev(result.rev)
            self.data.mark_saved()
        return result

    async def create(self) -> DocumentResult:
        """
        Create this document in the store.

        Uses the handle's id when set, otherwise the store assigns one.
        The handle's id and revision are updated from the result.
        """
        data = self.data.value() or {}
        data.pop("_rev", None)
        params = dict(self.put_params)
        headers = self._write_headers()
        if self._id:
            result = await self._database.doc_create_with_id(self._id, data, params, headers)
        else:
            result = await self._database.doc_create(data, params, headers)
        return self._saved(result)

    async def save(self) -> DocumentResult:
        """
        Write the local payload as a new revision.

        An empty handle is fetched first. A handle that was never
        persisted is created instead.

        Raises:
            DocumentError: If there is nothing to save.
            ConflictError: If the tracked revision is stale.
        """
        return await self._save(self.rev)

    async def save_to_rev(self, rev: str) -> DocumentResult:
        """Write the local payload against an explicit revision."""
        return await self._save(rev)

    async def _save(self, rev: str | None) -> DocumentResult:
        if self.data.status.empty and self._id:
            await self.fetch_if_exists()
            rev = rev or self.rev
        if self.data.status.empty:
            raise DocumentError(f"Nothing to save for document {self._id!r}")
        if not rev:
            return await self.create()

        result = await self._database.doc_update(
            self.data.value() or {},
            {**self.put_params, "id": self._require_id(), "rev": rev},
            self._write_headers(),
        )
        return self._saved(result)

    async def save_if_changed(self) -> DocumentResult | None:
        """Save only when the payload changed locally."""
        if not self.data.status.changed:
            return None
        return await self.save()

    async def delete(self) -> DocumentResult:
        """
        Delete the tracked revision of this document.

        Raises:
            RevisionError: Without an id and a tracked revision.
        """
        check_id_and_rev(self._id, self.rev)
        return await self.delete_rev(self.rev)

    async def delete_rev(self, rev: str) -> DocumentResult:
        """Delete a specific revision of this document."""
        check_id_and_rev(self._id, rev)
        result = await self._database.doc_delete(
            self._id, rev, self.put_params or None, self._write_headers()
        )
        if result.ok:
            self.rev = None
            self.data.set_rev(None)
        return result

    async def delete_last_rev(self) -> DocumentResult:
        """
        Look up the current revision and delete it.

        Raises:
            NotFoundError: If the document does not exist.
        """
        info = await self.info()
        if info is None or not info.rev:
            raise NotFoundError(f"Document {self._id!r} not found", status=404)
        return await self.delete_rev(info.rev)

    # IDS

    async def generate_uuid(self) -> str:
        """Assign an id generated by the server."""
        self._id = await self._database.server.get_uuid()
        return self._id

    def generate_id(self, *prefixes: str) -> str:
        """
        Assign a locally generated random id.

        Unlike generate_uuid() this makes no round-trip and gives no
        cluster-wide uniqueness guarantee.
        """
        self._id = random_id(*prefixes)
        return self._id

    def __repr__(self) -> str:
        return f"Document({self._database.name!r}, {self._id!r}, rev={self.rev!r})"
