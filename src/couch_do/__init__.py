"""
couch-do - async client for CouchDB-compatible document stores.

This package provides an async data-access layer over the store's HTTP
API with support for:
- Document CRUD under the store's revision (MVCC) model
- Document handles with local dirty tracking
- Bulk reads and writes with per-item results
- Mango ``_find`` queries with first/one variants
- Views, replication jobs, revision limits and security documents

Example usage:
    from couch_do import Server, ServerConfig

    async def main():
        # Connect to the store
        async with Server(ServerConfig(user="admin", password="secret")) as server:
            await server.db_create("orders")
            orders = server["orders"]

            # Create and update documents
            created = await orders.doc_create_with_id("o1", {"total": 10})
            await orders.doc_update({"total": 20}, {"id": "o1", "rev": created.rev})

            # Work on a document handle
            doc = orders["o1"]
            await doc.fetch()
            doc.merge({"status": "paid"})
            await doc.save_if_changed()

            # Query
            order = await orders.find_first({"total": {"$gt": 5}}, sort={"total": "desc"})
            print(order)

    import asyncio
    asyncio.run(main())
"""

from __future__ import annotations

__version__ = "0.1.0"

from .database import Database
from .doc_data import DocData, DocStatus
from .document import Document
from .query import FindQuery
from .server import Server, ServerConfig
from .transport import Transport
from .types import (
    BadRequestError,
    ConflictError,
    ConnectionError,
    CouchError,
    DatabaseNameError,
    DocumentError,
    DocumentInfo,
    DocumentResult,
    FindResult,
    ForbiddenError,
    MultipleResultsError,
    NoResultsError,
    NotFoundError,
    PreconditionFailedError,
    QueryError,
    RequestError,
    ReservedKeyError,
    RevisionError,
    RevsLimitError,
    UnauthorizedError,
    ValidationError,
    ViewNotFoundError,
)

__all__ = [
    # Main classes
    "Server",
    "ServerConfig",
    "Database",
    "Document",
    "DocData",
    "DocStatus",
    "FindQuery",
    "Transport",
    # Result types
    "DocumentResult",
    "DocumentInfo",
    "FindResult",
    # Exceptions
    "CouchError",
    "ConnectionError",
    "RequestError",
    "BadRequestError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ViewNotFoundError",
    "ConflictError",
    "PreconditionFailedError",
    "ValidationError",
    "DatabaseNameError",
    "ReservedKeyError",
    "RevisionError",
    "RevsLimitError",
    "QueryError",
    "NoResultsError",
    "MultipleResultsError",
    "DocumentError",
    # Version
    "__version__",
]
