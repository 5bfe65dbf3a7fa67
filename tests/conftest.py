"""
Pytest fixtures for couch-do tests.

Provides an in-memory fake store served through httpx.MockTransport,
so the whole stack (Server -> Transport -> httpx) runs without a real
network connection.
"""

from __future__ import annotations

import json
import uuid
from typing import Any
from urllib.parse import unquote

import httpx
import pytest


class FakeCouch:
    """In-memory fake of the store's HTTP API with real revision checks."""

    def __init__(self) -> None:
        self.dbs: dict[str, dict[str, dict[str, Any]]] = {}
        self.history: dict[str, dict[str, list[str]]] = {}
        self.security: dict[str, dict[str, Any]] = {}
        self.revs_limits: dict[str, int] = {}
        self.requests: list[httpx.Request] = []
        # None, an HTTP status to answer every request with, or "connect"
        self.fail_with: int | str | None = None

    # HELPERS

    @staticmethod
    def _reply(status: int, body: Any = None, headers: dict[str, str] | None = None) -> httpx.Response:
        if body is None:
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, json=body, headers=headers)

    @staticmethod
    def _error(status: int, error: str, reason: str) -> httpx.Response:
        return httpx.Response(status, json={"error": error, "reason": reason})

    def create_db(self, name: str) -> None:
        self.dbs.setdefault(name, {})
        self.history.setdefault(name, {})

    def _next_rev(self, current: dict[str, Any] | None) -> str:
        start = int(current["_rev"].split("-", 1)[0]) if current else 0
        return f"{start + 1}-{uuid.uuid4().hex}"

    def write(self, db: str, doc: dict[str, Any], new_edits: bool = True) -> dict[str, Any]:
        """Write one document, returning a bulk-style result item."""
        docs = self.dbs[db]
        doc = dict(doc)
        doc_id = doc.get("_id") or uuid.uuid4().hex
        current = docs.get(doc_id)
        rev = doc.get("_rev")

        if new_edits:
            live = current is not None and not current.get("_deleted")
            if live and rev != current["_rev"]:
                return {"id": doc_id, "error": "conflict", "reason": "Document update conflict."}
            if not live and rev is not None and (current is None or rev != current["_rev"]):
                return {"id": doc_id, "error": "conflict", "reason": "Document update conflict."}
            doc["_rev"] = self._next_rev(current)

        doc["_id"] = doc_id
        if doc.get("_deleted"):
            doc = {"_id": doc_id, "_rev": doc["_rev"], "_deleted": True}
        docs[doc_id] = doc
        self.history[db].setdefault(doc_id, []).insert(0, doc["_rev"])
        return {"ok": True, "id": doc_id, "rev": doc["_rev"]}

    def _live(self, db: str, doc_id: str) -> dict[str, Any] | None:
        doc = self.dbs[db].get(doc_id)
        if doc is None or doc.get("_deleted"):
            return None
        return doc

    # QUERIES

    def _matches(self, doc: dict[str, Any], selector: dict[str, Any]) -> bool:
        """Check if document matches a Mango selector."""
        for key, value in selector.items():
            if key == "$and":
                if not all(self._matches(doc, s) for s in value):
                    return False
                continue
            if key == "$or":
                if not any(self._matches(doc, s) for s in value):
                    return False
                continue

            doc_value = doc.get(key)
            if isinstance(value, dict):
                for op, op_value in value.items():
                    if op == "$eq" and doc_value != op_value:
                        return False
                    if op == "$ne" and doc_value == op_value:
                        return False
                    if op == "$gt" and (doc_value is None or doc_value <= op_value):
                        return False
                    if op == "$gte" and (doc_value is None or doc_value < op_value):
                        return False
                    if op == "$lt" and (doc_value is None or doc_value >= op_value):
                        return False
                    if op == "$lte" and (doc_value is None or doc_value > op_value):
                        return False
                    if op == "$in" and doc_value not in op_value:
                        return False
                    if op == "$exists" and (key in doc) != op_value:
                        return False
            elif doc_value != value:
                return False
        return True

    def find(self, db: str, request: dict[str, Any]) -> dict[str, Any]:
        results = [
            doc
            for doc_id, doc in self.dbs[db].items()
            if not doc.get("_deleted")
            and not doc_id.startswith("_design/")
            and self._matches(doc, request.get("selector", {}))
        ]
        for clause in reversed(request.get("sort") or []):
            if isinstance(clause, str):
                field, direction = clause, "asc"
            else:
                field, direction = next(iter(clause.items()))
            results.sort(key=lambda d: d.get(field), reverse=direction == "desc")

        skip = request.get("skip", 0)
        limit = request.get("limit", 25)
        results = results[skip : skip + limit]

        fields = request.get("fields")
        if fields:
            results = [{f: d[f] for f in fields if f in d} for d in results]

        reply: dict[str, Any] = {"docs": results, "bookmark": "nil"}
        if request.get("execution_stats"):
            reply["execution_stats"] = {"results_returned": len(results)}
        return reply

    # ROUTING

    def handle(self, request: httpx.Request) -> httpx.Response:
        """Serve one request."""
        self.requests.append(request)
        if self.fail_with == "connect":
            raise httpx.ConnectError("Connection refused", request=request)
        if isinstance(self.fail_with, int):
            return self._error(self.fail_with, "failure", "Injected failure")

        raw_path = request.url.raw_path.decode().split("?", 1)[0]
        parts = [unquote(p) for p in raw_path.strip("/").split("/") if p]
        method = request.method
        body = json.loads(request.content) if request.content else None
        params = dict(request.url.params)

        if not parts:
            return self._reply(200, {"couchdb": "Welcome", "version": "3.3.3"})
        if parts == ["_all_dbs"]:
            return self._reply(200, sorted(self.dbs))
        if parts == ["_uuids"]:
            count = int(params.get("count", 1))
            return self._reply(200, {"uuids": [uuid.uuid4().hex for _ in range(count)]})
        if parts[0] == "_replicator" and len(parts) == 2:
            self.create_db("_replicator")
            return self._doc_route("_replicator", parts[1], method, body, params, request)

        db = parts[0]
        if len(parts) == 1:
            return self._db_route(db, method, body, params)
        if db not in self.dbs:
            return self._error(404, "not_found", "Database does not exist.")

        rest = parts[1:]
        if rest[0] in ("_design", "_local") and len(rest) >= 2:
            if len(rest) == 4 and rest[2] == "_view":
                return self._view_route(db, rest[1], rest[3], params)
            return self._doc_route(db, f"{rest[0]}/{rest[1]}", method, body, params, request)
        if len(rest) == 1:
            name = rest[0]
            if name == "_all_docs":
                return self._all_docs(db, body)
            if name == "_bulk_get":
                return self._bulk_get(db, body, params)
            if name == "_bulk_docs":
                new_edits = body.get("new_edits", True)
                return self._reply(201, [self.write(db, d, new_edits) for d in body["docs"]])
            if name == "_find":
                return self._reply(200, self.find(db, body))
            if name == "_explain":
                return self._reply(200, {"dbname": db, "index": {"name": "_all_docs"}, **body})
            if name == "_security":
                if method == "PUT":
                    self.security[db] = body
                    return self._reply(200, {"ok": True})
                return self._reply(200, self.security.get(db, {}))
            if name == "_revs_limit":
                if method == "PUT":
                    self.revs_limits[db] = body
                    return self._reply(200, {"ok": True})
                return self._reply(200, self.revs_limits.get(db, 1000))
            return self._doc_route(db, name, method, body, params, request)
        return self._error(400, "bad_request", "Unsupported path")

    def _db_route(self, db: str, method: str, body: Any, params: dict[str, str]) -> httpx.Response:
        if method == "PUT":
            if db in self.dbs:
                return self._error(412, "file_exists", "The database could not be created, the file already exists.")
            self.create_db(db)
            return self._reply(201, {"ok": True})
        if db not in self.dbs:
            return self._error(404, "not_found", "Database does not exist.")
        if method == "HEAD":
            return self._reply(200)
        if method == "GET":
            docs = self.dbs[db]
            return self._reply(200, {
                "db_name": db,
                "doc_count": sum(1 for d in docs.values() if not d.get("_deleted")),
                "doc_del_count": sum(1 for d in docs.values() if d.get("_deleted")),
            })
        if method == "DELETE":
            del self.dbs[db]
            self.history.pop(db, None)
            return self._reply(200, {"ok": True})
        if method == "POST":
            result = self.write(db, body)
            if "error" in result:
                return self._error(409, result["error"], result["reason"])
            return self._reply(201, result)
        return self._error(405, "method_not_allowed", method)

    def _doc_route(
        self,
        db: str,
        doc_id: str,
        method: str,
        body: Any,
        params: dict[str, str],
        request: httpx.Request,
    ) -> httpx.Response:
        if method == "PUT":
            result = self.write(db, {**body, "_id": doc_id})
            if "error" in result:
                return self._error(409, result["error"], result["reason"])
            return self._reply(201, result)

        doc = self._live(db, doc_id)
        if doc is None:
            reason = "deleted" if doc_id in self.dbs[db] else "missing"
            return self._error(404, "not_found", reason)

        if method == "HEAD":
            return self._reply(200, headers={"ETag": f'"{doc["_rev"]}"'})
        if method == "GET":
            reply = dict(doc)
            if params.get("revs_info") == "true":
                reply["_revs_info"] = [
                    {"rev": rev, "status": "available"} for rev in self.history[db][doc_id]
                ]
            if "open_revs" in params:
                return self._reply(200, [{"ok": reply}])
            return self._reply(200, reply)
        if method == "DELETE":
            result = self.write(db, {"_id": doc_id, "_rev": params.get("rev"), "_deleted": True})
            if "error" in result:
                return self._error(409, result["error"], result["reason"])
            return self._reply(200, result)
        if method == "COPY":
            target = request.headers["Destination"]
            copied = {k: v for k, v in doc.items() if k not in ("_id", "_rev")}
            result = self.write(db, {**copied, "_id": target})
            if "error" in result:
                return self._error(409, result["error"], result["reason"])
            return self._reply(201, result)
        return self._error(405, "method_not_allowed", method)

    def _view_route(self, db: str, ddoc: str, view: str, params: dict[str, str]) -> httpx.Response:
        design = self._live(db, f"_design/{ddoc}")
        if design is None:
            return self._error(404, "not_found", "missing")
        if view not in design.get("views", {}):
            return self._error(404, "not_found", "missing_named_view")
        rows = [
            {"id": doc_id, "key": doc_id, "value": doc["_rev"]}
            for doc_id, doc in sorted(self.dbs[db].items())
            if not doc.get("_deleted") and not doc_id.startswith("_design/")
        ]
        if "key" in params:
            key = json.loads(params["key"])
            rows = [row for row in rows if row["key"] == key]
        return self._reply(200, {"total_rows": len(rows), "offset": 0, "rows": rows})

    def _all_docs(self, db: str, body: Any) -> httpx.Response:
        docs = self.dbs[db]
        ids = body["keys"] if body else sorted(docs)
        rows = [
            {"id": doc_id, "key": doc_id, "value": {"rev": docs[doc_id]["_rev"]}}
            for doc_id in ids
            if doc_id in docs and not docs[doc_id].get("_deleted")
        ]
        return self._reply(200, {"total_rows": len(rows), "offset": 0, "rows": rows})

    def _bulk_get(self, db: str, body: Any, params: dict[str, str]) -> httpx.Response:
        results = []
        for item in body["docs"]:
            doc_id = item["id"]
            doc = self._live(db, doc_id)
            if doc is None:
                entry = {"error": {"id": doc_id, "error": "not_found", "reason": "missing"}}
            else:
                found = dict(doc)
                if params.get("revs") == "true":
                    found["_revisions"] = {
                        "start": len(self.history[db][doc_id]),
                        "ids": [r.split("-", 1)[1] for r in self.history[db][doc_id]],
                    }
                entry = {"ok": found}
            results.append({"id": doc_id, "docs": [entry]})
        return self._reply(200, {"results": results})


@pytest.fixture
def fake_couch() -> FakeCouch:
    """Create an empty fake store."""
    return FakeCouch()


@pytest.fixture
def mock_transport(fake_couch: FakeCouch) -> httpx.MockTransport:
    """Route httpx requests to the fake store."""
    return httpx.MockTransport(fake_couch.handle)


@pytest.fixture
async def server(mock_transport: httpx.MockTransport):
    """Create a Server talking to the fake store."""
    from couch_do import Server, ServerConfig

    config = ServerConfig(user="admin", password="secret", host="couch.test", port=5984)
    server = Server(config, transport=mock_transport)
    yield server
    await server.close()


@pytest.fixture
async def database(server, fake_couch: FakeCouch):
    """Create a database."""
    fake_couch.create_db("testdb")
    return server["testdb"]


@pytest.fixture
async def document(database):
    """Create a document handle."""
    return database["doc1"]
