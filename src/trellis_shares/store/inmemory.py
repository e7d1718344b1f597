"""In-memory resource store for tests and local dry runs.

Mirrors the parts of the OADA store behavior the share pipeline relies on:

  - ``/bookmarks`` is the root resource; ``/resources/<id>`` addresses any
    resource directly.
  - A value shaped like ``{"_id": ...}`` is a link; path traversal follows it
    into the linked resource.
  - Every resource has its own ``_meta`` document with an independent ``_rev``.
  - PUT deep-merges into the resolved node (creating plain nested objects as
    needed) and bumps the owning resource's revision; a link value always
    replaces what was there.
  - POST to ``/resources`` creates a new resource and answers with a
    content-location.

All calls are recorded in ``calls`` so tests can assert on side effects.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any

from .client import StoreResponse, normalize_path
from .errors import (
    StoreError,
    StoreNotFoundError,
    StorePreconditionFailed,
    error_for_status,
)

BOOKMARKS_ID = "resources/bookmarks"
BOOKMARKS_TYPE = "application/vnd.oada.bookmarks.1+json"


def _is_link(value: Any) -> bool:
    return isinstance(value, dict) and "_id" in value


class InMemoryStore:
    def __init__(self) -> None:
        self.resources: dict[str, Any] = {}
        self.authorizations: list[dict[str, Any]] = []
        self.calls: list[tuple[str, str]] = []
        self.fail_paths: dict[tuple[str, str], int] = {}
        self._create(BOOKMARKS_ID, {}, BOOKMARKS_TYPE)

    # ── Test helpers ─────────────────────────────────────────────────

    def fail(self, method: str, path: str, status_code: int) -> None:
        """Make the next ``method`` on ``path`` answer with ``status_code``."""
        self.fail_paths[(method, normalize_path(path))] = status_code

    def seed(self, resource_id: str, data: Any, content_type: str | None = None) -> str:
        """Create a resource with a fixed id (``resources/<key>``)."""
        self._create(resource_id, data, content_type)
        return resource_id

    def created(self) -> list[str]:
        """Paths of every POST that created a resource, in order."""
        return [path for method, path in self.calls if method == "POST"]

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)

    # ── Internals ────────────────────────────────────────────────────

    def _create(self, resource_id: str, data: Any, content_type: str | None) -> None:
        if isinstance(data, dict):
            doc = copy.deepcopy(data)
            content_type = content_type or doc.get("_type")
            doc.update({"_id": resource_id, "_rev": 1})
            if content_type:
                doc["_type"] = content_type
        else:
            doc = bytes(data)
        self.resources[resource_id] = doc
        self.resources[f"{resource_id}/_meta"] = {
            "_id": f"{resource_id}/_meta",
            "_rev": 1,
            "_type": content_type,
        }

    def _check_failure(self, method: str, path: str) -> None:
        status = self.fail_paths.pop((method, path), None)
        if status is not None:
            raise error_for_status(status)(
                status_code=status, message="injected failure", method=method, path=path
            )

    def _root(self, parts: list[str], path: str) -> tuple[str, list[str]]:
        if parts and parts[0] == "resources" and len(parts) >= 2:
            return f"resources/{parts[1]}", parts[2:]
        if parts and parts[0] == "bookmarks":
            return BOOKMARKS_ID, parts[1:]
        raise StoreNotFoundError(status_code=404, message="not found", path=path)

    def _resolve(
        self, path: str, *, create: bool = False, method: str = "GET"
    ) -> tuple[str, Any, Any, str | None]:
        """Walk ``path`` following links.

        Returns ``(resource_id, node, parent, key)`` where ``node`` is the value
        at the path and ``parent[key]`` is where it lives.
        """
        parts = [p for p in path.split("/") if p]
        rid, rest = self._root(parts, path)
        if rid not in self.resources:
            raise StoreNotFoundError(status_code=404, message="not found", method=method, path=path)
        node: Any = self.resources[rid]
        parent: Any = None
        key: str | None = None
        for seg in rest:
            if seg == "_meta" and isinstance(node, (dict, bytes)) and node is self.resources.get(rid):
                rid = f"{rid}/_meta"
                parent, key, node = None, None, self.resources[rid]
                continue
            if not isinstance(node, dict):
                raise StoreNotFoundError(status_code=404, message="not found", method=method, path=path)
            value = node.get(seg)
            if value is None:
                if not create:
                    raise StoreNotFoundError(status_code=404, message="not found", method=method, path=path)
                value = node[seg] = {}
            if _is_link(value):
                target = value["_id"]
                if target not in self.resources:
                    raise StoreNotFoundError(status_code=404, message="dangling link", method=method, path=path)
                parent, key = node, seg
                rid, node = target, self.resources[target]
                continue
            parent, key, node = node, seg, value
        return rid, node, parent, key

    def _bump(self, resource_id: str) -> int:
        doc = self.resources[resource_id]
        if isinstance(doc, dict):
            doc["_rev"] = doc.get("_rev", 0) + 1
            return doc["_rev"]
        return 0

    @staticmethod
    def _merge(target: dict[str, Any], data: dict[str, Any]) -> None:
        for k, v in data.items():
            if isinstance(v, dict) and not _is_link(v) and isinstance(target.get(k), dict) and not _is_link(target.get(k)):
                InMemoryStore._merge(target[k], v)
            else:
                target[k] = copy.deepcopy(v)

    # ── Store interface ──────────────────────────────────────────────

    async def get(self, path: str) -> StoreResponse:
        path = normalize_path(path)
        self.calls.append(("GET", path))
        self._check_failure("GET", path)
        _, node, _, _ = self._resolve(path)
        return StoreResponse(status=200, data=copy.deepcopy(node))

    async def put(
        self,
        path: str,
        data: Any,
        *,
        content_type: str | None = None,
        if_match: int | str | None = None,
    ) -> StoreResponse:
        path = normalize_path(path)
        self.calls.append(("PUT", path))
        self._check_failure("PUT", path)
        rid, node, _, _ = self._resolve(path, create=True, method="PUT")
        owner = self.resources[rid]
        if if_match is not None and isinstance(owner, dict) and str(owner.get("_rev")) != str(if_match):
            raise StorePreconditionFailed(
                status_code=412, message="revision mismatch", method="PUT", path=path
            )
        if not isinstance(node, dict) or not isinstance(data, dict):
            raise StoreError(status_code=400, message="can only merge objects", method="PUT", path=path)
        self._merge(node, data)
        self._bump(rid)
        return StoreResponse(status=204, headers={"content-location": f"/{rid}"})

    async def post(
        self,
        path: str,
        data: Any,
        *,
        content_type: str | None = None,
    ) -> StoreResponse:
        path = normalize_path(path)
        self.calls.append(("POST", path))
        self._check_failure("POST", path)
        key = uuid.uuid4().hex
        if path == "/authorizations":
            self.authorizations.append({"_id": f"authorizations/{key}", **copy.deepcopy(data)})
            return StoreResponse(status=201, headers={"content-location": f"/authorizations/{key}"})
        if path != "/resources":
            raise StoreError(status_code=400, message="POST only supported on /resources", method="POST", path=path)
        self._create(f"resources/{key}", data, content_type)
        return StoreResponse(status=201, headers={"content-location": f"/resources/{key}"})

    async def delete(self, path: str) -> StoreResponse:
        path = normalize_path(path)
        self.calls.append(("DELETE", path))
        self._check_failure("DELETE", path)
        parts = [p for p in path.split("/") if p]
        parent_path = "/" + "/".join(parts[:-1])
        rid, parent, _, _ = self._resolve(parent_path, method="DELETE")
        if not isinstance(parent, dict) or parts[-1] not in parent:
            raise StoreNotFoundError(status_code=404, message="not found", method="DELETE", path=path)
        del parent[parts[-1]]
        self._bump(rid)
        return StoreResponse(status=204)
