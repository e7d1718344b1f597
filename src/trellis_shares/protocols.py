"""Collaborator protocol interfaces for dependency injection.

The share handler accepts any implementation that matches these protocols:
``OadaClient`` or ``InMemoryStore`` for the store, ``SigningRedactor`` for
masking, ``MaskedPdfRenderer`` for PDF rendering.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .store.client import StoreResponse


@runtime_checkable
class ResourceStore(Protocol):
    """Hierarchical, resource-addressed document store."""

    async def get(self, path: str) -> StoreResponse: ...

    async def put(
        self,
        path: str,
        data: Any,
        *,
        content_type: str | None = None,
        if_match: int | str | None = None,
    ) -> StoreResponse: ...

    async def post(
        self,
        path: str,
        data: Any,
        *,
        content_type: str | None = None,
    ) -> StoreResponse: ...

    async def delete(self, path: str) -> StoreResponse: ...


@runtime_checkable
class Redactor(Protocol):
    """Field-level masking and signing of a resource into a new resource."""

    async def mask_and_sign_as_new_resource(
        self, *, resource_id: str, paths: list[str]
    ) -> str: ...


@runtime_checkable
class PdfRenderer(Protocol):
    """Best-effort rendering of a masked document; returns the PDF resource id."""

    async def render_masked_document(
        self,
        *,
        masked: dict[str, Any],
        resource_id: str,
        doctype: str,
        filename: str | None = None,
    ) -> str | None: ...
