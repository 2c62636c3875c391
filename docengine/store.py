"""
docengine — Document Store

The persistence contract the bulk and version engines depend on. Documents
go in and come out whole; the store never sees individual blocks.

Saves are compare-and-swap when the caller passes expected_version: if the
stored document's version differs, save raises ConcurrentModification and
nothing is written.
"""

from __future__ import annotations

from docengine.errors import ConcurrentModification
from docengine.types import Document


class DocumentStore:
    """
    Abstract storage interface.
    Implement with Postgres for production, or in-memory for tests.
    """

    async def find_by_id(self, document_id: str) -> Document | None:
        """Fetch a document. Returns None if not found."""
        raise NotImplementedError

    async def save(self, document: Document, *, expected_version: int | None = None) -> Document:
        """
        Write a document.
        With expected_version, only succeed if the stored version still matches.
        """
        raise NotImplementedError

    async def delete(self, document_id: str) -> None:
        raise NotImplementedError


class MemoryStore(DocumentStore):
    """
    In-memory storage for testing and embedding.
    Holds serialized copies so callers never share state with the store.
    """

    def __init__(self) -> None:
        self.documents: dict[str, dict] = {}

    async def find_by_id(self, document_id: str) -> Document | None:
        stored = self.documents.get(document_id)
        return Document.from_dict(stored) if stored is not None else None

    async def save(self, document: Document, *, expected_version: int | None = None) -> Document:
        stored = self.documents.get(document.id)
        if expected_version is not None and stored is not None and stored["version"] != expected_version:
            raise ConcurrentModification(document.id, expected_version)
        self.documents[document.id] = document.to_dict()
        return document

    async def delete(self, document_id: str) -> None:
        self.documents.pop(document_id, None)
