"""
docengine — Error taxonomy

Every failure the engine reports to its callers is one of these. Batch
operations catch DocumentError subclasses per operation; anything else is a
programming error and propagates.
"""

from __future__ import annotations


class DocumentError(Exception):
    """Base class for all engine errors."""

    @property
    def messages(self) -> list[str]:
        """Human-readable reasons, one per entry."""
        return [str(self)]


class NotFound(DocumentError):
    """Referenced document, block id, block type or version does not exist."""


class PermissionDenied(DocumentError):
    """Requester lacks the access level the operation needs."""


class ValidationFailed(DocumentError):
    """A block (or block type config) failed validation."""

    def __init__(self, errors: list[str], prefix: str = "Block validation failed") -> None:
        self.errors = list(errors)
        super().__init__(f"{prefix}: {', '.join(self.errors)}")

    @property
    def messages(self) -> list[str]:
        return list(self.errors)


class UnknownType(DocumentError):
    """A block references a type absent from the registry."""

    def __init__(self, block_type: str | None) -> None:
        self.block_type = block_type
        super().__init__(f"Unknown block type: {block_type}")


class RenderError(DocumentError):
    """A registered handler raised while rendering."""

    def __init__(self, block_type: str, block_id: str | None, message: str) -> None:
        self.block_type = block_type
        self.block_id = block_id
        super().__init__(f"Error rendering block {block_id!r} of type {block_type!r}: {message}")


class ConcurrentModification(DocumentError):
    """The stored document changed between load and save."""

    def __init__(self, document_id: str, expected_version: int) -> None:
        self.document_id = document_id
        self.expected_version = expected_version
        super().__init__(
            f"Document {document_id} was modified concurrently (expected version {expected_version})"
        )
