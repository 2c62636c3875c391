"""
docengine — block-based proposal document engine.

Four components:
  registry    — block type catalog: descriptor + handler per type name
  renderer    — (blocks, global styles, canvas, data) → HTML document
  bulk        — ordered mutation batches with per-operation failure isolation
  versioning  — snapshot history: get, diff, revert, prune, stats, export

Persistence goes through DocumentStore (store.MemoryStore, or
postgres_store.PostgresStore for asyncpg).
"""

from docengine.bulk import BulkMutationEngine
from docengine.errors import (
    ConcurrentModification,
    DocumentError,
    NotFound,
    PermissionDenied,
    RenderError,
    UnknownType,
    ValidationFailed,
)
from docengine.handlers import BlockTypeHandler, TemplateBlockHandler
from docengine.registry import BlockTypeRegistry, default_registry
from docengine.renderer import BlockRenderer
from docengine.store import DocumentStore, MemoryStore
from docengine.types import BatchResult, Document, Operation, VersionSnapshot
from docengine.versioning import VersionControl, compare_objects, find_differences

__all__ = [
    "BlockTypeRegistry",
    "default_registry",
    "BlockTypeHandler",
    "TemplateBlockHandler",
    "BlockRenderer",
    "BulkMutationEngine",
    "VersionControl",
    "find_differences",
    "compare_objects",
    "DocumentStore",
    "MemoryStore",
    "Document",
    "VersionSnapshot",
    "Operation",
    "BatchResult",
    "DocumentError",
    "NotFound",
    "PermissionDenied",
    "ValidationFailed",
    "UnknownType",
    "RenderError",
    "ConcurrentModification",
]
