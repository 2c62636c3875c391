"""
docengine test configuration.

Every test gets its own registry and in-memory store; nothing here touches the
process-wide default registry. PostgresStore tests that need DATABASE_URL are
skipped automatically when it is not set.
"""

import pytest

from docengine.registry import BlockTypeRegistry
from docengine.store import MemoryStore
from docengine.types import Document

OWNER = "user_owner"
EDITOR = "user_editor"
VIEWER = "user_viewer"
ADMIN = "user_admin"
STRANGER = "user_stranger"


def make_block(block_id: str, block_type: str = "text", **content) -> dict:
    """A valid block of a built-in type."""
    if not content:
        content = {"content": f"Block {block_id}"}
    return {"id": block_id, "type": block_type, "content": content, "styles": {}, "metadata": {}}


def make_document(document_id: str = "doc_1", blocks: list[dict] | None = None, **kwargs) -> Document:
    return Document(
        id=document_id,
        name=kwargs.pop("name", "Güneş Enerjisi Teklifi"),
        owner=kwargs.pop("owner", OWNER),
        sharing_permissions=kwargs.pop(
            "sharing_permissions",
            [
                {"userId": EDITOR, "permission": "edit"},
                {"userId": VIEWER, "permission": "view"},
                {"userId": ADMIN, "permission": "admin"},
            ],
        ),
        blocks=blocks if blocks is not None else [],
        **kwargs,
    )


@pytest.fixture
def registry() -> BlockTypeRegistry:
    return BlockTypeRegistry().initialize()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
