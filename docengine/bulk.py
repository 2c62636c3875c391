"""
docengine — Bulk Mutation Engine

Applies an ordered batch of structural operations to one document's block
list:

    Authorize → for each op: Dispatch → Validate → Apply → Record → Commit → Save

Best-effort, not atomic: every operation either applies fully or leaves the
block list untouched, and a failing operation does not stop the ones after
it. Only DocumentError subclasses become per-operation failures; anything
else is a bug and propagates.

The document is loaded once, mutated in memory and saved once, as a
compare-and-swap against the version it was loaded at.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

from docengine.errors import (
    DocumentError,
    NotFound,
    PermissionDenied,
    UnknownType,
    ValidationFailed,
)
from docengine.registry import BlockTypeRegistry, default_registry
from docengine.store import DocumentStore
from docengine.types import (
    BatchResult,
    Document,
    Operation,
    OperationResult,
    generate_block_id,
    now_iso,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def _require(data: dict[str, Any], *keys: str) -> None:
    missing = [key for key in keys if data.get(key) is None or data.get(key) == ""]
    if missing:
        raise ValidationFailed([f"{key} is required" for key in missing], prefix="Invalid operation data")


def _require_list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if not isinstance(value, list):
        raise ValidationFailed([f"{key} must be a list"], prefix="Invalid operation data")
    return value


def _require_ids(data: dict[str, Any], key: str) -> list[str]:
    value = _require_list(data, key)
    if not all(isinstance(block_id, str) for block_id in value):
        raise ValidationFailed([f"{key} entries must be block id strings"], prefix="Invalid operation data")
    return value


def _failure(e: DocumentError, **fields: Any) -> dict[str, Any]:
    return {"success": False, **fields, "error": str(e), "errors": e.messages}


def _position(value: Any, length: int) -> int | None:
    """Clamp an insertion index to [0, length]. None / negative / non-int → None (append)."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return min(value, length)


def _block_index(document: Document, block_id: Any) -> int:
    index = document.find_block_index(block_id)
    if index == -1:
        raise NotFound(f"Block not found: {block_id}")
    return index


def _tally(results: list[dict[str, Any]], message: str) -> dict[str, Any]:
    return {
        "results": results,
        "successful": sum(1 for r in results if r["success"]),
        "failed": sum(1 for r in results if not r["success"]),
        "message": message,
    }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class BulkMutationEngine:
    """
    Runs mutation batches against documents in a DocumentStore.
    Batches on the same document are serialized per process.
    """

    def __init__(self, store: DocumentStore, registry: BlockTypeRegistry | None = None):
        self._store = store
        self._registry = registry if registry is not None else default_registry()
        self._locks: dict[str, asyncio.Lock] = {}
        self._operations = {
            "add": self._add,
            "update": self._update,
            "delete": self._delete,
            "reorder": self._reorder,
            "duplicate": self._duplicate,
            "move": self._move,
            "copy": self._copy,
            "replace": self._replace,
            "batch_add": self._batch_add,
            "batch_update": self._batch_update,
            "batch_delete": self._batch_delete,
            "import_blocks": self._import_blocks,
            "export_blocks": self._export_blocks,
            "validate_blocks": self._validate_blocks,
            "update_styles": self._update_styles,
            "update_content": self._update_content,
        }

    def _get_lock(self, document_id: str) -> asyncio.Lock:
        """Per-document asyncio lock for single-process serialization."""
        if document_id not in self._locks:
            self._locks[document_id] = asyncio.Lock()
        return self._locks[document_id]

    # -- execute --

    async def execute(
        self,
        document_id: str,
        operations: list[Operation | dict[str, Any]],
        user_id: str,
    ) -> BatchResult:
        """
        Run a batch. NotFound / PermissionDenied abort before any operation
        runs; every other failure is recorded against its operation.
        """
        async with self._get_lock(document_id):
            document = await self._store.find_by_id(document_id)
            if document is None:
                raise NotFound(f"Document not found: {document_id}")
            if not document.has_access(user_id, "edit"):
                raise PermissionDenied(f"User {user_id} cannot edit document {document_id}")

            loaded_version = document.version
            result = BatchResult(total=len(operations))

            for index, raw in enumerate(operations):
                op = Operation.coerce(raw) if isinstance(raw, (Operation, dict)) else Operation(type="")
                try:
                    outcome = await self._dispatch(document, op, user_id)
                except DocumentError as e:
                    logger.debug("Operation %d (%s) on %s failed: %s", index, op.type, document_id, e)
                    result.failed.append(
                        OperationResult(
                            index=index,
                            operation=op.type,
                            success=False,
                            error=str(e),
                            errors=e.messages,
                        )
                    )
                else:
                    result.succeeded.append(
                        OperationResult(index=index, operation=op.type, success=True, result=outcome)
                    )

            if result.succeeded:
                document.commit(f"Bulk operation: {len(result.succeeded)} operations succeeded", user_id)
                await self._store.save(document, expected_version=loaded_version)
                logger.info(
                    "Bulk batch on %s committed version %d (%d ok, %d failed)",
                    document_id,
                    document.version,
                    len(result.succeeded),
                    len(result.failed),
                )
            return result

    async def _dispatch(self, document: Document, op: Operation, user_id: str) -> dict[str, Any]:
        handler = self._operations.get(op.type) if isinstance(op.type, str) else None
        if handler is None:
            raise ValidationFailed([f"Unknown operation type: {op.type}"], prefix="Invalid operation")
        if not isinstance(op.data, dict):
            raise ValidationFailed(["data must be an object"], prefix="Invalid operation data")
        return await handler(document, op.data, user_id)

    # -- block checks --

    def _check(self, block: dict[str, Any]) -> None:
        """Registered type, then the type's validator. Raises on failure."""
        block_type = block.get("type")
        if not isinstance(block_type, str) or not self._registry.has(block_type):
            raise UnknownType(block_type)
        shape_errors = [
            f"Block {key} must be an object"
            for key in ("content", "styles", "metadata")
            if block.get(key) is not None and not isinstance(block[key], dict)
        ]
        if shape_errors:
            raise ValidationFailed(shape_errors)
        try:
            validation = self._registry.validate(block_type, block)
        except Exception as exc:
            logger.error("Validator for block type %s raised: %s", block_type, exc)
            raise ValidationFailed([f"Validator error: {exc}"]) from exc
        if not validation.valid:
            raise ValidationFailed(validation.errors or ["Block is invalid"])

    def _prepare(self, document: Document, block: Any, ignore_id: str | None = None) -> dict[str, Any]:
        """
        Copy a caller-supplied block, give it an id if it has none, reject
        duplicate ids, then check it.
        """
        if not isinstance(block, dict) or not block.get("type"):
            raise ValidationFailed(["Block data and type are required"])
        block = copy.deepcopy(block)
        if not block.get("id"):
            block["id"] = generate_block_id()
        if not isinstance(block["id"], str):
            raise ValidationFailed(["Block ID must be a string"])
        if block["id"] != ignore_id and document.find_block_index(block["id"]) != -1:
            raise ValidationFailed([f"Block ID already exists: {block['id']}"])
        self._check(block)
        return block

    # -- single-block operations --

    async def _add(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        block = self._prepare(document, data.get("block"))
        position = _position(data.get("position"), len(document.blocks))
        if position is None:
            position = len(document.blocks)
        document.blocks.insert(position, block)
        return {"blockId": block["id"], "position": position, "message": "Block added"}

    async def _update(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        _require(data, "blockId")
        block_id = data["blockId"]
        updates = data.get("updates") or {}
        if not isinstance(updates, dict):
            raise ValidationFailed(["updates must be an object"], prefix="Invalid operation data")

        index = _block_index(document, block_id)
        updated = {**copy.deepcopy(document.blocks[index]), **copy.deepcopy(updates)}
        updated["id"] = block_id
        self._check(updated)

        document.blocks[index] = updated
        return {"blockId": block_id, "position": index, "message": "Block updated"}

    async def _delete(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        _require(data, "blockId")
        index = _block_index(document, data["blockId"])
        removed = document.blocks.pop(index)
        return {
            "blockId": data["blockId"],
            "position": index,
            "blockType": removed.get("type"),
            "message": "Block deleted",
        }

    async def _reorder(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        """
        Place each named block at its requested index; the untouched blocks
        fill the remaining slots in their original relative order.
        """
        block_ids = _require_ids(data, "blockIds")
        new_order = _require_list(data, "newOrder")
        if len(block_ids) != len(new_order):
            raise ValidationFailed(["blockIds and newOrder must have the same length"], prefix="Invalid reorder")

        size = len(document.blocks)
        errors = []
        if len(set(block_ids)) != len(block_ids):
            errors.append("blockIds must be unique")
        out_of_range = [
            pos for pos in new_order if isinstance(pos, bool) or not isinstance(pos, int) or not 0 <= pos < size
        ]
        if not out_of_range and len(set(new_order)) != len(new_order):
            errors.append("newOrder positions must be unique")
        errors.extend(f"Position out of range: {pos}" for pos in out_of_range)
        if errors:
            raise ValidationFailed(errors, prefix="Invalid reorder")

        placed = {pos: document.blocks[_block_index(document, bid)] for bid, pos in zip(block_ids, new_order)}
        named = set(block_ids)
        rest = iter([b for b in document.blocks if b.get("id") not in named])
        document.blocks = [placed[i] if i in placed else next(rest) for i in range(size)]
        return {"reorderedCount": len(block_ids), "message": "Blocks reordered"}

    async def _duplicate(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        _require(data, "blockId")
        block_id = data["blockId"]
        index = _block_index(document, block_id)

        clone = copy.deepcopy(document.blocks[index])
        clone["id"] = generate_block_id()
        clone["metadata"] = {
            **(clone.get("metadata") or {}),
            "duplicatedFrom": block_id,
            "duplicatedAt": now_iso(),
        }
        position = _position(data.get("position"), len(document.blocks))
        if position is None:
            position = index + 1
        document.blocks.insert(position, clone)
        return {
            "originalBlockId": block_id,
            "newBlockId": clone["id"],
            "position": position,
            "message": "Block duplicated",
        }

    async def _move(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        _require(data, "blockId", "fromPosition", "toPosition")
        block_id = data["blockId"]
        from_pos, to_pos = data["fromPosition"], data["toPosition"]
        for name, pos in (("fromPosition", from_pos), ("toPosition", to_pos)):
            if isinstance(pos, bool) or not isinstance(pos, int) or pos < 0:
                raise ValidationFailed([f"{name} must be a non-negative integer"], prefix="Invalid operation data")

        if from_pos == to_pos:
            return {"blockId": block_id, "position": to_pos, "message": "Block already in position"}

        if from_pos >= len(document.blocks) or document.blocks[from_pos].get("id") != block_id:
            raise NotFound(f"Block not found: {block_id} at position {from_pos}")

        block = document.blocks.pop(from_pos)
        to_pos = min(to_pos, len(document.blocks))
        document.blocks.insert(to_pos, block)
        return {"blockId": block_id, "fromPosition": from_pos, "toPosition": to_pos, "message": "Block moved"}

    async def _copy(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        """Copy a block into another document; the target is saved on its own."""
        target_id = data.get("targetDocumentId") or data.get("targetTemplateId")
        _require({**data, "targetDocumentId": target_id}, "blockId", "targetDocumentId")
        if not isinstance(target_id, str):
            raise ValidationFailed(["targetDocumentId must be a string"], prefix="Invalid operation data")
        block_id = data["blockId"]
        source = document.blocks[_block_index(document, block_id)]

        clone = copy.deepcopy(source)
        clone["id"] = generate_block_id()
        clone["metadata"] = {
            **(clone.get("metadata") or {}),
            "copiedFrom": block_id,
            "copiedFromDocument": document.id,
            "copiedAt": now_iso(),
        }
        result = {
            "blockId": block_id,
            "targetDocumentId": target_id,
            "newBlockId": clone["id"],
            "message": "Block copied",
        }

        if target_id == document.id:
            document.blocks.append(clone)
            return result

        target = await self._store.find_by_id(target_id)
        if target is None:
            raise NotFound(f"Target document not found: {target_id}")
        if not target.has_access(user_id, "edit"):
            raise PermissionDenied(f"User {user_id} cannot edit target document {target_id}")

        target_version = target.version
        target.blocks.append(clone)
        target.commit(f"Block copied from document {document.id}", user_id)
        await self._store.save(target, expected_version=target_version)
        return result

    async def _replace(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        _require(data, "blockId", "newBlock")
        block_id = data["blockId"]
        index = _block_index(document, block_id)
        new_block = self._prepare(document, data["newBlock"], ignore_id=block_id)

        original = document.blocks[index]
        document.blocks[index] = new_block
        return {
            "originalBlockId": block_id,
            "newBlockId": new_block["id"],
            "position": index,
            "originalType": original.get("type"),
            "newType": new_block.get("type"),
            "message": "Block replaced",
        }

    # -- fan-out operations --

    def _insert_each(self, document: Document, blocks: list[Any], position: Any) -> list[dict[str, Any]]:
        start = _position(position, len(document.blocks))
        if start is None:
            start = len(document.blocks)

        results: list[dict[str, Any]] = []
        inserted = 0
        for i, raw in enumerate(blocks):
            try:
                block = self._prepare(document, raw)
            except DocumentError as e:
                results.append(_failure(e, index=i))
                continue
            document.blocks.insert(start + inserted, block)
            results.append({"success": True, "index": i, "blockId": block["id"], "position": start + inserted})
            inserted += 1
        return results

    async def _batch_add(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        blocks = _require_list(data, "blocks")
        return _tally(self._insert_each(document, blocks, data.get("position")), "Batch add completed")

    async def _batch_update(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        updates = _require_list(data, "updates")
        results: list[dict[str, Any]] = []
        for entry in updates:
            entry = entry if isinstance(entry, dict) else {}
            try:
                outcome = await self._update(document, entry, user_id)
            except DocumentError as e:
                results.append(_failure(e, blockId=entry.get("blockId")))
            else:
                results.append({"success": True, **outcome})
        return _tally(results, "Batch update completed")

    async def _batch_delete(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        block_ids = _require_ids(data, "blockIds")
        results: list[dict[str, Any]] = []
        for block_id in block_ids:
            index = document.find_block_index(block_id)
            if index == -1:
                results.append(_failure(NotFound(f"Block not found: {block_id}"), blockId=block_id))
                continue
            removed = document.blocks.pop(index)
            results.append({"success": True, "blockId": block_id, "blockType": removed.get("type")})
        return _tally(results, "Batch delete completed")

    async def _import_blocks(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        blocks = _require_list(data, "blocks")
        if data.get("replaceExisting", False):
            document.blocks = []
        return _tally(self._insert_each(document, blocks, data.get("position")), "Blocks imported")

    async def _export_blocks(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        selected = self._select(document, data)
        exported = copy.deepcopy(selected)
        if not data.get("includeMetadata", True):
            for block in exported:
                block.pop("metadata", None)
        return {
            "blocks": exported,
            "count": len(exported),
            "documentId": document.id,
            "exportedAt": now_iso(),
            "message": "Blocks exported",
        }

    async def _validate_blocks(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        results: list[dict[str, Any]] = []
        for block in self._select(document, data):
            errors: list[str] = []
            try:
                self._check(block)
            except DocumentError as e:
                errors = e.messages
            results.append(
                {"blockId": block.get("id"), "blockType": block.get("type"), "valid": not errors, "errors": errors}
            )
        return {
            "results": results,
            "valid": sum(1 for r in results if r["valid"]),
            "invalid": sum(1 for r in results if not r["valid"]),
            "message": "Block validation completed",
        }

    async def _update_styles(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        block_ids = _require_ids(data, "blockIds")
        styles = data.get("styles")
        if not isinstance(styles, dict):
            raise ValidationFailed(["styles must be an object"], prefix="Invalid operation data")
        merge = data.get("merge", True)

        results: list[dict[str, Any]] = []
        for block_id in block_ids:
            try:
                index = _block_index(document, block_id)
                base = self._merge_base(document.blocks[index], "styles", merge)
            except DocumentError as e:
                results.append(_failure(e, blockId=block_id))
                continue
            document.blocks[index]["styles"] = {**base, **copy.deepcopy(styles)}
            results.append({"success": True, "blockId": block_id})
        return _tally(results, "Styles updated")

    async def _update_content(self, document: Document, data: dict[str, Any], user_id: str) -> dict[str, Any]:
        block_ids = _require_ids(data, "blockIds")
        content = data.get("content")
        if not isinstance(content, dict):
            raise ValidationFailed(["content must be an object"], prefix="Invalid operation data")
        merge = data.get("merge", True)

        results: list[dict[str, Any]] = []
        for block_id in block_ids:
            try:
                index = _block_index(document, block_id)
                candidate = copy.deepcopy(document.blocks[index])
                candidate["content"] = {**self._merge_base(candidate, "content", merge), **copy.deepcopy(content)}
                self._check(candidate)
            except DocumentError as e:
                results.append(_failure(e, blockId=block_id))
                continue
            document.blocks[index] = candidate
            results.append({"success": True, "blockId": block_id})
        return _tally(results, "Content updated")

    # -- helpers --

    @staticmethod
    def _merge_base(block: dict[str, Any], key: str, merge: bool) -> dict[str, Any]:
        """The existing map to merge into; empty when replacing."""
        if not merge:
            return {}
        existing = block.get(key)
        if existing is None:
            return {}
        if not isinstance(existing, dict):
            raise ValidationFailed(
                [f"Block {key} must be an object"],
                prefix=f"Cannot merge into block {block.get('id')}",
            )
        return existing

    @staticmethod
    def _select(document: Document, data: dict[str, Any]) -> list[dict[str, Any]]:
        """Blocks named by data["blockIds"] in document order, or all of them."""
        if data.get("blockIds") is None:
            return list(document.blocks)
        block_ids = _require_ids(data, "blockIds")
        return [b for b in document.blocks if b.get("id") in block_ids]
