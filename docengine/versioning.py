"""
docengine — Version Control

History operations over a document's append-only snapshot log:

    get_history     view    full log + current version + retention cap
    get_snapshot    view    one snapshot
    revert          edit    restore a snapshot as a new, later version
    diff            view    structural diff between two snapshots
    prune           admin   keep only the newest N snapshots
    stats           view    aggregate metrics over the log
    export_snapshot view    one snapshot packaged for backup

Reverts never delete history: they append. Saves are compare-and-swap
against the version the document was loaded at.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import Any

from docengine.config import settings
from docengine.errors import NotFound, PermissionDenied, ValidationFailed
from docengine.store import DocumentStore
from docengine.types import Document, RevertResult, VersionSnapshot, now_iso, parse_iso

logger = logging.getLogger(__name__)

_MISSING = object()


# ---------------------------------------------------------------------------
# Diff (pure)
# ---------------------------------------------------------------------------


def compare_objects(old: dict[str, Any] | None, new: dict[str, Any] | None) -> dict[str, dict[str, Any]]:
    """
    Shallow key-by-key comparison with deep value equality.
    Returns {key: {"old": ..., "new": ...}} for every key that differs.
    A key present on one side only counts as a difference.
    """
    old = old or {}
    new = new or {}
    differences: dict[str, dict[str, Any]] = {}
    for key in list(old) + [k for k in new if k not in old]:
        before = old.get(key, _MISSING)
        after = new.get(key, _MISSING)
        if before is _MISSING or after is _MISSING or before != after:
            differences[key] = {
                "old": None if before is _MISSING else before,
                "new": None if after is _MISSING else after,
            }
    return differences


def find_differences(old: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
    """
    Diff two snapshot states ({blocks, globalStyles, canvasSize}).
    Blocks are matched by id: added = only in new, removed = only in old,
    modified = in both with any field different.
    """
    old_blocks = old.get("blocks") or []
    new_blocks = new.get("blocks") or []
    old_by_id = {b.get("id"): b for b in old_blocks}
    new_by_id = {b.get("id"): b for b in new_blocks}

    modified = []
    for block in old_blocks:
        counterpart = new_by_id.get(block.get("id"))
        if counterpart is None:
            continue
        changes = compare_objects(block, counterpart)
        if changes:
            modified.append({"id": block.get("id"), "type": block.get("type"), "differences": changes})

    return {
        "blocks": {
            "added": [b for b in new_blocks if b.get("id") not in old_by_id],
            "removed": [b for b in old_blocks if b.get("id") not in new_by_id],
            "modified": modified,
        },
        "globalStyles": compare_objects(old.get("globalStyles"), new.get("globalStyles")),
        "canvasSize": compare_objects(old.get("canvasSize"), new.get("canvasSize")),
    }


def _summary(snapshot: VersionSnapshot) -> dict[str, Any]:
    return {
        "version": snapshot.version,
        "changedAt": snapshot.changed_at,
        "changedBy": snapshot.changed_by,
        "changeDescription": snapshot.change_description,
    }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class VersionControl:
    """Version history operations against documents in a DocumentStore."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def _load(self, document_id: str, user_id: str, level: str) -> Document:
        document = await self._store.find_by_id(document_id)
        if document is None:
            raise NotFound(f"Document not found: {document_id}")
        if not document.has_access(user_id, level):
            raise PermissionDenied(f"User {user_id} lacks {level} access to document {document_id}")
        return document

    @staticmethod
    def _snapshot(document: Document, version: int) -> VersionSnapshot:
        snapshot = document.get_version(version)
        if snapshot is None:
            raise NotFound(f"Version {version} not found")
        return snapshot

    # -- reads --

    async def get_history(self, document_id: str, user_id: str) -> dict[str, Any]:
        document = await self._load(document_id, user_id, "view")
        return {
            "versions": [v.to_dict() for v in document.version_history],
            "currentVersion": document.version,
            "totalVersions": len(document.version_history),
            "maxVersions": document.max_versions,
        }

    async def get_snapshot(self, document_id: str, version: int, user_id: str) -> dict[str, Any]:
        document = await self._load(document_id, user_id, "view")
        snapshot = self._snapshot(document, version)
        return {**snapshot.to_dict(), "isCurrentVersion": snapshot.version == document.version}

    async def diff(self, document_id: str, version_a: int, version_b: int, user_id: str) -> dict[str, Any]:
        """version_a is "from", version_b is "to"."""
        document = await self._load(document_id, user_id, "view")
        a = self._snapshot(document, version_a)
        b = self._snapshot(document, version_b)
        return {
            "version1": _summary(a),
            "version2": _summary(b),
            "differences": find_differences(a.state(), b.state()),
        }

    async def export_snapshot(self, document_id: str, version: int, user_id: str) -> dict[str, Any]:
        document = await self._load(document_id, user_id, "view")
        snapshot = self._snapshot(document, version)
        return {
            "documentId": document.id,
            "documentName": document.name,
            "version": snapshot.version,
            "exportedAt": now_iso(),
            "exportedBy": user_id,
            "data": snapshot.state(),
            "metadata": {
                "changeDescription": snapshot.change_description,
                "changedBy": snapshot.changed_by,
                "changedAt": snapshot.changed_at,
            },
        }

    async def stats(self, document_id: str, user_id: str, *, now: datetime | None = None) -> dict[str, Any]:
        document = await self._load(document_id, user_id, "view")
        history = document.version_history
        now = now or datetime.now(UTC)
        window_days = settings.STATS_WINDOW_DAYS
        cutoff = now - timedelta(days=window_days)

        recent = 0
        for snapshot in history:
            changed_at = parse_iso(snapshot.changed_at)
            if changed_at is not None and changed_at > cutoff:
                recent += 1

        users = Counter(str(v.changed_by) for v in history if v.changed_by)
        block_types = Counter(b.get("type") for v in history for b in v.blocks)

        return {
            "totalVersions": len(history),
            "recentChanges": recent,
            "mostActiveUsers": [
                {"userId": uid, "changeCount": count} for uid, count in users.most_common(settings.STATS_TOP_N)
            ],
            "mostChangedBlockTypes": [
                {"type": block_type, "changeCount": count}
                for block_type, count in block_types.most_common(settings.STATS_TOP_N)
            ],
            "averageChangesPerDay": recent / window_days if window_days else 0.0,
            "versionHistorySize": len(json.dumps([v.to_dict() for v in history], ensure_ascii=False)),
        }

    # -- writes --

    async def revert(
        self,
        document_id: str,
        version: int,
        user_id: str,
        change_description: str | None = None,
    ) -> RevertResult:
        """
        Copy a snapshot's state into the live document and record it as a new
        version. Snapshots newer than the target stay in the history.
        """
        document = await self._load(document_id, user_id, "edit")
        target = self._snapshot(document, version).state()
        loaded_version = document.version
        current = document.state()

        document.blocks = target["blocks"]
        document.global_styles = target["globalStyles"]
        document.canvas_size = target["canvasSize"]
        document.commit(change_description or f"Reverted to version {version}", user_id)
        await self._store.save(document, expected_version=loaded_version)

        logger.info(
            "Document %s reverted to version %d by %s (now version %d)",
            document_id,
            version,
            user_id,
            document.version,
        )
        return RevertResult(document=document, reverted_from=current, reverted_to=document.state())

    async def prune(self, document_id: str, user_id: str, keep_count: int | None = None) -> dict[str, Any]:
        """
        Keep the newest keep_count snapshots and lower max_versions to match.
        The snapshot of the current version is always kept.
        """
        if keep_count is None:
            keep_count = settings.DEFAULT_KEEP_VERSIONS
        if isinstance(keep_count, bool) or not isinstance(keep_count, int) or keep_count < 1:
            raise ValidationFailed(["keep_count must be a positive integer"], prefix="Invalid prune request")

        document = await self._load(document_id, user_id, "admin")
        history = document.version_history
        original = len(history)
        if original <= keep_count:
            return {"message": "No versions to prune", "removedCount": 0, "remainingCount": original}

        kept = history[-keep_count:]
        current = document.get_version(document.version)
        if current is not None and current not in kept:
            kept = sorted([current] + kept[1:], key=lambda s: s.version)
        document.version_history = kept
        document.max_versions = keep_count
        await self._store.save(document, expected_version=document.version)

        removed = original - len(kept)
        logger.info("Pruned %d versions from document %s, %d remain", removed, document_id, len(kept))
        return {
            "message": f"{removed} versions pruned",
            "removedCount": removed,
            "remainingCount": len(kept),
        }
