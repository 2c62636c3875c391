"""
docengine — Shared Types

Data classes used across the registry, renderer, bulk engine and version
control. These are the contracts that bind the engine together.

Block instances themselves stay plain dicts: their `content`, `styles`,
`position` and `metadata` are free-form maps and every mutation operation
works by merging dicts. The typed view of built-in content lives in
docengine.content.
"""

from __future__ import annotations

import copy
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from docengine.config import settings

# ---------------------------------------------------------------------------
# Constant tables
# ---------------------------------------------------------------------------

ACCESS_LEVELS: dict[str, int] = {"view": 1, "edit": 2, "admin": 3}

CANVAS_UNITS: set[str] = {"px", "mm", "cm", "in"}

# Style keys the renderer emits, in emission order → CSS property name
STYLE_PROPERTIES: dict[str, str] = {
    "fontSize": "font-size",
    "fontFamily": "font-family",
    "color": "color",
    "backgroundColor": "background-color",
    "textAlign": "text-align",
    "margin": "margin",
    "padding": "padding",
    "borderRadius": "border-radius",
    "border": "border",
    "width": "width",
    "height": "height",
    "maxWidth": "max-width",
    "maxHeight": "max-height",
}

DEFAULT_GLOBAL_STYLES: dict[str, Any] = {
    "primaryColor": "#4f46e5",
    "secondaryColor": "#7c3aed",
    "fontFamily": "Inter, sans-serif",
    "fontSize": 16,
    "lineHeight": 1.5,
    "backgroundColor": "#ffffff",
    "textColor": "#1f2937",
    "borderRadius": 8,
    "spacing": 16,
}

DEFAULT_CANVAS_SIZE: dict[str, Any] = {"width": 800, "height": 1000, "unit": "px"}

_ID_ALPHABET = string.digits + string.ascii_lowercase


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class ValidationResult:
    """Outcome of validating one block. Empty errors = valid."""

    valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> ValidationResult:
        return cls(valid=not errors, errors=list(errors))

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}


@dataclass
class DependencyCheck:
    valid: bool
    missing: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BlockTypeDescriptor:
    """
    Metadata for a registered block type.
    Owned by the registry; callers only ever see copies.
    """

    type: str
    name: str
    description: str = ""
    icon: str = ""
    category: str = "basic"
    schema: dict[str, Any] = field(default_factory=dict)
    dependencies: tuple[str, ...] = ()
    is_advanced: bool = False
    requires_auth: bool = False
    registered_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "category": self.category,
            "schema": copy.deepcopy(self.schema),
            "dependencies": list(self.dependencies),
            "isAdvanced": self.is_advanced,
            "requiresAuth": self.requires_auth,
            "registeredAt": self.registered_at,
        }


@dataclass
class RenderContext:
    """What a handler sees besides the block itself."""

    data: dict[str, Any] = field(default_factory=dict)
    global_styles: dict[str, Any] = field(default_factory=dict)


@dataclass
class VersionSnapshot:
    """An immutable copy of a document's block/style/canvas state."""

    version: int
    blocks: list[dict[str, Any]]
    global_styles: dict[str, Any]
    canvas_size: dict[str, Any]
    change_description: str = ""
    changed_by: str | None = None
    changed_at: str = ""

    def state(self) -> dict[str, Any]:
        """Deep copy of the captured state, keyed like the persisted document."""
        return {
            "blocks": copy.deepcopy(self.blocks),
            "globalStyles": copy.deepcopy(self.global_styles),
            "canvasSize": copy.deepcopy(self.canvas_size),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "blocks": copy.deepcopy(self.blocks),
            "globalStyles": copy.deepcopy(self.global_styles),
            "canvasSize": copy.deepcopy(self.canvas_size),
            "changeDescription": self.change_description,
            "changedBy": self.changed_by,
            "changedAt": self.changed_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> VersionSnapshot:
        return cls(
            version=d["version"],
            blocks=copy.deepcopy(d.get("blocks", [])),
            global_styles=copy.deepcopy(d.get("globalStyles", {})),
            canvas_size=copy.deepcopy(d.get("canvasSize", {})),
            change_description=d.get("changeDescription", ""),
            changed_by=d.get("changedBy"),
            changed_at=d.get("changedAt", ""),
        )


@dataclass
class Document:
    """
    The aggregate the engine mutates: an ordered block list, global styles,
    canvas size and its append-only version history.
    """

    id: str
    name: str = ""
    owner: str | None = None
    is_public: bool = False
    sharing_permissions: list[dict[str, Any]] = field(default_factory=list)
    blocks: list[dict[str, Any]] = field(default_factory=list)
    global_styles: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_GLOBAL_STYLES))
    canvas_size: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_CANVAS_SIZE))
    version: int = 0
    version_history: list[VersionSnapshot] = field(default_factory=list)
    max_versions: int = field(default_factory=lambda: settings.MAX_VERSIONS)
    updated_by: str | None = None

    # -- access --

    def has_access(self, user_id: str | None, level: str = "view") -> bool:
        """Owner always; public grants view; otherwise sharing level >= required."""
        if not user_id:
            return False
        user_id = str(user_id)

        if self.owner is not None and str(self.owner) == user_id:
            return True

        if self.is_public and level == "view":
            return True

        for permission in self.sharing_permissions:
            if str(permission.get("userId", "")) == user_id:
                granted = ACCESS_LEVELS.get(permission.get("permission", ""), 0)
                return granted >= ACCESS_LEVELS.get(level, len(ACCESS_LEVELS) + 1)
        return False

    # -- blocks --

    def find_block_index(self, block_id: str) -> int:
        """Index of the block with this id, or -1."""
        for i, block in enumerate(self.blocks):
            if block.get("id") == block_id:
                return i
        return -1

    def state(self) -> dict[str, Any]:
        return {
            "blocks": copy.deepcopy(self.blocks),
            "globalStyles": copy.deepcopy(self.global_styles),
            "canvasSize": copy.deepcopy(self.canvas_size),
        }

    # -- versions --

    def get_version(self, version: int) -> VersionSnapshot | None:
        for snap in self.version_history:
            if snap.version == version:
                return snap
        return None

    def commit(self, description: str, changed_by: str | None = None) -> VersionSnapshot:
        """
        Record the live state as a new version.

        Bumps the version counter first so the newest snapshot always carries
        the document's current version. Retention drops oldest entries only;
        the snapshot just appended is never dropped.
        """
        self.version += 1
        if changed_by is not None:
            self.updated_by = changed_by

        snap = VersionSnapshot(
            version=self.version,
            blocks=copy.deepcopy(self.blocks),
            global_styles=copy.deepcopy(self.global_styles),
            canvas_size=copy.deepcopy(self.canvas_size),
            change_description=description,
            changed_by=self.updated_by or self.owner,
            changed_at=now_iso(),
        )
        self.version_history.append(snap)

        limit = max(self.max_versions, 1)
        if len(self.version_history) > limit:
            del self.version_history[: len(self.version_history) - limit]
        return snap

    # -- serialization --

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "owner": self.owner,
            "isPublic": self.is_public,
            "sharingPermissions": copy.deepcopy(self.sharing_permissions),
            "blocks": copy.deepcopy(self.blocks),
            "globalStyles": copy.deepcopy(self.global_styles),
            "canvasSize": copy.deepcopy(self.canvas_size),
            "version": self.version,
            "versionHistory": [v.to_dict() for v in self.version_history],
            "maxVersions": self.max_versions,
            "updatedBy": self.updated_by,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Document:
        return cls(
            id=d["id"],
            name=d.get("name", ""),
            owner=d.get("owner"),
            is_public=d.get("isPublic", False),
            sharing_permissions=copy.deepcopy(d.get("sharingPermissions", [])),
            blocks=copy.deepcopy(d.get("blocks", [])),
            global_styles=copy.deepcopy(d.get("globalStyles", DEFAULT_GLOBAL_STYLES)),
            canvas_size=copy.deepcopy(d.get("canvasSize", DEFAULT_CANVAS_SIZE)),
            version=d.get("version", 0),
            version_history=[VersionSnapshot.from_dict(v) for v in d.get("versionHistory", [])],
            max_versions=d.get("maxVersions", settings.MAX_VERSIONS),
            updated_by=d.get("updatedBy"),
        )


@dataclass
class Operation:
    """One entry of a bulk mutation batch."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Operation | dict[str, Any]) -> Operation:
        if isinstance(value, Operation):
            return value
        return cls(type=value.get("type", ""), data=value.get("data") or {})


@dataclass
class OperationResult:
    """Outcome of one operation in a batch. errors holds one message per reason."""

    index: int
    operation: str
    success: bool
    result: dict[str, Any] | None = None
    error: str | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"index": self.index, "operation": self.operation}
        if self.success:
            d["result"] = self.result
        else:
            d["error"] = self.error
            d["errors"] = list(self.errors)
        return d


@dataclass
class BatchResult:
    """Aggregate outcome of a bulk mutation batch."""

    total: int
    succeeded: list[OperationResult] = field(default_factory=list)
    failed: list[OperationResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "successful": len(self.succeeded),
            "failed": len(self.failed),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "results": {
                "success": [r.to_dict() for r in self.succeeded],
                "failed": [r.to_dict() for r in self.failed],
            },
            "summary": self.summary,
        }


@dataclass
class RevertResult:
    """Returned by a revert: the saved document plus before/after states."""

    document: Document
    reverted_from: dict[str, Any]
    reverted_to: dict[str, Any]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_iso(value: str) -> datetime | None:
    """Parse a timestamp written by now_iso(). Returns None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def generate_block_id() -> str:
    """block_<epoch millis>_<9 base36 chars>"""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"block_{int(time.time() * 1000)}_{suffix}"
