"""
docengine — Block Type Registry

The single source of truth for which block types exist and how each one
renders, validates and defaults. Each type is one entry:

    type name → (BlockTypeDescriptor, BlockTypeHandler)

Descriptor and handler are stored together, so registering or unregistering
a type is always one step. Reads never raise for unknown types; they return
None or an empty value. Descriptors handed to callers are copies.

Runtime-defined types (import_type) are TemplateBlockHandlers. Stored
config never becomes executable code.
"""

from __future__ import annotations

import copy
import logging
from collections import Counter
from dataclasses import dataclass, replace
from typing import Any

from docengine.errors import NotFound, RenderError, ValidationFailed
from docengine.handlers import (
    BUILTIN_HANDLERS,
    BlockTypeHandler,
    TemplateBlockHandler,
    default_validate,
)
from docengine.types import (
    BlockTypeDescriptor,
    DependencyCheck,
    RenderContext,
    ValidationResult,
    now_iso,
)

logger = logging.getLogger(__name__)

# Descriptor fields update_type() may change, with the config keys they map to.
_DESCRIPTOR_FIELDS: dict[str, str] = {
    "name": "name",
    "description": "description",
    "icon": "icon",
    "category": "category",
    "schema": "schema",
    "dependencies": "dependencies",
    "isAdvanced": "is_advanced",
    "requiresAuth": "requires_auth",
}

# Config keys that would carry executable code. Refused on import.
_EXECUTABLE_KEYS = ("renderer", "validator")


@dataclass
class _Entry:
    descriptor: BlockTypeDescriptor
    handler: BlockTypeHandler


class BlockTypeRegistry:
    """Catalog of block types. Process-wide in practice; see default_registry()."""

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    # -- registration --

    def register(self, block_type: str, handler: BlockTypeHandler) -> BlockTypeDescriptor:
        """Insert or overwrite. Last writer wins."""
        if block_type in self._entries:
            logger.warning("Block type %s is already registered, overwriting", block_type)
        descriptor = handler.describe(block_type, now_iso())
        self._entries[block_type] = _Entry(descriptor=descriptor, handler=handler)
        logger.info("Registered block type: %s", block_type)
        return copy.deepcopy(descriptor)

    def unregister(self, block_type: str) -> bool:
        removed = self._entries.pop(block_type, None) is not None
        if removed:
            logger.info("Unregistered block type: %s", block_type)
        return removed

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Block type registry cleared")

    def initialize(self) -> BlockTypeRegistry:
        """Register the built-in catalog. Returns self."""
        for block_type, handler_cls in BUILTIN_HANDLERS.items():
            self.register(block_type, handler_cls())
        logger.info("Initialized block type registry with %d types", len(self._entries))
        return self

    # -- reads --

    def get(self, block_type: str) -> BlockTypeDescriptor | None:
        entry = self._entries.get(block_type)
        return copy.deepcopy(entry.descriptor) if entry else None

    def get_all(self) -> list[BlockTypeDescriptor]:
        return [copy.deepcopy(e.descriptor) for e in self._entries.values()]

    def get_by_category(self, category: str) -> list[BlockTypeDescriptor]:
        return [d for d in self.get_all() if d.category == category]

    def get_advanced(self) -> list[BlockTypeDescriptor]:
        return [d for d in self.get_all() if d.is_advanced]

    def get_basic(self) -> list[BlockTypeDescriptor]:
        return [d for d in self.get_all() if not d.is_advanced]

    def get_handler(self, block_type: str) -> BlockTypeHandler | None:
        entry = self._entries.get(block_type)
        return entry.handler if entry else None

    def get_default_style(self, block_type: str) -> dict[str, Any]:
        entry = self._entries.get(block_type)
        return copy.deepcopy(entry.handler.default_style) if entry else {}

    def has(self, block_type: str) -> bool:
        return block_type in self._entries

    def __contains__(self, block_type: object) -> bool:
        return block_type in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def check_dependencies(self, block_type: str) -> DependencyCheck:
        """A type that is not registered reports itself as missing."""
        entry = self._entries.get(block_type)
        if entry is None:
            return DependencyCheck(valid=False, missing=[block_type])
        missing = [dep for dep in entry.descriptor.dependencies if dep not in self._entries]
        return DependencyCheck(valid=not missing, missing=missing)

    def filter(
        self,
        category: str | None = None,
        is_advanced: bool | None = None,
        requires_auth: bool | None = None,
        search: str | None = None,
    ) -> list[BlockTypeDescriptor]:
        results = self.get_all()
        if category is not None:
            results = [d for d in results if d.category == category]
        if is_advanced is not None:
            results = [d for d in results if d.is_advanced == is_advanced]
        if requires_auth is not None:
            results = [d for d in results if d.requires_auth == requires_auth]
        if search:
            needle = search.lower()
            results = [
                d
                for d in results
                if needle in d.name.lower() or needle in d.description.lower() or needle in d.type.lower()
            ]
        return results

    def stats(self) -> dict[str, Any]:
        descriptors = [e.descriptor for e in self._entries.values()]
        advanced = sum(1 for d in descriptors if d.is_advanced)
        return {
            "total": len(descriptors),
            "categories": dict(Counter(d.category for d in descriptors)),
            "advanced": advanced,
            "basic": len(descriptors) - advanced,
            "withValidators": sum(1 for e in self._entries.values() if e.handler.has_custom_validator),
            "withDefaultStyles": sum(1 for e in self._entries.values() if e.handler.default_style),
        }

    # -- behaviour --

    def render(self, block_type: str, block: dict[str, Any], context: RenderContext | None = None) -> str:
        """
        Render one block through its type's handler.

        NotFound if no handler is registered. ValidationFailed (content that
        does not fit the type) passes through. Anything else a handler raises
        becomes RenderError.
        """
        entry = self._entries.get(block_type)
        if entry is None:
            raise NotFound(f"No renderer registered for block type: {block_type}")
        try:
            return entry.handler.render(block, context or RenderContext())
        except ValidationFailed:
            raise
        except Exception as exc:
            logger.error("Renderer for block type %s failed on block %s: %s", block_type, block.get("id"), exc)
            raise RenderError(block_type, block.get("id"), str(exc)) from exc

    def validate(self, block_type: str, block: dict[str, Any]) -> ValidationResult:
        """The type's own validator, or the structural default."""
        entry = self._entries.get(block_type)
        if entry is None or not entry.handler.has_custom_validator:
            return default_validate(block)
        return entry.handler.validate(block)

    # -- metadata edits --

    def update_type(self, block_type: str, **changes: Any) -> BlockTypeDescriptor:
        """Replace descriptor metadata. `type` and registration time are fixed."""
        entry = self._entries.get(block_type)
        if entry is None:
            raise NotFound(f"Block type not found: {block_type}")

        updates: dict[str, Any] = {}
        for key, value in changes.items():
            field_name = _DESCRIPTOR_FIELDS.get(key, key)
            if field_name not in _DESCRIPTOR_FIELDS.values():
                continue
            if field_name == "dependencies":
                value = tuple(value or ())
            elif field_name == "schema":
                value = copy.deepcopy(value or {})
            updates[field_name] = value

        entry.descriptor = replace(entry.descriptor, **updates)
        logger.info("Updated block type: %s", block_type)
        return copy.deepcopy(entry.descriptor)

    def copy_type(self, source_type: str, new_type: str, **changes: Any) -> BlockTypeDescriptor:
        source = self._entries.get(source_type)
        if source is None:
            raise NotFound(f"Source block type not found: {source_type}")
        if new_type in self._entries:
            raise ValidationFailed([f"Block type already exists: {new_type}"], prefix="Cannot copy block type")

        handler = copy.copy(source.handler)
        self.register(new_type, handler)
        updates = {"name": f"{source.descriptor.name} (Kopya)"}
        updates.update(changes)
        return self.update_type(new_type, **updates)

    # -- export / import --

    def export_type(self, block_type: str) -> dict[str, Any] | None:
        entry = self._entries.get(block_type)
        if entry is None:
            return None
        exported = entry.descriptor.to_dict()
        exported["defaultStyle"] = copy.deepcopy(entry.handler.default_style)
        exported["hasValidator"] = entry.handler.has_custom_validator
        if isinstance(entry.handler, TemplateBlockHandler):
            exported["template"] = entry.handler.template
            exported["requiredFields"] = list(entry.handler.required_fields)
        return exported

    def export_all(self) -> dict[str, dict[str, Any]]:
        return {block_type: self.export_type(block_type) for block_type in self._entries}

    def import_type(self, block_type: str, config: dict[str, Any]) -> BlockTypeDescriptor:
        """
        Register a template-backed type from a stored config.

        Rejected: an existing type name, a config without a template, and any
        config carrying renderer/validator source code.
        """
        errors: list[str] = []
        if block_type in self._entries:
            errors.append(f"Block type already exists: {block_type}")
        for key in _EXECUTABLE_KEYS:
            if config.get(key) is not None and not isinstance(config.get(key), BlockTypeHandler):
                errors.append(f"Executable {key} is not supported, use a template")
        template = config.get("template")
        if not isinstance(template, str) or not template.strip():
            errors.append("Template is required")
        if errors:
            raise ValidationFailed(errors, prefix=f"Cannot import block type {block_type}")

        handler = TemplateBlockHandler(
            template,
            required_fields=config.get("requiredFields"),
            name=config.get("name", ""),
            description=config.get("description", ""),
            icon=config.get("icon", ""),
            category=config.get("category", "custom"),
            schema=config.get("schema"),
            dependencies=config.get("dependencies") or (),
            is_advanced=bool(config.get("isAdvanced", False)),
            requires_auth=bool(config.get("requiresAuth", False)),
            default_style=config.get("defaultStyle"),
        )
        return self.register(block_type, handler)

    def import_all(self, configs: dict[str, dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
        """Per-type outcome; one bad config does not stop the rest."""
        results: dict[str, list[dict[str, Any]]] = {"success": [], "failed": []}
        for block_type, config in configs.items():
            try:
                self.import_type(block_type, config)
            except ValidationFailed as e:
                results["failed"].append({"type": block_type, "error": str(e)})
            else:
                results["success"].append({"type": block_type})
        return results


# ---------------------------------------------------------------------------
# Process-wide instance
# ---------------------------------------------------------------------------

_default: BlockTypeRegistry | None = None


def default_registry() -> BlockTypeRegistry:
    """The shared registry, initialized with the built-ins on first use."""
    global _default
    if _default is None:
        _default = BlockTypeRegistry().initialize()
    return _default
