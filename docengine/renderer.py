"""
docengine — Block Renderer

(blocks, global styles, canvas size, data) → complete HTML document.

Blocks render in list order through the registry's handlers (seed types the
registry lacks fall back to the built-in handlers); the fragments are
concatenated and wrapped in a Mustache page shell. No IO. Rendering one bad
block never aborts the document:

  - unknown block type        → inline "unknown-block" marker
  - content that fails to fit → inline "block-error" marker
  - a handler that is broken  → RenderError propagates (programming error)
"""

from __future__ import annotations

import logging
from typing import Any

import chevron

from docengine.config import settings
from docengine.errors import ValidationFailed
from docengine.markup import css_safe, css_value, escape, merge_styles
from docengine.handlers import BUILTIN_HANDLERS
from docengine.registry import BlockTypeRegistry, default_registry
from docengine.types import (
    CANVAS_UNITS,
    DEFAULT_CANVAS_SIZE,
    DEFAULT_GLOBAL_STYLES,
    Document,
    RenderContext,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Page shell
# ---------------------------------------------------------------------------

DOCUMENT_TEMPLATE = """<!DOCTYPE html>
<html lang="{{lang}}">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{{title}}</title>
  <style>
    body {
      font-family: {{{fontFamily}}};
      font-size: {{{fontSize}}};
      background-color: {{{backgroundColor}}};
      color: {{{textColor}}};
      margin: 0;
      padding: 20px;
      line-height: 1.6;
    }
    .document {
      width: {{{width}}};
      min-height: {{{height}}};
      margin: 0 auto;
      background: white;
      box-shadow: 0 0 10px rgba(0,0,0,0.1);
      padding: 40px;
      box-sizing: border-box;
    }
    .block {
      margin-bottom: 20px;
    }
    .block:last-child {
      margin-bottom: 0;
    }
    .unknown-block, .block-error {
      padding: 8px;
      border: 1px dashed #dc2626;
      color: #dc2626;
    }
  </style>
</head>
<body>
  <div class="document">
{{{body}}}
  </div>
</body>
</html>
"""


_builtins: BlockTypeRegistry | None = None


def _builtin_registry() -> BlockTypeRegistry:
    """Seed types only, separate from any registry a caller configures."""
    global _builtins
    if _builtins is None:
        _builtins = BlockTypeRegistry().initialize()
    return _builtins


def _dimension(value: Any, unit: str) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:g}{unit}"
    return css_safe(value)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class BlockRenderer:
    """Renders block lists through a registry. Defaults to the shared one."""

    def __init__(self, registry: BlockTypeRegistry | None = None) -> None:
        self.registry = registry if registry is not None else default_registry()

    def render(self, document: Document, data: dict[str, Any] | None = None) -> str:
        """Render a Document's live state."""
        return self.render_document(document.blocks, document.global_styles, document.canvas_size, data)

    def render_document(
        self,
        blocks: list[dict[str, Any]],
        global_styles: dict[str, Any] | None = None,
        canvas_size: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> str:
        global_styles = global_styles or {}
        fragments = [self.render_block(block, global_styles, data) for block in blocks]
        return self.wrap("\n".join(fragments), global_styles, canvas_size)

    def render_block(
        self,
        block: dict[str, Any],
        global_styles: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> str:
        """
        One block → HTML fragment.
        Effective style is global styles, then the type default, then the block's own.
        """
        block_type = block.get("type")
        registry = self._registry_for(block_type)
        if registry is None:
            logger.warning("Unknown block type %s in block %s", block_type, block.get("id"))
            return f'<div class="unknown-block">Bilinmeyen blok türü: {escape(block_type)}</div>'

        context = RenderContext(data=data or {}, global_styles=global_styles or {})
        try:
            return registry.render(block_type, block, context)
        except ValidationFailed as e:
            logger.warning("Block %s (%s) has invalid content: %s", block.get("id"), block_type, e)
            return (
                f'<div class="block-error" data-block-id="{escape(block.get("id"))}">'
                f"Blok içeriği geçersiz: {escape('; '.join(e.errors))}</div>"
            )

    def _registry_for(self, block_type: Any) -> BlockTypeRegistry | None:
        """The configured registry, then the built-in catalog for seed types it lacks."""
        if not isinstance(block_type, str):
            return None
        if self.registry.has(block_type):
            return self.registry
        if block_type in BUILTIN_HANDLERS:
            return _builtin_registry()
        return None

    def wrap(self, body: str, global_styles: dict[str, Any], canvas_size: dict[str, Any] | None) -> str:
        """Wrap rendered fragments in the page shell."""
        styles = merge_styles(DEFAULT_GLOBAL_STYLES, global_styles)
        canvas = merge_styles(DEFAULT_CANVAS_SIZE, canvas_size)

        unit = canvas.get("unit")
        if unit not in CANVAS_UNITS:
            logger.warning("Unknown canvas unit %s, using px", unit)
            unit = "px"

        return chevron.render(
            DOCUMENT_TEMPLATE,
            {
                "lang": settings.DOCUMENT_LANG,
                "title": settings.DOCUMENT_TITLE,
                "fontFamily": css_safe(css_value(styles.get("fontFamily"))),
                "fontSize": css_safe(css_value(styles.get("fontSize"))),
                "backgroundColor": css_safe(css_value(styles.get("backgroundColor"))),
                "textColor": css_safe(css_value(styles.get("textColor"))),
                "width": _dimension(canvas.get("width"), unit),
                "height": _dimension(canvas.get("height"), unit),
                "body": body,
            },
        )
