"""
docengine Registry -- Validation and Render Dispatch Tests

Every type has a deterministic pass/fail rule:
  - a type with its own validator uses it
  - any other type (unknown, or registered without one) gets the
    structural default: id, type and content present, whatever the
    shape of content

Render dispatch:
  - NotFound when no handler is registered
  - content that does not fit the type's model → ValidationFailed
  - a handler that raises → RenderError tagged with type and block id
"""

import pytest

from docengine.errors import NotFound, RenderError, ValidationFailed
from docengine.handlers import BlockTypeHandler, default_validate
from docengine.types import RenderContext


class PlainHandler(BlockTypeHandler):
    """Registered without a validator."""

    def render(self, block, context):
        return "<div>plain</div>"


class BrokenHandler(BlockTypeHandler):
    def render(self, block, context):
        raise ZeroDivisionError("division by zero")


# ============================================================================
# Structural default
# ============================================================================


class TestDefaultValidation:
    @pytest.mark.parametrize(
        "content",
        [
            {"anything": 1},
            {"nested": {"deep": [1, 2, 3]}},
            {},
            "just a string",
            ["a", "list"],
        ],
    )
    def test_valid_whatever_the_content_shape(self, registry, content):
        registry.register("plain", PlainHandler())
        result = registry.validate("plain", {"id": "b1", "type": "plain", "content": content})
        assert result.valid is True
        assert result.errors == []

    def test_missing_fields(self, registry):
        registry.register("plain", PlainHandler())
        result = registry.validate("plain", {})
        assert result.valid is False
        assert result.errors == [
            "Block ID is required",
            "Block type is required",
            "Block content is required",
        ]

    def test_empty_string_content_is_missing(self):
        result = default_validate({"id": "b1", "type": "plain", "content": ""})
        assert result.errors == ["Block content is required"]

    def test_unknown_type_uses_default(self, registry):
        assert registry.validate("ghost", {"id": "b1", "type": "ghost", "content": {"x": 1}}).valid is True
        assert registry.validate("ghost", {"id": "b1", "type": "ghost"}).valid is False

    def test_plain_handler_has_no_custom_validator(self):
        assert PlainHandler().has_custom_validator is False


# ============================================================================
# Built-in validators
# ============================================================================


def check(registry, block_type, content):
    return registry.validate(block_type, {"id": "b1", "type": block_type, "content": content})


class TestBuiltinValidators:
    def test_text(self, registry):
        assert check(registry, "text", {"content": "Merhaba"}).valid
        assert check(registry, "text", {"text": "eski alan adı"}).valid
        assert check(registry, "text", {}).errors == ["Text content is required"]

    def test_heading(self, registry):
        assert check(registry, "heading", {"content": "Teklif", "level": 1}).valid
        assert check(registry, "heading", {"content": "Teklif"}).valid
        assert check(registry, "heading", {"content": "Teklif", "level": 7}).errors == [
            "Heading level must be between 1 and 6"
        ]
        assert check(registry, "heading", {"content": "Teklif", "level": "2"}).errors == [
            "Heading level must be between 1 and 6"
        ]
        assert check(registry, "heading", {"level": 0}).errors == [
            "Heading content is required",
            "Heading level must be between 1 and 6",
        ]

    def test_image(self, registry):
        assert check(registry, "image", {"src": "/logo.png"}).valid
        assert check(registry, "image", {"imageUrl": "/logo.png"}).valid
        assert check(registry, "image", {"alt": "logo"}).errors == ["Image source is required"]

    def test_table(self, registry):
        assert check(registry, "table", {"headers": [], "rows": []}).valid
        assert check(registry, "table", {"headers": "A,B", "rows": None}).errors == [
            "Table headers must be an array",
            "Table rows must be an array",
        ]

    def test_spacer(self, registry):
        assert check(registry, "spacer", {"height": 0}).valid
        assert check(registry, "spacer", {"height": -5}).errors == ["Spacer height must be non-negative"]

    def test_divider(self, registry):
        assert check(registry, "divider", {"style": "dashed"}).valid
        assert check(registry, "divider", {"style": "wavy"}).errors == [
            "Divider style must be solid, dashed, or dotted"
        ]

    def test_business_blocks(self, registry):
        assert check(registry, "customer", {}).errors == ["Customer name is required"]
        assert check(registry, "company", {}).errors == ["Company name is required"]
        assert check(registry, "signature", {}).errors == ["Signature name is required"]

    def test_pricing(self, registry):
        assert check(registry, "pricing", {"title": "Fiyat", "items": []}).valid
        assert check(registry, "pricing", {"items": {}}).errors == [
            "Pricing title is required",
            "Pricing items must be an array",
        ]


# ============================================================================
# Render dispatch
# ============================================================================


class TestRenderDispatch:
    def test_not_found(self, registry):
        with pytest.raises(NotFound):
            registry.render("ghost", {"id": "b1", "type": "ghost", "content": {}})

    def test_renders_through_handler(self, registry):
        html = registry.render("text", {"id": "b1", "type": "text", "content": {"content": "Merhaba"}})
        assert "<p>Merhaba</p>" in html

    def test_broken_handler_becomes_render_error(self, registry):
        registry.register("broken", BrokenHandler())
        with pytest.raises(RenderError) as exc_info:
            registry.render("broken", {"id": "b9", "type": "broken", "content": {}}, RenderContext())
        assert exc_info.value.block_type == "broken"
        assert exc_info.value.block_id == "b9"
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)

    def test_bad_content_is_not_wrapped(self, registry):
        with pytest.raises(ValidationFailed) as exc_info:
            registry.render("heading", {"id": "b1", "type": "heading", "content": {"content": "x", "level": "high"}})
        assert any(err.startswith("level:") for err in exc_info.value.errors)
