"""
docengine Registry -- Import / Export Tests

Block types defined at runtime come from stored config and are backed by a
Mustache template. Stored config never becomes code:
  - a config with a renderer or validator source string is rejected
  - a config without a template is rejected
  - an existing type name is rejected

Covers export of built-in and template types, import_all partial success,
and the "highlight" scenario types used by the bulk tests.
"""

import pytest

from docengine.errors import ValidationFailed
from docengine.handlers import TemplateBlockHandler
from docengine.types import RenderContext

HIGHLIGHT = {
    "name": "Vurgu",
    "description": "Vurgulu metin kutusu",
    "category": "custom",
    "template": '<div class="block highlight-block" style="{{styles}}">{{content.text}}</div>',
    "requiredFields": ["text"],
    "defaultStyle": {"backgroundColor": "#fef3c7", "padding": 12},
}


class TestImport:
    def test_import_template_type(self, registry):
        descriptor = registry.import_type("highlight", HIGHLIGHT)
        assert descriptor.type == "highlight"
        assert descriptor.name == "Vurgu"
        assert isinstance(registry.get_handler("highlight"), TemplateBlockHandler)
        assert registry.get_default_style("highlight") == {"backgroundColor": "#fef3c7", "padding": 12}

    def test_imported_type_renders_template(self, registry):
        registry.import_type("highlight", HIGHLIGHT)
        block = {"id": "h1", "type": "highlight", "content": {"text": "Merhaba {{customer.name}} <3"}}
        html = registry.render("highlight", block, RenderContext(data={"customer": {"name": "Ada"}}))
        assert html == (
            '<div class="block highlight-block" style="background-color: #fef3c7; padding: 12px">'
            "Merhaba Ada &lt;3</div>"
        )

    def test_imported_type_validates_required_fields(self, registry):
        registry.import_type("highlight", HIGHLIGHT)
        result = registry.validate("highlight", {"id": "h1", "type": "highlight", "content": {}})
        assert result.valid is False
        assert result.errors == ["Field 'text' is required"]

        result = registry.validate("highlight", {"id": "h1", "type": "highlight", "content": {"text": "x"}})
        assert result.valid is True

    def test_rejects_executable_renderer(self, registry):
        config = {**HIGHLIGHT, "renderer": "return `<div>${block.content.text}</div>`"}
        with pytest.raises(ValidationFailed) as exc_info:
            registry.import_type("evil", config)
        assert "Executable renderer is not supported, use a template" in exc_info.value.errors
        assert registry.has("evil") is False

    def test_rejects_executable_validator(self, registry):
        config = {**HIGHLIGHT, "validator": "return {valid: true}"}
        with pytest.raises(ValidationFailed):
            registry.import_type("evil", config)

    def test_rejects_missing_template(self, registry):
        with pytest.raises(ValidationFailed) as exc_info:
            registry.import_type("empty", {"name": "Boş"})
        assert exc_info.value.errors == ["Template is required"]

    def test_rejects_existing_type(self, registry):
        with pytest.raises(ValidationFailed) as exc_info:
            registry.import_type("text", HIGHLIGHT)
        assert exc_info.value.errors == ["Block type already exists: text"]
        assert registry.get("text").name == "Metin"

    def test_import_all_reports_each_type(self, registry):
        results = registry.import_all(
            {
                "highlight": HIGHLIGHT,
                "callout": {"template": "<aside>{{content.body}}</aside>"},
                "evil": {"renderer": "process.exit()"},
            }
        )
        assert [r["type"] for r in results["success"]] == ["highlight", "callout"]
        assert [r["type"] for r in results["failed"]] == ["evil"]
        assert registry.has("callout")
        assert not registry.has("evil")


class TestExport:
    def test_export_builtin(self, registry):
        exported = registry.export_type("pricing")
        assert exported["type"] == "pricing"
        assert exported["name"] == "Fiyatlandırma"
        assert exported["category"] == "business"
        assert exported["hasValidator"] is True
        assert exported["defaultStyle"]["borderRadius"] == 12
        assert "template" not in exported

    def test_export_unknown(self, registry):
        assert registry.export_type("ghost") is None

    def test_export_template_type_round_trips(self, registry):
        registry.import_type("highlight", HIGHLIGHT)
        exported = registry.export_type("highlight")
        assert exported["template"] == HIGHLIGHT["template"]
        assert exported["requiredFields"] == ["text"]

        registry.unregister("highlight")
        registry.import_type("highlight", exported)
        assert registry.get("highlight").name == "Vurgu"

    def test_export_all(self, registry):
        exported = registry.export_all()
        assert list(exported) == list(t.type for t in registry.get_all())
