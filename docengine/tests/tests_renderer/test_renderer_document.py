"""
docengine Renderer -- Document Shell Tests

(blocks, global styles, canvas size, data) → complete HTML document.

Covers:
  - blocks render in list order inside the page shell
  - global styles become page-level CSS
  - canvas size and unit (px|mm|cm|in) become the container size
  - an unknown canvas unit falls back to px with a warning
  - one bad block does not abort the document
  - the markup helpers behind style strings and placeholders
"""

import pytest

from docengine.markup import css_safe, css_value, replace_placeholders, style_string
from docengine.renderer import BlockRenderer
from docengine.tests.conftest import make_block, make_document


@pytest.fixture
def renderer(registry):
    return BlockRenderer(registry)


class TestDocumentShell:
    def test_blocks_in_order(self, renderer):
        blocks = [
            make_block("a", content="Birinci"),
            make_block("b", content="İkinci"),
            make_block("c", content="Üçüncü"),
        ]
        html = renderer.render_document(blocks, {}, {"width": 210, "height": 297, "unit": "mm"}, {})
        assert html.index("Birinci") < html.index("İkinci") < html.index("Üçüncü")
        assert html.startswith("<!DOCTYPE html>")
        assert '<html lang="tr">' in html

    def test_global_styles_in_page_css(self, renderer):
        styles = {"fontFamily": "Roboto, sans-serif", "fontSize": 14, "backgroundColor": "#fafafa", "textColor": "#111"}
        html = renderer.render_document([], styles, None, {})
        assert "font-family: Roboto, sans-serif;" in html
        assert "font-size: 14px;" in html
        assert "background-color: #fafafa;" in html
        assert "color: #111;" in html

    @pytest.mark.parametrize("unit", ["px", "mm", "cm", "in"])
    def test_canvas_units(self, renderer, unit):
        html = renderer.render_document([], {}, {"width": 210, "height": 297, "unit": unit}, {})
        assert f"width: 210{unit};" in html
        assert f"min-height: 297{unit};" in html

    def test_unknown_unit_falls_back_to_px(self, renderer, caplog):
        html = renderer.render_document([], {}, {"width": 800, "height": 1000, "unit": "furlong"}, {})
        assert "width: 800px;" in html
        assert "Unknown canvas unit furlong" in caplog.text

    def test_defaults_when_missing(self, renderer):
        html = renderer.render_document([], None, None, None)
        assert "width: 800px;" in html
        assert "font-family: Inter, sans-serif;" in html

    def test_css_injection_stripped(self, renderer):
        html = renderer.render_document([], {"fontFamily": "x;} body{display:none"}, None, {})
        assert "x;}" not in html
        assert "font-family: x bodydisplay:none;" in html

    def test_bad_block_does_not_abort(self, renderer):
        blocks = [
            make_block("a", content="Önce"),
            {"id": "x", "type": "bogus", "content": {}},
            {"id": "h", "type": "heading", "content": {"content": "x", "level": "high"}},
            make_block("b", content="Sonra"),
        ]
        html = renderer.render_document(blocks, {}, None, {})
        assert "Önce" in html
        assert "Bilinmeyen blok türü: bogus" in html
        assert 'class="block-error"' in html
        assert "Sonra" in html

    def test_render_document_object(self, renderer):
        document = make_document(blocks=[make_block("a", content="Teklif {{customer.name}}")])
        html = renderer.render(document, {"customer": {"name": "Ada"}})
        assert "Teklif Ada" in html


class TestMarkupHelpers:
    def test_style_string_order_and_units(self):
        styles = {"padding": 8, "fontSize": 14.5, "color": "red", "unknown": 1, "margin": "", "width": None}
        assert style_string(styles) == "font-size: 14.5px; color: red; padding: 8px"

    def test_css_value(self):
        assert css_value(10) == "10px"
        assert css_value(1.5) == "1.5px"
        assert css_value("50%") == "50%"
        assert css_value(True) == "true"

    def test_css_safe(self):
        assert css_safe("red;}</style>") == "red/style"

    def test_replace_placeholders(self):
        data = {"a": {"b": {"c": "deep"}}, "n": 5}
        assert replace_placeholders("{{a.b.c}} {{n}} {{a.x}}", data) == "deep 5 {{a.x}}"
        assert replace_placeholders(42, data) == 42
        assert replace_placeholders("{{ spaced }}", data) == "{{ spaced }}"
