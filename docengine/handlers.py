"""
docengine — Block Type Handlers

A handler is the behaviour half of a block type: how it renders and how it
validates. The registry stores one handler per type name next to the type's
descriptor.

    render(block, context)  → HTML fragment
    validate(block)         → ValidationResult

Built-in handlers cover the ten seed block types. TemplateBlockHandler renders
a logic-less Mustache template, which is how block types defined at runtime
(imported from stored config) get a renderer without executing stored code.
"""

from __future__ import annotations

import copy
from datetime import date
from typing import Any

import chevron

from docengine.content import (
    BlockContent,
    CompanyContent,
    CustomerContent,
    DividerContent,
    HeadingContent,
    ImageContent,
    PricingContent,
    SignatureContent,
    SpacerContent,
    TableContent,
    TextContent,
    parse_content,
)
from docengine.markup import escape, fill, merge_styles, replace_placeholders, style_string
from docengine.types import BlockTypeDescriptor, RenderContext, ValidationResult

# ---------------------------------------------------------------------------
# Structural default
# ---------------------------------------------------------------------------


def _present(value: Any) -> bool:
    # An empty content map counts as present; only scalar blanks do not.
    return value is not None and value is not False and value != "" and value != 0


def default_validate(block: dict[str, Any]) -> ValidationResult:
    """The rule every type without its own validator falls back to."""
    errors: list[str] = []
    if not _present(block.get("id")):
        errors.append("Block ID is required")
    if not _present(block.get("type")):
        errors.append("Block type is required")
    if not _present(block.get("content")):
        errors.append("Block content is required")
    return ValidationResult.from_errors(errors)


def _content(block: dict[str, Any]) -> dict[str, Any]:
    content = block.get("content")
    return content if isinstance(content, dict) else {}


# ---------------------------------------------------------------------------
# Handler base
# ---------------------------------------------------------------------------


class BlockTypeHandler:
    """
    Base capability for a block type.

    Subclasses set the class-level metadata and implement render(). Overriding
    validate() gives the type its own rule; otherwise the registry applies
    default_validate().
    """

    name: str = ""
    description: str = ""
    icon: str = ""
    category: str = "basic"
    schema: dict[str, Any] = {}
    dependencies: tuple[str, ...] = ()
    is_advanced: bool = False
    requires_auth: bool = False
    default_style: dict[str, Any] = {}
    content_model: type[BlockContent] | None = None

    def describe(self, block_type: str, registered_at: str) -> BlockTypeDescriptor:
        return BlockTypeDescriptor(
            type=block_type,
            name=self.name or block_type,
            description=self.description,
            icon=self.icon,
            category=self.category,
            schema=copy.deepcopy(self.schema),
            dependencies=tuple(self.dependencies),
            is_advanced=self.is_advanced,
            requires_auth=self.requires_auth,
            registered_at=registered_at,
        )

    @property
    def has_custom_validator(self) -> bool:
        return type(self).validate is not BlockTypeHandler.validate

    def parse(self, block: dict[str, Any]) -> Any:
        """Typed content for built-ins, the raw dict for everything else."""
        if self.content_model is None:
            return _content(block)
        return parse_content(self.content_model, block.get("content"))

    def styles_for(self, block: dict[str, Any], context: RenderContext, **overrides: Any) -> str:
        """Global styles, then type defaults, then the block's own styles."""
        styles = merge_styles(
            context.global_styles,
            self.default_style,
            block.get("styles") if isinstance(block.get("styles"), dict) else None,
            {k: v for k, v in overrides.items() if v is not None},
        )
        return escape(style_string(styles))

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        raise NotImplementedError

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        return default_validate(block)


# ---------------------------------------------------------------------------
# Basic
# ---------------------------------------------------------------------------


class TextHandler(BlockTypeHandler):
    name = "Metin"
    description = "Temel metin bloğu"
    icon = "text"
    category = "basic"
    content_model = TextContent
    default_style = {
        "fontSize": 16,
        "fontFamily": "Inter, sans-serif",
        "color": "#1f2937",
        "lineHeight": 1.5,
    }
    schema = {
        "content": {"type": "string", "required": True},
        "textAlign": {"type": "string", "enum": ["left", "center", "right", "justify"]},
    }

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        c: TextContent = self.parse(block)
        style = self.styles_for(block, context, textAlign=c.textAlign)
        return f'<div class="block text-block" style="{style}"><p>{fill(c.content, context.data)}</p></div>'

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        c = _content(block)
        errors = []
        if not (c.get("content") or c.get("text")):
            errors.append("Text content is required")
        return ValidationResult.from_errors(errors)


class HeadingHandler(BlockTypeHandler):
    name = "Başlık"
    description = "Başlık bloğu"
    icon = "heading"
    category = "basic"
    content_model = HeadingContent
    default_style = {
        "fontSize": 24,
        "fontFamily": "Inter, sans-serif",
        "fontWeight": "bold",
        "color": "#1f2937",
        "marginBottom": 16,
    }
    schema = {
        "content": {"type": "string", "required": True},
        "level": {"type": "number", "min": 1, "max": 6, "default": 2},
    }

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        c: HeadingContent = self.parse(block)
        level = min(max(c.level, 1), 6)
        style = self.styles_for(block, context)
        text = fill(c.content, context.data)
        return f'<div class="block heading-block" style="{style}"><h{level}>{text}</h{level}></div>'

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        c = _content(block)
        errors = []
        if not (c.get("content") or c.get("text")):
            errors.append("Heading content is required")
        level = c.get("level")
        if level is not None and (
            isinstance(level, bool) or not isinstance(level, int) or not 1 <= level <= 6
        ):
            errors.append("Heading level must be between 1 and 6")
        return ValidationResult.from_errors(errors)


# ---------------------------------------------------------------------------
# Media / data / layout
# ---------------------------------------------------------------------------


class ImageHandler(BlockTypeHandler):
    name = "Görsel"
    description = "Görsel bloğu"
    icon = "image"
    category = "media"
    content_model = ImageContent
    default_style = {"maxWidth": "100%", "height": "auto", "borderRadius": 8}
    schema = {
        "src": {"type": "string", "required": True},
        "alt": {"type": "string", "default": ""},
        "width": {"type": "number"},
        "height": {"type": "number"},
    }

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        c: ImageContent = self.parse(block)
        style = self.styles_for(block, context)
        img_style = "max-width: 100%; height: auto;"
        if c.width:
            img_style += f" width: {c.width:g}px;"
        if c.height:
            img_style += f" height: {c.height:g}px;"
        return (
            f'<div class="block image-block" style="{style}">'
            f'<img src="{fill(c.src, context.data)}" alt="{fill(c.alt, context.data)}" style="{img_style}" />'
            "</div>"
        )

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        c = _content(block)
        errors = []
        if not (c.get("src") or c.get("imageUrl")):
            errors.append("Image source is required")
        return ValidationResult.from_errors(errors)


class TableHandler(BlockTypeHandler):
    name = "Tablo"
    description = "Tablo bloğu"
    icon = "table"
    category = "data"
    content_model = TableContent
    default_style = {"borderCollapse": "collapse", "width": "100%", "marginBottom": 16}
    schema = {
        "headers": {"type": "array", "required": True},
        "rows": {"type": "array", "required": True},
    }

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        c: TableContent = self.parse(block)
        parts = [
            f'<div class="block table-block" style="{self.styles_for(block, context)}">',
            '<table style="width: 100%; border-collapse: collapse;">',
        ]
        if c.headers:
            parts.append("<thead><tr>")
            for header in c.headers:
                parts.append(
                    '<th style="border: 1px solid #ddd; padding: 8px; background-color: #f5f5f5;">'
                    f"{fill(header, context.data)}</th>"
                )
            parts.append("</tr></thead>")
        if c.rows:
            parts.append("<tbody>")
            for row in c.rows:
                cells = "".join(
                    f'<td style="border: 1px solid #ddd; padding: 8px;">{fill(cell, context.data)}</td>'
                    for cell in row
                )
                parts.append(f"<tr>{cells}</tr>")
            parts.append("</tbody>")
        parts.append("</table></div>")
        return "".join(parts)

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        c = _content(block)
        errors = []
        if not isinstance(c.get("headers"), list):
            errors.append("Table headers must be an array")
        if not isinstance(c.get("rows"), list):
            errors.append("Table rows must be an array")
        return ValidationResult.from_errors(errors)


class SpacerHandler(BlockTypeHandler):
    name = "Boşluk"
    description = "Boşluk bloğu"
    icon = "spacer"
    category = "layout"
    content_model = SpacerContent
    default_style = {"height": 20, "backgroundColor": "transparent"}
    schema = {"height": {"type": "number", "min": 0, "default": 20}}

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        c: SpacerContent = self.parse(block)
        height = c.height if c.height >= 0 else 0
        style = self.styles_for(block, context, height=f"{height:g}px")
        return f'<div class="block spacer-block" style="{style}"></div>'

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        height = _content(block).get("height")
        errors = []
        if isinstance(height, (int, float)) and height < 0:
            errors.append("Spacer height must be non-negative")
        return ValidationResult.from_errors(errors)


class DividerHandler(BlockTypeHandler):
    name = "Ayırıcı"
    description = "Ayırıcı çizgi bloğu"
    icon = "divider"
    category = "layout"
    content_model = DividerContent
    default_style = {"height": 1, "backgroundColor": "#e5e7eb", "margin": "16px 0"}
    schema = {"style": {"type": "string", "enum": ["solid", "dashed", "dotted"], "default": "solid"}}

    LINE_STYLES = ("solid", "dashed", "dotted")

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        c: DividerContent = self.parse(block)
        line = c.style if c.style in self.LINE_STYLES else "solid"
        color = escape(c.color or "#ddd")
        return (
            f'<div class="block divider-block" style="{self.styles_for(block, context)}">'
            f'<hr style="border: none; border-top: {c.thickness:g}px {line} {color}; margin: 10px 0;" />'
            "</div>"
        )

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        line = _content(block).get("style")
        errors = []
        if line and line not in self.LINE_STYLES:
            errors.append("Divider style must be solid, dashed, or dotted")
        return ValidationResult.from_errors(errors)


# ---------------------------------------------------------------------------
# Business
# ---------------------------------------------------------------------------


def _labelled(label: str, value: str) -> str:
    return f"<p><strong>{label}:</strong> {value}</p>" if value else ""


class CustomerHandler(BlockTypeHandler):
    name = "Müşteri Bilgileri"
    description = "Müşteri bilgileri bloğu"
    icon = "customer"
    category = "business"
    content_model = CustomerContent
    default_style = {
        "padding": 16,
        "backgroundColor": "#f9fafb",
        "borderRadius": 8,
        "border": "1px solid #e5e7eb",
    }
    schema = {
        "name": {"type": "string", "required": True},
        "email": {"type": "string"},
        "phone": {"type": "string"},
        "company": {"type": "string"},
        "address": {"type": "string"},
    }

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        c: CustomerContent = self.parse(block)
        customer = context.data.get("customer") or {}
        if not isinstance(customer, dict):
            customer = {}

        def pick(field: str, fallback: str = "") -> str:
            return fill(getattr(c, field) or customer.get(field) or fallback, context.data)

        return (
            f'<div class="block customer-block" style="{self.styles_for(block, context)}">'
            "<h3>Müşteri Bilgileri</h3>"
            f"{_labelled('Ad', pick('name', 'Müşteri Adı'))}"
            f"{_labelled('Firma', pick('company'))}"
            f"{_labelled('E-posta', pick('email'))}"
            f"{_labelled('Telefon', pick('phone'))}"
            f"{_labelled('Adres', pick('address'))}"
            "</div>"
        )

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        errors = []
        if not _content(block).get("name"):
            errors.append("Customer name is required")
        return ValidationResult.from_errors(errors)


class CompanyHandler(BlockTypeHandler):
    name = "Şirket Bilgileri"
    description = "Şirket bilgileri bloğu"
    icon = "company"
    category = "business"
    content_model = CompanyContent
    default_style = {
        "padding": 16,
        "backgroundColor": "#f0f9ff",
        "borderRadius": 8,
        "border": "1px solid #0ea5e9",
    }
    schema = {
        "name": {"type": "string", "required": True},
        "logo": {"type": "string"},
        "address": {"type": "string"},
        "phone": {"type": "string"},
        "email": {"type": "string"},
        "website": {"type": "string"},
    }

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        c: CompanyContent = self.parse(block)
        company = context.data.get("company") or {}
        if not isinstance(company, dict):
            company = {}

        def pick(field: str, fallback: str = "") -> str:
            return fill(getattr(c, field) or company.get(field) or fallback, context.data)

        name = pick("name", "Şirket Adı")
        logo = pick("logo")
        logo_html = (
            f'<img src="{logo}" alt="{name}" style="max-height: 50px; margin-bottom: 10px;" />' if logo else ""
        )
        return (
            f'<div class="block company-block" style="{self.styles_for(block, context)}">'
            f"{logo_html}<h3>{name}</h3>"
            f"{_labelled('E-posta', pick('email'))}"
            f"{_labelled('Telefon', pick('phone'))}"
            f"{_labelled('Adres', pick('address'))}"
            f"{_labelled('Web', pick('website'))}"
            "</div>"
        )

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        errors = []
        if not _content(block).get("name"):
            errors.append("Company name is required")
        return ValidationResult.from_errors(errors)


class PricingHandler(BlockTypeHandler):
    name = "Fiyatlandırma"
    description = "Fiyatlandırma tablosu bloğu"
    icon = "pricing"
    category = "business"
    content_model = PricingContent
    default_style = {
        "padding": 20,
        "backgroundColor": "#ffffff",
        "borderRadius": 12,
        "border": "2px solid #e5e7eb",
        "boxShadow": "0 4px 6px -1px rgba(0, 0, 0, 0.1)",
    }
    schema = {
        "title": {"type": "string", "required": True},
        "items": {"type": "array", "required": True},
        "total": {"type": "number"},
        "currency": {"type": "string", "default": "USD"},
    }

    _CELL = "border: 1px solid #ddd; padding: 8px;"

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        c: PricingContent = self.parse(block)
        currency = escape(c.currency)
        cell = self._CELL
        parts = [
            f'<div class="block pricing-block" style="{self.styles_for(block, context)}">',
            f"<h3>{fill(c.title or 'Fiyatlandırma', context.data)}</h3>",
            '<table style="width: 100%; border-collapse: collapse;">',
            '<thead><tr style="background-color: #f5f5f5;">',
            f'<th style="{cell} text-align: left;">Açıklama</th>',
            f'<th style="{cell} text-align: right;">Miktar</th>',
            f'<th style="{cell} text-align: right;">Birim Fiyat</th>',
            f'<th style="{cell} text-align: right;">Toplam</th>',
            "</tr></thead><tbody>",
        ]
        for item in c.items:
            parts.append(
                "<tr>"
                f'<td style="{cell}">{fill(item.description, context.data)}</td>'
                f'<td style="{cell} text-align: right;">{item.quantity:g}</td>'
                f'<td style="{cell} text-align: right;">{item.unitPrice:.2f} {currency}</td>'
                f'<td style="{cell} text-align: right;">{item.line_total:.2f} {currency}</td>'
                "</tr>"
            )
        total = c.total if c.total is not None else sum(item.line_total for item in c.items)
        parts.append(
            '</tbody><tfoot><tr style="background-color: #f0f0f0; font-weight: bold;">'
            f'<td colspan="3" style="{cell} text-align: right;">TOPLAM:</td>'
            f'<td style="{cell} text-align: right;">{total:.2f} {currency}</td>'
            "</tr></tfoot></table></div>"
        )
        return "".join(parts)

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        c = _content(block)
        errors = []
        if not c.get("title"):
            errors.append("Pricing title is required")
        if not isinstance(c.get("items"), list):
            errors.append("Pricing items must be an array")
        return ValidationResult.from_errors(errors)


class SignatureHandler(BlockTypeHandler):
    name = "İmza"
    description = "İmza bloğu"
    icon = "signature"
    category = "business"
    content_model = SignatureContent
    default_style = {
        "padding": 20,
        "textAlign": "right",
        "borderTop": "1px solid #e5e7eb",
        "marginTop": 20,
    }
    schema = {
        "name": {"type": "string", "required": True},
        "title": {"type": "string"},
        "signature": {"type": "string"},
    }

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        c: SignatureContent = self.parse(block)
        signature = fill(c.signature, context.data)
        name = fill(c.name, context.data)
        title = fill(c.title, context.data)
        signed_on = fill(c.date or date.today().strftime("%d.%m.%Y"), context.data)
        signature_html = (
            f'<div style="margin-bottom: 20px;"><img src="{signature}" alt="İmza" style="max-height: 100px;" /></div>'
            if signature
            else ""
        )
        return (
            f'<div class="block signature-block" style="{self.styles_for(block, context)}">'
            f'<div style="margin-top: 40px;">{signature_html}<div>'
            f"{f'<p><strong>{name}</strong></p>' if name else ''}"
            f"{f'<p>{title}</p>' if title else ''}"
            f"<p>Tarih: {signed_on}</p>"
            "</div></div></div>"
        )

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        errors = []
        if not _content(block).get("name"):
            errors.append("Signature name is required")
        return ValidationResult.from_errors(errors)


BUILTIN_HANDLERS: dict[str, type[BlockTypeHandler]] = {
    "text": TextHandler,
    "heading": HeadingHandler,
    "image": ImageHandler,
    "table": TableHandler,
    "spacer": SpacerHandler,
    "divider": DividerHandler,
    "customer": CustomerHandler,
    "company": CompanyHandler,
    "pricing": PricingHandler,
    "signature": SignatureHandler,
}


# ---------------------------------------------------------------------------
# Template handler (runtime-defined types)
# ---------------------------------------------------------------------------


class TemplateBlockHandler(BlockTypeHandler):
    """
    A block type whose renderer is a Mustache template.

    The template sees:
      content  — the block's content, placeholders already substituted
      styles   — the effective style string
      id       — the block id
      data     — the render data context
    Mustache escapes {{var}}; {{{var}}} inserts raw.
    """

    def __init__(
        self,
        template: str,
        *,
        required_fields: list[str] | None = None,
        name: str = "",
        description: str = "",
        icon: str = "",
        category: str = "custom",
        schema: dict[str, Any] | None = None,
        dependencies: list[str] | tuple[str, ...] = (),
        is_advanced: bool = False,
        requires_auth: bool = False,
        default_style: dict[str, Any] | None = None,
    ) -> None:
        self.template = template
        self.required_fields = list(required_fields or [])
        self.name = name
        self.description = description
        self.icon = icon
        self.category = category
        self.schema = dict(schema or {})
        self.dependencies = tuple(dependencies)
        self.is_advanced = is_advanced
        self.requires_auth = requires_auth
        self.default_style = dict(default_style or {})

    def render(self, block: dict[str, Any], context: RenderContext) -> str:
        content = {key: replace_placeholders(value, context.data) for key, value in _content(block).items()}
        return chevron.render(
            self.template,
            {
                "id": block.get("id", ""),
                "content": content,
                "styles": style_string(
                    merge_styles(context.global_styles, self.default_style, block.get("styles") or {})
                ),
                "data": context.data,
            },
        )

    def validate(self, block: dict[str, Any]) -> ValidationResult:
        result = default_validate(block)
        errors = list(result.errors)
        content = _content(block)
        for field_name in self.required_fields:
            if not content.get(field_name):
                errors.append(f"Field '{field_name}' is required")
        return ValidationResult.from_errors(errors)
