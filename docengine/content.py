"""
docengine — Built-in Block Content Models

Typed views over the free-form `content` map of the ten built-in block types,
one pydantic model per type, keyed by block type in CONTENT_MODELS. Types
added to the registry at runtime keep a plain dict.

Models are lenient on purpose: unknown keys are kept, numbers are accepted
where text is expected, and the field names used by older documents
(`text`, `imageUrl`, `description`, `price`) are accepted as aliases.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from docengine.errors import ValidationFailed


class BlockContent(BaseModel):
    """Base for every built-in content model."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True, populate_by_name=True)


class TextContent(BlockContent):
    content: str | None = Field(default="", validation_alias=AliasChoices("content", "text"))
    textAlign: str | None = None


class HeadingContent(BlockContent):
    content: str | None = Field(default="", validation_alias=AliasChoices("content", "text"))
    level: int = 2


class ImageContent(BlockContent):
    src: str | None = Field(default="", validation_alias=AliasChoices("src", "imageUrl"))
    alt: str | None = ""
    width: float | None = None
    height: float | None = None


class TableContent(BlockContent):
    headers: list[Any] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)


class SpacerContent(BlockContent):
    height: float = 20


class DividerContent(BlockContent):
    style: str = "solid"
    color: str | None = None
    thickness: float = 1


class CustomerContent(BlockContent):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    address: str | None = None


class CompanyContent(BlockContent):
    name: str | None = None
    logo: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None


class PricingItem(BlockContent):
    description: str | None = Field(default="", validation_alias=AliasChoices("description", "name"))
    quantity: float = 1
    unitPrice: float = Field(default=0, validation_alias=AliasChoices("unitPrice", "price"))

    @property
    def line_total(self) -> float:
        return self.quantity * self.unitPrice


class PricingContent(BlockContent):
    title: str | None = None
    items: list[PricingItem] = Field(default_factory=list)
    total: float | None = None
    currency: str = "USD"


class SignatureContent(BlockContent):
    name: str | None = None
    title: str | None = None
    signature: str | None = None
    date: str | None = None


CONTENT_MODELS: dict[str, type[BlockContent]] = {
    "text": TextContent,
    "heading": HeadingContent,
    "image": ImageContent,
    "table": TableContent,
    "spacer": SpacerContent,
    "divider": DividerContent,
    "customer": CustomerContent,
    "company": CompanyContent,
    "pricing": PricingContent,
    "signature": SignatureContent,
}


def parse_content(model: type[BlockContent], content: Any) -> BlockContent:
    """
    Parse a block's raw content into its typed model.
    Raises ValidationFailed with one readable message per pydantic error.
    """
    if content is None:
        content = {}
    try:
        return model.model_validate(content)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(part) for part in err['loc']) or 'content'}: {err['msg']}"
            for err in exc.errors()
        ]
        raise ValidationFailed(errors, prefix="Invalid block content") from exc
