"""
docengine — Markup Helpers

Small pure functions shared by every block handler and the document renderer:
placeholder substitution, HTML escaping, style merging and CSS style strings.
"""

from __future__ import annotations

import re
from html import escape as _html_escape
from typing import Any

from docengine.types import STYLE_PROPERTIES

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+(?:\.\w+)*)\}\}")
_CSS_UNSAFE_RE = re.compile(r"[<>{};]")


def escape(value: Any) -> str:
    """HTML-escape a value for text or attribute context."""
    if value is None:
        return ""
    return _html_escape(str(value), quote=True)


def replace_placeholders(text: Any, data: dict[str, Any] | None) -> Any:
    """
    Replace {{dotted.path}} tokens with values from data.

    A token whose path is missing, or whose value is falsy, stays in the output
    unchanged. Non-string input is returned as is.
    """
    if not isinstance(text, str):
        return text
    data = data or {}

    def _resolve(match: re.Match[str]) -> str:
        value: Any = data
        for key in match.group(1).split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return match.group(0)
        if not value:
            return match.group(0)
        return str(value)

    return _PLACEHOLDER_RE.sub(_resolve, text)


def fill(value: Any, data: dict[str, Any] | None) -> str:
    """Substitute placeholders, then escape. The usual way handlers emit text."""
    return escape(replace_placeholders(value, data))


def merge_styles(*layers: dict[str, Any] | None) -> dict[str, Any]:
    """Shallow-merge style maps; later layers win."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


def css_value(value: Any) -> str:
    """Numbers become pixel lengths; everything else is used verbatim."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        return f"{value}px"
    if isinstance(value, float):
        return f"{value:g}px"
    return str(value)


def css_safe(value: Any) -> str:
    """Strip characters that could end a declaration or a <style> element."""
    return _CSS_UNSAFE_RE.sub("", str(value))


def style_string(styles: dict[str, Any]) -> str:
    """
    Convert a style map into "prop: value; prop: value".
    Only keys in STYLE_PROPERTIES are emitted; the rest are dropped.
    """
    parts: list[str] = []
    for key, prop in STYLE_PROPERTIES.items():
        value = styles.get(key)
        if value is None or value == "":
            continue
        parts.append(f"{prop}: {css_safe(css_value(value))}")
    return "; ".join(parts)
