"""
Content injection: merge per-site customizations into template markup.

Markers read from template tags:
    data-text-id          text content (value / placeholder on form controls) + color override
    data-alt-text-id      alt attribute
    data-title-text-id    <title> text, title attribute elsewhere
    data-meta-content-id  content attribute
    data-image-src        src attribute; repositioned images also get an overlay clone
    data-bg-image         background-image style
    data-section-id       background-color style

inject_content is pure: no I/O, the same inputs always give the same output.
Marker attributes stay in the output so a published page can be edited again.
"""
from __future__ import annotations

import html
import logging
from typing import Any, Mapping

from sitepress.services.injection.tokenizer import (
    StartTag,
    escape_attr,
    find_matching_end,
    tokenize,
)

logger = logging.getLogger(__name__)

OVERLAY_CONTAINER_ID = "repositioned-images-container"
OVERLAY_CONTAINER_STYLE = (
    "position: absolute; top: 0; left: 0; width: 100%; height: 0; "
    "overflow: visible; pointer-events: none;"
)

_BUTTON_INPUT_TYPES = frozenset({"submit", "button", "reset"})
_SKIP_ELEMENTS = frozenset({"script", "style"})


def css_length(value: Any) -> str:
    """Numbers become pixels; strings are used as given (validated upstream)."""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, (int, float)):
        return f"{value:g}px"
    return str(value).strip()


def _text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


class _Injector:
    def __init__(
        self,
        langs: Mapping[str, Any],
        images: Mapping[str, str],
        text_colors: Mapping[str, str],
        section_backgrounds: Mapping[str, str],
        image_sizes: Mapping[str, Mapping[str, Any]],
        image_z_indexes: Mapping[str, Any],
    ) -> None:
        self.langs = langs
        self.images = images
        self.text_colors = text_colors
        self.section_backgrounds = section_backgrounds
        self.image_sizes = image_sizes
        self.image_z_indexes = image_z_indexes
        self.clones: list[str] = []

    def _lang(self, key: str | None) -> str | None:
        if key is None or key not in self.langs or self.langs[key] is None:
            return None
        return _text(self.langs[key])

    def apply(self, tag: StartTag) -> str | None:
        """Rewrite the tag's attributes in place; return replacement text content, if any."""
        replacement = None

        text_id = tag.get("data-text-id")
        value = self._lang(text_id)
        if value is not None:
            if tag.name == "input":
                input_type = (tag.get("type") or "text").strip().lower()
                tag.set("value" if input_type in _BUTTON_INPUT_TYPES else "placeholder", value)
            elif tag.name == "textarea":
                tag.set("placeholder", value)
            else:
                # <button> renders its content as the label; its value attribute is never shown
                replacement = value
        if text_id is not None and self.text_colors.get(text_id):
            tag.merge_style("color", _text(self.text_colors[text_id]))

        value = self._lang(tag.get("data-alt-text-id"))
        if value is not None:
            tag.set("alt", value)

        value = self._lang(tag.get("data-title-text-id"))
        if value is not None:
            if tag.name == "title":
                replacement = value
            else:
                tag.set("title", value)

        value = self._lang(tag.get("data-meta-content-id"))
        if value is not None:
            tag.set("content", value)

        image_id = tag.get("data-image-src")
        if image_id is not None and self.images.get(image_id):
            url = self.images[image_id]
            tag.set("src", url)
            if tag.name == "img" and image_id in self.image_sizes:
                tag.merge_style("visibility", "hidden")
                self.clones.append(self._clone(image_id, url))

        bg_id = tag.get("data-bg-image")
        if bg_id is not None and self.images.get(bg_id):
            tag.merge_style("background-image", f"url('{self.images[bg_id]}')")

        section_id = tag.get("data-section-id")
        if section_id is not None and self.section_backgrounds.get(section_id):
            tag.merge_style("background-color", _text(self.section_backgrounds[section_id]))

        return replacement

    def _clone(self, image_id: str, url: str) -> str:
        geometry = self.image_sizes[image_id] or {}
        z_index = self.image_z_indexes.get(image_id, 1)
        style = (
            "position: absolute; "
            f"width: {css_length(geometry.get('width', 'auto'))}; "
            f"height: {css_length(geometry.get('height', 'auto'))}; "
            f"left: {css_length(geometry.get('left', 0))}; "
            f"top: {css_length(geometry.get('top', 0))}; "
            f"z-index: {int(z_index)}; margin: 0"
        )
        return (
            f'<img src="{escape_attr(url)}" data-repositioned-image="{escape_attr(image_id)}" '
            f'style="{escape_attr(style)}" alt="">'
        )


def _insert_overlay(markup: str, clones: list[str]) -> str:
    container = (
        f'<div id="{OVERLAY_CONTAINER_ID}" style="{OVERLAY_CONTAINER_STYLE}">'
        + "".join(clones)
        + "</div>"
    )
    body_close = markup.lower().rfind("</body")
    if body_close == -1:
        return markup + container
    return markup[:body_close] + container + markup[body_close:]


def inject_content(
    template_html: str,
    langs: Mapping[str, Any] | None = None,
    images: Mapping[str, str] | None = None,
    text_colors: Mapping[str, str] | None = None,
    section_backgrounds: Mapping[str, str] | None = None,
    image_sizes: Mapping[str, Mapping[str, Any]] | None = None,
    image_z_indexes: Mapping[str, Any] | None = None,
) -> str:
    """
    Return template_html with every marker whose id appears in the maps substituted.

    Text is HTML-escaped; attribute values are escaped on re-serialization.
    Tags without a matching id are emitted byte-for-byte.
    """
    injector = _Injector(
        langs or {},
        images or {},
        text_colors or {},
        section_backgrounds or {},
        image_sizes or {},
        image_z_indexes or {},
    )
    tokens = tokenize(template_html)
    out: list[str] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if not isinstance(token, StartTag) or token.name in _SKIP_ELEMENTS:
            out.append(token.serialize())
            i += 1
            continue

        replacement = injector.apply(token)
        out.append(token.serialize())
        if replacement is not None and not token.is_void:
            end = find_matching_end(tokens, i)
            if end is not None:
                out.append(html.escape(replacement, quote=True))
                i = end
                continue
            logger.warning("injection_unclosed_element", extra={"reason": token.name})
        i += 1

    result = "".join(out)
    if injector.clones:
        result = _insert_overlay(result, injector.clones)
    return result
