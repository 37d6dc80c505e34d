"""
Single-pass tokenizer over tag boundaries.

Splits markup into Text / StartTag / EndTag / Verbatim tokens without building a tree.
Bodies of raw-text elements (script, style) and escapable raw-text elements (title, textarea)
are kept as one Text token so markup-looking content inside them is never treated as tags.
Unmodified tokens serialize back to their exact source text.
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass, field

RAW_TEXT_ELEMENTS = frozenset({"script", "style", "title", "textarea"})

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "source", "track", "wbr",
})

_TOKEN_RE = re.compile(
    r"<!--.*?-->"
    r"|<![^>]*>"
    r"|<\?[^>]*>"
    r"|</(?P<end>[A-Za-z][A-Za-z0-9:-]*)\s*>"
    r"|<(?P<start>[A-Za-z][A-Za-z0-9:-]*)(?P<attrs>(?:\"[^\"]*\"|'[^']*'|[^'\">])*)>",
    re.S,
)

_ATTR_RE = re.compile(
    r"""([^\s"'>/=]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+)))?"""
)

_SELF_CLOSING_RE = re.compile(r"(?:^|[\s\"'])/\s*$")


def escape_attr(value: str) -> str:
    """Escape for a double-quoted attribute value; single quotes stay readable (url('...'))."""
    return html.escape(value, quote=False).replace('"', "&quot;")


@dataclass
class Text:
    raw: str

    def serialize(self) -> str:
        return self.raw


@dataclass
class Verbatim:
    """Comment, doctype or processing instruction."""

    raw: str

    def serialize(self) -> str:
        return self.raw


@dataclass
class EndTag:
    name: str
    raw: str

    def serialize(self) -> str:
        return self.raw


@dataclass
class StartTag:
    name: str  # lower-cased
    raw_name: str
    attrs: list[list] = field(default_factory=list)  # [name, value-or-None], source order
    raw: str = ""
    self_closing: bool = False
    modified: bool = False

    def _index(self, name: str) -> int | None:
        lowered = name.lower()
        for i, (attr_name, _value) in enumerate(self.attrs):
            if attr_name.lower() == lowered:
                return i
        return None

    def get(self, name: str) -> str | None:
        i = self._index(name)
        if i is None:
            return None
        value = self.attrs[i][1]
        return "" if value is None else value

    def has(self, name: str) -> bool:
        return self._index(name) is not None

    def set(self, name: str, value: str) -> None:
        i = self._index(name)
        if i is None:
            self.attrs.append([name, value])
        else:
            self.attrs[i][1] = value
        self.modified = True

    def merge_style(self, prop: str, value: str) -> None:
        """Append `prop: value;` to the existing style attribute, or create one."""
        declaration = f"{prop}: {value};"
        existing = (self.get("style") or "").strip()
        if existing:
            separator = " " if existing.endswith(";") else "; "
            self.set("style", f"{existing}{separator}{declaration}")
        else:
            self.set("style", declaration)

    @property
    def is_void(self) -> bool:
        return self.self_closing or self.name in VOID_ELEMENTS

    def serialize(self) -> str:
        if not self.modified:
            return self.raw
        parts = [f"<{self.raw_name}"]
        for name, value in self.attrs:
            if value is None:
                parts.append(f" {name}")
            else:
                parts.append(f' {name}="{escape_attr(value)}"')
        parts.append(" />" if self.self_closing else ">")
        return "".join(parts)


Token = Text | Verbatim | StartTag | EndTag


def parse_start_tag(raw_name: str, attr_source: str, raw: str) -> StartTag:
    self_closing = bool(_SELF_CLOSING_RE.search(attr_source))
    if self_closing:
        attr_source = attr_source.rstrip()[:-1]
    attrs: list[list] = []
    for match in _ATTR_RE.finditer(attr_source):
        name = match.group(1)
        if match.group(2) is not None:
            value = match.group(2)
        elif match.group(3) is not None:
            value = match.group(3)
        else:
            value = match.group(4)
        attrs.append([name, html.unescape(value) if value is not None else None])
    return StartTag(
        name=raw_name.lower(),
        raw_name=raw_name,
        attrs=attrs,
        raw=raw,
        self_closing=self_closing,
    )


def tokenize(markup: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    length = len(markup)
    while pos < length:
        match = _TOKEN_RE.search(markup, pos)
        if match is None:
            tokens.append(Text(markup[pos:]))
            break
        if match.start() > pos:
            tokens.append(Text(markup[pos:match.start()]))
        raw = match.group(0)
        pos = match.end()

        if match.group("end") is not None:
            tokens.append(EndTag(name=match.group("end").lower(), raw=raw))
            continue
        if match.group("start") is None:
            tokens.append(Verbatim(raw))
            continue

        tag = parse_start_tag(match.group("start"), match.group("attrs") or "", raw)
        tokens.append(tag)
        if tag.name in RAW_TEXT_ELEMENTS and not tag.self_closing:
            close = re.compile(rf"</{re.escape(tag.name)}\s*>", re.I).search(markup, pos)
            body_end = close.start() if close else length
            if body_end > pos:
                tokens.append(Text(markup[pos:body_end]))
            pos = body_end
    return tokens


def find_matching_end(tokens: list[Token], start_index: int) -> int | None:
    """Index of the EndTag closing tokens[start_index], honouring nested same-name elements."""
    name = tokens[start_index].name
    depth = 1
    for j in range(start_index + 1, len(tokens)):
        token = tokens[j]
        if isinstance(token, StartTag) and token.name == name and not token.is_void:
            depth += 1
        elif isinstance(token, EndTag) and token.name == name:
            depth -= 1
            if depth == 0:
                return j
    return None
