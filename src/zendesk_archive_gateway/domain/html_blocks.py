"""
Rich text (Zendesk comment HTML) → paragraph/heading/list blocks for the PDF layout.

The input is the constrained markup Zendesk produces, so this is a small scanner over a
character cursor rather than a DOM: anything it does not understand is passed through
as text or ignored, never rejected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

BLOCK_PARAGRAPH: Final = "paragraph"
BLOCK_HEADING: Final = "heading"
BLOCK_LIST_ITEM: Final = "list-item"

LIST_INDENT: Final = 15
QUOTE_INDENT: Final = 20
BULLET: Final = "• "

_HEADING_TAGS: Final[frozenset[str]] = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})

_DROP_WITH_CONTENT_RE = re.compile(
    r"<(script|style)\b[^>]*>.*?(?:</\1\s*>|\Z)",
    re.IGNORECASE | re.DOTALL,
)
_HREF_RE = re.compile(
    r"""\bhref\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""",
    re.IGNORECASE,
)
_ENTITY_RE = re.compile(r"&[#\w]+;")
_WHITESPACE_RE = re.compile(r"\s+")

_ENTITIES: Final[dict[str, str]] = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&#x27;": "'",
    "&#x2F;": "/",
    "&#x2f;": "/",
}


@dataclass
class PdfRun:
    text: str
    bold: bool = False
    italic: bool = False


@dataclass
class PdfBlock:
    type: str = BLOCK_PARAGRAPH
    indent: int = 0
    runs: list[PdfRun] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(run.text for run in self.runs)


@dataclass
class _ListContext:
    ordered: bool
    index: int = 0


class _State(Enum):
    TEXT = "text"
    TAG_OPEN = "tag_open"
    TAG_NAME = "tag_name"
    ATTRS = "attrs"


@dataclass(frozen=True, slots=True)
class _Tag:
    name: str
    closing: bool
    attrs: str


class _BlockBuilder:
    def __init__(self) -> None:
        self.blocks: list[PdfBlock] = []
        self._current: PdfBlock | None = None
        self._bold = False
        self._italic = False
        self._link_href: str | None = None
        self._lists: list[_ListContext] = []
        self._quote_depth = 0

    def _indent(self) -> int:
        return len(self._lists) * LIST_INDENT + self._quote_depth * QUOTE_INDENT

    def _ensure_block(self) -> PdfBlock:
        if self._current is None:
            self._current = PdfBlock(indent=self._indent())
        return self._current

    def flush(self) -> None:
        if self._current is not None and self._current.runs:
            self.blocks.append(self._current)
        self._current = None

    def text(self, text: str) -> None:
        if not text:
            return
        self._ensure_block().runs.append(PdfRun(text, self._bold, self._italic))

    def tag(self, tag: _Tag) -> None:
        name, closing = tag.name, tag.closing

        if name in {"p", "div", "br"}:
            self.flush()
        elif name in _HEADING_TAGS:
            if closing:
                self._bold = False
                self.flush()
            else:
                self.flush()
                self._ensure_block().type = BLOCK_HEADING
                self._bold = True
        elif name == "blockquote":
            self.flush()
            if closing:
                self._quote_depth = max(0, self._quote_depth - 1)
            else:
                self._quote_depth += 1
        elif name in {"ul", "ol"}:
            self.flush()
            if closing:
                if self._lists:
                    self._lists.pop()
            else:
                self._lists.append(_ListContext(ordered=name == "ol"))
        elif name == "li":
            self.flush()
            if not closing:
                block = self._ensure_block()
                block.type = BLOCK_LIST_ITEM
                if self._lists:
                    current = self._lists[-1]
                    current.index += 1
                    prefix = f"{current.index}. " if current.ordered else BULLET
                    block.runs.append(PdfRun(prefix))
        elif name in {"strong", "b"}:
            self._bold = not closing
        elif name in {"em", "i"}:
            self._italic = not closing
        elif name == "a":
            if closing:
                if self._link_href:
                    self.text(f" ({self._link_href})")
                self._link_href = None
            else:
                self._link_href = _extract_href(tag.attrs)
        elif name in {"td", "th"}:
            if closing:
                self.text("  ")
        elif name == "tr":
            if closing:
                self.flush()
        # img, span, table, thead, tbody, ... carry no layout of their own.


def _extract_href(attrs: str) -> str | None:
    match = _HREF_RE.search(attrs)
    if match is None:
        return None
    href = next((group for group in match.groups() if group is not None), "")
    return href or None


def _scan(markup: str, builder: _BlockBuilder) -> None:
    state = _State.TEXT
    pos = 0
    text_start = 0
    tag_start = 0
    name_start = 0
    closing = False
    name = ""
    quote: str | None = None
    length = len(markup)

    while pos < length:
        char = markup[pos]

        if state is _State.TEXT:
            if char == "<":
                builder.text(markup[text_start:pos])
                if markup.startswith("<!--", pos):
                    end = markup.find("-->", pos + 4)
                    pos = length if end == -1 else end + 3
                    text_start = pos
                    continue
                tag_start = pos
                closing = False
                state = _State.TAG_OPEN
            pos += 1
            continue

        if state is _State.TAG_OPEN:
            if char.isspace():
                pos += 1
            elif char == "/" and not closing:
                closing = True
                pos += 1
            else:
                name_start = pos
                state = _State.TAG_NAME
            continue

        if state is _State.TAG_NAME:
            if char.isalnum() or char in "!?-":
                pos += 1
                continue
            name = markup[name_start:pos].lower()
            state = _State.ATTRS
            continue

        # ATTRS: everything up to the closing '>' outside of quotes.
        if quote is not None:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == ">":
            attrs = markup[name_start + len(name) : pos]
            builder.tag(_Tag(name=name, closing=closing, attrs=attrs))
            state = _State.TEXT
            text_start = pos + 1
        pos += 1

    if state is _State.TEXT:
        builder.text(markup[text_start:])
    else:
        # Unterminated tag: keep what was typed as text.
        builder.text(markup[tag_start:])


def decode_entities(text: str) -> str:
    return _ENTITY_RE.sub(lambda m: _ENTITIES.get(m.group(0), " "), text)


def _normalize(blocks: list[PdfBlock]) -> list[PdfBlock]:
    out: list[PdfBlock] = []
    for block in blocks:
        for run in block.runs:
            run.text = _WHITESPACE_RE.sub(" ", decode_entities(run.text))
        if block.text.strip():
            out.append(block)
    return out


def parse_html_to_blocks(html: str | None) -> list[PdfBlock]:
    if not html:
        return []

    cleaned = _DROP_WITH_CONTENT_RE.sub("", html)
    builder = _BlockBuilder()
    _scan(cleaned, builder)
    builder.flush()
    return _normalize(builder.blocks)
