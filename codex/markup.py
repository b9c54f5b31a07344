"""
codex/markup.py -- Serialize documents with reference nodes to/from HTML.

A document is a list of segments: plain ``str`` runs and
:class:`~codex.models.ReferenceNode` objects.  Reference nodes persist as::

    <span data-type="wiki-link" class="wiki-link" data-entity-id="2"
          data-entity-label="Arnor" data-entity-type="location">[[Arnor]]</span>

with ``data-character-id`` present only for nodes that have a secondary
owner.  The span text is presentation only; parsing reads the attributes.
Line breaks in text runs are written as ``<br>``.  When parsing, ``<br>``
and the end of a block element (``p``, ``div``, ``li``, headings) become
``"\\n"``; all other tags are dropped and their text kept.
"""

from __future__ import annotations

import html
import logging
from html.parser import HTMLParser
from typing import Union

from codex.errors import MarkupError
from codex.models import ReferenceNode

logger = logging.getLogger(__name__)

Segment = Union[str, ReferenceNode]

NODE_TYPE = "wiki-link"
NODE_STYLE = "color: #ffd700; cursor: pointer; text-decoration: underline;"

# attribute name -> ReferenceNode field
NODE_ATTRIBUTES = {
    "data-entity-id": "id",
    "data-entity-label": "label",
    "data-entity-type": "category",
    "data-character-id": "secondary_owner_id",
}

_BLOCK_TAGS = frozenset({"p", "div", "li", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote"})


# ------------------------------------------------------------------
# Serialization
# ------------------------------------------------------------------

def node_attributes(node: ReferenceNode) -> dict[str, str]:
    """Return the persisted attributes of *node*; absent values are omitted."""
    attrs = {"data-type": NODE_TYPE, "class": NODE_TYPE}
    for attr, field_name in NODE_ATTRIBUTES.items():
        value = getattr(node, field_name)
        if value:
            attrs[attr] = str(value)
    return attrs


def serialize_node(node: ReferenceNode) -> str:
    attrs = " ".join(
        f'{name}="{html.escape(value, quote=True)}"'
        for name, value in node_attributes(node).items()
    )
    return f"<span {attrs}>{html.escape(node.display_text, quote=False)}</span>"


def serialize_segments(segments: list[Segment]) -> str:
    """Render *segments* as markup."""
    parts: list[str] = []
    for segment in segments:
        if isinstance(segment, ReferenceNode):
            parts.append(serialize_node(segment))
        else:
            parts.append(html.escape(segment, quote=False).replace("\n", "<br>"))
    return "".join(parts)


# ------------------------------------------------------------------
# Parsing
# ------------------------------------------------------------------

class _SegmentParser(HTMLParser):
    def __init__(self, strict: bool):
        super().__init__(convert_charrefs=True)
        self._strict = strict
        self.segments: list[Segment] = []
        self._text: list[str] = []
        # Depth inside a reference span, and its attributes
        self._node_depth = 0
        self._node_attrs: dict[str, str] = {}
        self._node_text: list[str] = []

    # -- helpers -------------------------------------------------------

    def _flush_text(self) -> None:
        if self._text:
            self.segments.append("".join(self._text))
            self._text = []

    def _emit_node(self) -> None:
        values = {
            field_name: self._node_attrs.get(attr)
            for attr, field_name in NODE_ATTRIBUTES.items()
        }
        if not values["id"] or not values["category"]:
            if self._strict:
                raise MarkupError(f"reference span is missing id or type: {self._node_attrs!r}")
            logger.debug("Keeping malformed reference span as text: %r", self._node_attrs)
            self._text.append("".join(self._node_text))
            return
        values["label"] = values["label"] or ""
        self._flush_text()
        self.segments.append(ReferenceNode(**values))

    # -- HTMLParser hooks ----------------------------------------------

    def handle_starttag(self, tag, attrs):
        attr_map = {name: (value or "") for name, value in attrs}
        if self._node_depth:
            if tag == "span":
                self._node_depth += 1
            return
        if tag == "span" and attr_map.get("data-type") == NODE_TYPE:
            self._node_depth = 1
            self._node_attrs = attr_map
            self._node_text = []
        elif tag == "br":
            self._text.append("\n")

    def handle_startendtag(self, tag, attrs):
        if not self._node_depth and tag == "br":
            self._text.append("\n")

    def handle_endtag(self, tag):
        if self._node_depth:
            if tag == "span":
                self._node_depth -= 1
                if self._node_depth == 0:
                    self._emit_node()
            return
        if tag in _BLOCK_TAGS:
            self._text.append("\n")

    def handle_data(self, data):
        if self._node_depth:
            self._node_text.append(data)
        else:
            self._text.append(data)

    def finish(self) -> list[Segment]:
        self.close()
        if self._node_depth:
            if self._strict:
                raise MarkupError("unterminated reference span")
            self._node_depth = 0
            self._emit_node()
        self._flush_text()
        return self.segments


def parse_segments(markup: str, strict: bool = False) -> list[Segment]:
    """Parse *markup* into text and reference segments.

    Parameters
    ----------
    markup : str
        HTML as produced by :func:`serialize_segments` (or by the web client).
    strict : bool
        Raise :class:`MarkupError` on malformed reference spans instead of
        keeping their text as plain text.
    """
    markup = markup or ""
    parser = _SegmentParser(strict)
    parser.feed(markup)
    segments = parser.finish()

    # A trailing block close adds a newline the document never contained
    ends_with_break = markup.rstrip().endswith("<br>")
    if not ends_with_break and segments and isinstance(segments[-1], str) and segments[-1].endswith("\n"):
        tail = segments[-1][:-1]
        if tail:
            segments[-1] = tail
        else:
            segments.pop()
    return segments
