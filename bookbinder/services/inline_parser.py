"""Inline parser implementation.

Turns a span of manuscript text into inline nodes. Tokenizing is done by
Python-Markdown's inline processors (with the manuscript extensions); this
module converts the resulting elements into domain nodes and resolves
emphasis nested inside emphasis into resets.
"""

import html
import logging
import re
import threading
import xml.etree.ElementTree as etree
from dataclasses import replace
from typing import Iterable, Iterator, Optional

import markdown
from markdown.util import HTML_PLACEHOLDER_RE

from ..domain.inline import (
    Code,
    Emphasis,
    FootnoteRef,
    Image,
    InlineNode,
    LineBreak,
    Link,
    RawPassthrough,
    Reset,
    Sans,
    SmallCaps,
    Strikeout,
    Strong,
    Subscript,
    Superscript,
    Text,
    is_container,
)
from .markdown_extensions import (
    FOOTNOTE_REF_TAG,
    NBSP,
    RAW_SPAN_TAG,
    create_markdown,
    run_treeprocessors,
)

logger = logging.getLogger(__name__)

__all__ = ["InlineParser", "NBSP"]

ENTITY_RE = re.compile(r"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z0-9]+);")


class InlineParser:
    """Parser for the inline subset of the manuscript syntax.

    Parsing is a pure function of the input: ``iter_parse`` returns a lazy
    generator that can be restarted simply by calling it again. A parser
    owns one Markdown instance and serializes access to it.
    """

    CONTAINERS = {
        "em": Emphasis,
        "strong": Strong,
        "del": Strikeout,
        "s": Strikeout,
        "sup": Superscript,
        "sub": Subscript,
    }

    SPAN_CLASSES = {
        "smallcaps": SmallCaps,
        "sans": Sans,
        "superscript": Superscript,
        "subscript": Subscript,
    }

    def __init__(self, md: Optional[markdown.Markdown] = None) -> None:
        """Initialize the parser.

        Args:
            md: Markdown instance to tokenize with. A manuscript-configured
                instance is created when omitted.
        """
        self._md = md or create_markdown()
        self._lock = threading.Lock()

    def parse(self, text: str) -> tuple[InlineNode, ...]:
        """Parse a span of text into a tuple of inline nodes."""
        return tuple(self.iter_parse(text))

    def iter_parse(self, text: str) -> Iterator[InlineNode]:
        """Lazily parse a span of text.

        The span is never split into blocks: block syntax such as a leading
        ``#`` stays literal.
        """
        with self._lock:
            self._md.reset()
            root = etree.Element("div")
            paragraph = etree.SubElement(root, "p")
            paragraph.text = text
            run_treeprocessors(self._md, root)
            nodes = self.convert(paragraph.text, list(paragraph), self._md.htmlStash)
        yield from nodes

    def convert(self, text: Optional[str], children: Iterable[etree.Element], stash) -> tuple[InlineNode, ...]:
        """Convert element content into inline nodes.

        Args:
            text: Leading text of the content.
            children: Inline child elements; each one's tail follows it.
            stash: The ``HtmlStash`` that placeholders in the text refer to.

        Returns:
            Inline nodes with nested same-style emphasis turned into resets.
        """
        nodes = self._content(text, children, stash)
        return tuple(_resolve_styles(node, False, False) for node in nodes)

    # -- conversion -------------------------------------------------------

    def _content(self, text, children, stash) -> list[InlineNode]:
        nodes = list(self._text(text, stash))
        for child in children:
            nodes.extend(self._element(child, stash))
            nodes.extend(self._text(child.tail, stash))
        return _trim_breaks(_merge_text(nodes))

    def _text(self, text: Optional[str], stash) -> Iterator[InlineNode]:
        if not text:
            return
        pos = 0
        for m in HTML_PLACEHOLDER_RE.finditer(text):
            yield from _plain(text[pos:m.start()])
            yield from self._stashed(stash.rawHtmlBlocks[int(m.group(1))])
            pos = m.end()
        yield from _plain(text[pos:])

    def _stashed(self, item) -> Iterator[InlineNode]:
        if isinstance(item, str):
            if ENTITY_RE.fullmatch(item):
                yield Text(html.unescape(item))
            else:
                yield RawPassthrough(item, "html")
        else:
            yield Code("".join(item.itertext()))

    def _element(self, element: etree.Element, stash) -> Iterator[InlineNode]:
        tag = element.tag

        if tag in self.CONTAINERS:
            yield self.CONTAINERS[tag](tuple(self._content(element.text, element, stash)))
        elif tag == "span" and element.get("class") in self.SPAN_CLASSES:
            node_type = self.SPAN_CLASSES[element.get("class")]
            yield node_type(tuple(self._content(element.text, element, stash)))
        elif tag == "code":
            yield Code(html.unescape(element.text or ""))
        elif tag == "a":
            yield Link(
                element.get("href", ""),
                tuple(self._content(element.text, element, stash)),
                element.get("title"),
            )
        elif tag == "img":
            yield Image(element.get("src", ""), element.get("alt", ""), element.get("title"))
        elif tag == "br":
            yield LineBreak(hard=True)
        elif tag == FOOTNOTE_REF_TAG:
            yield FootnoteRef(element.get("key"))
        elif tag == RAW_SPAN_TAG:
            yield RawPassthrough(element.text or "", element.get("format"))
        else:
            logger.debug("Keeping text of unexpected inline element <%s>", tag)
            yield from _plain("".join(element.itertext()))


def _plain(text: str) -> Iterator[InlineNode]:
    """Split text on newlines into text nodes and soft breaks."""
    for i, line in enumerate(text.split("\n")):
        if i:
            yield LineBreak()
            line = line.lstrip(" ")
        if line:
            yield Text(line)


def _merge_text(nodes: list[InlineNode]) -> list[InlineNode]:
    merged: list[InlineNode] = []
    for node in nodes:
        if isinstance(node, Text) and merged and isinstance(merged[-1], Text):
            merged[-1] = Text(merged[-1].content + node.content)
        else:
            merged.append(node)
    return merged


def _trim_breaks(nodes: list[InlineNode]) -> list[InlineNode]:
    """Drop soft breaks at either end and spaces before a soft break."""
    while nodes and nodes[0] == LineBreak():
        nodes.pop(0)
    while nodes and nodes[-1] == LineBreak():
        nodes.pop()
    for i, node in enumerate(nodes[:-1]):
        if isinstance(node, Text) and nodes[i + 1] == LineBreak():
            nodes[i] = Text(node.content.rstrip(" "))
    return [node for node in nodes if not (isinstance(node, Text) and not node.content)]


def _resolve_styles(node: InlineNode, italic: bool, bold: bool) -> InlineNode:
    """Turn emphasis inside emphasis (and strong inside strong) into resets."""
    if isinstance(node, Emphasis):
        children = tuple(_resolve_styles(c, not italic, bold) for c in node.children)
        return Reset("emphasis", children) if italic else Emphasis(children)
    if isinstance(node, Strong):
        children = tuple(_resolve_styles(c, italic, not bold) for c in node.children)
        return Reset("strong", children) if bold else Strong(children)
    if is_container(node):
        children = tuple(_resolve_styles(c, italic, bold) for c in node.children)
        return replace(node, children=children)
    return node
