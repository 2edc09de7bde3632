"""Block parser implementation.

Splits manuscript text into block nodes. Python-Markdown (with the
manuscript extensions) builds the element tree; this module walks it into
domain blocks, enforces the nesting limit, and runs the typography
normalizer over the result. Footnote definitions are collected separately
for the footnote resolver.
"""

import html
import logging
import re
import threading
import xml.etree.ElementTree as etree
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional

import markdown
from markdown.util import HTML_PLACEHOLDER_RE

from ..config import BinderConfig
from ..domain.blocks import (
    BlockNode,
    BlockQuote,
    CodeBlock,
    Heading,
    Inlines,
    ListBlock,
    Paragraph,
    RawBlock,
    Table,
    ThematicBreak,
)
from ..domain.book import Diagnostic
from ..domain.inline import Text
from .inline_parser import InlineParser
from .markdown_extensions import FOOTNOTE_TAG, RAW_BLOCK_TAG, build_tree, create_markdown
from .typography import TypographyNormalizer

logger = logging.getLogger(__name__)

HEADING_TAGS = {f"h{level}": level for level in range(1, 7)}
BLOCK_TAGS = frozenset(
    {"p", "blockquote", "ul", "ol", "pre", "hr", "table", "div", FOOTNOTE_TAG, RAW_BLOCK_TAG}
    | set(HEADING_TAGS)
)
TEXT_ALIGN_RE = re.compile(r"text-align:\s*(left|right|center)")


@dataclass(frozen=True)
class FootnoteDefinition:
    """A footnote body as written, before resolution."""

    key: str
    body: tuple[BlockNode, ...]


@dataclass(frozen=True)
class ParsedDocument:
    """Result of parsing one division's text."""

    blocks: tuple[BlockNode, ...]
    definitions: tuple[FootnoteDefinition, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()


@dataclass
class _ParseState:
    stash: Any
    block_entries: int
    definitions: list[FootnoteDefinition] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    flattened: bool = False


class BlockParser:
    """Parser for the block subset of the manuscript syntax.

    Block quotes and list items nest in the element tree. Beyond
    ``max_depth`` levels the remaining content is flattened into paragraphs
    and a ``nesting-depth`` diagnostic is recorded.
    """

    def __init__(
        self,
        inline_parser: Optional[InlineParser] = None,
        normalizer: Optional[TypographyNormalizer] = None,
        max_depth: Optional[int] = None,
        md: Optional[markdown.Markdown] = None,
    ) -> None:
        """Initialize the block parser.

        Args:
            inline_parser: Parser for standalone spans and element content.
            normalizer: Typography pass applied to the parsed tree.
            max_depth: Nesting limit for block quotes and lists.
            md: Markdown instance that builds the block tree.
        """
        self._inline_parser = inline_parser or InlineParser()
        self._normalizer = normalizer or TypographyNormalizer()
        self._max_depth = max_depth if max_depth is not None else BinderConfig.get_max_nesting_depth()
        self._md = md or create_markdown()
        self._lock = threading.Lock()

    def parse(self, text: str) -> ParsedDocument:
        """Parse a division's text into normalized blocks.

        Args:
            text: Manuscript text without frontmatter.

        Returns:
            ParsedDocument with blocks, footnote definitions and diagnostics.
        """
        with self._lock:
            root, block_entries = build_tree(self._md, text)
            state = _ParseState(stash=self._md.htmlStash, block_entries=block_entries)
            blocks = self._blocks(root, 0, state)

        normalize = self._normalizer.normalize_blocks
        definitions = tuple(
            FootnoteDefinition(d.key, normalize(d.body)) for d in state.definitions
        )
        logger.debug("Parsed %d blocks, %d footnote definitions", len(blocks), len(definitions))
        return ParsedDocument(
            blocks=normalize(blocks),
            definitions=definitions,
            diagnostics=tuple(state.diagnostics),
        )

    def parse_inline(self, text: str) -> Inlines:
        """Parse and normalize a standalone inline span, such as a title."""
        return self._normalizer.normalize(self._inline_parser.parse(text.strip()))

    # -- tree walking -----------------------------------------------------

    def _blocks(self, elements: Iterable[etree.Element], depth: int, state: _ParseState) -> list[BlockNode]:
        flatten = depth > self._max_depth
        if flatten and not state.flattened:
            state.flattened = True
            diagnostic = Diagnostic(
                "nesting-depth",
                f"Content nested deeper than {self._max_depth} levels was flattened",
            )
            logger.warning("%s", diagnostic)
            state.diagnostics.append(diagnostic)

        blocks: list[BlockNode] = []
        for element in elements:
            if element.tag == FOOTNOTE_TAG:
                body = tuple(self._blocks(element, depth, state))
                state.definitions.append(FootnoteDefinition(element.get("key"), body))
            elif flatten:
                blocks.extend(self._flatten(element, state))
            else:
                blocks.extend(self._block(element, depth, state))
        return blocks

    def _block(self, element: etree.Element, depth: int, state: _ParseState) -> Iterator[BlockNode]:
        tag = element.tag

        if tag == "p":
            stashed = self._stashed_block(element, state)
            if stashed is not None:
                yield stashed
                return
            inlines = self._inlines(element.text, element, state)
            if inlines:
                yield Paragraph(inlines)
        elif tag in HEADING_TAGS:
            yield Heading(HEADING_TAGS[tag], self._inlines(element.text, element, state))
        elif tag == "blockquote":
            yield BlockQuote(tuple(self._blocks(element, depth + 1, state)))
        elif tag in ("ul", "ol"):
            items = tuple(
                tuple(self._item(li, depth + 1, state)) for li in element if li.tag == "li"
            )
            yield ListBlock(tag == "ol", items, int(element.get("start", "1")))
        elif tag == "pre":
            yield _code_block(element, escaped=True)
        elif tag == "hr":
            yield ThematicBreak()
        elif tag == "table":
            yield self._table(element, state)
        else:
            logger.debug("Reading children of unexpected block element <%s>", tag)
            yield from self._blocks(element, depth, state)

    def _item(self, item: etree.Element, depth: int, state: _ParseState) -> Iterator[BlockNode]:
        """Convert a list item: loose text becomes a paragraph, blocks nest."""
        text, inline_children = item.text, []
        for child in item:
            if child.tag in BLOCK_TAGS:
                inlines = self._inlines(text, inline_children, state)
                if inlines:
                    yield Paragraph(inlines)
                yield from self._blocks([child], depth, state)
                text, inline_children = child.tail, []
            else:
                inline_children.append(child)
        inlines = self._inlines(text, inline_children, state)
        if inlines:
            yield Paragraph(inlines)

    def _flatten(self, element: etree.Element, state: _ParseState) -> list[BlockNode]:
        """Turn over-nested content into plain paragraphs."""
        if element.tag in ("blockquote", "ul", "ol"):
            return [block for child in element for block in self._flatten(child, state)]
        if element.tag == "li":
            blocks = []
            for block in self._item(element, self._max_depth, state):
                blocks.extend(_as_paragraphs(block))
            return blocks
        blocks = []
        for block in self._block(element, self._max_depth, state):
            blocks.extend(_as_paragraphs(block))
        return blocks

    def _inlines(self, text: Optional[str], children: Iterable[etree.Element], state: _ParseState) -> Inlines:
        return self._inline_parser.convert(text, children, state.stash)

    def _stashed_block(self, element: etree.Element, state: _ParseState) -> Optional[BlockNode]:
        """Return the block a placeholder-only paragraph stands for, if any."""
        if len(element) or not element.text:
            return None
        m = HTML_PLACEHOLDER_RE.fullmatch(element.text.strip())
        if m is None or int(m.group(1)) >= state.block_entries:
            return None

        item = state.stash.rawHtmlBlocks[int(m.group(1))]
        if isinstance(item, str):
            return RawBlock(item.strip("\n"), "html")
        if item.tag == RAW_BLOCK_TAG:
            return RawBlock(item.text or "", item.get("format"))
        return _code_block(item, escaped=False)

    def _table(self, element: etree.Element, state: _ParseState) -> Table:
        header_cells = element.findall("./thead/tr/th")
        header = tuple(self._inlines(cell.text, cell, state) for cell in header_cells)
        alignments = tuple(_alignment(cell) for cell in header_cells)
        rows = tuple(
            tuple(self._inlines(cell.text, cell, state) for cell in row)
            for row in element.findall("./tbody/tr")
        )
        return Table(header, rows, alignments)


def _code_block(pre: etree.Element, escaped: bool) -> CodeBlock:
    """Build a code block from a ``pre > code`` element.

    Indented code from the block parser is HTML-escaped; fenced code is not.
    """
    code = pre.find("code")
    source = (code.text or "") if code is not None else ""
    if escaped:
        source = html.unescape(source)
    language = None
    if code is not None and code.get("class", "").startswith("language-"):
        language = code.get("class")[len("language-"):]
    return CodeBlock(tuple(source.rstrip("\n").split("\n")), language)


def _as_paragraphs(block: BlockNode) -> list[BlockNode]:
    if isinstance(block, (Paragraph, Heading)):
        return [Paragraph(block.inlines)]
    if isinstance(block, CodeBlock):
        return [Paragraph((Text(line),)) for line in block.lines if line.strip()]
    if isinstance(block, BlockQuote):
        return [p for child in block.children for p in _as_paragraphs(child)]
    if isinstance(block, ListBlock):
        return [p for item in block.items for child in item for p in _as_paragraphs(child)]
    return [block]


def _alignment(cell: etree.Element) -> Optional[str]:
    align = cell.get("align")
    if align:
        return align
    m = TEXT_ALIGN_RE.search(cell.get("style", ""))
    return m.group(1) if m else None
