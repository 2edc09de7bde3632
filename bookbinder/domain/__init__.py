"""Domain layer for book representation."""

from .inline import (
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
    plain_text,
)
from .blocks import (
    BlockNode,
    BlockQuote,
    CodeBlock,
    Heading,
    ListBlock,
    Paragraph,
    RawBlock,
    Table,
    ThematicBreak,
)
from .division import (
    Division,
    DivisionAttributes,
    DivisionKind,
    Footnote,
    Matter,
    TocFormat,
    TocStyle,
)
from .content import TocEntry, NavNode, build_nav_tree
from .book import Book, BookMetadata, Diagnostic
from .numbering import NumberFormat

__all__ = [
    "Code",
    "Emphasis",
    "FootnoteRef",
    "Image",
    "InlineNode",
    "LineBreak",
    "Link",
    "RawPassthrough",
    "Reset",
    "Sans",
    "SmallCaps",
    "Strikeout",
    "Strong",
    "Subscript",
    "Superscript",
    "Text",
    "plain_text",
    "BlockNode",
    "BlockQuote",
    "CodeBlock",
    "Heading",
    "ListBlock",
    "Paragraph",
    "RawBlock",
    "Table",
    "ThematicBreak",
    "Division",
    "DivisionAttributes",
    "DivisionKind",
    "Footnote",
    "Matter",
    "TocFormat",
    "TocStyle",
    "TocEntry",
    "NavNode",
    "build_nav_tree",
    "Book",
    "BookMetadata",
    "Diagnostic",
    "NumberFormat",
]
