"""Block node model.

Blocks nest by owning tuples of child blocks (block quotes, list items).
Paragraphs, headings and table cells hold inline trees.
"""

from dataclasses import dataclass, replace
from typing import Callable, Iterable, Iterator, Optional, Union

from .inline import InlineNode

Inlines = tuple[InlineNode, ...]


@dataclass(frozen=True)
class Paragraph:
    inlines: Inlines


@dataclass(frozen=True)
class Heading:
    level: int  # 1-6
    inlines: Inlines


@dataclass(frozen=True)
class BlockQuote:
    children: tuple["BlockNode", ...]


@dataclass(frozen=True)
class ListBlock:
    """An ordered or unordered list; each item is a sequence of blocks."""

    ordered: bool
    items: tuple[tuple["BlockNode", ...], ...]
    start: int = 1


@dataclass(frozen=True)
class CodeBlock:
    """Literal lines; never normalized or escaped by typography."""

    lines: tuple[str, ...]
    language: Optional[str] = None

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


@dataclass(frozen=True)
class ThematicBreak:
    pass


@dataclass(frozen=True)
class Table:
    """A table with a header row; ``alignments`` holds left/center/right or None."""

    header: tuple[Inlines, ...]
    rows: tuple[tuple[Inlines, ...], ...]
    alignments: tuple[Optional[str], ...] = ()


@dataclass(frozen=True)
class RawBlock:
    markup: str
    format: str = "html"


BlockNode = Union[
    Paragraph,
    Heading,
    BlockQuote,
    ListBlock,
    CodeBlock,
    ThematicBreak,
    Table,
    RawBlock,
]


def iter_inline_sequences(blocks: Iterable[BlockNode]) -> Iterator[Inlines]:
    """Yield every inline sequence of a block tree in document order."""
    for block in blocks:
        if isinstance(block, (Paragraph, Heading)):
            yield block.inlines
        elif isinstance(block, BlockQuote):
            yield from iter_inline_sequences(block.children)
        elif isinstance(block, ListBlock):
            for item in block.items:
                yield from iter_inline_sequences(item)
        elif isinstance(block, Table):
            yield from block.header
            for row in block.rows:
                yield from row


def map_block_inlines(
    blocks: Iterable[BlockNode],
    func: Callable[[Inlines], Inlines],
) -> tuple[BlockNode, ...]:
    """Rebuild a block tree, replacing every inline sequence with ``func(seq)``.

    Sequences are visited in document order, so ``func`` may carry state
    such as first-reference counters.
    """
    result: list[BlockNode] = []
    for block in blocks:
        if isinstance(block, (Paragraph, Heading)):
            block = replace(block, inlines=func(block.inlines))
        elif isinstance(block, BlockQuote):
            block = replace(block, children=map_block_inlines(block.children, func))
        elif isinstance(block, ListBlock):
            block = replace(
                block,
                items=tuple(map_block_inlines(item, func) for item in block.items),
            )
        elif isinstance(block, Table):
            header = tuple(func(cell) for cell in block.header)
            rows = tuple(tuple(func(cell) for cell in row) for row in block.rows)
            block = replace(block, header=header, rows=rows)
        result.append(block)
    return tuple(result)
