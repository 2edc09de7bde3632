"""Inline node model.

Inline nodes are immutable values. Containers own a tuple of children, so a
parsed paragraph is a plain tree with no back-references.
"""

from dataclasses import dataclass, replace
from typing import Callable, Iterable, Iterator, Optional, Union


@dataclass(frozen=True)
class Text:
    """A run of text.

    After typography normalization ``latex_escapes`` and ``html_escapes`` hold
    the characters of ``content`` that each backend must escape.
    """

    content: str
    latex_escapes: frozenset[str] = frozenset()
    html_escapes: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Emphasis:
    children: tuple["InlineNode", ...]


@dataclass(frozen=True)
class Strong:
    children: tuple["InlineNode", ...]


@dataclass(frozen=True)
class Reset:
    """Return to normal style inside an identical enclosing style.

    ``style`` is ``"emphasis"`` (upright inside italic) or ``"strong"``
    (regular weight inside bold).
    """

    style: str
    children: tuple["InlineNode", ...]


@dataclass(frozen=True)
class Superscript:
    children: tuple["InlineNode", ...]


@dataclass(frozen=True)
class Subscript:
    children: tuple["InlineNode", ...]


@dataclass(frozen=True)
class Strikeout:
    children: tuple["InlineNode", ...]


@dataclass(frozen=True)
class SmallCaps:
    children: tuple["InlineNode", ...]


@dataclass(frozen=True)
class Sans:
    children: tuple["InlineNode", ...]


@dataclass(frozen=True)
class Link:
    target: str
    children: tuple["InlineNode", ...]
    title: Optional[str] = None


@dataclass(frozen=True)
class Image:
    source: str
    alt: str
    title: Optional[str] = None


@dataclass(frozen=True)
class Code:
    """Inline code; ``literal`` is never normalized."""

    literal: str


@dataclass(frozen=True)
class FootnoteRef:
    """A footnote reference site.

    ``number`` is None until the footnote resolver links the reference, and
    stays None for references with no definition. ``occurrence`` counts
    repeated references to the same footnote (1 for the first).
    """

    key: str
    number: Optional[int] = None
    occurrence: int = 1

    @property
    def resolved(self) -> bool:
        return self.number is not None


@dataclass(frozen=True)
class RawPassthrough:
    """Backend markup emitted verbatim by the backend named in ``format``."""

    markup: str
    format: str = "html"


@dataclass(frozen=True)
class LineBreak:
    hard: bool = False


InlineNode = Union[
    Text,
    Emphasis,
    Strong,
    Reset,
    Superscript,
    Subscript,
    Strikeout,
    SmallCaps,
    Sans,
    Link,
    Image,
    Code,
    FootnoteRef,
    RawPassthrough,
    LineBreak,
]

CONTAINER_TYPES = (
    Emphasis,
    Strong,
    Reset,
    Superscript,
    Subscript,
    Strikeout,
    SmallCaps,
    Sans,
    Link,
)


def is_container(node: InlineNode) -> bool:
    """Check whether a node owns child inline nodes."""
    return isinstance(node, CONTAINER_TYPES)


def walk(nodes: Iterable[InlineNode]) -> Iterator[InlineNode]:
    """Yield every node in document order (parents before children)."""
    for node in nodes:
        yield node
        if is_container(node):
            yield from walk(node.children)


def map_inline(
    nodes: Iterable[InlineNode],
    func: Callable[[InlineNode], InlineNode],
) -> tuple[InlineNode, ...]:
    """Rebuild an inline tree, applying ``func`` to every node.

    Children are mapped before their parent, so leaves are visited in
    document order.
    """
    result: list[InlineNode] = []
    for node in nodes:
        if is_container(node):
            node = replace(node, children=map_inline(node.children, func))
        result.append(func(node))
    return tuple(result)


def plain_text(nodes: Iterable[InlineNode]) -> str:
    """Flatten inline markup to its text.

    Links keep their text and lose their target; footnote references and
    raw markup disappear.
    """
    parts: list[str] = []
    for node in nodes:
        if isinstance(node, Text):
            parts.append(node.content)
        elif isinstance(node, Code):
            parts.append(node.literal)
        elif isinstance(node, Image):
            parts.append(node.alt)
        elif isinstance(node, LineBreak):
            parts.append(" ")
        elif is_container(node):
            parts.append(plain_text(node.children))
    return "".join(parts)
