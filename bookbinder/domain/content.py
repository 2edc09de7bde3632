"""Domain models for the table of contents.

The assembled TOC is a flat, leveled list of entries; ``build_nav_tree``
derives the nested view used by navigation documents.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class TocEntry:
    """A single entry in the table of contents.

    Level 1 entries are top-level divisions; chapters nested under a part
    are level 2.
    """

    level: int
    label: Optional[str]
    text: str
    target: str  # division id

    @property
    def indent(self) -> str:
        """Get indentation for rendering."""
        return "  " * (self.level - 1)

    @property
    def display_text(self) -> str:
        """Label and text joined as they appear in a rendered TOC."""
        if self.label and self.text and self.label != self.text:
            return f"{self.label}: {self.text}"
        return self.text or self.label or ""


@dataclass
class NavNode:
    """A TOC entry with its nested entries."""

    entry: TocEntry
    children: list["NavNode"] = field(default_factory=list)


def build_nav_tree(entries: tuple[TocEntry, ...] | list[TocEntry]) -> list[NavNode]:
    """Build hierarchical structure from flat entries.

    Nests entries based on their level, with deeper entries becoming
    children of the closest preceding shallower entry.

    Args:
        entries: Flat list of TocEntry objects with level info.

    Returns:
        Top-level nodes with children populated.
    """
    result: list[NavNode] = []
    stack: list[NavNode] = []

    for entry in entries:
        node = NavNode(entry)
        while stack and stack[-1].entry.level >= entry.level:
            stack.pop()

        if stack:
            stack[-1].children.append(node)
        else:
            result.append(node)

        stack.append(node)

    return result


def toc_to_markdown(title: str, entries: tuple[TocEntry, ...] | list[TocEntry]) -> str:
    """Render the TOC as a markdown list."""
    lines = [f"# {title}", ""]
    for entry in entries:
        lines.append(f"{entry.indent}- {entry.display_text}")
    return "\n".join(lines)
