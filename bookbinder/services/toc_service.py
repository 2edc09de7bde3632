"""TOC (Table of Contents) service implementation.

Applies each division's TOC policy to build the flat, leveled table of
contents of a book.
"""

from typing import Sequence

from ..domain import Book, Division, TocStyle
from ..domain.content import NavNode, TocEntry, build_nav_tree, toc_to_markdown


class TocService:
    """Service for assembling the table of contents.

    Levels come from Part/Chapter nesting (chapters under a part that has
    its own entry are one level deeper) or from an explicit ``toc_level``
    attribute, never from headings inside division content.
    """

    def assemble(self, divisions: Sequence[Division]) -> tuple[TocEntry, ...]:
        """Build TOC entries for divisions in document order.

        Args:
            divisions: The book's flat division sequence.

        Returns:
            One TocEntry per division whose format is not NoEntry.
        """
        # Only a part that has its own entry can hold nested entries
        nested = {
            child_id
            for division in divisions
            if division.toc_format.has_entry
            for child_id in division.child_ids
        }
        entries: list[TocEntry] = []

        for division in divisions:
            toc_format = division.toc_format
            if not toc_format.has_entry:
                continue

            if division.attributes.toc_level is not None:
                level = division.attributes.toc_level + 1
            else:
                level = 2 if division.id in nested else 1

            if toc_format.style is TocStyle.PROVIDED:
                label, text = None, toc_format.text or ""
            elif toc_format.style is TocStyle.TITLE_ONLY:
                label, text = None, division.display_title
            else:
                label, text = division.label, division.display_title

            entries.append(TocEntry(level=level, label=label, text=text, target=division.id))

        return tuple(entries)

    def nav_tree(self, book: Book) -> list[NavNode]:
        """Get the book's TOC nested by level."""
        return build_nav_tree(book.toc)

    def to_markdown(self, book: Book) -> str:
        """Render the book's TOC as an indented markdown list."""
        return toc_to_markdown(book.metadata.title, book.toc)
