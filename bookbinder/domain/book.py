"""Book model: metadata, the division sequence and build diagnostics."""

import uuid
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .content import TocEntry
from .division import Division, DivisionKind, Footnote
from .isbn import validate_isbn

ISBN_FIELDS = ("epub_isbn", "hardback_isbn", "paperback_isbn")


def join_names(names: tuple[str, ...] | list[str]) -> Optional[str]:
    """Join names as ``A``, ``A and B`` or ``A, B and C``."""
    names = [name for name in names if name]
    if not names:
        return None
    if len(names) == 1:
        return names[0]
    return f"{', '.join(names[:-1])} and {names[-1]}"


@dataclass(frozen=True)
class BookMetadata:
    """Bibliographic metadata of a book.

    The publishing fields feed the generated copyright page. ISBNs are
    checked on construction.

    Raises:
        ValueError: If an ISBN field holds an invalid ISBN-13.
    """

    title: str
    subtitle: Optional[str] = None
    authors: tuple[str, ...] = ()
    editors: tuple[str, ...] = ()
    translators: tuple[str, ...] = ()
    language: str = "en"
    identifier: Optional[str] = None
    publisher: Optional[str] = None
    publisher_address: Optional[str] = None
    publisher_url: Optional[str] = None
    copyright_statement: Optional[str] = None
    publication_year: Optional[int] = None
    first_publication: bool = True
    assert_moral_rights: bool = True
    epub_isbn: Optional[str] = None
    hardback_isbn: Optional[str] = None
    paperback_isbn: Optional[str] = None
    cover_designer: Optional[str] = None
    author_photo_credit: Optional[str] = None
    print_location: Optional[str] = None
    cover_image: Optional[str] = None  # path relative to the EPUB content directory

    def __post_init__(self) -> None:
        for field_name in ISBN_FIELDS:
            value = getattr(self, field_name)
            if value is not None and not validate_isbn(value):
                raise ValueError(f"{field_name} is not a valid ISBN-13: {value!r}")

    def author_line(self) -> Optional[str]:
        """Get the authors formatted for display."""
        return join_names(self.authors)

    def identifier_or_default(self) -> str:
        """Get the explicit identifier, or a uuid5 derived from title and authors.

        The derived identifier is stable across builds of the same book.
        """
        if self.identifier:
            return self.identifier
        seed = "\n".join([self.title, *self.authors])
        return f"urn:uuid:{uuid.uuid5(uuid.NAMESPACE_URL, seed)}"


@dataclass(frozen=True)
class Diagnostic:
    """A recoverable problem found while building a book."""

    code: str
    message: str
    division: Optional[str] = None

    def __str__(self) -> str:
        where = f"[{self.division}] " if self.division else ""
        return f"{where}{self.code}: {self.message}"


@dataclass(frozen=True)
class Book:
    """An immutable, fully numbered book.

    ``divisions`` is the flat document-order sequence. Part/chapter nesting
    is recorded through ``Division.child_ids``.
    """

    metadata: BookMetadata
    divisions: tuple[Division, ...]
    toc: tuple[TocEntry, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()
    _index: dict[str, Division] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        self._index.update((division.id, division) for division in self.divisions)

    def get(self, division_id: str) -> Division:
        """Look up a division by id.

        Raises:
            KeyError: If no division has the id.
        """
        return self._index[division_id]

    def children_of(self, division: Division) -> tuple[Division, ...]:
        """Get the chapters nested under a part."""
        return tuple(self._index[child_id] for child_id in division.child_ids)

    def parent_of(self, division: Division) -> Optional[Division]:
        """Get the part enclosing a chapter, if any."""
        for candidate in self.divisions:
            if division.id in candidate.child_ids:
                return candidate
        return None

    def top_level(self) -> Iterator[Division]:
        """Iterate divisions that are not nested under a part."""
        nested = {child for d in self.divisions for child in d.child_ids}
        return (d for d in self.divisions if d.id not in nested)

    def of_kind(self, kind: DivisionKind) -> tuple[Division, ...]:
        return tuple(d for d in self.divisions if d.kind is kind)

    @property
    def footnotes(self) -> tuple[Footnote, ...]:
        """All resolved footnotes in document order."""
        return tuple(note for d in self.divisions for note in d.footnotes)
