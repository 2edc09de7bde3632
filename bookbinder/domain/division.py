"""Division model: the structural units of a book.

The set of division kinds is closed. Per-kind rendering attributes live in
one immutable table (see ``bookbinder.config.DIVISION_TABLE``) rather than in
a class per kind.
"""

from dataclasses import dataclass, fields
from enum import Enum, IntEnum
from typing import Any, Optional

from ..errors import UnknownDivisionKindError
from .blocks import BlockNode
from .inline import InlineNode, plain_text


class DivisionKind(str, Enum):
    HALFTITLE = "halftitle"
    COPYRIGHTPAGE = "copyrightpage"
    TITLEPAGE = "titlepage"
    DEDICATION = "dedication"
    FOREWORD = "foreword"
    INTRODUCTION = "introduction"
    PREFACE = "preface"
    CHAPTER = "chapter"
    PART = "part"
    AFTERWORD = "afterword"
    COLOPHON = "colophon"
    EPIGRAPH = "epigraph"
    ACKNOWLEDGEMENTS = "acknowledgements"
    APPENDIX = "appendix"

    @classmethod
    def parse(cls, value: Any) -> "DivisionKind":
        """Resolve a kind from an enum member or a case-insensitive name.

        Raises:
            UnknownDivisionKindError: If the value names no known kind.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "").replace("_", "")
            for kind in cls:
                if kind.value == normalized:
                    return kind
        raise UnknownDivisionKindError(f"Unknown division kind: {value!r}")

    @property
    def display_name(self) -> str:
        """Human-readable name used when a division has no title."""
        return _DISPLAY_NAMES.get(self, self.value.title())


_DISPLAY_NAMES = {
    DivisionKind.HALFTITLE: "Half Title",
    DivisionKind.COPYRIGHTPAGE: "Copyright",
    DivisionKind.TITLEPAGE: "Title Page",
}


class Matter(IntEnum):
    """Coarse ordering class; values define the required order."""

    FRONTMATTER = 0
    MAINMATTER = 1
    BACKMATTER = 2

    @classmethod
    def parse(cls, value: Any) -> "Matter":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            if not normalized.endswith("matter"):
                normalized += "matter"
            for matter in cls:
                if matter.tag == normalized:
                    return matter
        raise ValueError(f"Unknown matter: {value!r}")

    @property
    def tag(self) -> str:
        """Lower-case name, also used as the EPUB body type."""
        return self.name.lower()


class TocStyle(str, Enum):
    NO_ENTRY = "NoEntry"
    TITLE_ONLY = "TitleOnly"
    TITLE_AND_LABEL = "TitleAndLabel"
    PROVIDED = "Provided"


_TOC_STYLE_ALIASES = {
    "notocentry": TocStyle.NO_ENTRY,
    "noentry": TocStyle.NO_ENTRY,
    "titleonly": TocStyle.TITLE_ONLY,
    "titleandlabel": TocStyle.TITLE_AND_LABEL,
}


@dataclass(frozen=True)
class TocFormat:
    """Table of contents policy of a division.

    ``text`` is only set for the ``PROVIDED`` style and replaces the
    division's own title in the TOC.
    """

    style: TocStyle
    text: Optional[str] = None

    @classmethod
    def no_entry(cls) -> "TocFormat":
        return cls(TocStyle.NO_ENTRY)

    @classmethod
    def title_only(cls) -> "TocFormat":
        return cls(TocStyle.TITLE_ONLY)

    @classmethod
    def title_and_label(cls) -> "TocFormat":
        return cls(TocStyle.TITLE_AND_LABEL)

    @classmethod
    def provided(cls, text: str) -> "TocFormat":
        return cls(TocStyle.PROVIDED, text)

    @classmethod
    def parse(cls, value: Any) -> "TocFormat":
        """Parse a configuration value.

        Accepts ``"NoEntry"`` (or ``"NoTocEntry"``), ``"TitleOnly"``,
        ``"TitleAndLabel"`` and ``{"Provided": "text"}``.

        Raises:
            ValueError: If the value is not a recognised TOC format.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            style = _TOC_STYLE_ALIASES.get(value.replace("_", "").lower())
            if style is not None:
                return cls(style)
        if isinstance(value, dict) and len(value) == 1:
            (key, text), = value.items()
            if str(key).lower() == "provided" and isinstance(text, str):
                return cls.provided(text)
        raise ValueError(f"Invalid TOC format: {value!r}")

    @property
    def has_entry(self) -> bool:
        return self.style is not TocStyle.NO_ENTRY


@dataclass(frozen=True)
class DivisionAttributes:
    """Per-kind rendering attributes, optionally overridden per division."""

    epub_type: str
    matter: Matter
    default_toc_format: TocFormat
    header_level: int = 1
    header_classes: Optional[str] = None
    section_classes: Optional[str] = None
    section_wrapper: Optional[str] = None
    include_stylesheet: bool = True
    additional_head: str = ""
    toc_level: Optional[int] = None


ATTRIBUTE_NAMES = frozenset(f.name for f in fields(DivisionAttributes))


@dataclass(frozen=True)
class Footnote:
    """A resolved footnote.

    ``number`` is the rank of the first reference to ``key`` within its
    division; footnotes are emitted in this order.
    """

    key: str
    number: int
    body: tuple[BlockNode, ...]
    division_id: str = ""


@dataclass(frozen=True)
class Division:
    """A structural unit of a book.

    Parts list their chapters in ``child_ids``; the chapters themselves stay
    in the book's flat division sequence.
    """

    id: str
    kind: DivisionKind
    attributes: DivisionAttributes
    content: tuple[BlockNode, ...]
    toc_format: TocFormat
    title: tuple[InlineNode, ...] = ()
    label: Optional[str] = None
    number: Optional[int] = None
    authors: tuple[str, ...] = ()
    footnotes: tuple[Footnote, ...] = ()
    child_ids: tuple[str, ...] = ()

    @property
    def matter(self) -> Matter:
        return self.attributes.matter

    @property
    def plain_title(self) -> str:
        return plain_text(self.title).strip()

    @property
    def display_title(self) -> str:
        """Title text, falling back to the label and then the kind name."""
        return self.plain_title or self.label or self.kind.display_name

    def footnote(self, number: int) -> Optional[Footnote]:
        """Get a resolved footnote of this division by number."""
        for note in self.footnotes:
            if note.number == number:
                return note
        return None
