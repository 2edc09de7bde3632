"""
Configuration settings for bookbinder.

Holds process-wide settings, per-build options, and the fixed per-kind
division attribute table.
"""

import os
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .domain.division import DivisionAttributes, DivisionKind, Matter, TocFormat
from .domain.numbering import NumberFormat


class BinderConfig:
    """Configuration class for bookbinder settings."""

    # Block quotes and lists nested deeper than this are flattened
    MAX_NESTING_DEPTH = 16

    # Resources referenced by name; their content is supplied by the packager
    STYLESHEET_NAME = "style.css"
    LATEX_DOCUMENT_CLASS = "book"
    LATEX_STYLE_PACKAGE = "bookbinder"

    NAV_TITLE = "Contents"
    NOTES_HEADING = "Notes"

    # Manuscript layout
    MANIFEST_NAME = "book.yaml"
    LATEX_FILENAME = "book.tex"
    EPUB_DIRNAME = "epub"

    # Color scheme
    COLORS = {
        "header": "bold blue",
        "warning": "yellow",
        "error": "red",
        "success": "green",
        "info": "blue",
    }

    @classmethod
    def get_max_nesting_depth(cls) -> int:
        """Get the nesting limit, checking environment variables."""
        env_depth = os.environ.get("BOOKBINDER_MAX_DEPTH")
        if env_depth and env_depth.isdigit():
            return int(env_depth)
        return cls.MAX_NESTING_DEPTH


# Chapter header layouts beyond label plus title; at most one may be set
CHAPTER_HEADER_OPTIONS = ("suppress_chapter_labels", "suppress_chapter_titles", "only_number_chapters")


@dataclass(frozen=True)
class BuildOptions:
    """Options that shape division labels and parsing for one build."""

    chapter_number_format: NumberFormat = NumberFormat.ARABIC
    part_number_format: NumberFormat = NumberFormat.ROMAN
    appendix_number_format: NumberFormat = NumberFormat.LETTER
    chapter_label_word: str = "Chapter"
    part_label_word: str = "Part"
    appendix_label_word: str = "Appendix"
    label_parts: bool = False
    suppress_chapter_labels: bool = False
    suppress_chapter_titles: bool = False
    only_number_chapters: bool = False
    max_nesting_depth: int = BinderConfig.MAX_NESTING_DEPTH

    def __post_init__(self) -> None:
        chosen = [name for name in CHAPTER_HEADER_OPTIONS if getattr(self, name)]
        if len(chosen) > 1:
            raise ValueError(f"Chapter header options exclude each other: {', '.join(chosen)}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BuildOptions":
        """Build options from a manifest ``options`` mapping.

        Raises:
            ValueError: On unknown keys, invalid number formats, non-boolean
                flags, clashing chapter header options or a nesting depth
                below one.
        """
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown build options: {', '.join(unknown)}")

        values: dict[str, Any] = dict(data)
        for key in ("chapter_number_format", "part_number_format", "appendix_number_format"):
            if key in values:
                values[key] = NumberFormat(str(values[key]).lower())
        if "max_nesting_depth" in values:
            values["max_nesting_depth"] = int(values["max_nesting_depth"])
            if values["max_nesting_depth"] < 1:
                raise ValueError("max_nesting_depth must be at least 1")
        for key in ("label_parts", *CHAPTER_HEADER_OPTIONS):
            if key in values and not isinstance(values[key], bool):
                raise ValueError(f"{key} must be true or false, got {values[key]!r}")
        return cls(**values)


class PaperSize(Enum):
    """Trim sizes with preset margins for the LaTeX geometry."""

    INCHES_5X8 = "5x8"
    INCHES_5_25X8 = "5.25x8"
    INCHES_5_5X8_5 = "5.5x8.5"
    INCHES_6X9 = "6x9"
    A4 = "a4"
    US_LETTER = "letter"
    US_LEGAL = "legal"

    @property
    def geometry(self) -> str:
        """Options for the ``geometry`` package."""
        unit, width, height, top, bottom, left, right = _PAPER_GEOMETRY[self]
        return (
            f"papersize={{{width:g}{unit}, {height:g}{unit}}}, "
            f"vmargin={{{top:g}{unit}, {bottom:g}{unit}}}, "
            f"left={left:g}{unit}, right={right:g}{unit}"
        )


# unit, paper width and height, then top, bottom, left and right margins
_PAPER_GEOMETRY = {
    PaperSize.INCHES_5X8: ("in", 5.0, 8.0, 0.4, 0.8, 0.875, 0.75),
    PaperSize.INCHES_5_25X8: ("in", 5.25, 8.0, 0.4, 0.8, 0.875, 0.75),
    PaperSize.INCHES_5_5X8_5: ("in", 5.5, 8.5, 0.5, 0.9, 0.875, 0.75),
    PaperSize.INCHES_6X9: ("in", 6.0, 9.0, 0.5, 1.0, 0.875, 0.75),
    PaperSize.A4: ("mm", 210.0, 297.0, 20.0, 30.0, 40.0, 30.0),
    PaperSize.US_LETTER: ("in", 8.5, 11.0, 1.0, 1.4, 1.4, 1.4),
    PaperSize.US_LEGAL: ("in", 8.5, 14.0, 1.0, 1.4, 1.4, 1.4),
}

SECNUMDEPTH_LEVELS = {
    "part": -1,
    "chapter": 0,
    "section": 1,
    "subsection": 2,
    "subsubsection": 3,
    "paragraph": 4,
    "subparagraph": 5,
}
FONT_SIZES = (10, 11, 12)


@dataclass(frozen=True)
class LatexOptions:
    """Preamble settings for the LaTeX backend.

    Unset options leave the choice to the document class and the style
    package.
    """

    paper_size: Optional[PaperSize] = None
    font_size: Optional[int] = None  # points
    open_any: bool = False
    linespread: Optional[float] = None
    secnumdepth: Optional[str] = None

    def __post_init__(self) -> None:
        if self.font_size is not None and self.font_size not in FONT_SIZES:
            raise ValueError(f"font_size must be one of {FONT_SIZES}, got {self.font_size!r}")
        if self.secnumdepth is not None and self.secnumdepth not in SECNUMDEPTH_LEVELS:
            raise ValueError(f"Unknown secnumdepth: {self.secnumdepth!r}")
        if self.linespread is not None and self.linespread <= 0:
            raise ValueError("linespread must be positive")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LatexOptions":
        """Build options from a manifest ``latex`` mapping.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown LaTeX options: {', '.join(unknown)}")

        values: dict[str, Any] = dict(data)
        if values.get("paper_size") is not None:
            values["paper_size"] = PaperSize(str(values["paper_size"]).lower())
        if "open_any" in values and not isinstance(values["open_any"], bool):
            raise ValueError(f"open_any must be true or false, got {values['open_any']!r}")
        if values.get("linespread") is not None:
            values["linespread"] = float(values["linespread"])
        if values.get("secnumdepth") is not None:
            values["secnumdepth"] = str(values["secnumdepth"]).lower()
        return cls(**values)

    @property
    def class_options(self) -> list[str]:
        """Options for ``\\documentclass``."""
        options = []
        if self.font_size:
            options.append(f"{self.font_size}pt")
        if self.open_any:
            options.append("openany")
        return options

    def preamble_lines(self) -> list[str]:
        """Lines that follow the style package in the preamble."""
        lines = []
        if self.paper_size:
            lines.append(f"\\usepackage[{self.paper_size.geometry}]{{geometry}}")
        if self.linespread:
            lines.append(f"\\linespread{{{self.linespread:g}}}")
        if self.secnumdepth:
            lines.append(f"\\setcounter{{secnumdepth}}{{{SECNUMDEPTH_LEVELS[self.secnumdepth]}}}")
        return lines


_NIGHT_MODE_HEAD = (
    "<style>\n"
    ':root[__ibooks_internal_theme*="Night"] img, '
    ':root[__ibooks_internal_theme*="Gray"] img { filter: invert(100%);}\n'
    "</style>"
)

_FRONT = Matter.FRONTMATTER
_MAIN = Matter.MAINMATTER
_BACK = Matter.BACKMATTER

# Per-kind attributes. Loaded once; overrides are merged per division by the
# division model builder and never written back here.
DIVISION_TABLE: Mapping[DivisionKind, DivisionAttributes] = MappingProxyType({
    DivisionKind.HALFTITLE: DivisionAttributes(
        header_level=2,
        header_classes="halftitle_header",
        section_classes="halftitle_section",
        epub_type="halftitle",
        matter=_FRONT,
        default_toc_format=TocFormat.no_entry(),
    ),
    DivisionKind.COPYRIGHTPAGE: DivisionAttributes(
        section_classes="copyright_page_section",
        epub_type="copyright-page",
        matter=_FRONT,
        default_toc_format=TocFormat.provided("Bibliography"),
    ),
    DivisionKind.TITLEPAGE: DivisionAttributes(
        epub_type="titlepage",
        matter=_FRONT,
        include_stylesheet=False,
        additional_head=_NIGHT_MODE_HEAD,
        default_toc_format=TocFormat.no_entry(),
    ),
    DivisionKind.DEDICATION: DivisionAttributes(
        section_classes="dedication_section",
        epub_type="dedication",
        matter=_FRONT,
        default_toc_format=TocFormat.no_entry(),
    ),
    DivisionKind.FOREWORD: DivisionAttributes(
        header_classes="generic_header",
        epub_type="foreword",
        matter=_FRONT,
        default_toc_format=TocFormat.title_and_label(),
    ),
    DivisionKind.INTRODUCTION: DivisionAttributes(
        header_classes="generic_header",
        epub_type="introduction",
        matter=_FRONT,
        default_toc_format=TocFormat.title_and_label(),
    ),
    DivisionKind.PREFACE: DivisionAttributes(
        header_classes="generic_header",
        epub_type="preface",
        matter=_FRONT,
        default_toc_format=TocFormat.title_and_label(),
    ),
    DivisionKind.EPIGRAPH: DivisionAttributes(
        section_classes="epigraph_section",
        epub_type="epigraph",
        matter=_FRONT,
        default_toc_format=TocFormat.provided("Epigraph"),
    ),
    DivisionKind.CHAPTER: DivisionAttributes(
        header_classes="generic_header",
        epub_type="chapter",
        matter=_MAIN,
        default_toc_format=TocFormat.title_and_label(),
    ),
    DivisionKind.PART: DivisionAttributes(
        header_classes="generic_header",
        epub_type="part",
        matter=_MAIN,
        default_toc_format=TocFormat.title_and_label(),
        toc_level=0,
    ),
    DivisionKind.AFTERWORD: DivisionAttributes(
        header_classes="generic_header",
        epub_type="afterword",
        matter=_BACK,
        default_toc_format=TocFormat.title_and_label(),
    ),
    DivisionKind.COLOPHON: DivisionAttributes(
        header_level=6,
        header_classes="colophon_header",
        section_wrapper="colophon_wrapper",
        epub_type="colophon",
        matter=_BACK,
        default_toc_format=TocFormat.title_only(),
    ),
    DivisionKind.ACKNOWLEDGEMENTS: DivisionAttributes(
        header_classes="generic_header",
        epub_type="acknowledgements",
        matter=_BACK,
        default_toc_format=TocFormat.title_only(),
    ),
    DivisionKind.APPENDIX: DivisionAttributes(
        header_classes="generic_header",
        epub_type="appendix",
        matter=_BACK,
        default_toc_format=TocFormat.title_and_label(),
    ),
})

_missing_kinds = set(DivisionKind) - set(DIVISION_TABLE)
if _missing_kinds:
    raise RuntimeError(f"DIVISION_TABLE has no entry for {sorted(_missing_kinds)}")
