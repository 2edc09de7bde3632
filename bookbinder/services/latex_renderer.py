"""LaTeX backend renderer.

Emits a single LaTeX source document for a Book. Division headers use the
macros and environments of the ``bookbinder`` style package, which is
referenced by name and supplied separately.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from ..config import BinderConfig, LatexOptions
from ..domain import (
    Book,
    BlockQuote,
    Code,
    CodeBlock,
    Division,
    DivisionKind,
    Emphasis,
    FootnoteRef,
    Heading,
    Image,
    LineBreak,
    Link,
    ListBlock,
    Matter,
    Paragraph,
    RawBlock,
    RawPassthrough,
    Reset,
    Sans,
    SmallCaps,
    Strikeout,
    Strong,
    Subscript,
    Superscript,
    Table,
    Text,
    ThematicBreak,
    TocEntry,
    TocStyle,
)
from ..domain.book import join_names
from ..errors import UnmappedNodeError
from .typography import LATEX_ESCAPES, apply_escapes

logger = logging.getLogger(__name__)

FORMAT_NAMES = frozenset({"latex", "tex"})


class HeaderStyle(Enum):
    """How a division kind opens in LaTeX."""

    HEADING = "heading"  # \labelledchapter, \ancillaryheader, \chapter*
    PART = "part"
    ENVIRONMENT = "environment"
    TITLEPAGE = "titlepage"
    EPIGRAPH = "epigraph"


_HEADER_STYLES = {
    DivisionKind.HALFTITLE: HeaderStyle.ENVIRONMENT,
    DivisionKind.COPYRIGHTPAGE: HeaderStyle.ENVIRONMENT,
    DivisionKind.TITLEPAGE: HeaderStyle.TITLEPAGE,
    DivisionKind.DEDICATION: HeaderStyle.ENVIRONMENT,
    DivisionKind.FOREWORD: HeaderStyle.HEADING,
    DivisionKind.INTRODUCTION: HeaderStyle.HEADING,
    DivisionKind.PREFACE: HeaderStyle.HEADING,
    DivisionKind.CHAPTER: HeaderStyle.HEADING,
    DivisionKind.PART: HeaderStyle.PART,
    DivisionKind.AFTERWORD: HeaderStyle.HEADING,
    DivisionKind.COLOPHON: HeaderStyle.ENVIRONMENT,
    DivisionKind.EPIGRAPH: HeaderStyle.EPIGRAPH,
    DivisionKind.ACKNOWLEDGEMENTS: HeaderStyle.HEADING,
    DivisionKind.APPENDIX: HeaderStyle.HEADING,
}

_unmapped_kinds = set(DivisionKind) - set(_HEADER_STYLES)
if _unmapped_kinds:
    raise RuntimeError(f"No LaTeX header style for {sorted(_unmapped_kinds)}")

_MATTER_COMMANDS = {
    Matter.FRONTMATTER: "\\frontmatter",
    Matter.MAINMATTER: "\\mainmatter",
    Matter.BACKMATTER: "\\backmatter",
}

_SECTION_COMMANDS = {
    1: "section",
    2: "subsection",
    3: "subsubsection",
    4: "paragraph",
    5: "subparagraph",
    6: "subparagraph",
}

_ENUM_COUNTERS = ("enumi", "enumii", "enumiii", "enumiv")

_VERB_DELIMITERS = "❡|!®©℗™℠"

_URL_ESCAPES = {"\\": r"\\", "#": r"\#", "%": r"\%", "{": r"\{", "}": r"\}"}


@dataclass(frozen=True)
class LatexDocument:
    """A rendered LaTeX source file."""

    source: str
    filename: str = BinderConfig.LATEX_FILENAME


def render_latex(
    book: Book,
    include_toc: bool = True,
    options: Optional[LatexOptions] = None,
) -> LatexDocument:
    """Render a Book to LaTeX source.

    Args:
        book: The book to render; it is only read.
        include_toc: Emit ``\\tableofcontents`` after the copyright page
            (or before the first division listed in the TOC).
        options: Preamble settings such as paper size and font size.

    Returns:
        The complete LaTeX document.

    Raises:
        UnmappedNodeError: If a node type has no LaTeX mapping.
        UnescapableCharacterError: If a text run holds a character with no
            LaTeX escape.
    """
    source = _LatexWriter(book, include_toc, options or LatexOptions()).render()
    logger.info("Rendered LaTeX source (%d characters)", len(source))
    return LatexDocument(source)


def escape_latex(text: str) -> str:
    """Escape a plain string for LaTeX."""
    flagged = frozenset(c for c in text if c in LATEX_ESCAPES)
    return apply_escapes(text, flagged, LATEX_ESCAPES, "LaTeX")


class _LatexWriter:
    """Renders one book; holds the per-render state."""

    def __init__(self, book: Book, include_toc: bool, options: LatexOptions) -> None:
        self._book = book
        self._options = options
        self._include_toc = include_toc
        self._toc_written = False
        self._toc_entries = {entry.target: entry for entry in book.toc}
        self._division: Optional[Division] = None
        self._list_depth = 0
        # Footnote bodies are macro arguments: no verbatim, no floats
        self._note_depth = 0

        self._blocks: dict[type, Callable] = {
            Paragraph: self._paragraph,
            Heading: self._heading,
            BlockQuote: self._block_quote,
            ListBlock: self._list,
            CodeBlock: self._code_block,
            ThematicBreak: lambda block: "\n\\pfbreak{}\n",
            Table: self._table,
            RawBlock: self._raw_block,
        }
        self._wrappers = {
            Emphasis: "\\emph",
            Strong: "\\textbf",
            Superscript: "\\textsuperscript",
            Subscript: "\\textsubscript",
            Strikeout: "\\sout",
            SmallCaps: "\\textsc",
            Sans: "\\textsf",
        }

    # -- document ---------------------------------------------------------

    def render(self) -> str:
        metadata = self._book.metadata
        class_options = ",".join(self._options.class_options)
        if class_options:
            class_options = f"[{class_options}]"
        out = [
            f"\\documentclass{class_options}{{{BinderConfig.LATEX_DOCUMENT_CLASS}}}",
            f"\\usepackage{{{BinderConfig.LATEX_STYLE_PACKAGE}}}",
            *self._options.preamble_lines(),
            f"\\title{{{escape_latex(metadata.title)}}}",
        ]
        author_line = metadata.author_line()
        if author_line:
            out.append(f"\\author{{{escape_latex(author_line)}}}")
        out.append("\\begin{document}")

        divisions = self._book.divisions
        current_matter: Optional[Matter] = None
        for index, division in enumerate(divisions):
            if division.matter is not current_matter:
                current_matter = division.matter
                out.append(f"\n{_MATTER_COMMANDS[current_matter]}")

            if (
                self._include_toc
                and not self._toc_written
                and division.kind is not DivisionKind.COPYRIGHTPAGE
                and division.id in self._toc_entries
            ):
                out.append(self._table_of_contents())

            previous = divisions[index - 1] if index > 0 else None
            following = divisions[index + 1] if index + 1 < len(divisions) else None
            out.append(self._render_division(division, previous, following))

            if division.kind is DivisionKind.COPYRIGHTPAGE and self._include_toc and not self._toc_written:
                out.append(self._table_of_contents())

        out.append("\\end{document}\n")
        return "\n".join(out)

    def _table_of_contents(self) -> str:
        self._toc_written = True
        return "\n\\tableofcontents\n"

    def _render_division(
        self,
        division: Division,
        previous: Optional[Division],
        following: Optional[Division],
    ) -> str:
        self._division = division
        style = _HEADER_STYLES[division.kind]
        logger.debug("Rendering %s to LaTeX", division.id)

        if style is HeaderStyle.HEADING:
            header = self._heading_header(division)
            return header + self._content(division.content)
        if style is HeaderStyle.PART:
            return self._part_header(division) + self._content(division.content)
        if style is HeaderStyle.TITLEPAGE:
            return self._titlepage(division)
        if style is HeaderStyle.EPIGRAPH:
            return self._epigraph(division, previous, following)
        return self._environment(division)

    def _contents_line(self, division: Division, unit: str = "chapter") -> str:
        entry = self._toc_entries.get(division.id)
        if entry is None:
            return ""
        return f"\\addcontentsline{{toc}}{{{unit}}}{{{_toc_text(entry)}}}\n"

    def _heading_header(self, division: Division) -> str:
        title = self._inlines(division.title, fragile=True)
        label = escape_latex(division.label) if division.label else None
        authors = join_names(division.authors)

        if label and authors:
            header = f"\\ancillaryheader{{{label}}}{{{title}}}{{{escape_latex(authors)}}}\n"
        elif label:
            header = f"\\labelledchapter{{{label}}}{{{title}}}\n"
        elif authors:
            header = f"\\unlabelledancillaryheader{{{title}}}{{{escape_latex(authors)}}}\n"
        else:
            header = f"\\chapter*{{{title}}}\n"
        return "\n" + header + self._contents_line(division)

    def _part_header(self, division: Division) -> str:
        title = self._inlines(division.title, fragile=True) or escape_latex(division.display_title)
        # \part writes its own contents line, which only fits TitleAndLabel
        if division.label and division.toc_format.style is TocStyle.TITLE_AND_LABEL:
            return f"\n\\part{{{title}}}\n"
        return f"\n\\part*{{{title}}}\n" + self._contents_line(division, "part")

    def _environment(self, division: Division) -> str:
        name = division.kind.value
        body = self._content(division.content)
        if division.kind is DivisionKind.HALFTITLE and not division.content:
            title = self._inlines(division.title) or escape_latex(self._book.metadata.title)
            body = f"{title}\n"
        return (
            f"\n\\begin{{{name}}}\n"
            + self._contents_line(division)
            + body
            + f"\\end{{{name}}}\n"
        )

    def _titlepage(self, division: Division) -> str:
        metadata = self._book.metadata
        title = self._inlines(division.title) or escape_latex(metadata.title)
        out = ["\n\\begin{titlepage}\n", "\\begin{titlepagetitleblock}\n"]
        out.append(f"\\titlepagetitle{{{title}}}\n")
        if metadata.subtitle:
            out.append(f"\\titlepagesubtitle{{{escape_latex(metadata.subtitle)}}}\n")
        out.append("\\end{titlepagetitleblock}\n")

        groups = [
            (None, metadata.authors),
            ("Edited by", metadata.editors),
            ("Translated by", metadata.translators),
        ]
        groups = [(intro, names) for intro, names in groups if names]
        if groups:
            out.append("\\begin{titlepagecontributors}\n")
            for intro, names in groups:
                out.append("\\begin{contributorgroup}\n")
                if intro:
                    out.append(f"\\contributorintro{{{intro}}}\n")
                out.append(_contributor_names(names) + "\n")
                out.append("\\end{contributorgroup}\n")
            out.append("\\end{titlepagecontributors}\n")

        out.append(self._content(division.content))
        out.append("\\end{titlepage}\n")
        return "".join(out)

    def _epigraph(
        self,
        division: Division,
        previous: Optional[Division],
        following: Optional[Division],
    ) -> str:
        out: list[str] = []
        if previous is None or previous.kind is not DivisionKind.EPIGRAPH:
            out.append("\n\\begin{epigraphs}\n")
            out.append(self._contents_line(division))
        out.append(self._content(division.content))
        source = join_names(division.authors)
        if source:
            out.append(f"\\par\n\\vspace{{1em}}\\noindent\\epigraphsource{{{escape_latex(source)}}}\n")
        if following is not None and following.kind is DivisionKind.EPIGRAPH:
            out.append("\\bigskip\n")
        else:
            out.append("\\end{epigraphs}\n")
        return "".join(out)

    # -- blocks -----------------------------------------------------------

    def _content(self, blocks: Iterable) -> str:
        return "".join(self._block(block) for block in blocks)

    def _block(self, block) -> str:
        handler = self._blocks.get(type(block))
        if handler is None:
            raise UnmappedNodeError(f"No LaTeX mapping for block {type(block).__name__}")
        return handler(block)

    def _paragraph(self, block: Paragraph) -> str:
        if len(block.inlines) == 1 and isinstance(block.inlines[0], Image) and not self._note_depth:
            return self._figure(block.inlines[0])
        return f"\n{self._inlines(block.inlines)}\n"

    def _figure(self, image: Image) -> str:
        out = [
            "\\begin{figure}\n",
            "\\centering\n",
            f"\\includegraphics[width=\\textwidth]{{{image.source}}}\n",
        ]
        if image.title:
            out.append(f"\\caption{{{escape_latex(image.title)}}}\n")
        out.append("\\end{figure}\n")
        return "".join(out)

    def _heading(self, block: Heading) -> str:
        command = _SECTION_COMMANDS.get(block.level, "subparagraph")
        return f"\n\\{command}*{{{self._inlines(block.inlines, fragile=True)}}}\n"

    def _block_quote(self, block: BlockQuote) -> str:
        return f"\\begin{{quote}}\n{self._content(block.children)}\\end{{quote}}\n"

    def _list(self, block: ListBlock) -> str:
        environment = "enumerate" if block.ordered else "itemize"
        out = [f"\\begin{{{environment}}}\n"]
        if block.ordered and block.start != 1 and self._list_depth < len(_ENUM_COUNTERS):
            out.append(f"\\setcounter{{{_ENUM_COUNTERS[self._list_depth]}}}{{{block.start - 1}}}\n")
        self._list_depth += 1
        try:
            for item in block.items:
                out.append(f"\\item {self._content(item).strip()}\n")
        finally:
            self._list_depth -= 1
        out.append(f"\\end{{{environment}}}\n")
        return "".join(out)

    def _code_block(self, block: CodeBlock) -> str:
        if self._note_depth:
            lines = (f"\\texttt{{{escape_latex(line)}}}" for line in block.lines)
            return "\\par{}".join(lines) + "\n"
        body = "".join(f"{line}\n" for line in block.lines)
        return f"\\begin{{verbatim}}\n{body}\\end{{verbatim}}\n"

    def _table(self, block: Table) -> str:
        columns = "".join(
            {"center": "c", "right": "r"}.get(align, "l")
            for align in (block.alignments or (None,) * len(block.header))
        )
        out = [f"\\begin{{tabular}}{{{columns}}}\n"]
        out.append(" & ".join(self._inlines(cell) for cell in block.header) + " \\\\\n\\hline\n")
        for row in block.rows:
            out.append(" & ".join(self._inlines(cell) for cell in row) + " \\\\\n")
        out.append("\\end{tabular}\n")
        return "".join(out)

    def _raw_block(self, block: RawBlock) -> str:
        if block.format in FORMAT_NAMES:
            return f"{block.markup}\n"
        logger.debug("Omitting %s raw block from LaTeX output", block.format)
        return ""

    # -- inlines ----------------------------------------------------------

    def _inlines(self, nodes: Iterable, fragile: bool = False) -> str:
        fragile = fragile or self._note_depth > 0
        return "".join(self._inline(node, fragile) for node in nodes)

    def _inline(self, node, fragile: bool) -> str:
        if isinstance(node, Text):
            return apply_escapes(node.content, node.latex_escapes, LATEX_ESCAPES, "LaTeX")
        command = self._wrappers.get(type(node))
        if command is not None:
            return f"{command}{{{self._inlines(node.children, fragile)}}}"
        if isinstance(node, Reset):
            command = "\\textup" if node.style == "emphasis" else "\\textmd"
            return f"{command}{{{self._inlines(node.children, fragile)}}}"
        if isinstance(node, Link):
            url = "".join(_URL_ESCAPES.get(c, c) for c in node.target)
            return f"\\href{{{url}}}{{{self._inlines(node.children, fragile)}}}"
        if isinstance(node, Image):
            return f"\\includegraphics{{{node.source}}}"
        if isinstance(node, Code):
            return _code(node.literal, fragile)
        if isinstance(node, FootnoteRef):
            return self._footnote(node, fragile)
        if isinstance(node, RawPassthrough):
            if node.format in FORMAT_NAMES:
                return node.markup
            logger.debug("Omitting %s raw span from LaTeX output", node.format)
            return ""
        if isinstance(node, LineBreak):
            if node.hard:
                return "\\protect\\\\ " if fragile else "\\\\\n"
            return " " if fragile else "\n"
        raise UnmappedNodeError(f"No LaTeX mapping for inline {type(node).__name__}")

    def _footnote(self, node: FootnoteRef, fragile: bool) -> str:
        protect = "\\protect" if fragile else ""
        if not node.resolved:
            return f"\\textsuperscript{{{escape_latex(node.key)}}}"
        if node.occurrence > 1:
            return f"{protect}\\footnotemark[{node.number}]"
        note = self._division.footnote(node.number) if self._division else None
        if note is None:
            return f"{protect}\\footnotemark[{node.number}]"
        paragraphs = []
        self._note_depth += 1
        try:
            for block in note.body:
                if isinstance(block, Paragraph):
                    paragraphs.append(self._inlines(block.inlines))
                else:
                    paragraphs.append(self._block(block).strip())
        finally:
            self._note_depth -= 1
        body = "\\par{}".join(paragraphs)
        return f"{protect}\\footnote[{node.number}]{{{body}}}"


def _code(literal: str, fragile: bool) -> str:
    """Inline code as ``\\verb``, or ``\\texttt`` where ``\\verb`` is not allowed."""
    if not fragile:
        for delimiter in _VERB_DELIMITERS:
            if delimiter not in literal:
                return f"\\verb{delimiter}{literal}{delimiter}"
    return f"\\texttt{{{escape_latex(literal)}}}"


def _contributor_names(names: tuple[str, ...]) -> str:
    escaped = [escape_latex(name) for name in names]
    if len(escaped) == 1:
        return f"\\ctbname{{{escaped[0]}}}"
    return f"\\ctbname{{{', '.join(escaped[:-1])}}} \\ctband \\ctbname{{{escaped[-1]}}}"


def _toc_text(entry: TocEntry) -> str:
    if entry.label and entry.text and entry.label != entry.text:
        return f"\\numberline{{{escape_latex(entry.label)}}}{escape_latex(entry.text)}"
    return escape_latex(entry.display_text)
