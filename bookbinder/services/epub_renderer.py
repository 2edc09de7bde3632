"""EPUB backend renderer.

Renders a Book into the files of an unpacked EPUB 3 publication: the
``mimetype`` entry, the container pointer, the package document, the
navigation document and one XHTML content document per division. Zipping
the tree is left to the packager.
"""

import html
import logging
import mimetypes
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from ..config import BinderConfig
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
    NavNode,
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
    build_nav_tree,
)
from ..domain.book import join_names
from ..domain.inline import walk
from ..domain.blocks import iter_inline_sequences
from ..errors import UnmappedNodeError
from .typography import HTML_ESCAPES, apply_escapes

logger = logging.getLogger(__name__)

MIMETYPE = "application/epub+zip"
XHTML_MEDIA_TYPE = "application/xhtml+xml"
OEBPS = "OEBPS"
OPF_PATH = f"{OEBPS}/content.opf"
NAV_HREF = "nav.xhtml"
COVER_IMAGE_ID = "cover_image"

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="no"?>'

CONTAINER_XML = (
    '<?xml version="1.0"?>\n'
    '<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">\n'
    "  <rootfiles>\n"
    f'    <rootfile full-path="{OPF_PATH}" media-type="application/oebps-package+xml" />\n'
    "  </rootfiles>\n"
    "</container>\n"
)

FORMAT_NAMES = frozenset({"html", "xhtml"})

# How each kind lays out its content document body
_BODY_LAYOUTS = {
    DivisionKind.HALFTITLE: "halftitle",
    DivisionKind.COPYRIGHTPAGE: "standard",
    DivisionKind.TITLEPAGE: "titlepage",
    DivisionKind.DEDICATION: "standard",
    DivisionKind.FOREWORD: "standard",
    DivisionKind.INTRODUCTION: "standard",
    DivisionKind.PREFACE: "standard",
    DivisionKind.CHAPTER: "standard",
    DivisionKind.PART: "standard",
    DivisionKind.AFTERWORD: "standard",
    DivisionKind.COLOPHON: "standard",
    DivisionKind.EPIGRAPH: "epigraph",
    DivisionKind.ACKNOWLEDGEMENTS: "standard",
    DivisionKind.APPENDIX: "standard",
}

_unmapped_kinds = set(DivisionKind) - set(_BODY_LAYOUTS)
if _unmapped_kinds:
    raise RuntimeError(f"No EPUB body layout for {sorted(_unmapped_kinds)}")

_CONTRIBUTOR_ROLES = (("editors", "edt"), ("translators", "trl"))

_LANDMARK_TITLES = {
    "toc": "Table of Contents",
    "bodymatter": "Start of Content",
}


@dataclass(frozen=True)
class ManifestItem:
    """A manifest entry of the package document."""

    id: str
    href: str
    media_type: str
    properties: Optional[str] = None


@dataclass(frozen=True)
class EpubPackage:
    """The rendered files of an EPUB publication.

    ``files`` maps archive paths to text content, with ``mimetype`` first.
    Resources listed in the manifest but absent from ``files`` (the
    stylesheet, images) are supplied by the packager.
    """

    files: Mapping[str, str]
    manifest: tuple[ManifestItem, ...]
    spine: tuple[str, ...]

    def document(self, division_id: str) -> str:
        """Get the content document rendered for a division."""
        return self.files[f"{OEBPS}/{xml_id(division_id)}.xhtml"]


def xml_id(value: str) -> str:
    """Make a string usable as an XML id and file name."""
    cleaned = re.sub(r"[^A-Za-z0-9_.-]", "_", value)
    if not cleaned or not cleaned[0].isalpha():
        cleaned = f"d_{cleaned}"
    return cleaned


def render_epub(
    book: Book,
    modified: Optional[str] = None,
    stylesheet: str = BinderConfig.STYLESHEET_NAME,
) -> EpubPackage:
    """Render a Book to EPUB files.

    Args:
        book: The book to render; it is only read.
        modified: ``dcterms:modified`` timestamp; omitted when None so that
            output stays a function of the book alone.
        stylesheet: File name of the shared stylesheet resource.

    Returns:
        The package files, manifest and spine.

    Raises:
        UnmappedNodeError: If a node type has no EPUB mapping.
        UnescapableCharacterError: If a text run holds a character with no
            XML escape.
    """
    files: dict[str, str] = {
        "mimetype": MIMETYPE,
        "META-INF/container.xml": CONTAINER_XML,
    }

    manifest = [
        ManifestItem("nav", NAV_HREF, XHTML_MEDIA_TYPE, "nav"),
        ManifestItem("stylesheet", stylesheet, "text/css"),
    ]
    spine: list[str] = []
    images: dict[str, ManifestItem] = {}
    cover = book.metadata.cover_image
    if cover:
        manifest.append(ManifestItem(COVER_IMAGE_ID, cover, _media_type(cover), "cover-image"))

    documents: dict[str, str] = {}
    for division in book.divisions:
        item_id = xml_id(division.id)
        href = f"{item_id}.xhtml"
        writer = _ContentDocumentWriter(book, division, stylesheet)
        documents[f"{OEBPS}/{href}"] = writer.render()
        logger.debug("Rendered EPUB content document %s", href)

        manifest.append(ManifestItem(item_id, href, XHTML_MEDIA_TYPE))
        spine.append(item_id)
        for source in _image_sources(division):
            if source not in images and source != cover:
                images[source] = ManifestItem(f"image_{len(images) + 1}", source, _media_type(source))

    manifest.extend(images.values())
    files[OPF_PATH] = _package_document(book, manifest, spine, modified)
    files[f"{OEBPS}/{NAV_HREF}"] = _navigation_document(book, stylesheet)
    files.update(documents)

    logger.info("Rendered EPUB with %d content documents", len(spine))
    return EpubPackage(files=files, manifest=tuple(manifest), spine=tuple(spine))


def _image_sources(division: Division) -> list[str]:
    blocks = list(division.content)
    for note in division.footnotes:
        blocks.extend(note.body)
    sources = []
    for inlines in iter_inline_sequences(blocks):
        for node in walk(inlines):
            if isinstance(node, Image) and "://" not in node.source and not node.source.startswith("data:"):
                sources.append(node.source)
    return sources


def _media_type(href: str) -> str:
    return mimetypes.guess_type(href)[0] or "application/octet-stream"


def _escape(text: str) -> str:
    return html.escape(text, quote=False)


def _attr(text: str) -> str:
    return html.escape(text, quote=True)


# -- package and navigation documents ---------------------------------------


def _package_document(
    book: Book,
    manifest: list[ManifestItem],
    spine: list[str],
    modified: Optional[str],
) -> str:
    metadata = book.metadata
    dc = [f'    <dc:title id="title0">{_escape(metadata.title)}</dc:title>']
    meta = ['    <meta property="title-type" refines="#title0">main</meta>']
    if metadata.subtitle:
        dc.append(f'    <dc:title id="title1">{_escape(metadata.subtitle)}</dc:title>')
        meta.append('    <meta property="title-type" refines="#title1">subtitle</meta>')

    for index, name in enumerate(metadata.authors):
        dc.append(f'    <dc:creator id="creator{index}">{_escape(name)}</dc:creator>')
        meta.append(
            f'    <meta property="role" refines="#creator{index}" scheme="marc:relators">aut</meta>'
        )

    contributor = 0
    for field_name, role in _CONTRIBUTOR_ROLES:
        for name in getattr(metadata, field_name):
            dc.append(f'    <dc:contributor id="contributor{contributor}">{_escape(name)}</dc:contributor>')
            meta.append(
                f'    <meta property="role" refines="#contributor{contributor}" '
                f'scheme="marc:relators">{role}</meta>'
            )
            contributor += 1

    dc.append(f'    <dc:identifier id="main_identifier">{_escape(metadata.identifier_or_default())}</dc:identifier>')
    dc.append(f"    <dc:language>{_escape(metadata.language)}</dc:language>")
    if metadata.publisher:
        dc.append(f"    <dc:publisher>{_escape(metadata.publisher)}</dc:publisher>")
    if metadata.cover_image:
        meta.append(f'    <meta name="cover" content="{COVER_IMAGE_ID}"/>')
    if modified:
        meta.append(f'    <meta property="dcterms:modified">{_escape(modified)}</meta>')

    items = []
    for item in manifest:
        properties = f' properties="{item.properties}"' if item.properties else ""
        items.append(
            f'    <item id="{_attr(item.id)}" href="{_attr(item.href)}" '
            f'media-type="{item.media_type}"{properties}/>'
        )
    itemrefs = [f'    <itemref idref="{idref}"/>' for idref in spine]

    return "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<package version="3.0" unique-identifier="main_identifier" '
            'xmlns="http://www.idpf.org/2007/opf" '
            'xmlns:dc="http://purl.org/dc/elements/1.1/" '
            'xmlns:dcterms="http://purl.org/dc/terms/">',
            "  <metadata>",
            *dc,
            *meta,
            "  </metadata>",
            "  <manifest>",
            *items,
            "  </manifest>",
            "  <spine>",
            *itemrefs,
            "  </spine>",
            "</package>",
            "",
        ]
    )


def _navigation_document(book: Book, stylesheet: str) -> str:
    title = BinderConfig.NAV_TITLE
    out = [
        XML_DECLARATION,
        '<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">',
        "<head>",
        f"\t<title>{_escape(title)}</title>",
        '\t<meta charset="utf-8"/>',
        f'\t<link rel="stylesheet" type="text/css" href="{_attr(stylesheet)}"/>',
        "</head>",
        "<body>",
        '<nav epub:type="toc" id="toc">',
        f"<h1>{_escape(title)}</h1>",
    ]

    nodes = build_nav_tree(book.toc)
    if nodes:
        out.append(_nav_list(nodes))
    elif book.divisions:
        first = book.divisions[0]
        out.append(
            f'<ol><li><a href="{xml_id(first.id)}.xhtml">{_escape(book.metadata.title)}</a></li></ol>'
        )
    out.append("</nav>")

    landmarks = [("toc", f"{NAV_HREF}#toc")]
    body_start = next((d for d in book.divisions if d.matter is Matter.MAINMATTER), None)
    if body_start is not None:
        landmarks.append(("bodymatter", f"{xml_id(body_start.id)}.xhtml"))
    out.append('<nav epub:type="landmarks" hidden="hidden">')
    out.append("<ol>")
    for epub_type, href in landmarks:
        out.append(
            f'<li><a epub:type="{epub_type}" href="{href}">{_LANDMARK_TITLES[epub_type]}</a></li>'
        )
    out.append("</ol>")
    out.append("</nav>")
    out.extend(["</body>", "</html>", ""])
    return "\n".join(out)


def _nav_list(nodes: list[NavNode]) -> str:
    items = []
    for node in nodes:
        entry = node.entry
        link = f'<a href="{xml_id(entry.target)}.xhtml">{_escape(entry.display_text)}</a>'
        children = _nav_list(node.children) if node.children else ""
        items.append(f"<li>{link}{children}</li>")
    return "<ol>" + "".join(items) + "</ol>"


# -- content documents ------------------------------------------------------


class _ContentDocumentWriter:
    """Renders the content document of one division."""

    _wrappers = {
        Emphasis: ("<em>", "</em>"),
        Strong: ("<strong>", "</strong>"),
        Superscript: ("<sup>", "</sup>"),
        Subscript: ("<sub>", "</sub>"),
        Strikeout: ("<s>", "</s>"),
        SmallCaps: ('<span class="smallcaps">', "</span>"),
        Sans: ('<span class="sans">', "</span>"),
    }

    _resets = {
        "emphasis": ('<span class="upright">', "</span>"),
        "strong": ('<span class="unbold">', "</span>"),
    }

    def __init__(self, book: Book, division: Division, stylesheet: str) -> None:
        self._book = book
        self._division = division
        self._stylesheet = stylesheet
        self._attributes = division.attributes

    def render(self) -> str:
        language = _attr(self._book.metadata.language)
        return "\n".join(
            [
                XML_DECLARATION,
                '<html xmlns="http://www.w3.org/1999/xhtml" '
                f'xmlns:epub="http://www.idpf.org/2007/ops" xml:lang="{language}" lang="{language}">',
                self._head(),
                self._body(),
                "</html>",
                "",
            ]
        )

    def _head(self) -> str:
        out = ["<head>", f"\t<title>{_escape(self._division.display_title)}</title>"]
        if self._attributes.include_stylesheet:
            out.append(f'\t<link rel="stylesheet" type="text/css" href="{_attr(self._stylesheet)}"/>')
        if self._attributes.additional_head:
            out.append(f"\t{self._attributes.additional_head.strip()}")
        out.append("</head>")
        return "\n".join(out)

    def _body(self) -> str:
        attributes = self._attributes
        section = f'<section epub:type="{_attr(attributes.epub_type)}"'
        if attributes.section_classes:
            section += f' class="{_attr(attributes.section_classes)}"'
        section += ">"

        out = [f'<body epub:type="{self._division.matter.tag}">', section]
        if attributes.section_wrapper:
            out.append(f'<div class="{_attr(attributes.section_wrapper)}">')

        layout = _BODY_LAYOUTS[self._division.kind]
        if layout == "titlepage":
            out.append(self._titlepage())
        elif layout == "halftitle":
            out.append(self._halftitle())
        elif layout == "epigraph":
            out.append(self._epigraph())
        else:
            out.append(self._header())
            out.append(self._blocks(self._division.content))
        out.append(self._notes())

        if attributes.section_wrapper:
            out.append("</div>")
        out.extend(["</section>", "</body>"])
        return "\n".join(part for part in out if part)

    def _header(self) -> str:
        division = self._division
        attributes = self._attributes
        out = []
        if division.label:
            out.append(f'<p class="division_label">{_escape(division.label.upper())}</p>')
        if division.title:
            tag = f"h{attributes.header_level}"
            classes = attributes.header_classes
            if classes == "generic_header" and division.authors:
                classes = "generic_header_with_authors"
            opening = f'<{tag} class="{_attr(classes)}">' if classes else f"<{tag}>"
            out.append(f"{opening}{self._inlines(division.title)}</{tag}>")
        authors = join_names(division.authors)
        if authors:
            out.append(f'<p class="division_authors">{_escape(authors.upper())}</p>')
        return "\n".join(out)

    def _titlepage(self) -> str:
        metadata = self._book.metadata
        title = self._inlines(self._division.title) or _escape(metadata.title)
        out = [f'<h1 class="titlepage_title">{title}</h1>']
        if metadata.subtitle:
            out.append(f'<p class="titlepage_subtitle">{_escape(metadata.subtitle)}</p>')
        authors = metadata.author_line()
        if authors:
            out.append(f'<p class="titlepage_contributors">{_escape(authors)}</p>')
        for intro, names in (("Edited by", metadata.editors), ("Translated by", metadata.translators)):
            line = join_names(names)
            if line:
                out.append(f'<p class="titlepage_contributors">{intro} {_escape(line)}</p>')
        out.append(self._blocks(self._division.content))
        return "\n".join(part for part in out if part)

    def _halftitle(self) -> str:
        if self._division.title or not self._division.content:
            tag = f"h{self._attributes.header_level}"
            classes = self._attributes.header_classes
            title = self._inlines(self._division.title) or _escape(self._book.metadata.title)
            opening = f'<{tag} class="{_attr(classes)}">' if classes else f"<{tag}>"
            heading = f"{opening}{title}</{tag}>"
        else:
            heading = ""
        return "\n".join(part for part in (heading, self._blocks(self._division.content)) if part)

    def _epigraph(self) -> str:
        out = [f'<div class="epigraph_content">\n{self._blocks(self._division.content)}\n</div>']
        source = join_names(self._division.authors)
        if source:
            out.append(f'<p class="epigraph_source">{_escape(source)}</p>')
        return "\n".join(out)

    def _notes(self) -> str:
        footnotes = self._division.footnotes
        if not footnotes:
            return ""
        out = [f'<h6 class="notes_heading">{_escape(BinderConfig.NOTES_HEADING)}</h6>']
        for note in footnotes:
            out.append(
                f'<aside id="fn{note.number}" epub:type="footnote" class="footnote">'
                f'<a href="#fnref{note.number}">{note.number}.</a>'
            )
            out.append(self._blocks(note.body))
            out.append("</aside>")
        return "\n".join(out)

    # -- blocks -----------------------------------------------------------

    def _blocks(self, blocks: Iterable) -> str:
        return "\n".join(self._block(block) for block in blocks)

    def _block(self, block) -> str:
        if isinstance(block, Paragraph):
            if len(block.inlines) == 1 and isinstance(block.inlines[0], Image):
                return self._figure(block.inlines[0])
            return f"<p>{self._inlines(block.inlines)}</p>"
        if isinstance(block, Heading):
            tag = f"h{min(block.level + 1, 6)}"
            return f'<{tag} class="generic_subheading">{self._inlines(block.inlines)}</{tag}>'
        if isinstance(block, BlockQuote):
            return f"<blockquote>\n{self._blocks(block.children)}\n</blockquote>"
        if isinstance(block, ListBlock):
            return self._list(block)
        if isinstance(block, CodeBlock):
            language = f' class="language-{_attr(block.language)}"' if block.language else ""
            return f"<pre><code{language}>{_escape(block.text)}</code></pre>"
        if isinstance(block, ThematicBreak):
            return "<hr/>"
        if isinstance(block, Table):
            return self._table(block)
        if isinstance(block, RawBlock):
            if block.format in FORMAT_NAMES:
                return block.markup
            logger.debug("Omitting %s raw block from EPUB output", block.format)
            return ""
        raise UnmappedNodeError(f"No EPUB mapping for block {type(block).__name__}")

    def _figure(self, image: Image) -> str:
        caption = f"<figcaption>{_escape(image.title)}</figcaption>" if image.title else ""
        return f'<figure><img src="{_attr(image.source)}" alt="{_attr(image.alt)}"/>{caption}</figure>'

    def _list(self, block: ListBlock) -> str:
        if block.ordered:
            tag = "ol"
            opening = f'<ol start="{block.start}">' if block.start != 1 else "<ol>"
        else:
            tag = "ul"
            opening = "<ul>"
        items = []
        for item in block.items:
            if len(item) == 1 and isinstance(item[0], Paragraph):
                items.append(f"<li>{self._inlines(item[0].inlines)}</li>")
            else:
                items.append(f"<li>\n{self._blocks(item)}\n</li>")
        return "\n".join([opening, *items, f"</{tag}>"])

    def _table(self, block: Table) -> str:
        alignments = block.alignments or (None,) * len(block.header)

        def cell(tag: str, inlines, align: Optional[str]) -> str:
            style = f' style="text-align: {align}"' if align else ""
            return f"<{tag}{style}>{self._inlines(inlines)}</{tag}>"

        header = "".join(cell("th", c, a) for c, a in zip(block.header, alignments))
        rows = [
            "<tr>" + "".join(cell("td", c, a) for c, a in zip(row, alignments)) + "</tr>"
            for row in block.rows
        ]
        return "\n".join(
            ["<table>", f"<thead><tr>{header}</tr></thead>", "<tbody>", *rows, "</tbody>", "</table>"]
        )

    # -- inlines ----------------------------------------------------------

    def _inlines(self, nodes: Iterable) -> str:
        return "".join(self._inline(node) for node in nodes)

    def _inline(self, node) -> str:
        if isinstance(node, Text):
            return apply_escapes(node.content, node.html_escapes, HTML_ESCAPES, "XHTML")
        wrapper = self._wrappers.get(type(node))
        if wrapper is not None:
            return f"{wrapper[0]}{self._inlines(node.children)}{wrapper[1]}"
        if isinstance(node, Reset):
            opening, closing = self._resets[node.style]
            return f"{opening}{self._inlines(node.children)}{closing}"
        if isinstance(node, Link):
            title = f' title="{_attr(node.title)}"' if node.title else ""
            return f'<a href="{_attr(node.target)}"{title}>{self._inlines(node.children)}</a>'
        if isinstance(node, Image):
            return f'<img src="{_attr(node.source)}" alt="{_attr(node.alt)}"/>'
        if isinstance(node, Code):
            return f"<code>{_escape(node.literal)}</code>"
        if isinstance(node, FootnoteRef):
            return self._noteref(node)
        if isinstance(node, RawPassthrough):
            if node.format in FORMAT_NAMES:
                return node.markup
            logger.debug("Omitting %s raw span from EPUB output", node.format)
            return ""
        if isinstance(node, LineBreak):
            return "<br/>\n" if node.hard else "\n"
        raise UnmappedNodeError(f"No EPUB mapping for inline {type(node).__name__}")

    def _noteref(self, node: FootnoteRef) -> str:
        if not node.resolved:
            return f'<sup class="unresolved_noteref">{_escape(node.key)}</sup>'
        anchor = f"fnref{node.number}" if node.occurrence == 1 else f"fnref{node.number}-{node.occurrence}"
        return (
            f'<a href="#fn{node.number}" id="{anchor}" epub:type="noteref">'
            f"<sup>{node.number}</sup></a>"
        )
