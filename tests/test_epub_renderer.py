"""
Tests for the EPUB backend renderer.

Tests:
- Package files, manifest and spine
- Cover image declaration
- Package document metadata
- Navigation document
- Content documents: headers, notes and escaping
"""

import pytest

from bookbinder.domain import BookMetadata
from bookbinder.services.block_parser import BlockParser
from bookbinder.services.division_builder import DivisionModelBuilder, DivisionSource
from bookbinder.services.epub_renderer import (
    CONTAINER_XML,
    MIMETYPE,
    OPF_PATH,
    render_epub,
    xml_id,
)


def source(kind, text="", **overrides):
    """Build a division source from markdown text."""
    return DivisionSource(kind=kind, overrides=overrides, parsed=BlockParser().parse(text))


def build(*sources, metadata=None):
    """Build a book from division sources."""
    metadata = metadata or BookMetadata(title="Sample Book", authors=("Ann",))
    return DivisionModelBuilder().build(list(sources), metadata)


@pytest.fixture
def sample_book():
    """Create a book with front, main and back matter."""
    return build(
        source("halftitle"),
        source("titlepage"),
        source("copyrightpage", "All rights reserved."),
        source("part", "# Beginnings"),
        source("chapter", "# One\n\nText[^a].\n\n[^a]: A note."),
        source("chapter", "# Two"),
        source("colophon", "# Colophon\n\nSet in type."),
    )


class TestPackage:
    """Test the package structure."""

    def test_fixed_files(self, sample_book):
        """Should include mimetype first and the container pointer."""
        package = render_epub(sample_book)

        assert list(package.files)[0] == "mimetype"
        assert package.files["mimetype"] == MIMETYPE
        assert package.files["META-INF/container.xml"] == CONTAINER_XML
        assert OPF_PATH in package.files

    def test_spine_lists_each_division_once_in_order(self, sample_book):
        """Should reference every content document once, in book order."""
        package = render_epub(sample_book)

        expected = [xml_id(d.id) for d in sample_book.divisions]
        assert list(package.spine) == expected
        assert len(set(package.spine)) == len(package.spine)

    def test_manifest_covers_spine(self, sample_book):
        """Should declare every spine item in the manifest."""
        package = render_epub(sample_book)

        manifest_ids = {item.id for item in package.manifest}
        assert set(package.spine) <= manifest_ids
        assert any(item.properties == "nav" for item in package.manifest)

    def test_images_are_declared(self):
        """Should add local images to the manifest with a media type."""
        book = build(source("chapter", "![Map](images/map.png)"))

        package = render_epub(book)

        images = [item for item in package.manifest if item.href == "images/map.png"]
        assert len(images) == 1
        assert images[0].media_type == "image/png"

    def test_cover_image(self):
        """Should declare the cover once, with the cover-image property."""
        metadata = BookMetadata(title="T", cover_image="images/cover.jpg")
        book = build(source("chapter", "![Cover](images/cover.jpg)"), metadata=metadata)

        package = render_epub(book)

        covers = [item for item in package.manifest if item.href == "images/cover.jpg"]
        assert len(covers) == 1
        assert covers[0].id == "cover_image"
        assert covers[0].properties == "cover-image"
        assert covers[0].media_type == "image/jpeg"
        opf = package.files[OPF_PATH]
        assert 'properties="cover-image"' in opf
        assert '<meta name="cover" content="cover_image"/>' in opf

    def test_no_cover_by_default(self, sample_book):
        """Should leave the cover out when none is set."""
        package = render_epub(sample_book)

        assert not any(item.properties == "cover-image" for item in package.manifest)
        assert 'name="cover"' not in package.files[OPF_PATH]

    def test_output_is_deterministic(self, sample_book):
        """Should render identical files for the same book."""
        assert render_epub(sample_book).files == render_epub(sample_book).files


class TestPackageDocument:
    """Test OPF metadata."""

    def test_metadata(self):
        """Should describe title, creators, contributors and language."""
        metadata = BookMetadata(
            title="Tom & Jerry",
            subtitle="A Story",
            authors=("Ann",),
            translators=("Tra",),
            language="fr",
            identifier="urn:isbn:123",
        )
        opf = render_epub(build(source("chapter"), metadata=metadata)).files[OPF_PATH]

        assert '<dc:title id="title0">Tom &amp; Jerry</dc:title>' in opf
        assert '<dc:title id="title1">A Story</dc:title>' in opf
        assert '<dc:creator id="creator0">Ann</dc:creator>' in opf
        assert 'scheme="marc:relators">trl</meta>' in opf
        assert "<dc:language>fr</dc:language>" in opf
        assert '<dc:identifier id="main_identifier">urn:isbn:123</dc:identifier>' in opf

    def test_default_identifier_is_stable(self):
        """Should derive the same identifier for the same book."""
        first = render_epub(build(source("chapter"))).files[OPF_PATH]
        second = render_epub(build(source("chapter"))).files[OPF_PATH]

        assert "urn:uuid:" in first
        assert first == second

    def test_modified_timestamp(self):
        """Should add dcterms:modified only when given."""
        book = build(source("chapter"))

        assert "dcterms:modified\"" not in render_epub(book).files[OPF_PATH]
        opf = render_epub(book, modified="2024-01-01T00:00:00Z").files[OPF_PATH]
        assert '<meta property="dcterms:modified">2024-01-01T00:00:00Z</meta>' in opf


class TestNavigation:
    """Test the navigation document."""

    def test_nested_toc(self, sample_book):
        """Should nest chapters under their part."""
        nav = render_epub(sample_book).files["OEBPS/nav.xhtml"]

        assert (
            '<li><a href="part-1.xhtml">Beginnings</a><ol>'
            '<li><a href="chapter-1.xhtml">Chapter 1: One</a></li>'
            '<li><a href="chapter-2.xhtml">Chapter 2: Two</a></li></ol></li>'
        ) in nav

    def test_provided_entry(self, sample_book):
        """Should use provided TOC text."""
        nav = render_epub(sample_book).files["OEBPS/nav.xhtml"]

        assert '<a href="copyrightpage.xhtml">Bibliography</a>' in nav
        assert "halftitle.xhtml" not in nav.split('epub:type="landmarks"')[0]

    def test_landmarks(self, sample_book):
        """Should point the body matter landmark at the first main division."""
        nav = render_epub(sample_book).files["OEBPS/nav.xhtml"]

        assert '<a epub:type="bodymatter" href="part-1.xhtml">' in nav


class TestContentDocuments:
    """Test per-division XHTML."""

    def test_chapter_header(self, sample_book):
        """Should print the label and the classed heading."""
        doc = render_epub(sample_book).document("chapter-1")

        assert '<body epub:type="mainmatter">' in doc
        assert '<section epub:type="chapter">' in doc
        assert '<p class="division_label">CHAPTER 1</p>' in doc
        assert '<h1 class="generic_header">One</h1>' in doc

    def test_footnotes(self, sample_book):
        """Should link references and notes both ways."""
        doc = render_epub(sample_book).document("chapter-1")

        assert '<a href="#fn1" id="fnref1" epub:type="noteref"><sup>1</sup></a>' in doc
        assert '<aside id="fn1" epub:type="footnote" class="footnote">' in doc
        assert '<a href="#fnref1">1.</a>' in doc
        assert '<h6 class="notes_heading">Notes</h6>' in doc

    def test_repeated_reference_gets_unique_id(self):
        """Should give every reference site its own id."""
        book = build(source("chapter", "a[^n] b[^n]\n\n[^n]: N."))

        doc = render_epub(book).document("chapter-1")

        assert 'id="fnref1"' in doc
        assert 'id="fnref1-2"' in doc

    def test_titlepage_has_no_stylesheet(self, sample_book):
        """Should honour include_stylesheet and additional head content."""
        doc = render_epub(sample_book).document("titlepage")

        assert "stylesheet" not in doc
        assert "__ibooks_internal_theme" in doc
        assert '<h1 class="titlepage_title">Sample Book</h1>' in doc

    def test_colophon_wrapper(self, sample_book):
        """Should wrap the colophon section content."""
        doc = render_epub(sample_book).document("colophon")

        assert '<div class="colophon_wrapper">' in doc
        assert '<h6 class="colophon_header">Colophon</h6>' in doc
        assert '<body epub:type="backmatter">' in doc

    def test_text_is_entity_encoded(self):
        """Should escape markup characters in text and code."""
        book = build(source("chapter", "a < b & c `<tag>`\n\n```\nif a < b:\n```"))

        doc = render_epub(book).document("chapter-1")

        assert "a &lt; b &amp; c <code>&lt;tag&gt;</code>" in doc
        assert "<pre><code>if a &lt; b:</code></pre>" in doc

    def test_raw_html_passes_through(self):
        """Should keep html raw markup and drop LaTeX raw markup."""
        book = build(source("chapter", "<b>x</b> `\\newpage`{=latex}"))

        doc = render_epub(book).document("chapter-1")

        assert "<p><b>x</b> </p>" in doc
        assert "newpage" not in doc

    def test_subheadings_shift_down(self):
        """Should render content headings one level below the title."""
        book = build(source("chapter", "# Title\n\n## Section"))

        doc = render_epub(book).document("chapter-1")

        assert '<h3 class="generic_subheading">Section</h3>' in doc
