"""
Tests for the division model builder.

Tests:
- Matter ordering and unknown kinds
- Labels, numbering formats and ids
- Overrides and attribute merging
- Titles taken from the content
- Part/chapter nesting
- Chapter label and title suppression
"""

import pytest

from bookbinder.config import BuildOptions
from bookbinder.domain import BookMetadata, DivisionKind, TocFormat
from bookbinder.domain.numbering import NumberFormat
from bookbinder.errors import (
    ConflictingOverrideError,
    MatterOrderError,
    UnknownDivisionKindError,
)
from bookbinder.services.block_parser import BlockParser
from bookbinder.services.division_builder import DivisionModelBuilder, DivisionSource, LabelCounters


@pytest.fixture
def builder():
    """Create a division model builder."""
    return DivisionModelBuilder()


@pytest.fixture
def metadata():
    """Create book metadata."""
    return BookMetadata(title="The Everything Book", authors=("Some Guy",))


def source(kind, text="", **overrides):
    """Build a division source from markdown text."""
    return DivisionSource(kind=kind, overrides=overrides, parsed=BlockParser().parse(text))


class TestMatterOrder:
    """Test ordering invariants."""

    def test_front_main_back_is_accepted(self, builder, metadata):
        """Should accept non-decreasing matter."""
        book = builder.build(
            [source("foreword"), source("chapter"), source("afterword")], metadata
        )

        assert [d.kind for d in book.divisions] == [
            DivisionKind.FOREWORD,
            DivisionKind.CHAPTER,
            DivisionKind.AFTERWORD,
        ]

    def test_frontmatter_after_mainmatter_raises(self, builder, metadata):
        """Should reject a front matter division after a chapter."""
        with pytest.raises(MatterOrderError):
            builder.build([source("chapter"), source("preface")], metadata)

    def test_mainmatter_after_backmatter_raises(self, builder, metadata):
        """Should reject a chapter after an appendix."""
        with pytest.raises(MatterOrderError):
            builder.build([source("appendix"), source("chapter")], metadata)

    def test_unknown_kind_raises(self, builder, metadata):
        """Should reject a kind outside the closed set."""
        with pytest.raises(UnknownDivisionKindError):
            builder.build([source("interlude")], metadata)

    def test_kind_names_are_forgiving(self, builder, metadata):
        """Should accept case and separator variants of kind names."""
        book = builder.build([source("Copyright-Page")], metadata)

        assert book.divisions[0].kind is DivisionKind.COPYRIGHTPAGE


class TestLabels:
    """Test label and number assignment."""

    def test_chapters_are_numbered(self, builder, metadata):
        """Should label chapters in order."""
        book = builder.build([source("chapter"), source("chapter")], metadata)

        assert [d.label for d in book.divisions] == ["Chapter 1", "Chapter 2"]
        assert [d.number for d in book.divisions] == [1, 2]

    def test_appendices_use_letters(self, builder, metadata):
        """Should label appendices with letters."""
        book = builder.build([source("appendix"), source("appendix")], metadata)

        assert [d.label for d in book.divisions] == ["Appendix A", "Appendix B"]

    def test_number_formats_from_options(self, builder, metadata):
        """Should format chapter numbers as configured."""
        options = BuildOptions(chapter_number_format=NumberFormat.WORDS)
        book = builder.build([source("chapter")] * 3, metadata, options)

        assert book.divisions[2].label == "Chapter Three"

    def test_unlabelled_kinds(self, builder, metadata):
        """Should leave unnumbered kinds without a label."""
        book = builder.build([source("preface"), source("chapter")], metadata)

        assert book.divisions[0].label is None
        assert book.divisions[0].number is None

    def test_label_override(self, builder, metadata):
        """Should use an explicit label."""
        book = builder.build([source("chapter", label="Prologue")], metadata)

        assert book.divisions[0].label == "Prologue"

    def test_duplicate_label_is_reported(self, builder, metadata):
        """Should report two divisions with one label."""
        book = builder.build(
            [source("chapter"), source("chapter", label="Chapter 1")], metadata
        )

        assert [d.code for d in book.diagnostics] == ["duplicate-label"]

    def test_label_counters_are_independent(self):
        """Should count each labelled kind separately."""
        counters = LabelCounters()
        counters, first = counters.advance(DivisionKind.CHAPTER)
        counters, part = counters.advance(DivisionKind.PART)
        counters, second = counters.advance(DivisionKind.CHAPTER)
        counters, none = counters.advance(DivisionKind.PREFACE)

        assert (first, part, second, none) == (1, 1, 2, None)


class TestIdsAndTitles:
    """Test ids, titles and overrides."""

    def test_generated_ids(self, builder, metadata):
        """Should derive ids from kind and ordinal."""
        book = builder.build(
            [source("halftitle"), source("chapter"), source("chapter"), source("colophon")],
            metadata,
        )

        assert [d.id for d in book.divisions] == ["halftitle", "chapter-1", "chapter-2", "colophon"]

    def test_duplicate_explicit_id_raises(self, builder, metadata):
        """Should reject an id used twice."""
        with pytest.raises(ConflictingOverrideError):
            builder.build([source("chapter", id="x"), source("chapter", id="x")], metadata)

    def test_initial_heading_becomes_title(self, builder, metadata):
        """Should take a leading level-1 heading as the title."""
        book = builder.build([source("chapter", "# Wolves Attack!\n\nThey came.")], metadata)

        division = book.divisions[0]
        assert division.plain_title == "Wolves Attack!"
        assert len(division.content) == 1

    def test_title_override(self, builder, metadata):
        """Should parse a title override as inline markup."""
        book = builder.build([source("chapter", "# Ignored", title="*Real* Title")], metadata)

        division = book.divisions[0]
        assert division.plain_title == "Real Title"
        assert len(division.content) == 1

    def test_unknown_override_raises(self, builder, metadata):
        """Should reject an override key that means nothing."""
        with pytest.raises(ConflictingOverrideError):
            builder.build([source("chapter", colour="red")], metadata)

    def test_matter_override_conflict_raises(self, builder, metadata):
        """Should refuse to move a kind to another matter."""
        with pytest.raises(ConflictingOverrideError):
            builder.build([source("chapter", matter="backmatter")], metadata)

    def test_attribute_override_is_merged(self, builder, metadata):
        """Should apply an attribute override on top of the table."""
        book = builder.build([source("chapter", header_level=2)], metadata)

        attributes = book.divisions[0].attributes
        assert attributes.header_level == 2
        assert attributes.epub_type == "chapter"

    def test_toc_format_override(self, builder, metadata):
        """Should parse a provided TOC format."""
        book = builder.build([source("chapter", toc_format={"Provided": "Prologue"})], metadata)

        assert book.divisions[0].toc_format == TocFormat.provided("Prologue")

    def test_authors_override(self, builder, metadata):
        """Should accept a single author name."""
        book = builder.build([source("foreword", authors="A. Friend")], metadata)

        assert book.divisions[0].authors == ("A. Friend",)


class TestNesting:
    """Test part/chapter nesting."""

    def test_part_nests_following_chapters(self, builder, metadata):
        """Should record the chapters after a part as its children."""
        book = builder.build(
            [source("part"), source("chapter"), source("chapter"), source("appendix")],
            metadata,
        )

        part = book.get("part-1")
        assert part.child_ids == ("chapter-1", "chapter-2")
        assert part.label is None
        assert book.parent_of(book.get("chapter-2")) is part

    def test_second_part_takes_over(self, builder, metadata):
        """Should nest chapters under the closest preceding part."""
        book = builder.build(
            [source("part"), source("chapter"), source("part"), source("chapter")],
            metadata,
        )

        assert book.get("part-1").child_ids == ("chapter-1",)
        assert book.get("part-2").child_ids == ("chapter-2",)

    def test_labelled_parts(self, builder, metadata):
        """Should label parts when enabled."""
        options = BuildOptions(label_parts=True)
        book = builder.build([source("part"), source("part")], metadata, options)

        assert [d.label for d in book.divisions] == ["Part I", "Part II"]

    def test_footnotes_restart_per_division(self, builder, metadata):
        """Should number footnotes from one in every division."""
        text = "a[^n]\n\n[^n]: Note."
        book = builder.build([source("chapter", text), source("chapter", text)], metadata)

        assert [(n.division_id, n.number) for n in book.footnotes] == [
            ("chapter-1", 1),
            ("chapter-2", 1),
        ]


class TestChapterHeaderOptions:
    """Test the chapter label and title options."""

    def test_suppress_chapter_labels(self, builder, metadata):
        """Should keep titles but drop chapter labels."""
        options = BuildOptions(suppress_chapter_labels=True)
        book = builder.build([source("chapter", "# One"), source("appendix")], metadata, options)

        chapter, appendix = book.divisions
        assert chapter.label is None
        assert chapter.plain_title == "One"
        assert chapter.number == 1
        assert appendix.label == "Appendix A"

    def test_suppress_chapter_titles(self, builder, metadata):
        """Should keep labels and drop the leading heading."""
        options = BuildOptions(suppress_chapter_titles=True)
        book = builder.build([source("chapter", "# One\n\nText.")], metadata, options)

        chapter = book.divisions[0]
        assert chapter.label == "Chapter 1"
        assert chapter.title == ()
        assert len(chapter.content) == 1

    def test_only_number_chapters(self, builder, metadata):
        """Should label chapters with their number alone."""
        options = BuildOptions(only_number_chapters=True, chapter_number_format=NumberFormat.WORDS)
        book = builder.build([source("chapter", "# One"), source("chapter", "# Two")], metadata, options)

        assert [d.label for d in book.divisions] == ["One", "Two"]
        assert all(d.title == () for d in book.divisions)

    def test_overrides_win(self, builder, metadata):
        """Should keep explicit label and title overrides."""
        options = BuildOptions(only_number_chapters=True)
        book = builder.build([source("chapter", label="Prologue", title="Before")], metadata, options)

        assert book.divisions[0].label == "Prologue"
        assert book.divisions[0].plain_title == "Before"

    def test_options_exclude_each_other(self):
        """Should refuse more than one chapter header option."""
        with pytest.raises(ValueError):
            BuildOptions(suppress_chapter_labels=True, suppress_chapter_titles=True)
