"""
Tests for the block parser.

Tests:
- Paragraphs, headings and thematic breaks
- Fenced and indented code, raw blocks
- Block quotes, lists and tables
- Footnote definitions, alone or sharing a block
- Setext headings, escaped code and loose lists
- Nesting limit
"""

import pytest

from bookbinder.domain.blocks import (
    BlockQuote,
    CodeBlock,
    Heading,
    ListBlock,
    Paragraph,
    RawBlock,
    Table,
    ThematicBreak,
)
from bookbinder.domain.inline import FootnoteRef, LineBreak, Text
from bookbinder.services.block_parser import BlockParser


@pytest.fixture
def parser():
    """Create a block parser."""
    return BlockParser()


class TestSimpleBlocks:
    """Test paragraphs, headings and breaks."""

    def test_paragraphs_split_on_blank_lines(self, parser):
        """Should start a new paragraph after a blank line."""
        doc = parser.parse("First para.\n\nSecond para.\n")

        assert doc.blocks == (
            Paragraph((Text("First para."),)),
            Paragraph((Text("Second para."),)),
        )

    def test_paragraph_lines_join_with_soft_break(self, parser):
        """Should keep consecutive lines in one paragraph."""
        doc = parser.parse("one\ntwo")

        assert doc.blocks == (Paragraph((Text("one"), LineBreak(), Text("two"))),)

    def test_atx_heading(self, parser):
        """Should parse heading level and text."""
        doc = parser.parse("## Section Two ##")

        assert doc.blocks == (Heading(2, (Text("Section Two"),)),)

    def test_thematic_break(self, parser):
        """Should parse a line of asterisks as a break."""
        doc = parser.parse("a\n\n* * *\n\nb")

        assert isinstance(doc.blocks[1], ThematicBreak)
        assert len(doc.blocks) == 3

    def test_text_is_normalized(self, parser):
        """Should run typography over paragraph text."""
        doc = parser.parse("It's done--mostly.")

        assert doc.blocks[0].inlines[0].content == "It’s done–mostly."

    def test_tabs_expand(self, parser):
        """Should treat a tab as four columns of indentation."""
        doc = parser.parse("\tcode")

        assert doc.blocks == (CodeBlock(("code",)),)


class TestCode:
    """Test code and raw blocks."""

    def test_fenced_code(self, parser):
        """Should keep fenced lines verbatim with the language."""
        doc = parser.parse("```python\nx = '%s' -- 1\n\ny = 2\n```")

        assert doc.blocks == (CodeBlock(("x = '%s' -- 1", "", "y = 2"), "python"),)

    def test_unterminated_fence_runs_to_end(self, parser):
        """Should close an unterminated fence at the end of input."""
        doc = parser.parse("~~~\nno end")

        assert doc.blocks == (CodeBlock(("no end",)),)

    def test_raw_block_attribute(self, parser):
        """Should turn a fenced block with a raw attribute into a raw block."""
        doc = parser.parse("```{=latex}\n\\newpage\n```")

        assert doc.blocks == (RawBlock("\\newpage", "latex"),)

    def test_html_block(self, parser):
        """Should pass an HTML block through as raw html."""
        doc = parser.parse('<div class="x">\nhi\n</div>\n\nafter')

        assert doc.blocks[0] == RawBlock('<div class="x">\nhi\n</div>', "html")
        assert doc.blocks[1] == Paragraph((Text("after"),))


class TestContainers:
    """Test quotes, lists and tables."""

    def test_block_quote(self, parser):
        """Should parse quoted lines as a nested block sequence."""
        doc = parser.parse("> quoted\n> text\n\nafter")

        quote = doc.blocks[0]
        assert isinstance(quote, BlockQuote)
        assert quote.children == (
            Paragraph((Text("quoted"), LineBreak(), Text("text"))),
        )
        assert doc.blocks[1] == Paragraph((Text("after"),))

    def test_nested_block_quote(self, parser):
        """Should nest quotes inside quotes."""
        doc = parser.parse("> outer\n>\n> > inner")

        outer = doc.blocks[0]
        assert isinstance(outer.children[1], BlockQuote)
        assert outer.children[1].children == (Paragraph((Text("inner"),)),)

    def test_bullet_list(self, parser):
        """Should parse bullet items."""
        doc = parser.parse("- one\n- two\n- three")

        block = doc.blocks[0]
        assert isinstance(block, ListBlock)
        assert not block.ordered
        assert [item[0].inlines[0].content for item in block.items] == ["one", "two", "three"]

    def test_ordered_list_start(self, parser):
        """Should record the start number of an ordered list."""
        doc = parser.parse("3. three\n4. four")

        block = doc.blocks[0]
        assert block.ordered
        assert block.start == 3
        assert len(block.items) == 2

    def test_nested_list(self, parser):
        """Should nest an indented list inside an item."""
        doc = parser.parse("- outer\n    - inner\n- next")

        block = doc.blocks[0]
        assert len(block.items) == 2
        assert isinstance(block.items[0][1], ListBlock)
        assert block.items[0][0] == Paragraph((Text("outer"),))

    def test_table(self, parser):
        """Should parse a pipe table with alignments."""
        doc = parser.parse("| a | b |\n|:--|--:|\n| 1 | 2 |")

        table = doc.blocks[0]
        assert isinstance(table, Table)
        assert table.alignments == ("left", "right")
        assert table.header == ((Text("a"),), (Text("b"),))
        assert table.rows == (((Text("1"),), (Text("2"),)),)


class TestFootnoteDefinitions:
    """Test footnote definition collection."""

    def test_definition_is_collected(self, parser):
        """Should remove definitions from the content."""
        doc = parser.parse("Text[^a].\n\n[^a]: The note.")

        assert doc.blocks == (Paragraph((Text("Text"), FootnoteRef("a"), Text("."))),)
        assert len(doc.definitions) == 1
        assert doc.definitions[0].key == "a"
        assert doc.definitions[0].body == (Paragraph((Text("The note."),)),)

    def test_multi_paragraph_definition(self, parser):
        """Should continue a definition over indented paragraphs."""
        doc = parser.parse("[^n]: First.\n\n    Second.\n\nAfter.")

        assert len(doc.definitions[0].body) == 2
        assert doc.blocks == (Paragraph((Text("After."),)),)


class TestNestingLimit:
    """Test flattening of over-nested content."""

    def test_deep_quotes_are_flattened(self):
        """Should flatten beyond the limit and record a diagnostic."""
        parser = BlockParser(max_depth=2)
        doc = parser.parse("> > > > deep")

        assert [d.code for d in doc.diagnostics] == ["nesting-depth"]
        inner = doc.blocks[0].children[0].children[0].children[0]
        assert inner == Paragraph((Text("deep"),))

    def test_within_limit_has_no_diagnostic(self, parser):
        """Should not report ordinary nesting."""
        doc = parser.parse("> > two levels")

        assert doc.diagnostics == ()


class TestFootnoteDefinitionLayout:
    """Test definitions that share a block with other text."""

    def test_consecutive_definitions(self, parser):
        """Should split definitions written on adjacent lines."""
        doc = parser.parse("[^a]: One.\n[^b]: Two.")

        assert [d.key for d in doc.definitions] == ["a", "b"]
        assert doc.definitions[1].body == (Paragraph((Text("Two."),)),)
        assert doc.blocks == ()

    def test_definition_after_paragraph_line(self, parser):
        """Should keep the paragraph text written before a definition."""
        doc = parser.parse("Body[^a].\n[^a]: Note.")

        assert doc.blocks == (Paragraph((Text("Body"), FootnoteRef("a"), Text("."))),)
        assert doc.definitions[0].key == "a"


class TestMarkdownSyntax:
    """Test block syntax handled by the Markdown tokenizer."""

    def test_setext_heading(self, parser):
        """Should parse an underlined heading."""
        doc = parser.parse("Title\n=====")

        assert doc.blocks == (Heading(1, (Text("Title"),)),)

    def test_indented_code_keeps_special_characters(self, parser):
        """Should give indented code its literal characters."""
        doc = parser.parse("    if a < b && c:\n        pass")

        assert doc.blocks == (CodeBlock(("if a < b && c:", "    pass")),)

    def test_fenced_code_with_html(self, parser):
        """Should not treat markup inside a fence as HTML."""
        doc = parser.parse("```html\n<div>&amp;</div>\n```")

        assert doc.blocks == (CodeBlock(("<div>&amp;</div>",), "html"),)

    def test_loose_list_items(self, parser):
        """Should give each loose item its paragraphs."""
        doc = parser.parse("- one\n\n- two")

        block = doc.blocks[0]
        assert block.items == ((Paragraph((Text("one"),)),), (Paragraph((Text("two"),)),))

    def test_footnote_reference_in_list_item(self, parser):
        """Should parse references inside list items."""
        doc = parser.parse("- item[^x]\n\n[^x]: Note.")

        assert doc.blocks[0].items[0] == (Paragraph((Text("item"), FootnoteRef("x"))),)
        assert doc.definitions[0].key == "x"
