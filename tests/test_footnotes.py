"""
Tests for footnote resolution.

Tests:
- Numbering by first reference
- Repeated references
- Unresolved, orphan, duplicate and nested footnotes
"""

import pytest

from bookbinder.domain.inline import FootnoteRef, walk
from bookbinder.domain.blocks import iter_inline_sequences
from bookbinder.services.block_parser import BlockParser
from bookbinder.services.footnote_service import FootnoteResolver


@pytest.fixture
def resolve():
    """Parse text and resolve its footnotes."""
    parser = BlockParser()
    resolver = FootnoteResolver()

    def _resolve(text: str):
        return resolver.resolve(parser.parse(text), "chapter-1")

    return _resolve


def refs(content):
    """Collect footnote references in document order."""
    return [
        node
        for inlines in iter_inline_sequences(content)
        for node in walk(inlines)
        if isinstance(node, FootnoteRef)
    ]


class TestNumbering:
    """Test footnote numbering."""

    def test_numbered_by_first_reference(self, resolve):
        """Should rank footnotes by first reference, not definition order."""
        result = resolve(
            "One[^b] two[^a].\n\n"
            "[^a]: Note A.\n"
            "[^b]: Note B.\n"
        )

        assert [(note.key, note.number) for note in result.footnotes] == [("b", 1), ("a", 2)]
        assert [ref.number for ref in refs(result.content)] == [1, 2]
        assert result.diagnostics == ()

    def test_footnotes_record_division(self, resolve):
        """Should record the division id on each footnote."""
        result = resolve("x[^1]\n\n[^1]: y")

        assert result.footnotes[0].division_id == "chapter-1"

    def test_repeated_reference_shares_number(self, resolve):
        """Should give every reference to one key the same number."""
        result = resolve("a[^x] b[^y] c[^x]\n\n[^x]: X.\n\n[^y]: Y.")

        found = refs(result.content)
        assert [(r.key, r.number, r.occurrence) for r in found] == [
            ("x", 1, 1),
            ("y", 2, 1),
            ("x", 1, 2),
        ]
        assert len(result.footnotes) == 2

    def test_references_in_nested_blocks(self, resolve):
        """Should number references inside quotes and lists in order."""
        result = resolve("> q[^q]\n\n- item[^i]\n\n[^i]: I.\n\n[^q]: Q.")

        assert [note.key for note in result.footnotes] == ["q", "i"]


class TestDiagnostics:
    """Test recoverable footnote problems."""

    def test_unresolved_reference(self, resolve):
        """Should leave an unlinked marker and report it."""
        result = resolve("Missing[^nope].")

        (ref,) = refs(result.content)
        assert not ref.resolved
        assert ref.key == "nope"
        assert [d.code for d in result.diagnostics] == ["unresolved-footnote"]
        assert result.diagnostics[0].division == "chapter-1"

    def test_orphan_definition(self, resolve):
        """Should drop an unreferenced definition and report it."""
        result = resolve("No refs.\n\n[^lonely]: Unused.")

        assert result.footnotes == ()
        assert [d.code for d in result.diagnostics] == ["orphan-footnote"]

    def test_duplicate_definition_keeps_first(self, resolve):
        """Should keep the first definition of a key."""
        result = resolve("x[^d]\n\n[^d]: First.\n\n[^d]: Second.")

        assert result.footnotes[0].body[0].inlines[0].content == "First."
        assert [d.code for d in result.diagnostics] == ["duplicate-footnote"]

    def test_nested_reference(self, resolve):
        """Should not link a reference inside a footnote body."""
        result = resolve("x[^a] y[^b]\n\n[^a]: See[^b].\n\n[^b]: B.")

        assert [d.code for d in result.diagnostics] == ["nested-footnote"]
        (inner,) = refs(result.footnotes[0].body)
        assert not inner.resolved
