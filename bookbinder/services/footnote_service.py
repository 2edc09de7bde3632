"""Footnote resolution service.

Links footnote reference sites to their definitions and numbers them by
first reference in document order.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from ..domain.blocks import BlockNode, Inlines, iter_inline_sequences, map_block_inlines
from ..domain.book import Diagnostic
from ..domain.division import Footnote
from ..domain.inline import FootnoteRef, InlineNode, map_inline, walk
from .block_parser import FootnoteDefinition, ParsedDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedContent:
    """A division's content with numbered references and ordered footnotes."""

    content: tuple[BlockNode, ...]
    footnotes: tuple[Footnote, ...]
    diagnostics: tuple[Diagnostic, ...] = ()


class FootnoteResolver:
    """Service for resolving footnotes within one division.

    Numbering restarts in every division. A key referenced more than once
    keeps the number of its first reference; later sites carry a higher
    ``occurrence``.
    """

    def resolve(self, parsed: ParsedDocument, division_id: str = "") -> ResolvedContent:
        """Resolve the footnotes of one parsed division.

        Unresolved references stay in the content as unlinked markers and
        unreferenced definitions are dropped; both are reported as
        diagnostics.

        Args:
            parsed: Output of the block parser for the division.
            division_id: Id recorded on footnotes and diagnostics.

        Returns:
            ResolvedContent with numbered content and footnotes.
        """
        diagnostics: list[Diagnostic] = []
        definitions = self._collect_definitions(parsed.definitions, division_id, diagnostics)

        numbers: dict[str, int] = {}
        occurrences: dict[str, int] = {}

        def link(node: InlineNode) -> InlineNode:
            if not isinstance(node, FootnoteRef):
                return node
            if node.key not in definitions:
                diagnostics.append(
                    Diagnostic(
                        "unresolved-footnote",
                        f"Footnote reference [^{node.key}] has no definition",
                        division_id or None,
                    )
                )
                return FootnoteRef(node.key)
            number = numbers.setdefault(node.key, len(numbers) + 1)
            occurrences[node.key] = occurrences.get(node.key, 0) + 1
            return FootnoteRef(node.key, number, occurrences[node.key])

        def link_sequence(inlines: Inlines) -> Inlines:
            return map_inline(inlines, link)

        content = map_block_inlines(parsed.blocks, link_sequence)

        footnotes: list[Footnote] = []
        for key, number in sorted(numbers.items(), key=lambda item: item[1]):
            body = definitions[key]
            for nested in _references(body):
                diagnostics.append(
                    Diagnostic(
                        "nested-footnote",
                        f"Footnote reference [^{nested.key}] inside footnote [^{key}] is not linked",
                        division_id or None,
                    )
                )
            footnotes.append(Footnote(key, number, body, division_id))

        for key in definitions:
            if key not in numbers:
                diagnostics.append(
                    Diagnostic(
                        "orphan-footnote",
                        f"Footnote [^{key}] is defined but never referenced",
                        division_id or None,
                    )
                )

        for diagnostic in diagnostics:
            logger.warning("%s", diagnostic)

        return ResolvedContent(content, tuple(footnotes), tuple(diagnostics))

    def _collect_definitions(
        self,
        definitions: Iterable[FootnoteDefinition],
        division_id: str,
        diagnostics: list[Diagnostic],
    ) -> dict[str, tuple[BlockNode, ...]]:
        """Index definitions by key; the first definition of a key wins."""
        result: dict[str, tuple[BlockNode, ...]] = {}
        for definition in definitions:
            if definition.key in result:
                diagnostics.append(
                    Diagnostic(
                        "duplicate-footnote",
                        f"Footnote [^{definition.key}] is defined more than once",
                        division_id or None,
                    )
                )
                continue
            result[definition.key] = definition.body
        return result


def _references(blocks: tuple[BlockNode, ...]) -> list[FootnoteRef]:
    return [
        node
        for inlines in iter_inline_sequences(blocks)
        for node in walk(inlines)
        if isinstance(node, FootnoteRef)
    ]
