"""Division model builder.

Turns parsed division sources into an immutable, fully numbered Book:
attributes are merged with overrides, labels and footnote numbers are
assigned in one pass, matter ordering is enforced and chapters are nested
under their parts.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping, Optional, Sequence

from ..config import DIVISION_TABLE, BuildOptions
from ..domain import (
    Book,
    BookMetadata,
    Diagnostic,
    Division,
    DivisionAttributes,
    DivisionKind,
    Heading,
    Matter,
    TocFormat,
)
from ..domain.blocks import BlockNode, Inlines
from ..domain.division import ATTRIBUTE_NAMES
from ..domain.numbering import format_number
from ..errors import ConflictingOverrideError, MatterOrderError
from .block_parser import BlockParser, ParsedDocument
from .footnote_service import FootnoteResolver
from .toc_service import TocService

logger = logging.getLogger(__name__)

DIVISION_KEYS = frozenset({"id", "title", "label", "authors", "toc_format"})
OVERRIDE_KEYS = DIVISION_KEYS | ATTRIBUTE_NAMES


@dataclass(frozen=True)
class DivisionSource:
    """One division as read from the manuscript, before model building."""

    kind: Any
    overrides: Mapping[str, Any] = field(default_factory=dict)
    parsed: ParsedDocument = field(default_factory=lambda: ParsedDocument(()))


@dataclass(frozen=True)
class LabelCounters:
    """Counters for the labelled kinds, threaded through a single build."""

    chapter: int = 0
    part: int = 0
    appendix: int = 0

    def advance(self, kind: DivisionKind) -> tuple["LabelCounters", Optional[int]]:
        """Count one division of ``kind``.

        Returns:
            The updated counters and the division's number, or None for
            kinds that are not numbered.
        """
        if kind is DivisionKind.CHAPTER:
            counters = replace(self, chapter=self.chapter + 1)
            return counters, counters.chapter
        if kind is DivisionKind.PART:
            counters = replace(self, part=self.part + 1)
            return counters, counters.part
        if kind is DivisionKind.APPENDIX:
            counters = replace(self, appendix=self.appendix + 1)
            return counters, counters.appendix
        return self, None


class DivisionModelBuilder:
    """Builds a Book from an ordered sequence of division sources."""

    def __init__(
        self,
        footnote_resolver: Optional[FootnoteResolver] = None,
        toc_service: Optional[TocService] = None,
        title_parser: Optional[Callable[[str], Inlines]] = None,
    ) -> None:
        """Initialize the builder with its collaborators.

        Args:
            footnote_resolver: Numbers footnotes of each division.
            toc_service: Assembles the book's table of contents.
            title_parser: Parses title overrides into inline nodes.
        """
        self._footnote_resolver = footnote_resolver or FootnoteResolver()
        self._toc_service = toc_service or TocService()
        self._title_parser = title_parser or BlockParser().parse_inline

    def build(
        self,
        sources: Sequence[DivisionSource],
        metadata: BookMetadata,
        options: Optional[BuildOptions] = None,
    ) -> Book:
        """Build the Book.

        Args:
            sources: Division sources in document order.
            metadata: Bibliographic metadata of the book.
            options: Label formats; defaults to BuildOptions().

        Returns:
            The immutable Book with its TOC and collected diagnostics.

        Raises:
            UnknownDivisionKindError: If a source names an unknown kind.
            ConflictingOverrideError: If an override is unknown or invalid.
            MatterOrderError: If matter decreases along the sequence.
        """
        options = options or BuildOptions()
        counters = LabelCounters()
        divisions: list[Division] = []
        diagnostics: list[Diagnostic] = []
        seen_ids: dict[DivisionKind, int] = {}
        previous: Optional[Division] = None

        for source in sources:
            kind = DivisionKind.parse(source.kind)
            overrides = dict(source.overrides)
            _check_override_keys(kind, overrides)
            attributes = _resolve_attributes(kind, overrides)

            if previous is not None and attributes.matter < previous.matter:
                raise MatterOrderError(
                    f"{kind.display_name} ({attributes.matter.tag}) cannot follow "
                    f"{previous.kind.display_name} ({previous.matter.tag})"
                )

            counters, number = counters.advance(kind)
            seen_ids[kind] = seen_ids.get(kind, 0) + 1
            division_id = self._division_id(kind, seen_ids[kind], overrides, divisions)

            blocks = source.parsed.blocks
            if "title" in overrides:
                title = self._parse_title(overrides["title"])
            else:
                title, blocks = _take_initial_title(blocks)
                if kind is DivisionKind.CHAPTER and (
                    options.suppress_chapter_titles or options.only_number_chapters
                ):
                    title = ()

            parsed = replace(source.parsed, blocks=blocks)
            resolved = self._footnote_resolver.resolve(parsed, division_id)
            diagnostics.extend(
                replace(d, division=d.division or division_id) for d in parsed.diagnostics
            )
            diagnostics.extend(resolved.diagnostics)

            division = Division(
                id=division_id,
                kind=kind,
                attributes=attributes,
                content=resolved.content,
                toc_format=_toc_format(overrides, attributes),
                title=title,
                label=self._label(kind, number, overrides, options),
                number=number,
                authors=_authors(overrides),
                footnotes=resolved.footnotes,
            )
            divisions.append(division)
            previous = division
            logger.debug("Built division %s (%s)", division.id, division.display_title)

        diagnostics.extend(_duplicate_labels(divisions))
        divisions = _nest_chapters(divisions)

        book = Book(
            metadata=metadata,
            divisions=tuple(divisions),
            toc=self._toc_service.assemble(divisions),
            diagnostics=tuple(diagnostics),
        )
        logger.info("Built book %r with %d divisions", metadata.title, len(divisions))
        return book

    def _parse_title(self, value: Any) -> Inlines:
        if value is None:
            return ()
        if isinstance(value, tuple):
            return value
        if not isinstance(value, str):
            raise ConflictingOverrideError(f"Override 'title' must be a string, got {value!r}")
        return self._title_parser(value)

    def _division_id(
        self,
        kind: DivisionKind,
        ordinal: int,
        overrides: Mapping[str, Any],
        divisions: Sequence[Division],
    ) -> str:
        if "id" in overrides:
            division_id = overrides["id"]
            if not isinstance(division_id, str) or not division_id.strip():
                raise ConflictingOverrideError(f"Override 'id' must be a non-empty string, got {division_id!r}")
        else:
            division_id = kind.value if ordinal == 1 and kind not in _NUMBERED else f"{kind.value}-{ordinal}"
        if any(d.id == division_id for d in divisions):
            raise ConflictingOverrideError(f"Division id {division_id!r} is used more than once")
        return division_id

    def _label(
        self,
        kind: DivisionKind,
        number: Optional[int],
        overrides: Mapping[str, Any],
        options: BuildOptions,
    ) -> Optional[str]:
        if "label" in overrides:
            label = overrides["label"]
            if label is not None and not isinstance(label, str):
                raise ConflictingOverrideError(f"Override 'label' must be a string, got {label!r}")
            return label
        if number is None:
            return None
        if kind is DivisionKind.CHAPTER:
            if options.suppress_chapter_labels:
                return None
            chapter_number = format_number(number, options.chapter_number_format)
            if options.only_number_chapters:
                return chapter_number
            return f"{options.chapter_label_word} {chapter_number}"
        if kind is DivisionKind.APPENDIX:
            return f"{options.appendix_label_word} {format_number(number, options.appendix_number_format)}"
        if options.label_parts:
            return f"{options.part_label_word} {format_number(number, options.part_number_format)}"
        return None


_NUMBERED = frozenset({DivisionKind.CHAPTER, DivisionKind.PART, DivisionKind.APPENDIX})


def _check_override_keys(kind: DivisionKind, overrides: Mapping[str, Any]) -> None:
    unknown = sorted(set(overrides) - OVERRIDE_KEYS)
    if unknown:
        raise ConflictingOverrideError(
            f"Unknown override(s) for {kind.display_name}: {', '.join(unknown)}"
        )


def _resolve_attributes(kind: DivisionKind, overrides: Mapping[str, Any]) -> DivisionAttributes:
    """Merge a kind's table attributes with division overrides (override wins)."""
    base = DIVISION_TABLE[kind]
    changes = {
        key: _coerce_attribute(key, value)
        for key, value in overrides.items()
        if key in ATTRIBUTE_NAMES
    }
    if "matter" in changes and changes["matter"] is not base.matter:
        raise ConflictingOverrideError(
            f"{kind.display_name} belongs to {base.matter.tag}, "
            f"not {changes['matter'].tag}"
        )
    return replace(base, **changes)


def _coerce_attribute(key: str, value: Any) -> Any:
    try:
        if key == "matter":
            return Matter.parse(value)
        if key == "default_toc_format":
            return TocFormat.parse(value)
    except ValueError as e:
        raise ConflictingOverrideError(f"Invalid override '{key}': {e}") from e

    if key == "header_level":
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 6:
            raise ConflictingOverrideError(f"Override 'header_level' must be 1-6, got {value!r}")
        return value
    if key == "toc_level":
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            raise ConflictingOverrideError(f"Override 'toc_level' must be a non-negative integer, got {value!r}")
        return value
    if key == "include_stylesheet":
        if not isinstance(value, bool):
            raise ConflictingOverrideError(f"Override 'include_stylesheet' must be true or false, got {value!r}")
        return value
    if key in ("header_classes", "section_classes", "section_wrapper") and value is None:
        return None
    if not isinstance(value, str):
        raise ConflictingOverrideError(f"Override '{key}' must be a string, got {value!r}")
    return value


def _toc_format(overrides: Mapping[str, Any], attributes: DivisionAttributes) -> TocFormat:
    if "toc_format" not in overrides:
        return attributes.default_toc_format
    try:
        return TocFormat.parse(overrides["toc_format"])
    except ValueError as e:
        raise ConflictingOverrideError(f"Invalid override 'toc_format': {e}") from e


def _authors(overrides: Mapping[str, Any]) -> tuple[str, ...]:
    authors = overrides.get("authors")
    if authors is None:
        return ()
    if isinstance(authors, str):
        return (authors,)
    if isinstance(authors, (list, tuple)) and all(isinstance(a, str) for a in authors):
        return tuple(authors)
    raise ConflictingOverrideError(f"Override 'authors' must be a list of names, got {authors!r}")


def _take_initial_title(
    blocks: tuple[BlockNode, ...],
) -> tuple[Inlines, tuple[BlockNode, ...]]:
    """Use a leading level-1 heading as the title, removing it from the content."""
    if blocks and isinstance(blocks[0], Heading) and blocks[0].level == 1:
        return blocks[0].inlines, blocks[1:]
    return (), blocks


def _duplicate_labels(divisions: Sequence[Division]) -> list[Diagnostic]:
    seen: dict[str, str] = {}
    diagnostics: list[Diagnostic] = []
    for division in divisions:
        if division.label is None:
            continue
        if division.label in seen:
            diagnostic = Diagnostic(
                "duplicate-label",
                f"Label {division.label!r} is also used by {seen[division.label]}",
                division.id,
            )
            logger.warning("%s", diagnostic)
            diagnostics.append(diagnostic)
        else:
            seen[division.label] = division.id
    return diagnostics


def _nest_chapters(divisions: list[Division]) -> list[Division]:
    """Record the chapters that directly follow a part as its children."""
    children: dict[str, list[str]] = {}
    current_part: Optional[str] = None
    for division in divisions:
        if division.kind is DivisionKind.PART:
            current_part = division.id
            children[current_part] = []
        elif division.kind is DivisionKind.CHAPTER and current_part is not None:
            children[current_part].append(division.id)
        else:
            current_part = None

    return [
        replace(division, child_ids=tuple(children[division.id]))
        if division.id in children
        else division
        for division in divisions
    ]
