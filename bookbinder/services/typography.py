"""Typography normalization over inline text runs.

Straight quotes become directional quotes, hyphen runs become dashes, three
periods become an ellipsis, and every Text leaf is annotated with the
characters each backend has to escape. Code and raw markup are never
touched. Running the pass twice gives the same result as running it once.
"""

import re
import unicodedata
from dataclasses import replace
from typing import Iterable, Mapping, Optional

from ..domain.blocks import BlockNode, Inlines, map_block_inlines
from ..domain.inline import (
    Code,
    Image,
    InlineNode,
    LineBreak,
    Text,
    map_inline,
    walk,
)
from ..errors import UnescapableCharacterError

LEFT_SINGLE = "‘"
RIGHT_SINGLE = "’"
LEFT_DOUBLE = "“"
RIGHT_DOUBLE = "”"

# Escape tables. A flagged character missing from a table cannot be rendered.
LATEX_ESCAPES: Mapping[str, str] = {
    "…": r"\ldots{}",
    "–": "--",
    "—": "---",
    "\u00a0": "~",
    "&": r"\&",
    "%": r"\%",
    "$": r"\$",
    "#": r"\#",
    "_": r"\_",
    "{": r"\{",
    "}": r"\}",
    "[": "{[}",
    "]": "{]}",
    "~": r"\textasciitilde{}",
    "^": r"\textasciicircum{}",
    "\\": r"\textbackslash{}",
}

HTML_ESCAPES: Mapping[str, str] = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
}

DEFAULT_ELISIONS = ("tis", "twas", "em", "cause", "til", "n")

# Characters after which a quote opens rather than closes
OPENING_CONTEXT = frozenset("([{<‘“—–-/")
DASHES = frozenset("—–-")

DASH_EM = re.compile(r"(?<!-)---(?!-)")
DASH_EN = re.compile(r"(?<!-)--(?!-)")
ELLIPSIS = re.compile(r"(?<!\.)\.\.\.(?!\.)")
DECADE = re.compile(r"\d\d(?:s)?(?![\w])")


def _is_control(char: str) -> bool:
    return char != "\t" and unicodedata.category(char) == "Cc"


def apply_escapes(
    content: str, flagged: frozenset[str], table: Mapping[str, str], backend: str
) -> str:
    """Escape the flagged characters of a text run.

    Raises:
        UnescapableCharacterError: If a flagged character has no entry in
            the backend's table.
    """
    if not flagged:
        return content
    parts: list[str] = []
    for char in content:
        if char in flagged:
            try:
                parts.append(table[char])
            except KeyError:
                raise UnescapableCharacterError(
                    f"No {backend} escape for character U+{ord(char):04X}"
                ) from None
        else:
            parts.append(char)
    return "".join(parts)


class TypographyNormalizer:
    """Normalizes quotes, dashes and ellipses and annotates escapes.

    The apostrophe rule is a heuristic: a straight single quote between two
    letters or digits is an apostrophe, as is one at the start of a word
    that continues as an elided decade (``'70s``) or one of ``elisions``.
    """

    def __init__(
        self,
        elisions: Iterable[str] = DEFAULT_ELISIONS,
        open_after_closing_quote: bool = False,
    ) -> None:
        """Initialize the normalizer.

        Args:
            elisions: Words whose leading apostrophe stands for dropped
                letters (``'tis``, ``'em``).
            open_after_closing_quote: Treat a single quote right after a
                closing double quote as opening a quotation instead of as
                an apostrophe.
        """
        self._open_after_closing_quote = open_after_closing_quote
        words = sorted((w.lower() for w in elisions), key=len, reverse=True)
        self._elision_pattern = (
            re.compile(rf"(?:{'|'.join(map(re.escape, words))})(?![\w])", re.IGNORECASE)
            if words
            else None
        )

    def normalize_blocks(self, blocks: Iterable[BlockNode]) -> tuple[BlockNode, ...]:
        """Normalize every inline sequence of a block tree."""
        return map_block_inlines(blocks, self.normalize)

    def normalize(self, inlines: Inlines) -> Inlines:
        """Normalize one inline sequence (a paragraph, heading or cell).

        Quote context flows across node boundaries, so ``*"word"*`` and
        ``"word `code`"`` are quoted as a whole.
        """
        inlines = map_inline(inlines, _canonicalize_punctuation)
        contents = self._smart_quotes(inlines)
        replacements = iter(contents)

        def finish(node: InlineNode) -> InlineNode:
            if isinstance(node, Text):
                return annotate(Text(next(replacements)))
            return node

        return map_inline(inlines, finish)

    def normalize_text(self, text: str) -> str:
        """Normalize a plain string as a single text run."""
        if not text:
            return text
        (node,) = self.normalize((Text(text),))
        return node.content

    def _smart_quotes(self, inlines: Inlines) -> list[str]:
        """Compute the quote-normalized content of every Text leaf in order.

        Quotes are resolved left to right against the marks already chosen,
        so a quote right after an opening quote sees that opening mark.
        Double quotes also track whether one is open, which decides a
        quote that follows a dash.
        """
        stream: list[str] = []
        owners: list[Optional[int]] = []
        leaves: list[str] = []

        for node in walk(inlines):
            if isinstance(node, Text):
                index = len(leaves)
                leaves.append(node.content)
                stream.extend(node.content)
                owners.extend([index] * len(node.content))
            else:
                context = _context_of(node)
                stream.extend(context)
                owners.extend([None] * len(context))

        joined = "".join(stream)
        resolved = list(stream)
        double_open = False

        for position, char in enumerate(stream):
            if owners[position] is None or char not in "'\"":
                continue
            if char == '"':
                resolved[position] = self._double_quote(joined, resolved, position, double_open)
                double_open = resolved[position] == LEFT_DOUBLE
            else:
                resolved[position] = self._single_quote(joined, resolved, position)

        result: list[list[str]] = [[] for _ in leaves]
        for position, owner in enumerate(owners):
            if owner is not None:
                result[owner].append(resolved[position])
        return ["".join(chars) for chars in result]

    def _double_quote(self, stream: str, resolved: list[str], position: int, double_open: bool) -> str:
        previous = resolved[position - 1] if position > 0 else ""
        following = stream[position + 1] if position + 1 < len(stream) else ""

        if previous in DASHES:
            # Interrupted speech: "Wait--" closes, while --"Go" opens
            if double_open or not following or following.isspace():
                return RIGHT_DOUBLE
            return LEFT_DOUBLE
        return LEFT_DOUBLE if _opens(previous) else RIGHT_DOUBLE

    def _single_quote(self, stream: str, resolved: list[str], position: int) -> str:
        previous = resolved[position - 1] if position > 0 else ""
        following = stream[position + 1] if position + 1 < len(stream) else ""

        if previous.isalnum() and following.isalnum():
            return RIGHT_SINGLE
        if previous == RIGHT_DOUBLE:
            return LEFT_SINGLE if self._open_after_closing_quote else RIGHT_SINGLE
        if _opens(previous):
            if DECADE.match(stream, position + 1):
                return RIGHT_SINGLE
            if self._elision_pattern and self._elision_pattern.match(stream, position + 1):
                return RIGHT_SINGLE
            return LEFT_SINGLE
        return RIGHT_SINGLE


def _opens(previous: str) -> bool:
    """Whether a quote after ``previous`` is an opening quote."""
    return not previous or previous.isspace() or previous in OPENING_CONTEXT


def _context_of(node: InlineNode) -> str:
    """Characters a non-text node contributes to quote context."""
    if isinstance(node, Code):
        return node.literal
    if isinstance(node, Image):
        return node.alt or "x"
    if isinstance(node, LineBreak):
        return " "
    return ""


def _canonicalize_punctuation(node: InlineNode) -> InlineNode:
    if not isinstance(node, Text):
        return node
    content = DASH_EM.sub("—", node.content)
    content = DASH_EN.sub("–", content)
    content = ELLIPSIS.sub("…", content)
    if content == node.content:
        return node
    return replace(node, content=content)


def annotate(node: Text) -> Text:
    """Record which characters of a text run each backend must escape."""
    controls = {c for c in node.content if _is_control(c)}
    latex = frozenset(c for c in node.content if c in LATEX_ESCAPES) | controls
    html = frozenset(c for c in node.content if c in HTML_ESCAPES) | controls
    return Text(node.content, latex_escapes=latex, html_escapes=html)

