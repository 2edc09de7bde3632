"""Python-Markdown extensions for the manuscript syntax.

The stock processors cover paragraphs, headings, lists, quotes, tables,
links and emphasis. This module adds the pieces they lack: fenced code
kept as literal elements (with ``{=format}`` raw blocks), footnote
definitions collected for the footnote resolver instead of rendered,
footnote references, raw-attribute code spans, styling spans and escaped
whitespace.
"""

import re
import xml.etree.ElementTree as etree

import markdown
from markdown.blockprocessors import BlockProcessor
from markdown.extensions import Extension
from markdown.extensions.tables import TableExtension
from markdown.inlinepatterns import InlineProcessor
from markdown.preprocessors import Preprocessor
from markdown.util import AtomicString

# Element tags produced by the extension and read back by the parsers
FOOTNOTE_TAG = "footnote"
FOOTNOTE_REF_TAG = "footnote-ref"
RAW_BLOCK_TAG = "raw-block"
RAW_SPAN_TAG = "raw-span"

NBSP = "\u00a0"

STYLE_SPAN_CLASSES = ("smallcaps", "sans", "superscript", "subscript")

FOOTNOTE_REF_RE = r"\[\^([^\]\s]+)\]"
RAW_ATTRIBUTE_RE = r"(?<!\\)(`+)(.+?)(?<!`)\1(?!`)\{=([A-Za-z][A-Za-z0-9_-]*)\}"
ESCAPED_WHITESPACE_RE = r"\\([ \n])"
STYLE_SPAN_RE = r'<span\s+class="({})"\s*>(.*?)</span>'.format("|".join(STYLE_SPAN_CLASSES))


class FencedBlockPreprocessor(Preprocessor):
    """Stash fenced code blocks before block parsing.

    Each fence becomes a ``pre > code`` element, or a ``raw-block`` element
    when its info string is a raw attribute such as ``{=latex}``. The fence
    is replaced by an HTML stash placeholder on a block of its own. A fence
    that is never closed runs to the end of the text.
    """

    FENCE_RE = re.compile(
        r"^(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>[^`\n]*?)[ \t]*\n"
        r"(?P<code>.*?)(?:^(?P<close>(?P=fence))[ \t]*$|\Z)",
        re.MULTILINE | re.DOTALL,
    )
    RAW_INFO_RE = re.compile(r"^\{=([A-Za-z][A-Za-z0-9_-]*)\}$")

    def run(self, lines):
        text = "\n".join(lines)
        while True:
            m = self.FENCE_RE.search(text)
            if m is None:
                break
            code = m.group("code")
            # An unclosed fence swallows the blank lines that end the text
            code = code[:-1] if m.group("close") and code.endswith("\n") else code.rstrip("\n")
            placeholder = self.md.htmlStash.store(self._element(m.group("info"), code))
            text = f"{text[:m.start()]}\n\n{placeholder}\n\n{text[m.end():]}"
        return text.split("\n")

    def _element(self, info: str, code: str) -> etree.Element:
        raw = self.RAW_INFO_RE.match(info)
        if raw:
            element = etree.Element(RAW_BLOCK_TAG, {"format": raw.group(1).lower()})
            element.text = AtomicString(code)
            return element

        pre = etree.Element("pre")
        code_element = etree.SubElement(pre, "code")
        language = info.split()[0].strip("{}.") if info.strip() else ""
        if language:
            code_element.set("class", f"language-{language}")
        code_element.text = AtomicString(code)
        return pre


class FootnoteDefinitionProcessor(BlockProcessor):
    """Collect ``[^key]: body`` definitions as ``footnote`` elements.

    Blocks indented by a tab stop that follow a definition continue its
    body. The element keeps the parsed body so callers can lift it out of
    the document tree.
    """

    RE = re.compile(r"^[ ]{0,3}\[\^([^\]\s]+)\]:[ \t]*(.*)$", re.MULTILINE)

    def test(self, parent, block):
        return bool(self.RE.search(block))

    def run(self, parent, blocks):
        block = blocks.pop(0)
        m = self.RE.search(block)

        before = block[:m.start()].rstrip("\n")
        if before:
            self.parser.parseBlocks(parent, [before])

        rest = block[m.end():]
        following = self.RE.search(rest)
        if following:
            blocks.insert(0, rest[following.start():])
            rest = rest[:following.start()]

        lines = [m.group(2)] + [_dedent(line, self.tab_length) for line in rest.split("\n")[1:]]
        paragraphs = ["\n".join(lines).strip("\n")]

        while blocks and blocks[0].startswith(" " * self.tab_length):
            body, remainder = self.detab(blocks.pop(0))
            paragraphs.append(body)
            if remainder:
                blocks.insert(0, remainder)
                break

        definition = etree.SubElement(parent, FOOTNOTE_TAG, {"key": m.group(1)})
        self.parser.parseChunk(definition, "\n\n".join(paragraphs))


def _dedent(line: str, width: int) -> str:
    if line.startswith(" " * width):
        return line[width:]
    return line


class FootnoteReferenceProcessor(InlineProcessor):
    """``[^key]`` becomes an empty ``footnote-ref`` element."""

    def handleMatch(self, m, data):
        return etree.Element(FOOTNOTE_REF_TAG, {"key": m.group(1)}), m.start(0), m.end(0)


class RawAttributeProcessor(InlineProcessor):
    """A code span followed by ``{=format}`` becomes a ``raw-span`` element."""

    def handleMatch(self, m, data):
        element = etree.Element(RAW_SPAN_TAG, {"format": m.group(3).lower()})
        element.text = AtomicString(m.group(2).strip())
        return element, m.start(0), m.end(0)


class EscapedWhitespaceProcessor(InlineProcessor):
    """A backslash before a space is a non-breaking space; before a newline, a hard break."""

    def handleMatch(self, m, data):
        if m.group(1) == " ":
            return NBSP, m.start(0), m.end(0)
        return etree.Element("br"), m.start(0), m.end(0)


class StyleSpanProcessor(InlineProcessor):
    """Keep ``<span class="...">`` styling spans as elements instead of raw HTML."""

    def handleMatch(self, m, data):
        element = etree.Element("span", {"class": m.group(1)})
        element.text = m.group(2)
        return element, m.start(0), m.end(0)


class ManuscriptExtension(Extension):
    """Register the manuscript processors on a Markdown instance."""

    def extendMarkdown(self, md):
        md.preprocessors.register(FencedBlockPreprocessor(md), "manuscript_fence", 25)
        md.parser.blockprocessors.register(
            FootnoteDefinitionProcessor(md.parser), "footnote_definition", 17
        )
        md.inlinePatterns.register(RawAttributeProcessor(RAW_ATTRIBUTE_RE, md), "raw_attribute", 195)
        md.inlinePatterns.register(
            EscapedWhitespaceProcessor(ESCAPED_WHITESPACE_RE, md), "escaped_whitespace", 185
        )
        md.inlinePatterns.register(
            FootnoteReferenceProcessor(FOOTNOTE_REF_RE, md), "footnote_reference", 175
        )
        md.inlinePatterns.register(StyleSpanProcessor(STYLE_SPAN_RE, md), "style_span", 95)
        # The tree is read back directly, so whitespace prettifying is unwanted
        md.treeprocessors.deregister("prettify")


def create_markdown() -> markdown.Markdown:
    """Create a Markdown processor configured for manuscripts.

    Returns:
        Configured Markdown instance. Instances are not thread-safe.
    """
    return markdown.Markdown(
        extensions=[
            TableExtension(),
            ManuscriptExtension(),
            "pymdownx.caret",
            "pymdownx.tilde",
        ],
        extension_configs={
            "pymdownx.caret": {"insert": False, "superscript": True},
            "pymdownx.tilde": {"delete": True, "subscript": True},
        },
        tab_length=4,
        lazy_ol=False,
    )


def build_tree(md: markdown.Markdown, text: str) -> tuple[etree.Element, int]:
    """Run the preprocessors, block parser and tree processors over ``text``.

    Serialization and postprocessing are skipped. Stashed raw HTML and
    fenced code remain as placeholders resolvable through ``md.htmlStash``.

    Returns:
        The ``div`` root whose children are the document's blocks, and the
        number of stash entries made by the preprocessors. Those entries
        are block-level; later ones come from inline HTML and entities.
    """
    md.reset()
    lines = text.split("\n")
    for preprocessor in md.preprocessors:
        lines = preprocessor.run(lines)
    block_entries = len(md.htmlStash.rawHtmlBlocks)
    root = md.parser.parseDocument(lines).getroot()
    return run_treeprocessors(md, root), block_entries


def run_treeprocessors(md: markdown.Markdown, root: etree.Element) -> etree.Element:
    """Apply the inline and unescape tree processors to ``root``."""
    for treeprocessor in md.treeprocessors:
        new_root = treeprocessor.run(root)
        if new_root is not None:
            root = new_root
    return root
