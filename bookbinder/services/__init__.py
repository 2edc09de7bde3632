"""Service layer for book compilation.

Provides the parsing, model building and rendering services, and the
services that load manuscripts, orchestrate builds and write output.
"""

from .interfaces import IBookRenderer
from .inline_parser import InlineParser
from .typography import TypographyNormalizer
from .block_parser import BlockParser, FootnoteDefinition, ParsedDocument
from .footnote_service import FootnoteResolver, ResolvedContent
from .toc_service import TocService
from .division_builder import DivisionModelBuilder, DivisionSource
from .latex_renderer import LatexDocument, render_latex
from .epub_renderer import EpubPackage, ManifestItem, render_epub
from .manuscript_service import Manuscript, ManuscriptDivision, ManuscriptService
from .compile_service import BookCache, BuildResult, CompileService
from .output_service import OutputService

__all__ = [
    "IBookRenderer",
    "InlineParser",
    "TypographyNormalizer",
    "BlockParser",
    "FootnoteDefinition",
    "ParsedDocument",
    "FootnoteResolver",
    "ResolvedContent",
    "TocService",
    "DivisionModelBuilder",
    "DivisionSource",
    "LatexDocument",
    "render_latex",
    "EpubPackage",
    "ManifestItem",
    "render_epub",
    "Manuscript",
    "ManuscriptDivision",
    "ManuscriptService",
    "BookCache",
    "BuildResult",
    "CompileService",
    "OutputService",
]
