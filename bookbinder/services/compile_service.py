"""Compilation service.

Runs the manuscript through the pipeline (parse, typography, footnotes,
model build) and hands the finished Book to the backend renderers, which
run side by side since they only read it.
"""

import functools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Sequence

from ..domain import Book, Diagnostic, DivisionKind
from ..errors import RenderError, UnknownDivisionKindError
from .block_parser import BlockParser
from .copyright_service import CopyrightPageService
from .division_builder import DivisionModelBuilder, DivisionSource
from .epub_renderer import render_epub
from .interfaces import IBookRenderer
from .latex_renderer import render_latex
from .manuscript_service import Manuscript, ManuscriptDivision

logger = logging.getLogger(__name__)

FORMATS = ("latex", "epub")


@dataclass
class BuildResult:
    """Outcome of one build.

    ``artifacts`` holds each successful backend's output by format name;
    ``failures`` holds the error of each backend that aborted, whatever its
    type, so one backend's crash never discards another's output.
    """

    book: Book
    artifacts: dict[str, object] = field(default_factory=dict)
    failures: dict[str, Exception] = field(default_factory=dict)
    diagnostics: tuple[Diagnostic, ...] = ()

    @property
    def ok(self) -> bool:
        """True if every requested backend produced its artifact."""
        return not self.failures


class BookCache:
    """Thread-safe cache of compiled books keyed by manuscript fingerprint.

    Concurrent requests for the same key share a single computation: the
    first caller computes, the others wait on its Future and receive the
    same Book or the same exception. Failed computations are not cached.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Future] = {}

    def get_or_compute(self, key: str, compute: Callable[[], Book]) -> Book:
        """Get the book cached under ``key``, computing it at most once.

        Args:
            key: Manuscript fingerprint.
            compute: Called to build the book when no entry exists.

        Returns:
            The cached or freshly computed Book.

        Raises:
            Exception: Whatever ``compute`` raised, for every waiting caller.
        """
        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._entries[key] = future

        if not owner:
            logger.debug("Cache hit for %s", key[:12])
            return future.result()

        try:
            book = compute()
        except BaseException as e:
            with self._lock:
                del self._entries[key]
            future.set_exception(e)
            raise
        future.set_result(book)
        return book

    def __contains__(self, key: str) -> bool:
        with self._lock:
            future = self._entries.get(key)
        return future is not None and future.done() and future.exception() is None

    def clear(self) -> None:
        """Drop all cached books."""
        with self._lock:
            self._entries.clear()


class CompileService:
    """Service that compiles manuscripts and renders them."""

    def __init__(
        self,
        parser: Optional[BlockParser] = None,
        builder: Optional[DivisionModelBuilder] = None,
        cache: Optional[BookCache] = None,
        renderers: Optional[Mapping[str, IBookRenderer]] = None,
        copyright_service: Optional[CopyrightPageService] = None,
    ) -> None:
        """Initialize the compile service.

        Args:
            parser: Block parser for division texts. By default one is
                created per manuscript with its ``max_nesting_depth``.
            builder: Division model builder.
            cache: Optional book cache shared between builds.
            renderers: Backend renderers by format name. By default the
                LaTeX and EPUB backends are used, LaTeX with the
                manuscript's preamble options.
            copyright_service: Writes the text of copyright pages left
                empty in the manuscript.
        """
        self._parser = parser
        self._builder = builder or DivisionModelBuilder()
        self._cache = cache
        self._copyright_service = copyright_service or CopyrightPageService()
        self._renderers: Optional[dict[str, IBookRenderer]] = dict(renderers) if renderers else None

    def compile(self, manuscript: Manuscript) -> Book:
        """Compile a manuscript into a Book.

        Args:
            manuscript: The loaded manuscript.

        Returns:
            The immutable Book.

        Raises:
            ModelError: If a model invariant is violated.
        """
        if self._cache is None:
            return self._compile(manuscript)
        return self._cache.get_or_compute(
            manuscript.fingerprint(), lambda: self._compile(manuscript)
        )

    def _compile(self, manuscript: Manuscript) -> Book:
        parser = self._parser or BlockParser(max_depth=manuscript.options.max_nesting_depth)
        sources = [
            DivisionSource(
                kind=division.kind,
                overrides=division.overrides,
                parsed=parser.parse(self._division_text(division, manuscript)),
            )
            for division in manuscript.divisions
        ]
        return self._builder.build(sources, manuscript.metadata, manuscript.options)

    def _renderers_for(self, manuscript: Manuscript) -> dict[str, IBookRenderer]:
        if self._renderers is not None:
            return self._renderers
        return {
            "latex": functools.partial(render_latex, options=manuscript.latex_options),
            "epub": render_epub,
        }

    def _division_text(self, division: ManuscriptDivision, manuscript: Manuscript) -> str:
        if not division.text.strip() and _is_copyright_page(division.kind):
            return self._copyright_service.generate(manuscript.metadata)
        return division.text

    def build(
        self,
        manuscript: Manuscript,
        formats: Sequence[str] = FORMATS,
    ) -> BuildResult:
        """Compile a manuscript and render it with the selected backends.

        Args:
            manuscript: The loaded manuscript.
            formats: Backend names to run.

        Returns:
            BuildResult with artifacts, per-backend failures and diagnostics.

        Raises:
            ValueError: If a format has no renderer.
            ModelError: If compilation fails; nothing is rendered.
        """
        renderers = self._renderers_for(manuscript)
        unknown = [name for name in formats if name not in renderers]
        if unknown:
            raise ValueError(f"Unknown output format(s): {', '.join(unknown)}")

        book = self.compile(manuscript)
        result = BuildResult(book=book, diagnostics=book.diagnostics)
        if not formats:
            return result

        with ThreadPoolExecutor(max_workers=len(formats)) as executor:
            futures = {name: executor.submit(renderers[name], book) for name in formats}

        for name, future in futures.items():
            try:
                result.artifacts[name] = future.result()
                logger.info("Rendered %s", name)
            except RenderError as e:
                logger.error("%s backend failed: %s", name, e)
                result.failures[name] = e
            except Exception as e:
                logger.exception("%s backend raised an unexpected error", name)
                result.failures[name] = e
        return result


def _is_copyright_page(kind: str) -> bool:
    try:
        return DivisionKind.parse(kind) is DivisionKind.COPYRIGHTPAGE
    except UnknownDivisionKindError:
        # reported by the model builder
        return False
