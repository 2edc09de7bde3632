"""Output service for writing rendered artifacts to disk."""

import logging
from pathlib import Path

from .epub_renderer import EpubPackage
from .latex_renderer import LatexDocument

logger = logging.getLogger(__name__)


class OutputService:
    """Service for writing rendered books.

    File system errors propagate to the caller unchanged.
    """

    def write_latex(self, document: LatexDocument, directory: Path) -> Path:
        """Write a LaTeX document into a directory.

        Args:
            document: The rendered LaTeX source.
            directory: Output directory, created if needed.

        Returns:
            Path to the written ``.tex`` file.
        """
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / document.filename
        path.write_text(document.source, encoding="utf-8")
        logger.info("Wrote %s", path)
        return path

    def write_epub_tree(self, package: EpubPackage, directory: Path) -> list[Path]:
        """Write an EPUB package as an unpacked directory tree.

        Args:
            package: The rendered EPUB files.
            directory: Root of the tree, created if needed.

        Returns:
            Paths of the written files, ``mimetype`` first.
        """
        written: list[Path] = []
        for name, content in package.files.items():
            path = directory / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            written.append(path)
        logger.info("Wrote %d EPUB files to %s", len(written), directory)
        return written
