"""
Tests for the command-line interface.

Tests:
- build writes LaTeX and EPUB output
- toc prints the table of contents
- check lists divisions and diagnostics
- Exit codes for invalid manuscripts and failed backends
"""

import pytest
from click.testing import CliRunner
from rich.console import Console

from bookbinder.cli import COMPILE_SERVICE_KEY, CONSOLE_KEY, EXIT_BACKEND_FAILED, EXIT_MODEL_ERROR, cli
from bookbinder.errors import UnmappedNodeError
from bookbinder.services import CompileService
from bookbinder.services.latex_renderer import render_latex


@pytest.fixture
def runner():
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def obj():
    """Create a context object with a wide console."""
    return {CONSOLE_KEY: Console(width=200)}


@pytest.fixture
def book_dir(tmp_path):
    """Create a small manuscript."""
    (tmp_path / "one.md").write_text("# Wolves Attack!\n\nThey came[^a].\n\n[^a]: At night.\n")
    (tmp_path / "book.yaml").write_text(
        "title: Sample Book\n"
        "author: Ann\n"
        "divisions:\n"
        "  - titlepage\n"
        "  - kind: part\n"
        "    text: '# Beginnings'\n"
        "  - kind: chapter\n"
        "    file: one.md\n"
    )
    return tmp_path


class TestBuild:
    """Test the build command."""

    def test_build_all(self, runner, obj, book_dir, tmp_path):
        """Should write book.tex and the EPUB tree."""
        out = tmp_path / "out"

        result = runner.invoke(cli, ["build", str(book_dir), "-o", str(out)], obj=obj)

        assert result.exit_code == 0, result.output
        assert (out / "book.tex").read_text().startswith("\\documentclass{book}")
        assert (out / "epub" / "mimetype").read_text() == "application/epub+zip"
        assert (out / "epub" / "OEBPS" / "chapter-1.xhtml").exists()
        assert "Wrote" in result.output

    def test_build_latex_only(self, runner, obj, book_dir, tmp_path):
        """Should write only the selected backend's output."""
        out = tmp_path / "out"

        result = runner.invoke(
            cli, ["build", str(book_dir), "--format", "latex", "-o", str(out)], obj=obj
        )

        assert result.exit_code == 0, result.output
        assert (out / "book.tex").exists()
        assert not (out / "epub").exists()

    def test_backend_failure_exit_code(self, runner, book_dir, tmp_path):
        """Should keep other output and exit with 1 when a backend fails."""

        def broken(book):
            raise UnmappedNodeError("no EPUB mapping")

        service = CompileService(renderers={"latex": render_latex, "epub": broken})
        out = tmp_path / "out"

        result = runner.invoke(
            cli,
            ["build", str(book_dir), "-o", str(out)],
            obj={COMPILE_SERVICE_KEY: service, CONSOLE_KEY: Console(width=200)},
        )

        assert result.exit_code == EXIT_BACKEND_FAILED
        assert (out / "book.tex").exists()
        assert "epub failed" in result.output

    def test_invalid_manuscript_exit_code(self, runner, obj, tmp_path):
        """Should exit with 2 for an invalid manifest."""
        (tmp_path / "book.yaml").write_text("divisions:\n  - chapter\n")

        result = runner.invoke(cli, ["build", str(tmp_path)], obj=obj)

        assert result.exit_code == EXIT_MODEL_ERROR
        assert "Error:" in result.output

    def test_matter_order_exit_code(self, runner, obj, tmp_path):
        """Should exit with 2 when divisions are out of order."""
        (tmp_path / "book.yaml").write_text("title: T\ndivisions:\n  - chapter\n  - preface\n")

        result = runner.invoke(cli, ["build", str(tmp_path), "-o", str(tmp_path / "out")], obj=obj)

        assert result.exit_code == EXIT_MODEL_ERROR
        assert not (tmp_path / "out").exists()


class TestToc:
    """Test the toc command."""

    def test_toc(self, runner, obj, book_dir):
        """Should print the nested contents."""
        result = runner.invoke(cli, ["toc", str(book_dir)], obj=obj)

        assert result.exit_code == 0, result.output
        assert "# Sample Book" in result.output
        assert "- Beginnings\n  - Chapter 1: Wolves Attack!" in result.output


class TestCheck:
    """Test the check command."""

    def test_check_clean(self, runner, obj, book_dir):
        """Should list divisions and report no problems."""
        result = runner.invoke(cli, ["check", str(book_dir)], obj=obj)

        assert result.exit_code == 0, result.output
        assert "Sample Book" in result.output
        assert "chapter-1" in result.output
        assert "No problems found" in result.output

    def test_check_reports_diagnostics(self, runner, obj, tmp_path):
        """Should show recoverable problems."""
        (tmp_path / "book.yaml").write_text(
            "title: T\ndivisions:\n  - kind: chapter\n    text: 'Missing[^x].'\n"
        )

        result = runner.invoke(cli, ["check", str(tmp_path)], obj=obj)

        assert result.exit_code == 0, result.output
        assert "Diagnostics" in result.output
        assert "unresolved-footnote" in result.output


class TestHelp:
    """Test CLI help output."""

    def test_help(self, runner):
        """Should list the commands."""
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("build", "toc", "check"):
            assert command in result.output
