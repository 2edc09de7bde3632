"""Command-line interface for bookbinder.

Provides a Click-based CLI that compiles manuscripts into LaTeX source and
unpacked EPUB trees. This is the single entry point for all command-line
operations.
"""

import logging
import sys
from pathlib import Path
from typing import Sequence

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import BinderConfig
from .domain import Book, Diagnostic
from .errors import BookbinderError
from .services import CompileService, Manuscript, ManuscriptService, OutputService, TocService

# Context keys
COMPILE_SERVICE_KEY = "compile_service"
CONSOLE_KEY = "console"

EXIT_BACKEND_FAILED = 1
EXIT_MODEL_ERROR = 2

FORMAT_CHOICES = {
    "latex": ("latex",),
    "epub": ("epub",),
    "all": ("latex", "epub"),
}


def get_console(ctx: click.Context) -> Console:
    """Get the rich console from click context."""
    return ctx.obj[CONSOLE_KEY]


def load_manuscript(manifest: str) -> Manuscript:
    """Load a manuscript, exiting with the model error code on failure.

    Args:
        manifest: Path to ``book.yaml`` or its directory.

    Returns:
        The loaded Manuscript.
    """
    try:
        return ManuscriptService().load(Path(manifest))
    except BookbinderError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_MODEL_ERROR)


def compile_book(ctx: click.Context, manuscript: Manuscript) -> Book:
    """Compile a manuscript, exiting with the model error code on failure."""
    try:
        return ctx.obj[COMPILE_SERVICE_KEY].compile(manuscript)
    except BookbinderError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_MODEL_ERROR)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.version_option(version=__version__, prog_name="bookbinder")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """bookbinder - Compile markdown manuscripts into books.

    Reads a book.yaml manifest and its markdown divisions, and renders
    LaTeX source and an EPUB tree from them.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj.setdefault(COMPILE_SERVICE_KEY, CompileService())
    ctx.obj.setdefault(CONSOLE_KEY, Console())


@cli.command()
@click.argument("manifest", type=click.Path(exists=True))
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(sorted(FORMAT_CHOICES)),
    default="all",
    help="Backend to render (default: all).",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(file_okay=False),
    default="build",
    help="Output directory (default: ./build).",
)
@click.pass_context
def build(ctx: click.Context, manifest: str, output_format: str, output: str) -> None:
    """Build a book.

    MANIFEST is the book.yaml file or the directory containing it.

    Writes book.tex and an unpacked epub/ tree into the output directory.
    Exits with 1 if a backend failed and 2 if the manuscript is invalid.
    """
    console = get_console(ctx)
    manuscript = load_manuscript(manifest)

    try:
        result = ctx.obj[COMPILE_SERVICE_KEY].build(manuscript, FORMAT_CHOICES[output_format])
    except BookbinderError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_MODEL_ERROR)

    out_dir = Path(output)
    writer = OutputService()
    try:
        if "latex" in result.artifacts:
            path = writer.write_latex(result.artifacts["latex"], out_dir)
            console.print(f"[{BinderConfig.COLORS['success']}]Wrote {path}[/]")
        if "epub" in result.artifacts:
            epub_dir = out_dir / BinderConfig.EPUB_DIRNAME
            writer.write_epub_tree(result.artifacts["epub"], epub_dir)
            console.print(f"[{BinderConfig.COLORS['success']}]Wrote {epub_dir}[/]")
    except PermissionError as e:
        click.echo(f"Error: Permission denied - {e}", err=True)
        sys.exit(EXIT_BACKEND_FAILED)

    _print_diagnostics(console, result.diagnostics)

    for name, error in result.failures.items():
        console.print(f"[{BinderConfig.COLORS['error']}]{name} failed: {error}[/]")
    if not result.ok:
        sys.exit(EXIT_BACKEND_FAILED)


@cli.command()
@click.argument("manifest", type=click.Path(exists=True))
@click.pass_context
def toc(ctx: click.Context, manifest: str) -> None:
    """Show the table of contents.

    MANIFEST is the book.yaml file or the directory containing it.
    """
    book = compile_book(ctx, load_manuscript(manifest))
    click.echo(TocService().to_markdown(book))


@cli.command()
@click.argument("manifest", type=click.Path(exists=True))
@click.pass_context
def check(ctx: click.Context, manifest: str) -> None:
    """Check a manuscript without rendering it.

    MANIFEST is the book.yaml file or the directory containing it.

    Builds the book model and lists its divisions and diagnostics.
    """
    console = get_console(ctx)
    book = compile_book(ctx, load_manuscript(manifest))

    console.print(f"\n[{BinderConfig.COLORS['header']}]{book.metadata.title}[/]")
    if book.metadata.author_line():
        console.print(f"by {book.metadata.author_line()}")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Id", style="dim")
    table.add_column("Kind")
    table.add_column("Label")
    table.add_column("Title", style="bold")
    table.add_column("Notes", justify="right")
    for division in book.divisions:
        table.add_row(
            division.id,
            division.kind.display_name,
            division.label or "",
            division.plain_title,
            str(len(division.footnotes)) if division.footnotes else "",
        )
    console.print(table)

    if book.diagnostics:
        _print_diagnostics(console, book.diagnostics)
    else:
        console.print(f"[{BinderConfig.COLORS['success']}]No problems found[/]")


def _print_diagnostics(console: Console, diagnostics: Sequence[Diagnostic]) -> None:
    """Display diagnostics as a table."""
    if not diagnostics:
        return
    table = Table(
        title="Diagnostics",
        show_header=True,
        header_style=BinderConfig.COLORS["warning"],
    )
    table.add_column("Division", style="dim")
    table.add_column("Code")
    table.add_column("Message")
    for diagnostic in diagnostics:
        table.add_row(diagnostic.division or "", diagnostic.code, diagnostic.message)
    console.print(table)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
