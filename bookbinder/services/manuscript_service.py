"""Manuscript loading service.

Reads a ``book.yaml`` manifest and the markdown files it lists into a
Manuscript: book metadata, build options and the ordered division texts
with their configuration overrides.
"""

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from ..config import BinderConfig, BuildOptions, LatexOptions
from ..domain import BookMetadata
from ..errors import ConflictingOverrideError, ManuscriptError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "divisions")
METADATA_FIELDS = (
    "title",
    "subtitle",
    "authors",
    "editors",
    "translators",
    "language",
    "identifier",
    "publisher",
    "publisher_address",
    "publisher_url",
    "copyright_statement",
    "publication_year",
    "first_publication",
    "assert_moral_rights",
    "epub_isbn",
    "hardback_isbn",
    "paperback_isbn",
    "cover_designer",
    "author_photo_credit",
    "print_location",
    "cover_image",
)
OPTIONAL_TEXT_FIELDS = (
    "identifier",
    "publisher",
    "publisher_address",
    "publisher_url",
    "copyright_statement",
    "epub_isbn",
    "hardback_isbn",
    "paperback_isbn",
    "cover_designer",
    "author_photo_credit",
    "print_location",
    "cover_image",
)
ENTRY_KEYS = frozenset({"kind", "file", "text"})


@dataclass(frozen=True)
class ManuscriptDivision:
    """One division entry: its kind, markdown text and overrides."""

    kind: str
    text: str = ""
    overrides: Mapping[str, Any] = field(default_factory=dict)
    source: Optional[str] = None  # file the text was read from


@dataclass(frozen=True)
class Manuscript:
    """Everything a build needs, read from disk once."""

    metadata: BookMetadata
    divisions: tuple[ManuscriptDivision, ...]
    options: BuildOptions = field(default_factory=BuildOptions)
    latex_options: LatexOptions = field(default_factory=LatexOptions)

    def fingerprint(self) -> str:
        """SHA-256 of the manuscript's canonical JSON form.

        Identical manuscripts produce identical fingerprints, so the value
        can key a build cache. LaTeX options only shape rendering and are
        left out.
        """
        canonical = {
            "metadata": {name: getattr(self.metadata, name) for name in METADATA_FIELDS},
            "options": {
                name: getattr(self.options, name)
                for name in sorted(self.options.__dataclass_fields__)
            },
            "divisions": [
                {"kind": d.kind, "text": d.text, "overrides": dict(d.overrides)}
                for d in self.divisions
            ],
        }
        payload = json.dumps(canonical, sort_keys=True, ensure_ascii=False, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ManuscriptService:
    """Service for reading manuscripts from the file system."""

    FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\n(.*?\n)?---[ \t]*(?:\n|\Z)", re.DOTALL)

    def load(self, path: Path | str) -> Manuscript:
        """Load a manuscript from a manifest file or a directory holding one.

        Args:
            path: ``book.yaml`` path, or the directory containing it.

        Returns:
            The loaded Manuscript.

        Raises:
            ManuscriptError: If the manifest or a division file is missing
                or invalid.
            ConflictingOverrideError: If a file's frontmatter and its
                manifest entry disagree on an override.
        """
        path = Path(path)
        if path.is_dir():
            path = path / BinderConfig.MANIFEST_NAME
        if not path.exists():
            raise ManuscriptError(f"No manifest found at {path}")

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ManuscriptError(f"Invalid YAML in {path}: {e}") from e

        manuscript = self.from_mapping(data, base_dir=path.parent)
        logger.info("Loaded manuscript %s with %d divisions", path, len(manuscript.divisions))
        return manuscript

    def from_mapping(self, data: Any, base_dir: Optional[Path] = None) -> Manuscript:
        """Build a Manuscript from an already-parsed manifest mapping.

        Args:
            data: The manifest contents.
            base_dir: Directory that ``file`` entries are relative to.

        Raises:
            ManuscriptError: If the manifest is invalid.
        """
        if not isinstance(data, dict):
            raise ManuscriptError(f"Manifest must be a YAML mapping, got {type(data).__name__}")

        missing = [key for key in REQUIRED_FIELDS if not data.get(key)]
        if missing:
            raise ManuscriptError(f"Manifest missing required fields: {', '.join(missing)}")

        entries = data["divisions"]
        if not isinstance(entries, list):
            raise ManuscriptError("Manifest 'divisions' must be a list")

        try:
            options = BuildOptions.from_mapping(data.get("options") or {})
        except (TypeError, ValueError) as e:
            raise ManuscriptError(f"Invalid build options: {e}") from e
        try:
            latex_options = LatexOptions.from_mapping(data.get("latex") or {})
        except (TypeError, ValueError) as e:
            raise ManuscriptError(f"Invalid LaTeX options: {e}") from e

        divisions = tuple(
            self._division(entry, index, base_dir or Path.cwd())
            for index, entry in enumerate(entries, start=1)
        )
        return Manuscript(
            metadata=self._metadata(data),
            divisions=divisions,
            options=options,
            latex_options=latex_options,
        )

    def _metadata(self, data: Mapping[str, Any]) -> BookMetadata:
        year = data.get("publication_year")
        if year is not None and (isinstance(year, bool) or not isinstance(year, int)):
            raise ManuscriptError(f"'publication_year' must be a year, got {year!r}")

        try:
            return BookMetadata(
                title=str(data["title"]),
                subtitle=_optional_str(data.get("subtitle")),
                authors=_names(data.get("authors", data.get("author")), "authors"),
                editors=_names(data.get("editors"), "editors"),
                translators=_names(data.get("translators"), "translators"),
                language=str(data.get("language") or "en"),
                publication_year=year,
                first_publication=_flag(data, "first_publication", True),
                assert_moral_rights=_flag(data, "assert_moral_rights", True),
                **{name: _optional_str(data.get(name)) for name in OPTIONAL_TEXT_FIELDS},
            )
        except ValueError as e:
            raise ManuscriptError(f"Invalid metadata: {e}") from e

    def _division(self, entry: Any, index: int, base_dir: Path) -> ManuscriptDivision:
        if isinstance(entry, str):
            entry = {"kind": entry}
        if not isinstance(entry, dict) or "kind" not in entry:
            raise ManuscriptError(f"Division {index} must be a mapping with a 'kind'")
        if "file" in entry and "text" in entry:
            raise ManuscriptError(f"Division {index} has both 'file' and 'text'")

        overrides = {key: value for key, value in entry.items() if key not in ENTRY_KEYS}
        source = None
        text = entry.get("text") or ""

        if "file" in entry:
            file_path = base_dir / str(entry["file"])
            if not file_path.exists():
                raise ManuscriptError(f"Division {index}: file not found: {file_path}")
            source = str(entry["file"])
            frontmatter, text = self.split_frontmatter(file_path.read_text(encoding="utf-8"))
            overrides = _merge_overrides(frontmatter, overrides, source)

        return ManuscriptDivision(
            kind=str(entry["kind"]),
            text=str(text),
            overrides=overrides,
            source=source,
        )

    def split_frontmatter(self, content: str) -> tuple[dict[str, Any], str]:
        """Split YAML frontmatter from markdown content.

        Args:
            content: The file content.

        Returns:
            The frontmatter mapping (empty if absent) and the remaining text.

        Raises:
            ManuscriptError: If the frontmatter is not a valid YAML mapping.
        """
        match = self.FRONTMATTER_PATTERN.match(content)
        if not match:
            return {}, content

        try:
            data = yaml.safe_load(match.group(1) or "") or {}
        except yaml.YAMLError as e:
            raise ManuscriptError(f"Invalid frontmatter: {e}") from e
        if not isinstance(data, dict):
            raise ManuscriptError("Frontmatter must be a YAML mapping")
        return data, content[match.end():].lstrip("\n")


def _merge_overrides(
    frontmatter: Mapping[str, Any], manifest: Mapping[str, Any], source: str
) -> dict[str, Any]:
    merged = dict(frontmatter)
    for key, value in manifest.items():
        if key in merged and merged[key] != value:
            raise ConflictingOverrideError(
                f"{source}: frontmatter sets {key}={merged[key]!r} but the manifest sets {value!r}"
            )
        merged[key] = value
    return merged


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _names(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list):
        return tuple(str(name) for name in value)
    raise ManuscriptError(f"'{field_name}' must be a name or a list of names")


def _flag(data: Mapping[str, Any], name: str, default: bool) -> bool:
    value = data.get(name, default)
    if not isinstance(value, bool):
        raise ManuscriptError(f"'{name}' must be true or false, got {value!r}")
    return value
