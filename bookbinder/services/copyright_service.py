"""Copyright page generation.

Writes the text of a copyright page from book metadata as manuscript
markdown, so the generated page goes through the same parser and
typography pass as a hand-written one.
"""

import datetime
import logging
from typing import Callable, Optional

from ..domain import BookMetadata
from ..domain.isbn import display_isbn

logger = logging.getLogger(__name__)

SEPARATOR = "\n\n* * *\n\n"
LINE_END = "  \n"  # hard break

ISBN_SUFFIXES = (
    ("epub_isbn", "epub"),
    ("hardback_isbn", "hardback"),
    ("paperback_isbn", "paperback"),
)


class CopyrightPageService:
    """Service that writes copyright pages from metadata."""

    def __init__(self, current_year: Optional[Callable[[], int]] = None) -> None:
        """Initialize the service.

        Args:
            current_year: Returns the year used when the metadata sets no
                ``publication_year``; defaults to today's year.
        """
        self._current_year = current_year or (lambda: datetime.date.today().year)

    def generate(self, metadata: BookMetadata) -> str:
        """Write the copyright page text.

        The page holds, in order: the copyright statement and moral rights
        notice, the publication statement with the publisher's address and
        URL, the ISBNs and credits, and the printing location. Groups are
        separated by thematic breaks; empty groups are left out.

        Args:
            metadata: The book's metadata.

        Returns:
            Markdown text for a copyright page division.
        """
        year = metadata.publication_year or self._current_year()
        text = ""

        statement = metadata.copyright_statement
        if statement is None and metadata.authors:
            statement = f"Copyright © {year} {metadata.author_line()}"
        if statement:
            text += statement + LINE_END

        if metadata.assert_moral_rights and metadata.authors:
            if len(metadata.authors) == 1:
                text += "The author's moral rights have been asserted" + LINE_END
            else:
                text += "The moral rights of the authors have been asserted" + LINE_END
        if text:
            text += SEPARATOR

        published = "First published" if metadata.first_publication else "This edition published"
        text += f"{published} {year}"
        if metadata.publisher:
            text += f" by {metadata.publisher}"
        text += LINE_END
        if metadata.publisher_address:
            text += metadata.publisher_address
            if metadata.publisher_url:
                text += LINE_END
        if metadata.publisher_url:
            text += f"`{metadata.publisher_url}`"
        text += SEPARATOR

        for field_name, suffix in ISBN_SUFFIXES:
            isbn = getattr(metadata, field_name)
            if isbn:
                text += display_isbn(isbn, suffix) + LINE_END
        if metadata.cover_designer:
            text += f"Cover design by {metadata.cover_designer}" + LINE_END
        if metadata.author_photo_credit:
            text += f"Author photo © {metadata.author_photo_credit}" + LINE_END

        if text.endswith(LINE_END):
            text = text[: -len(LINE_END)]
        if metadata.print_location:
            if not text.endswith(SEPARATOR):
                text += SEPARATOR
            text += f"Printed in {metadata.print_location}"

        if text.endswith(SEPARATOR):
            text = text[: -len(SEPARATOR)]
        logger.debug("Generated copyright page for %r", metadata.title)
        return text
