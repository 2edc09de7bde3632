"""Service interfaces (protocols) for bookbinder.

Defines the contract backend renderers fulfil so the compile service can
run them without knowing which backend it holds.
"""

from typing import Protocol

from ..domain import Book


class IBookRenderer(Protocol):
    """Protocol for backend renderers.

    A renderer reads the Book and returns its backend's artifact. It must
    not mutate the Book, since other renderers read it concurrently.
    """

    def __call__(self, book: Book) -> object:
        """Render the book.

        Raises:
            RenderError: If the book holds a node or character the backend
                cannot express.
        """
        ...
