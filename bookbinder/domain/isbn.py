"""ISBN-13 validation and display.

An ISBN is accepted whatever its non-digit decoration, so hyphenated and
prefixed forms such as ``ISBN-13 978-1-4920-6766-5`` are valid.
"""

import re
from typing import Optional

ISBN_PREFIX_DIGITS = (1, 3)


def _digits(isbn: str) -> Optional[list[int]]:
    """Get the 13 ISBN digits, dropping a leading ``13`` from a prefix."""
    digits = [int(c) for c in isbn if c.isascii() and c.isdigit()][:15]
    if len(digits) == 15:
        if tuple(digits[:2]) != ISBN_PREFIX_DIGITS:
            return None
        digits = digits[2:]
    if len(digits) != 13:
        return None
    return digits


def check_digit(digits: list[int]) -> int:
    """Compute the ISBN-13 check digit of the first twelve digits."""
    total = sum(d * (1 if i % 2 == 0 else 3) for i, d in enumerate(digits[:12]))
    return (10 - total % 10) % 10


def validate_isbn(isbn: str) -> bool:
    """Check whether a string can be read as an ISBN-13.

    Args:
        isbn: The ISBN as written, possibly hyphenated or prefixed.

    Returns:
        True if the string holds 13 digits (after an optional ``13``
        prefix) whose last digit is the correct check digit.
    """
    digits = _digits(isbn)
    return digits is not None and digits[12] == check_digit(digits)


def display_isbn(isbn: str, suffix: Optional[str] = None) -> str:
    """Format an ISBN for a copyright page, e.g. ``ISBN-13: 978-... (epub)``.

    Raises:
        ValueError: If the ISBN is invalid.
    """
    if not validate_isbn(isbn):
        raise ValueError(f"Invalid ISBN-13: {isbn!r}")
    shown = re.sub(r"^\D*", "", isbn)
    if shown.startswith("13 "):
        shown = shown[3:]
    shown = shown.strip()
    return f"ISBN-13: {shown} ({suffix})" if suffix else f"ISBN-13: {shown}"
