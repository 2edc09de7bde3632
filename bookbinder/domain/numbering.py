"""Number formats for division labels."""

from enum import Enum


class NumberFormat(str, Enum):
    ARABIC = "arabic"
    ROMAN = "roman"
    LETTER = "letter"
    WORDS = "words"


_ROMAN_NUMERALS = (
    (1000, "M"),
    (900, "CM"),
    (500, "D"),
    (400, "CD"),
    (100, "C"),
    (90, "XC"),
    (50, "L"),
    (40, "XL"),
    (10, "X"),
    (9, "IX"),
    (5, "V"),
    (4, "IV"),
    (1, "I"),
)

_ONES = (
    "Zero", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight",
    "Nine", "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen",
    "Sixteen", "Seventeen", "Eighteen", "Nineteen",
)

_TENS = (
    "", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy",
    "Eighty", "Ninety",
)


def to_roman(number: int) -> str:
    """Convert a positive integer to upper-case roman numerals."""
    if number < 1:
        raise ValueError(f"Roman numerals need a positive number, got {number}")
    parts = []
    for value, numeral in _ROMAN_NUMERALS:
        count, number = divmod(number, value)
        parts.append(numeral * count)
    return "".join(parts)


def to_letter(number: int) -> str:
    """Convert 1 -> A, 26 -> Z, 27 -> AA (spreadsheet style)."""
    if number < 1:
        raise ValueError(f"Letter labels need a positive number, got {number}")
    letters = ""
    while number:
        number, remainder = divmod(number - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def to_words(number: int) -> str:
    """Spell out numbers below one hundred; larger numbers stay arabic."""
    if number < 0 or number > 99:
        return str(number)
    if number < 20:
        return _ONES[number]
    tens, ones = divmod(number, 10)
    if ones == 0:
        return _TENS[tens]
    return f"{_TENS[tens]}-{_ONES[ones]}"


def format_number(number: int, number_format: NumberFormat) -> str:
    """Render ``number`` in the given format."""
    if number_format is NumberFormat.ROMAN:
        return to_roman(number)
    if number_format is NumberFormat.LETTER:
        return to_letter(number)
    if number_format is NumberFormat.WORDS:
        return to_words(number)
    return str(number)
