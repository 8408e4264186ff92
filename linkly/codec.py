"""Base62 codec for short codes.

Short codes are the base62 rendering of the store-assigned record id, so a
code is unique for as long as ids are never reused.

Alphabet Layout
===============
::
    0 ─ 9   →  0 ─ 9
    a ─ z   → 10 ─ 35
    A ─ Z   → 36 ─ 61

Capacity
========
::
    length 3  →        238,328 codes
    length 5  →    916,132,832 codes
    length 7  → 3,521,614,606,208 codes

How to Use
===========
::
    >>> encode(125)
    '21'
    >>> decode("21")
    125
    >>> estimated_length(1_000_000)
    4
"""

__all__ = [
    "BASE62_ALPHABET",
    "BASE",
    "encode",
    "decode",
    "estimated_length",
    "capacity",
    "is_valid_code",
]

from linkly.exceptions import EmptyInputError, InvalidCharacterError

BASE62_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
BASE = len(BASE62_ALPHABET)

_DIGIT_VALUES = {char: index for index, char in enumerate(BASE62_ALPHABET)}


def encode(number: int) -> str:
    """Encode a non-negative integer as a base62 string.

    Args:
        number: Value to encode (must be non-negative)

    Returns:
        str: Base62 string, most significant digit first

    Example:
        >>> encode(0)
        '0'
        >>> encode(62)
        '10'
    """
    if isinstance(number, bool) or not isinstance(number, int):
        raise ValueError(f"Number must be an integer, got {type(number).__name__}")
    if number < 0:
        raise ValueError("Number must be non-negative")

    if number == 0:
        return BASE62_ALPHABET[0]

    result = []
    while number > 0:
        number, remainder = divmod(number, BASE)
        result.append(BASE62_ALPHABET[remainder])

    return "".join(result[::-1])


def decode(code: str) -> int:
    """Decode a base62 string back to its integer value.

    Raises:
        EmptyInputError: If ``code`` is empty or not a string
        InvalidCharacterError: If ``code`` contains a character outside the alphabet
    """
    if not isinstance(code, str) or not code:
        raise EmptyInputError()

    result = 0
    for position, char in enumerate(code):
        value = _DIGIT_VALUES.get(char)
        if value is None:
            raise InvalidCharacterError(char, position)
        result = result * BASE + value
    return result


def estimated_length(expected_count: int) -> int:
    """Return the code length needed to address ``expected_count`` records."""
    length = 1
    while capacity(length) < expected_count:
        length += 1
    return length


def capacity(length: int) -> int:
    """Return how many distinct codes fit in ``length`` characters."""
    if length < 0:
        raise ValueError("Length must be non-negative")
    return BASE**length


def is_valid_code(code: str, max_length: int = 10) -> bool:
    return 0 < len(code) <= max_length and all(char in _DIGIT_VALUES for char in code)
