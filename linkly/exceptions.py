"""Error taxonomy for the Linkly URL shortener.

Hierarchy
=========
::
    LinklyError
    ├─ ValidationError        malformed URL, bad expiry, oversized input
    ├─ NotFoundError          unknown or expired short code
    ├─ StorageError           persistent store unreachable, failed or timed out
    ├─ CacheError             cache unreachable, failed or timed out
    └─ CodecError (ValueError)
       ├─ EmptyInputError
       └─ InvalidCharacterError

Key Behaviours
===============
- ``ValidationError`` is always surfaced to the caller with its message.
- ``StorageError`` is the only fatal class for writes and store-backed reads.
- ``CacheError`` never leaves the service layer; callers log it and fall back.
"""

__all__ = [
    "LinklyError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "CacheError",
    "CodecError",
    "EmptyInputError",
    "InvalidCharacterError",
]


class LinklyError(Exception):
    """Base class for all Linkly errors."""

    error_code = "linkly:error"


class ValidationError(LinklyError):
    """Raised when user input (URL, expiry, limits) is rejected."""

    error_code = "linkly:validation_error"


class NotFoundError(LinklyError):
    """Raised when a short code is unknown or its record has expired."""

    error_code = "linkly:not_found"

    def __init__(self, short_code: str, detail: str = "URL not found") -> None:
        super().__init__(detail)
        self.short_code = short_code


class StorageError(LinklyError):
    """Raised when the persistent store encounters an error.

    Examples include connection issues, timeouts and constraint failures.
    """

    error_code = "linkly:storage_error"


class CacheError(LinklyError):
    """Raised when a cache operation fails or times out."""

    error_code = "linkly:cache_error"


class CodecError(LinklyError, ValueError):
    """Base class for short code decoding failures."""

    error_code = "codec:error"


class EmptyInputError(CodecError):
    error_code = "codec:empty_input"

    def __init__(self) -> None:
        super().__init__("Short code must be a non-empty string")


class InvalidCharacterError(CodecError):
    error_code = "codec:invalid_character"

    def __init__(self, character: str, position: int) -> None:
        super().__init__(f"Invalid base62 character {character!r} at position {position}")
        self.character = character
        self.position = position
