"""
Exception hierarchy for the media librarian.

Expected absence of a metadata value is expressed with None; the exceptions
below are reserved for operations that genuinely fail.
"""
from dataclasses import dataclass
from typing import Optional


class LibrarianError(Exception):
    """Base exception for all librarian errors."""
    pass


@dataclass(frozen=True)
class FieldError:
    """A single invariant violation reported during validation."""
    field: str
    message: str
    file_id: Optional[int] = None

    def __str__(self):
        prefix = f"File {self.file_id}: " if self.file_id is not None else ''
        return f"{prefix}{self.message}"


class ValidationError(LibrarianError):
    """Raised when one or more records fail validation. The whole batch is rejected."""

    def __init__(self, errors: list[FieldError]):
        self.errors = list(errors)
        super().__init__('; '.join(str(e) for e in self.errors) or 'Validation failed')

    @property
    def messages(self) -> list[str]:
        return [str(e) for e in self.errors]


class ExtractionError(LibrarianError):
    """Raised when the metadata tool returns nothing usable for a file."""
    pass


class ThumbnailError(LibrarianError):
    """Raised when a thumbnail cannot be generated."""
    pass


class WriteBackError(LibrarianError):
    """Raised when embedding metadata into the batch files fails."""
    pass


class CopyError(LibrarianError):
    """Raised when files cannot be copied into the library."""
    pass


class StoreError(LibrarianError):
    """Raised when a metadata store transaction fails."""
    pass


class CleanupError(LibrarianError):
    """Raised when queue artifacts cannot be removed. Never fatal to a commit."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__('; '.join(self.errors))
