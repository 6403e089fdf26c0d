"""Custom exception hierarchy for deck import.

Every failure an import can end with is a distinct subclass carrying:
- A programmatic ``kind`` (see :class:`ErrorKind`)
- A short user-facing explanation, plus remediation where one exists
- Structured context for logging
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from packages.apkg.models import MediaLocation


class ErrorKind(StrEnum):
    """Enumerable failure kinds of an import."""

    ARCHIVE_CORRUPT = "ArchiveCorrupt"
    MISSING_DATABASE = "MissingDatabase"
    MISSING_MEDIA_MANIFEST = "MissingMediaManifest"
    MEDIA_NOT_SUPPORTED = "MediaNotSupported"
    EMPTY_DATABASE = "EmptyDatabase"
    INVALID_DATABASE_HEADER = "InvalidDatabaseHeader"
    DATABASE_UNREADABLE = "DatabaseUnreadable"
    NOT_AN_ANKI_DATABASE = "NotAnAnkiDatabase"
    SCHEMA_MISMATCH = "SchemaMismatch"


class DeckImportError(Exception):
    """Base exception for all import errors.

    All custom exceptions inherit from this to enable:
    - Centralized handling in the CLI and API
    - Consistent error logging patterns
    - Type-safe error catching
    """

    kind: ClassVar[ErrorKind]
    user_message: ClassVar[str] = "The deck could not be imported."
    remediation: ClassVar[str | None] = None

    def __init__(self, message: str, *, context: dict[str, object] | None = None) -> None:
        """Initialize error with message and optional context.

        Args:
            message: Human-readable error description.
            context: Additional key-value pairs for structured logging.
        """
        super().__init__(message)
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and JSON output."""
        return {
            "kind": str(self.kind),
            "message": self.user_message,
            "detail": str(self),
            "remediation": self.remediation,
            "context": self.context,
        }


class ArchiveError(DeckImportError):
    """Base class for structural archive failures."""


class ArchiveCorruptError(ArchiveError):
    """The file is not a readable ZIP archive."""

    kind = ErrorKind.ARCHIVE_CORRUPT
    user_message = "The file is not a valid .apkg package (the archive is damaged or not a ZIP file)."


class MissingDatabaseError(ArchiveError):
    """No collection database entry in the archive."""

    kind = ErrorKind.MISSING_DATABASE
    user_message = "The package does not contain an Anki collection database."


class MissingMediaManifestError(ArchiveError):
    """No ``media`` manifest entry in the archive."""

    kind = ErrorKind.MISSING_MEDIA_MANIFEST
    user_message = "The package is missing its media manifest."


class EmptyDatabaseError(ArchiveError):
    """The collection database entry has zero length."""

    kind = ErrorKind.EMPTY_DATABASE
    user_message = "The collection database inside the package is empty."


class InvalidDatabaseHeaderError(ArchiveError):
    """The collection database does not start with the SQLite magic header."""

    kind = ErrorKind.INVALID_DATABASE_HEADER
    user_message = (
        "The collection database is not an SQLite file. "
        "Packages exported by newer Anki versions may need the legacy export option."
    )


class MediaNotSupportedError(DeckImportError):
    """The deck references images, audio or video."""

    kind = ErrorKind.MEDIA_NOT_SUPPORTED
    user_message = "This deck contains media. Only text-only decks can be imported."
    remediation = (
        "Remove images, audio and video from the deck in Anki, then re-export it "
        "without media (untick 'Include media')."
    )

    def __init__(
        self,
        message: str,
        *,
        locations: list[MediaLocation] | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        """Initialize with the structured list of media locations."""
        super().__init__(message, context=context)
        self.locations = locations or []

    def to_dict(self) -> dict[str, Any]:
        """Serialize including the media locations."""
        data = super().to_dict()
        data["details"] = [location.model_dump() for location in self.locations]
        return data


class DatabaseError(DeckImportError):
    """Base class for embedded database errors."""


class DatabaseUnreadableError(DatabaseError):
    """The SQLite engine could not read the embedded database."""

    kind = ErrorKind.DATABASE_UNREADABLE
    user_message = "The collection database is damaged and could not be read."


class DatabaseClosedError(DatabaseError):
    """A query was attempted after the database handle was released."""

    kind = ErrorKind.DATABASE_UNREADABLE
    user_message = "The collection database was already closed."


class NotAnAnkiDatabaseError(DatabaseError):
    """The database lacks the tables every Anki collection has."""

    kind = ErrorKind.NOT_AN_ANKI_DATABASE
    user_message = "The database inside the package is not an Anki collection."

    def __init__(
        self,
        message: str,
        *,
        missing_tables: list[str],
        context: dict[str, object] | None = None,
    ) -> None:
        """Initialize with the list of missing tables."""
        super().__init__(message, context={"missing_tables": missing_tables, **(context or {})})
        self.missing_tables = missing_tables


class SchemaMismatchError(DatabaseError):
    """Collection metadata could not be queried at all."""

    kind = ErrorKind.SCHEMA_MISMATCH
    user_message = "The collection uses a database layout this importer does not understand."

