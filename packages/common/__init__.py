# Common utilities

from packages.common.exceptions import (
    ArchiveCorruptError,
    ArchiveError,
    DatabaseClosedError,
    DatabaseError,
    DatabaseUnreadableError,
    DeckImportError,
    EmptyDatabaseError,
    ErrorKind,
    InvalidDatabaseHeaderError,
    MediaNotSupportedError,
    MissingDatabaseError,
    MissingMediaManifestError,
    NotAnAnkiDatabaseError,
    SchemaMismatchError,
)
from packages.common.logging import (
    clear_import_id,
    configure_logging,
    get_import_id,
    get_logger,
    set_import_id,
)

__all__ = [
    "ArchiveCorruptError",
    "ArchiveError",
    "DatabaseClosedError",
    "DatabaseError",
    "DatabaseUnreadableError",
    "DeckImportError",
    "EmptyDatabaseError",
    "ErrorKind",
    "InvalidDatabaseHeaderError",
    "MediaNotSupportedError",
    "MissingDatabaseError",
    "MissingMediaManifestError",
    "NotAnAnkiDatabaseError",
    "SchemaMismatchError",
    "clear_import_id",
    "configure_logging",
    "get_import_id",
    "get_logger",
    "set_import_id",
]
