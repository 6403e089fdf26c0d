# .apkg validation, parsing, rendering and statistics

from packages.apkg.archive import validate_archive
from packages.apkg.database import ApkgDatabase
from packages.apkg.importer import ApkgImporter, import_apkg
from packages.apkg.models import (
    Card,
    CardPreview,
    CardStatus,
    CardTemplate,
    Deck,
    DeckInfo,
    DeckStatistics,
    ImportResult,
    MediaLocation,
    MediaReference,
    Note,
    NoteType,
    NoteTypes,
    Relationships,
    ValidatedArchive,
)
from packages.apkg.schema import SchemaCapabilities, SchemaQuery
from packages.apkg.templates import RenderResult, render

__all__ = [
    "ApkgDatabase",
    "ApkgImporter",
    "Card",
    "CardPreview",
    "CardStatus",
    "CardTemplate",
    "Deck",
    "DeckInfo",
    "DeckStatistics",
    "ImportResult",
    "MediaLocation",
    "MediaReference",
    "Note",
    "NoteType",
    "NoteTypes",
    "Relationships",
    "RenderResult",
    "SchemaCapabilities",
    "SchemaQuery",
    "ValidatedArchive",
    "import_apkg",
    "render",
    "validate_archive",
]
