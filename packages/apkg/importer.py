"""End-to-end import of ``.apkg`` packages."""

from datetime import UTC, datetime

from packages.apkg.archive import validate_archive
from packages.apkg.database import ApkgDatabase
from packages.apkg.media import enforce_content_policy
from packages.apkg.metadata import read_metadata
from packages.apkg.models import ImportResult
from packages.apkg.previews import build_card_previews
from packages.apkg.reader import read_cards, read_notes
from packages.apkg.relationships import build_relationships, build_statistics
from packages.apkg.schema import SchemaCapabilities, SchemaQuery
from packages.common.config import Settings, get_settings
from packages.common.exceptions import DeckImportError
from packages.common.logging import clear_import_id, get_import_id, get_logger, set_import_id

logger = get_logger(module=__name__)


class ApkgImporter:
    """Converts a package into a normalized deck.

    Each call owns its archive buffer and database handle; nothing is shared
    between imports, so one importer may serve concurrent callers.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize importer."""
        self.settings = settings or get_settings()

    def import_bytes(
        self,
        data: bytes,
        filename: str | None = None,
        *,
        preview_limit: int | None = None,
    ) -> ImportResult:
        """Validate, read and normalize a package.

        Args:
            data: Raw bytes of the ``.apkg`` file.
            filename: Declared file name, used for logging.
            preview_limit: Cards to preview; defaults to ``settings.preview_limit``.

        Returns:
            ImportResult with decks, note types, notes, cards, statistics,
            relationships and card previews.

        Raises:
            DeckImportError: The specific failure kind; no partial deck is returned.
        """
        limit = self.settings.preview_limit if preview_limit is None else preview_limit
        owns_import_id = get_import_id() is None
        import_id = get_import_id() or set_import_id()
        log = logger.bind(filename=filename)
        start_time = datetime.now(UTC)

        try:
            archive = validate_archive(data, filename, self.settings)

            with ApkgDatabase(archive.database_buffer) as db:
                query = SchemaQuery(db, SchemaCapabilities.introspect(db))

                deck_info, note_types = read_metadata(db, query)
                notes = read_notes(query)
                cards = read_cards(query)

                enforce_content_policy(note_types, notes)

                statistics = build_statistics(query, notes, cards)

            relationships = build_relationships(notes, cards)
            previews = build_card_previews(notes, cards, note_types, limit)
        except DeckImportError as e:
            log.warning("import_failed", import_id=import_id, kind=str(e.kind), error=str(e), context=e.context)
            raise
        finally:
            if owns_import_id:
                clear_import_id()

        duration_ms = int((datetime.now(UTC) - start_time).total_seconds() * 1000)
        log.info(
            "import_completed",
            import_id=import_id,
            notes=len(notes),
            cards=len(cards),
            decks=deck_info.deck_count,
            models=note_types.model_count,
            orphaned_cards=statistics.orphaned_cards,
            duration_ms=duration_ms,
        )

        return ImportResult(
            deck_info=deck_info,
            note_types=note_types,
            notes=notes,
            cards=cards,
            statistics=statistics,
            relationships=relationships,
            previews=previews,
            database_entry=archive.database_entry,
            entry_count=archive.entry_count,
            unreferenced_files=archive.unreferenced_files,
        )


def import_apkg(
    data: bytes,
    filename: str | None = None,
    *,
    preview_limit: int | None = None,
    settings: Settings | None = None,
) -> ImportResult:
    """Convenience function to import a package.

    Args:
        data: Raw bytes of the ``.apkg`` file.
        filename: Declared file name.
        preview_limit: Cards to preview; defaults to ``settings.preview_limit``.
        settings: Optional settings override.

    Returns:
        ImportResult for the package.
    """
    return ApkgImporter(settings).import_bytes(data, filename, preview_limit=preview_limit)
