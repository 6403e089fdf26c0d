"""Structural validation of ``.apkg`` packages."""

import re
import zipfile
import zlib
from collections import Counter
from io import BytesIO

from packages.apkg.media import enforce_archive_policy, parse_manifest
from packages.apkg.models import ValidatedArchive
from packages.common.config import Settings, get_settings
from packages.common.exceptions import (
    ArchiveCorruptError,
    EmptyDatabaseError,
    InvalidDatabaseHeaderError,
    MissingDatabaseError,
    MissingMediaManifestError,
)
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

DATABASE_ENTRY_PATTERN = re.compile(r"^collection\.(anki2|anki21|anki21b|anki21c)$")
# Newer Anki exports ship a placeholder collection.anki2 next to the real
# database; prefer the uncompressed formats we can open.
DATABASE_PREFERENCE = ("anki21", "anki2", "anki21b", "anki21c")
MEDIA_ENTRY = "media"
META_ENTRY = "meta"
SQLITE_MAGIC = b"SQLite format 3"
# General purpose flag bit 0: entry is encrypted
ENCRYPTED_FLAG = 0x1


def is_database_entry(name: str) -> bool:
    """Check whether an entry name is a collection database."""
    return DATABASE_ENTRY_PATTERN.match(name) is not None


def is_system_entry(name: str) -> bool:
    """Check whether an entry belongs to the package format itself."""
    return name in (MEDIA_ENTRY, META_ENTRY) or is_database_entry(name)


def has_sqlite_header(buffer: bytes) -> bool:
    """Byte-exact comparison of the first 15 bytes with the SQLite magic."""
    return buffer[: len(SQLITE_MAGIC)] == SQLITE_MAGIC


def select_database_entry(names: list[str]) -> str | None:
    """Pick the collection database entry among the archive entries."""
    matches = {m.group(1): name for name in names if (m := DATABASE_ENTRY_PATTERN.match(name))}
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning("archive_multiple_databases", entries=sorted(matches.values()))
    for suffix in DATABASE_PREFERENCE:
        if suffix in matches:
            return matches[suffix]
    return None


class ApkgArchive:
    """Read-only view over the entries of a package.

    Entry contents are decompressed lazily, one entry at a time.
    """

    def __init__(self, data: bytes, *, max_entry_bytes: int) -> None:
        """Open the archive from raw bytes.

        Raises:
            ArchiveCorruptError: If the bytes are not a ZIP archive or repeat a package entry.
        """
        self.max_entry_bytes = max_entry_bytes
        try:
            self._zip = zipfile.ZipFile(BytesIO(data))
            infos = self._zip.infolist()
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, OSError) as e:
            raise ArchiveCorruptError(
                f"File is not a readable ZIP archive: {e}",
                context={"size": len(data)},
            ) from e

        self._entries = [info.filename for info in infos]
        self._infos = {info.filename: info for info in infos}

        duplicates = sorted(name for name, count in Counter(self._entries).items() if count > 1)
        if duplicates:
            system = [name for name in duplicates if is_system_entry(name)]
            if system:
                self._zip.close()
                raise ArchiveCorruptError(
                    f"Archive holds the same entry more than once: {', '.join(system)}",
                    context={"entries": system},
                )
            logger.warning("archive_duplicate_entries", entries=duplicates[:20])

    def __enter__(self) -> "ApkgArchive":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    @property
    def names(self) -> list[str]:
        """All entry names in archive order, directories and duplicates included."""
        return list(self._entries)

    def is_dir(self, name: str) -> bool:
        return self._infos[name].is_dir()

    def read(self, name: str) -> bytes:
        """Decompress one entry.

        Raises:
            ArchiveCorruptError: If the entry is oversized, encrypted or fails to decompress.
        """
        info = self._infos[name]
        if info.file_size > self.max_entry_bytes:
            raise ArchiveCorruptError(
                f"Archive entry {name!r} declares {info.file_size} bytes, "
                f"above the {self.max_entry_bytes} byte limit",
                context={"entry": name, "size": info.file_size},
            )
        if info.flag_bits & ENCRYPTED_FLAG:
            raise ArchiveCorruptError(
                f"Archive entry {name!r} is encrypted",
                context={"entry": name},
            )
        try:
            return self._zip.read(info)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, EOFError, OSError) as e:
            raise ArchiveCorruptError(
                f"Archive entry {name!r} could not be decompressed: {e}",
                context={"entry": name},
            ) from e


def validate_archive(
    data: bytes,
    filename: str | None = None,
    settings: Settings | None = None,
) -> ValidatedArchive:
    """Run the structural gates over a package and extract its database.

    Args:
        data: Raw bytes of the ``.apkg`` file.
        filename: Name declared by whoever supplied the bytes (logged only).
        settings: Limits; defaults to the cached application settings.

    Returns:
        ValidatedArchive holding the SQLite database buffer.

    Raises:
        ArchiveCorruptError: Not a ZIP, or an entry cannot be read.
        MissingDatabaseError: No ``collection.anki2``-style entry.
        MissingMediaManifestError: No ``media`` entry.
        MediaNotSupportedError: Media files shipped or declared.
        EmptyDatabaseError: Database entry has zero length.
        InvalidDatabaseHeaderError: Database entry is not SQLite.
    """
    settings = settings or get_settings()
    log = logger.bind(filename=filename, size=len(data))

    if filename and not filename.lower().endswith(".apkg"):
        log.warning("archive_unexpected_extension")

    with ApkgArchive(data, max_entry_bytes=settings.max_entry_bytes) as archive:
        names = archive.names
        log.debug("archive_opened", entries=names)

        database_entry = select_database_entry(names)
        if database_entry is None:
            raise MissingDatabaseError(
                "Invalid .apkg file: missing collection database",
                context={"entries": names[:20]},
            )

        if MEDIA_ENTRY not in names:
            raise MissingMediaManifestError("Invalid .apkg file: missing media manifest")

        manifest = parse_manifest(archive.read(MEDIA_ENTRY))
        candidates = [
            name for name in dict.fromkeys(names) if not archive.is_dir(name) and not is_system_entry(name)
        ]
        unreferenced = enforce_archive_policy(manifest, candidates, settings.media_sample_size)
        if unreferenced:
            log.warning("archive_entries_unreferenced", count=len(unreferenced), entries=unreferenced[:20])

        buffer = archive.read(database_entry)

    if not buffer:
        raise EmptyDatabaseError("Database file is empty", context={"entry": database_entry})

    if not has_sqlite_header(buffer):
        raise InvalidDatabaseHeaderError(
            "Database file is not a valid SQLite database",
            context={"entry": database_entry, "header": buffer[:16].hex()},
        )

    log.info("archive_validated", database_entry=database_entry, database_size=len(buffer))
    return ValidatedArchive(
        database_buffer=buffer,
        database_entry=database_entry,
        entry_count=len(names),
        manifest=manifest,
        unreferenced_files=unreferenced,
    )
