"""Deck and note type metadata decoding.

Legacy collections keep decks and note types as JSON blobs in the single
``col`` row; newer ones move them into ``decks``/``notetypes`` tables. Blob
decoding is schema-validated with pydantic: a malformed blob or entry degrades
to fewer decks or note types with the cause recorded, never a crash.
"""

import json
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from packages.apkg.database import ApkgDatabase
from packages.apkg.models import CardTemplate, Deck, DeckInfo, NoteType, NoteTypes
from packages.apkg.schema import SchemaCapabilities, SchemaQuery, build_select
from packages.common.exceptions import DatabaseUnreadableError, SchemaMismatchError
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

DEFAULT_DECK_ID = 1
DEFAULT_DECK_NAME = "Default"


class RawDeck(BaseModel):
    """Deck entry as stored in ``col.decks``."""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    name: str | None = None
    desc: str | None = ""
    mod: int | None = None
    conf: int | None = None


class RawField(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str


class RawTemplate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    qfmt: str | None = ""
    afmt: str | None = ""


class RawModel(BaseModel):
    """Note type entry as stored in ``col.models``."""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    name: str | None = None
    flds: list[RawField] = Field(default_factory=list)
    tmpls: list[RawTemplate] = Field(default_factory=list)
    css: str | None = ""


def to_datetime(seconds: int | float | None) -> datetime | None:
    """Convert an epoch-seconds timestamp, treating 0/None as unknown."""
    if not seconds:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _entity_id(raw_id: int | None, key: str) -> int | None:
    if raw_id:
        return raw_id
    return int(key) if key.lstrip("-").isdigit() else None


def _decode_blob(blob: Any, label: str, errors: list[str]) -> dict[str, Any]:
    """Decode a JSON object blob; failures are recorded, not raised."""
    if blob is None or blob == "" or blob == b"":
        return {}
    try:
        decoded = json.loads(blob)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        errors.append(f"{label}: invalid JSON ({e})")
        logger.warning("metadata_blob_invalid", blob=label, error=str(e))
        return {}
    if not isinstance(decoded, dict):
        errors.append(f"{label}: expected an object, got {type(decoded).__name__}")
        logger.warning("metadata_blob_wrong_type", blob=label, type=type(decoded).__name__)
        return {}
    return decoded


def choose_default_deck(decks: dict[int, Deck]) -> Deck | None:
    """Deck with id 1 or named "Default"; otherwise the first deck."""
    for deck in decks.values():
        if deck.id == DEFAULT_DECK_ID or deck.name == DEFAULT_DECK_NAME:
            return deck
    return next(iter(decks.values()), None)


def parse_decks(blob: Any) -> DeckInfo:
    """Decode the ``col.decks`` blob into decks keyed by id.

    Args:
        blob: JSON text keyed by deck id.

    Returns:
        DeckInfo; entries missing an id or name, or with wrong-typed fields, are skipped.
    """
    errors: list[str] = []
    decks: dict[int, Deck] = {}

    for key, value in _decode_blob(blob, "decks", errors).items():
        try:
            raw = RawDeck.model_validate(value)
        except ValidationError as e:
            errors.append(f"deck {key}: {e.error_count()} invalid field(s)")
            logger.warning("deck_entry_invalid", deck_key=key, errors=e.error_count())
            continue

        deck_id = _entity_id(raw.id, key)
        if deck_id is None or not raw.name:
            continue

        decks[deck_id] = Deck(
            id=deck_id,
            name=raw.name,
            description=raw.desc or "",
            modified=to_datetime(raw.mod),
            config_id=raw.conf or 1,
        )

    return DeckInfo(decks=decks, default_deck=choose_default_deck(decks), errors=errors)


def parse_note_types(blob: Any) -> NoteTypes:
    """Decode the ``col.models`` blob into note types keyed by id.

    Args:
        blob: JSON text keyed by model id.

    Returns:
        NoteTypes; malformed entries are skipped and recorded in ``errors``.
    """
    errors: list[str] = []
    models: dict[int, NoteType] = {}

    for key, value in _decode_blob(blob, "models", errors).items():
        try:
            raw = RawModel.model_validate(value)
        except ValidationError as e:
            errors.append(f"model {key}: {e.error_count()} invalid field(s)")
            logger.warning("model_entry_invalid", model_key=key, errors=e.error_count())
            continue

        model_id = _entity_id(raw.id, key)
        if model_id is None or not raw.name:
            continue

        models[model_id] = NoteType(
            id=model_id,
            name=raw.name,
            fields=[f.name for f in raw.flds],
            templates=[
                CardTemplate(name=t.name, front=t.qfmt or "", back=t.afmt or "") for t in raw.tmpls
            ],
            css=raw.css or "",
        )

    return NoteTypes(models=models, errors=errors)


def _has_modern_schema(capabilities: SchemaCapabilities) -> bool:
    """Check if the collection keeps decks and note types in separate tables."""
    return capabilities.has_table("notetypes")


def read_collection_row(db: ApkgDatabase, capabilities: SchemaCapabilities) -> dict[str, Any] | None:
    """Fetch the ``decks`` and ``models`` blobs from ``col``.

    Raises:
        SchemaMismatchError: If the row cannot be queried at all.
    """
    query = build_select(capabilities, "col", ["decks", "models"])
    if query is None:
        if _has_modern_schema(capabilities):
            return None
        raise SchemaMismatchError(
            "Collection table has neither decks nor models columns",
            context={"columns": sorted(capabilities.columns("col"))},
        )

    sql, _ = query
    try:
        rows = db.execute(sql + " LIMIT 1")
    except DatabaseUnreadableError as e:
        raise SchemaMismatchError(f"Could not read collection metadata: {e}") from e
    return rows[0] if rows else None


def _read_decks_modern(query: SchemaQuery) -> DeckInfo:
    """Read decks from the modern separate decks table."""
    decks: dict[int, Deck] = {}
    for row in query.select("decks", required=("id", "name"), optional=("mtime_secs",)):
        if row["id"] is None or not row["name"]:
            continue
        decks[row["id"]] = Deck(
            id=row["id"],
            name=str(row["name"]),
            modified=to_datetime(row["mtime_secs"]),
        )
    return DeckInfo(decks=decks, default_deck=choose_default_deck(decks))


def _read_note_types_modern(query: SchemaQuery) -> NoteTypes:
    """Read note types from the modern notetypes + fields + templates tables.

    Template bodies are protobuf-encoded in this layout and stay empty.
    """
    model_fields: dict[int, list[str]] = {}
    for row in query.select("fields", required=("ntid", "name"), order_by=("ntid", "ord")):
        model_fields.setdefault(row["ntid"], []).append(str(row["name"]))

    model_templates: dict[int, list[CardTemplate]] = {}
    for row in query.select("templates", required=("ntid", "name"), order_by=("ntid", "ord")):
        model_templates.setdefault(row["ntid"], []).append(CardTemplate(name=str(row["name"])))

    models: dict[int, NoteType] = {}
    for row in query.select("notetypes", required=("id", "name")):
        model_id = row["id"]
        models[model_id] = NoteType(
            id=model_id,
            name=str(row["name"]),
            fields=model_fields.get(model_id, []),
            templates=model_templates.get(model_id, []),
        )
    return NoteTypes(models=models)


def read_metadata(db: ApkgDatabase, query: SchemaQuery) -> tuple[DeckInfo, NoteTypes]:
    """Read decks and note types, whichever layout the collection uses.

    Raises:
        SchemaMismatchError: If the collection row cannot be queried.
    """
    row = read_collection_row(db, query.capabilities)
    decks_blob = row.get("decks") if row else None
    models_blob = row.get("models") if row else None

    if row is None and not _has_modern_schema(query.capabilities):
        logger.warning("collection_row_missing")
        empty = ["col: no collection row"]
        return DeckInfo(errors=empty), NoteTypes(errors=list(empty))

    deck_info = parse_decks(decks_blob)
    note_types = parse_note_types(models_blob)

    if _has_modern_schema(query.capabilities):
        if not deck_info.decks:
            deck_info = _read_decks_modern(query)
        if not note_types.models:
            note_types = _read_note_types_modern(query)

    logger.info(
        "metadata_read",
        decks=deck_info.deck_count,
        models=note_types.model_count,
        errors=len(deck_info.errors) + len(note_types.errors),
    )
    return deck_info, note_types
