"""Note and card readers over the schema-adaptive query layer."""

from typing import Any

from pydantic import ValidationError

from packages.apkg.metadata import to_datetime
from packages.apkg.models import Card, Note, card_status, status_label
from packages.apkg.schema import SchemaQuery
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

FIELD_SEPARATOR = "\x1f"

NOTE_REQUIRED_COLUMNS = ("id",)
NOTE_OPTIONAL_COLUMNS = ("flds", "sfld", "did", "mid", "mod", "tags")
CARD_REQUIRED_COLUMNS = ("id", "nid")
CARD_OPTIONAL_COLUMNS = ("ord", "did", "queue", "ivl", "factor", "reps", "lapses")


def split_fields(flds: Any) -> list[str]:
    """Split the stored field string on the unit separator only."""
    if flds is None or flds == "":
        return []
    if isinstance(flds, bytes):
        flds = flds.decode("utf-8", errors="replace")
    return str(flds).split(FIELD_SEPARATOR)


def parse_tags(tags: Any) -> list[str]:
    """Parse a space-separated tag string, dropping empties and duplicates."""
    if not tags:
        return []
    seen: dict[str, None] = {}
    for tag in str(tags).split():
        seen.setdefault(tag, None)
    return list(seen)


def _int_or_default(value: Any, default: int = 0) -> int:
    return value if isinstance(value, int) else default


def note_from_row(row: dict[str, Any]) -> Note:
    """Build a Note from a ``notes`` row with possibly absent columns."""
    sort_field = row.get("sfld")
    return Note(
        id=row["id"],
        deck_id=row.get("did") or None,
        model_id=row.get("mid") or None,
        fields=split_fields(row.get("flds")),
        sort_field="" if sort_field is None else str(sort_field),
        tags=parse_tags(row.get("tags")),
        modified=to_datetime(row.get("mod")),
    )


def card_from_row(row: dict[str, Any]) -> Card:
    """Build a Card from a ``cards`` row with possibly absent columns."""
    queue = row.get("queue")
    return Card(
        id=row["id"],
        note_id=row["nid"],
        deck_id=row.get("did") or None,
        template_index=_int_or_default(row.get("ord")),
        queue=queue,
        status=card_status(queue),
        status_label=status_label(queue),
        interval=_int_or_default(row.get("ivl")),
        factor=_int_or_default(row.get("factor")),
        review_count=_int_or_default(row.get("reps")),
        lapse_count=_int_or_default(row.get("lapses")),
    )


def read_notes(query: SchemaQuery) -> list[Note]:
    """Read notes in id order; malformed rows are skipped and logged."""
    rows = query.select(
        "notes",
        required=NOTE_REQUIRED_COLUMNS,
        optional=NOTE_OPTIONAL_COLUMNS,
        order_by=("id",),
    )

    result: list[Note] = []
    for row in rows:
        try:
            result.append(note_from_row(row))
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning("note_row_skipped", note_id=row.get("id"), error=str(e))
    return result


def read_cards(query: SchemaQuery) -> list[Card]:
    """Read cards ordered by note and template slot; malformed rows are skipped."""
    rows = query.select(
        "cards",
        required=CARD_REQUIRED_COLUMNS,
        optional=CARD_OPTIONAL_COLUMNS,
        order_by=("nid", "ord"),
    )

    result: list[Card] = []
    for row in rows:
        try:
            result.append(card_from_row(row))
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning("card_row_skipped", card_id=row.get("id"), error=str(e))
    return result
