"""Note/card indexes and aggregate deck statistics."""

from collections import Counter
from typing import Any

from packages.apkg.models import (
    UNKNOWN_DECK,
    Card,
    DeckStatistics,
    GroupCount,
    Note,
    Relationships,
    StatusCount,
    status_label,
)
from packages.apkg.schema import SchemaQuery
from packages.common.logging import get_logger

logger = get_logger(module=__name__)


def build_cards_by_note(cards: list[Card]) -> dict[int, list[Card]]:
    """Build mapping of note_id -> cards of that note."""
    result: dict[int, list[Card]] = {}
    for card in cards:
        result.setdefault(card.note_id, []).append(card)
    return result


def build_notes_by_deck(notes: list[Note]) -> dict[int | str, list[Note]]:
    """Build mapping of deck_id -> notes; notes without a deck go to ``"unknown"``."""
    result: dict[int | str, list[Note]] = {}
    for note in notes:
        key: int | str = note.deck_id if note.deck_id is not None else UNKNOWN_DECK
        result.setdefault(key, []).append(note)
    return result


def build_relationships(notes: list[Note], cards: list[Card]) -> Relationships:
    """Index cards by note and notes by deck."""
    return Relationships(
        cards_by_note=build_cards_by_note(cards),
        notes_by_deck=build_notes_by_deck(notes),
    )


def count_orphaned_cards(notes: list[Note], cards: list[Card]) -> int:
    """Number of cards whose note does not exist."""
    note_ids = {note.id for note in notes}
    return sum(1 for card in cards if card.note_id not in note_ids)


def integer_key(value: Any) -> int | None:
    """Integer value of a grouped cell; text, blobs and fractions give None."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _ordered(counts: Counter[int | None]) -> list[tuple[int | None, int]]:
    return sorted(counts.items(), key=lambda item: (item[0] is None, item[0] or 0))


def _status_counts(counts: Counter[int | None]) -> list[StatusCount]:
    return [StatusCount(queue=queue, status=status_label(queue), count=n) for queue, n in _ordered(counts)]


def count_by_queue(cards: list[Card]) -> list[StatusCount]:
    """Cards grouped on the raw queue value, ordered by queue."""
    return _status_counts(Counter(card.queue for card in cards))


def _integer_group_counts(query: SchemaQuery, table: str, column: str) -> Counter[int | None]:
    """Grouped counts with non-integer values merged into the None group.

    SQLite stores whatever a writer put in a cell, so a grouped column may
    hold text or blobs next to its integer ids.
    """
    counts: Counter[int | None] = Counter()
    for value, count in query.group_count(table, column):
        key = integer_key(value)
        if key is None and value is not None:
            logger.warning("group_value_not_integer", table=table, column=column, value=repr(value)[:40])
        counts[key] += count
    return counts


def _group_counts(query: SchemaQuery, table: str, column: str) -> list[GroupCount]:
    """Groups ordered by count, largest first."""
    counts = _integer_group_counts(query, table, column)
    groups = [GroupCount(key=key, count=n) for key, n in _ordered(counts)]
    groups.sort(key=lambda g: g.count, reverse=True)
    return groups


def build_statistics(query: SchemaQuery, notes: list[Note], cards: list[Card]) -> DeckStatistics:
    """Compute aggregate counts for one collection.

    Totals and groupings come from the database so they cover rows the
    readers skipped. Each aggregate stands alone: an absent column or failing
    query empties that aggregate only.

    Args:
        query: Query layer over the open collection.
        notes: Parsed notes, for orphan detection.
        cards: Parsed cards, for orphan detection and the queue fallback.

    Returns:
        DeckStatistics for the collection.
    """
    total_cards = query.count("cards")
    total_notes = query.count("notes")

    if query.capabilities.has_column("cards", "queue"):
        cards_by_status = _status_counts(_integer_group_counts(query, "cards", "queue"))
    else:
        cards_by_status = count_by_queue(cards)

    return DeckStatistics(
        total_cards=total_cards,
        total_notes=total_notes,
        cards_by_status=cards_by_status,
        notes_by_deck=_group_counts(query, "notes", "did"),
        cards_by_deck=_group_counts(query, "cards", "did"),
        notes_by_model=_group_counts(query, "notes", "mid"),
        orphaned_cards=count_orphaned_cards(notes, cards),
        average_cards_per_note=round(total_cards / total_notes, 1) if total_notes else 0.0,
    )
