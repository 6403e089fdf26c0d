"""Tests for relationship indexes and deck statistics."""

from collections.abc import Callable

from packages.apkg.database import ApkgDatabase
from packages.apkg.models import Card, Note
from packages.apkg.reader import read_cards, read_notes
from packages.apkg.relationships import (
    build_cards_by_note,
    build_notes_by_deck,
    build_relationships,
    build_statistics,
    count_by_queue,
    count_orphaned_cards,
    integer_key,
)
from packages.apkg.schema import SchemaQuery
from tests.conftest import BASIC_MODEL_ID, CLOZE_MODEL_ID, PYTHON_DECK_ID


class TestIndexes:
    """Tests for note/card and deck/note indexes."""

    def test_cards_by_note(self) -> None:
        cards = [Card(id=1, note_id=10), Card(id=2, note_id=10), Card(id=3, note_id=11)]

        index = build_cards_by_note(cards)

        assert [card.id for card in index[10]] == [1, 2]
        assert [card.id for card in index[11]] == [3]

    def test_notes_by_deck(self) -> None:
        """Notes without a deck fall into the unknown bucket."""
        notes = [Note(id=1, deck_id=5), Note(id=2), Note(id=3, deck_id=5)]

        index = build_notes_by_deck(notes)

        assert [note.id for note in index[5]] == [1, 3]
        assert [note.id for note in index["unknown"]] == [2]

    def test_build_relationships(self) -> None:
        relationships = build_relationships([Note(id=1)], [Card(id=9, note_id=1)])

        assert relationships.cards_for_note(1)[0].id == 9
        assert relationships.notes_for_deck(None)[0].id == 1


class TestOrphans:
    """Tests for cards whose note does not exist."""

    def test_counts_orphans(self) -> None:
        notes = [Note(id=1)]
        cards = [Card(id=1, note_id=1), Card(id=2, note_id=2), Card(id=3, note_id=3)]

        assert count_orphaned_cards(notes, cards) == 2

    def test_no_notes(self) -> None:
        cards = [Card(id=1, note_id=1)]
        assert count_orphaned_cards([], cards) == 1

    def test_empty_collection(self) -> None:
        assert count_orphaned_cards([], []) == 0


class TestCountByQueue:
    def test_groups_on_raw_queue(self) -> None:
        cards = [
            Card(id=1, note_id=1, queue=2),
            Card(id=2, note_id=1, queue=0),
            Card(id=3, note_id=1, queue=2),
            Card(id=4, note_id=1),
        ]

        counts = count_by_queue(cards)

        assert [(c.queue, c.status, c.count) for c in counts] == [
            (0, "New", 1),
            (2, "Review", 2),
            (None, "Unknown", 1),
        ]


class TestBuildStatistics:
    """Tests for aggregate statistics over a collection."""

    def test_sample_collection(self, collection_bytes: bytes) -> None:
        with ApkgDatabase(collection_bytes) as db:
            query = SchemaQuery(db)
            notes = read_notes(query)
            cards = read_cards(query)
            stats = build_statistics(query, notes, cards)

        assert stats.total_cards == 4
        assert stats.total_notes == 3
        assert stats.orphaned_cards == 1
        assert stats.average_cards_per_note == 1.3
        assert [(s.queue, s.status, s.count) for s in stats.cards_by_status] == [
            (-2, "Buried (scheduler)", 1),
            (0, "New", 1),
            (2, "Review", 1),
            (7, "Unknown (7)", 1),
        ]
        assert [(g.key, g.count) for g in stats.cards_by_deck] == [(1, 2), (PYTHON_DECK_ID, 2)]
        assert [(g.key, g.count) for g in stats.notes_by_model] == [(BASIC_MODEL_ID, 2), (CLOZE_MODEL_ID, 1)]
        # Legacy notes have no deck column; that aggregate alone is empty
        assert stats.notes_by_deck == []

    def test_empty_collection(self, make_collection: Callable[..., bytes]) -> None:
        with ApkgDatabase(make_collection(notes=[], cards=[])) as db:
            query = SchemaQuery(db)
            stats = build_statistics(query, [], [])

        assert stats.total_cards == 0
        assert stats.total_notes == 0
        assert stats.average_cards_per_note == 0.0
        assert stats.cards_by_status == []
        assert stats.orphaned_cards == 0

    def test_without_queue_column(self, make_database: Callable[[str], bytes]) -> None:
        """Status counts fall back to the parsed cards."""
        data = make_database(
            "CREATE TABLE notes (id INTEGER PRIMARY KEY, did INTEGER);"
            "CREATE TABLE cards (id INTEGER PRIMARY KEY, nid INTEGER);"
            "CREATE TABLE col (id INTEGER);"
            "INSERT INTO notes VALUES (1, 5), (2, 5), (3, 6);"
            "INSERT INTO cards VALUES (10, 1), (11, 2);"
        )
        with ApkgDatabase(data) as db:
            query = SchemaQuery(db)
            notes = read_notes(query)
            cards = read_cards(query)
            stats = build_statistics(query, notes, cards)

        assert [(s.status, s.count) for s in stats.cards_by_status] == [("Unknown", 2)]
        assert [(g.key, g.count) for g in stats.notes_by_deck] == [(5, 2), (6, 1)]
        assert stats.cards_by_deck == []
        assert stats.notes_by_model == []
        assert stats.average_cards_per_note == 0.7

    def test_non_integer_group_values(self, make_collection: Callable[..., bytes]) -> None:
        """Text, blob and fractional cells are counted in the None group."""
        notes = [
            (1, "g1", BASIC_MODEL_ID, 0, -1, "", "Q\x1fA", "Q", 0, 0, ""),
            (2, "g2", 1.5, 0, -1, "", "Q\x1fA", "Q", 0, 0, ""),
        ]
        cards = [
            (10, 1, 1, 0, 0, -1, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, ""),
            (11, 1, b"\x01", 0, 0, -1, 0, "x", 0, 0, 0, 0, 0, 0, 0, 0, 0, ""),
            (12, 2, 1, 0, 0, -1, 0, "x", 0, 0, 0, 0, 0, 0, 0, 0, 0, ""),
        ]
        with ApkgDatabase(make_collection(notes=notes, cards=cards)) as db:
            stats = build_statistics(SchemaQuery(db), [], [])

        assert stats.total_cards == 3
        assert [(s.queue, s.status, s.count) for s in stats.cards_by_status] == [
            (0, "New", 1),
            (None, "Unknown", 2),
        ]
        assert [(g.key, g.count) for g in stats.cards_by_deck] == [(1, 2), (None, 1)]
        assert [(g.key, g.count) for g in stats.notes_by_model] == [(BASIC_MODEL_ID, 1), (None, 1)]


class TestIntegerKey:
    def test_integer_values(self) -> None:
        assert integer_key(7) == 7
        assert integer_key(-2) == -2
        assert integer_key(3.0) == 3

    def test_other_values(self) -> None:
        assert integer_key(None) is None
        assert integer_key("x") is None
        assert integer_key("5") is None
        assert integer_key(b"\x01") is None
        assert integer_key(1.5) is None
