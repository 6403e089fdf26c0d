"""Deck import data models."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

UNKNOWN_DECK = "unknown"


class CardStatus(StrEnum):
    """Review status derived from a card's raw queue value."""

    NEW = "New"
    LEARNING = "Learning"
    REVIEW = "Review"
    SUSPENDED = "Suspended"
    BURIED_BY_SCHEDULER = "Buried (scheduler)"
    BURIED_BY_USER = "Buried (user)"
    UNKNOWN = "Unknown"


QUEUE_STATUSES: dict[int, CardStatus] = {
    0: CardStatus.NEW,
    1: CardStatus.LEARNING,
    2: CardStatus.REVIEW,
    -1: CardStatus.SUSPENDED,
    -2: CardStatus.BURIED_BY_SCHEDULER,
    -3: CardStatus.BURIED_BY_USER,
}


def card_status(queue: int | None) -> CardStatus:
    """Map a raw queue value to a status."""
    if queue is None:
        return CardStatus.UNKNOWN
    return QUEUE_STATUSES.get(queue, CardStatus.UNKNOWN)


def status_label(queue: int | None) -> str:
    """Human-readable status that keeps unrecognized queue values visible."""
    status = card_status(queue)
    if status is CardStatus.UNKNOWN and queue is not None:
        return f"{status} ({queue})"
    return str(status)


class Deck(BaseModel):
    """Deck from the collection metadata."""

    id: int
    name: str
    description: str = ""
    modified: datetime | None = None
    config_id: int = 1


class CardTemplate(BaseModel):
    """One card type of a note type."""

    name: str
    front: str = ""
    back: str = ""


class NoteType(BaseModel):
    """Note type/model from the collection metadata."""

    id: int
    name: str
    fields: list[str] = Field(default_factory=list)
    templates: list[CardTemplate] = Field(default_factory=list)
    css: str = ""

    @property
    def card_count(self) -> int:
        """Number of card variants the note type generates."""
        return len(self.templates)


class Note(BaseModel):
    """Note from the collection."""

    id: int
    deck_id: int | None = None
    model_id: int | None = None
    fields: list[str] = Field(default_factory=list)  # Positional, aligned to NoteType.fields
    sort_field: str = ""
    tags: list[str] = Field(default_factory=list)
    modified: datetime | None = None


class Card(BaseModel):
    """Card from the collection."""

    id: int
    note_id: int
    deck_id: int | None = None
    template_index: int = 0
    queue: int | None = None  # -3=user buried, -2=sched buried, -1=suspended, 0=new, 1=learning, 2=review
    status: CardStatus = CardStatus.UNKNOWN
    status_label: str = str(CardStatus.UNKNOWN)
    interval: int = 0  # Days
    factor: int = 0  # Permille, e.g. 2500 = 250%
    review_count: int = 0
    lapse_count: int = 0


class DeckInfo(BaseModel):
    """Decoded ``col.decks`` blob."""

    decks: dict[int, Deck] = Field(default_factory=dict)
    default_deck: Deck | None = None
    errors: list[str] = Field(default_factory=list)

    @property
    def deck_count(self) -> int:
        return len(self.decks)


class NoteTypes(BaseModel):
    """Decoded ``col.models`` blob."""

    models: dict[int, NoteType] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

    @property
    def model_count(self) -> int:
        return len(self.models)

    def get(self, model_id: int | None) -> NoteType | None:
        """Look up a note type, returning None for unknown ids."""
        if model_id is None:
            return None
        return self.models.get(model_id)


class MediaReference(BaseModel):
    """A single media reference found in deck content."""

    type: str  # image, sound, audio, video, object, file
    reference: str


class MediaLocation(BaseModel):
    """Where in the deck media references were found."""

    location: str
    media: list[MediaReference] = Field(default_factory=list)


class ValidatedArchive(BaseModel):
    """Archive that passed every structural gate."""

    database_buffer: bytes = Field(repr=False)
    database_entry: str
    entry_count: int
    manifest: dict[str, Any] | None = None
    unreferenced_files: list[str] = Field(default_factory=list)


class StatusCount(BaseModel):
    """Cards grouped by raw queue value."""

    queue: int | None
    status: str
    count: int


class GroupCount(BaseModel):
    """Rows grouped by a foreign key column."""

    key: int | str | None
    count: int


class DeckStatistics(BaseModel):
    """Aggregate counts over one imported collection."""

    total_cards: int = 0
    total_notes: int = 0
    cards_by_status: list[StatusCount] = Field(default_factory=list)
    notes_by_deck: list[GroupCount] = Field(default_factory=list)
    cards_by_deck: list[GroupCount] = Field(default_factory=list)
    notes_by_model: list[GroupCount] = Field(default_factory=list)
    orphaned_cards: int = 0
    average_cards_per_note: float = 0.0


class Relationships(BaseModel):
    """Note/card and deck/note indexes."""

    cards_by_note: dict[int, list[Card]] = Field(default_factory=dict)
    notes_by_deck: dict[int | str, list[Note]] = Field(default_factory=dict)

    def cards_for_note(self, note_id: int) -> list[Card]:
        """Cards generated from a note; empty when the note is unknown."""
        return self.cards_by_note.get(note_id, [])

    def notes_for_deck(self, deck_id: int | None) -> list[Note]:
        """Notes assigned to a deck; ``None`` selects the unassigned bucket."""
        key: int | str = UNKNOWN_DECK if deck_id is None else deck_id
        return self.notes_by_deck.get(key, [])


class CardPreview(BaseModel):
    """Rendered front and back of one card."""

    card_id: int
    note_id: int
    front: str
    back: str
    status: str
    note_type: str
    template_name: str
    fields: list[str] = Field(default_factory=list)
    field_names: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class ImportResult(BaseModel):
    """Normalized deck produced by one import."""

    deck_info: DeckInfo
    note_types: NoteTypes
    notes: list[Note]
    cards: list[Card]
    statistics: DeckStatistics
    relationships: Relationships
    previews: list[CardPreview] = Field(default_factory=list)

    # Metadata
    database_entry: str | None = None
    entry_count: int = 0
    unreferenced_files: list[str] = Field(default_factory=list)
    imported_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
