"""Rendered card previews."""

from packages.apkg.models import Card, CardPreview, Note, NoteTypes
from packages.apkg.templates import render
from packages.common.logging import get_logger

logger = get_logger(module=__name__)


def preview_card(card: Card, note: Note | None, note_types: NoteTypes) -> CardPreview | None:
    """Render one card, or None when its note, note type or template is unknown."""
    if note is None:
        return None

    model = note_types.get(note.model_id)
    if model is None:
        return None

    if not 0 <= card.template_index < len(model.templates):
        return None
    template = model.templates[card.template_index]

    front = render(template.front, note.fields, model.fields)
    back = render(template.back, note.fields, model.fields, front_content=front.html)

    return CardPreview(
        card_id=card.id,
        note_id=note.id,
        front=front.html,
        back=back.html,
        status=card.status_label,
        note_type=model.name,
        template_name=template.name,
        fields=note.fields,
        field_names=model.fields,
        tags=note.tags,
    )


def build_card_previews(
    notes: list[Note],
    cards: list[Card],
    note_types: NoteTypes,
    limit: int | None = 10,
) -> list[CardPreview]:
    """Render previews for the first ``limit`` cards.

    Args:
        notes: Notes of the collection.
        cards: Cards in display order.
        note_types: Note types holding the templates.
        limit: Number of cards considered; None renders every card.

    Returns:
        Previews for the cards that could be rendered.
    """
    notes_by_id = {note.id: note for note in notes}
    selected = cards if limit is None else cards[:limit]

    previews: list[CardPreview] = []
    skipped = 0
    for card in selected:
        preview = preview_card(card, notes_by_id.get(card.note_id), note_types)
        if preview is None:
            skipped += 1
            continue
        previews.append(preview)

    if skipped:
        logger.debug("previews_skipped", count=skipped)
    return previews
