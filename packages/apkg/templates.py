"""Card template rendering.

Rendering runs four passes in a fixed order:

1. ``{{Field}}`` placeholders are replaced with field values.
2. ``{{FrontSide}}`` is replaced with the rendered front (back side only).
3. ``{{cN::text::hint}}`` cloze deletions become a revealed ``text``.
4. Any placeholder still left becomes a visible missing-field marker.

Substituted values are held behind private markers until the last pass, so
a value that itself contains ``{{FrontSide}}`` or ``{{Other}}`` comes out
verbatim instead of being expanded again. Cloze deletions inside values are
still resolved, since that is where cloze text lives.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from packages.apkg.media import scan_text
from packages.apkg.models import MediaReference

# Regex patterns
CLOZE_PATTERN = re.compile(r"\{\{c(\d+)::(.*?)(?:::(.*?))?\}\}")
PLACEHOLDER_PATTERN = re.compile(r"\{\{[^}]+\}\}")
FRONT_SIDE_PATTERN = re.compile(r"\{\{\s*FrontSide\s*\}\}", re.IGNORECASE)
SLOT_OPEN = "\ue000"
SLOT_CLOSE = "\ue001"
SLOT_PATTERN = re.compile(SLOT_OPEN + r"(\d+)" + SLOT_CLOSE)
SLOT_CHARS = re.compile(f"[{SLOT_OPEN}{SLOT_CLOSE}]")

# Field filters that still resolve to the plain field value
FIELD_FILTERS = ("cloze", "text", "hint", "type")

CLOZE_REVEAL = '<span class="cloze" style="color: blue; font-weight: bold;">[{}]</span>'
MISSING_FIELD_MARKER = '<span class="missing-field" style="color: red; font-size: 0.8em;">[Missing Field]</span>'


@dataclass
class RenderResult:
    """Rendered HTML plus the media references it contains."""

    html: str
    media_found: list[MediaReference] = field(default_factory=list)


def reveal_clozes(text: str) -> str:
    """Replace cloze deletions with a styled reveal of the answer; hints are dropped."""
    return CLOZE_PATTERN.sub(lambda m: CLOZE_REVEAL.format(m.group(2)), text)


def _field_pattern(name: str) -> re.Pattern[str]:
    filters = "|".join(FIELD_FILTERS)
    return re.compile(
        r"\{\{(?:(?:" + filters + r"):)?" + re.escape(name) + r"\}\}",
        re.IGNORECASE,
    )


def render(
    template: str | None,
    field_values: Sequence[str],
    field_names: Sequence[str],
    front_content: str | None = None,
) -> RenderResult:
    """Render one side of a card.

    Args:
        template: Front or back template.
        field_values: Note field values, positionally aligned to ``field_names``.
        field_names: Field names of the note type.
        front_content: Rendered front, substituted for ``{{FrontSide}}``.

    Returns:
        RenderResult with the HTML and any media references in it.
    """
    if not template:
        return RenderResult(html="")

    slots: list[str] = []

    def hold(value: str) -> str:
        slots.append(value)
        return f"{SLOT_OPEN}{len(slots) - 1}{SLOT_CLOSE}"

    # Marker characters already present in the template are held like values
    processed = SLOT_CHARS.sub(lambda m: hold(m.group(0)), template)

    # Step 1: field placeholders
    for index, name in enumerate(field_names):
        if not name:
            continue
        value = field_values[index] if index < len(field_values) else ""
        processed = _field_pattern(name).sub(lambda _m, v=value: hold(reveal_clozes(v or "")), processed)

    # Step 2: front side back-reference
    if front_content is not None:
        front = front_content
        processed = FRONT_SIDE_PATTERN.sub(lambda _m: hold(front), processed)

    # Step 3: cloze deletions written into the template itself
    processed = reveal_clozes(processed)

    # Step 4: anything still unresolved
    processed = PLACEHOLDER_PATTERN.sub(MISSING_FIELD_MARKER, processed)

    def expand(match: re.Match[str]) -> str:
        index = int(match.group(1))
        return slots[index] if index < len(slots) else match.group(0)

    html = SLOT_PATTERN.sub(expand, processed)
    return RenderResult(html=html, media_found=scan_text(html))
