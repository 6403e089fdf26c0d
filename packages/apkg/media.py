"""Media reference detection and the text-only import policy."""

import json
import re
from collections.abc import Iterable
from typing import Any

from packages.apkg.models import MediaLocation, MediaReference, Note, NoteTypes
from packages.common.exceptions import MediaNotSupportedError
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

# Regex patterns, one per reference kind
IMAGE_PATTERN = re.compile(r"<img\b[^>]*?\bsrc\s*=\s*[\"']?([^\"'\s>]+)[^>]*>", re.IGNORECASE)
SOUND_PATTERN = re.compile(r"\[sound:([^\]]+)\]", re.IGNORECASE)
AUDIO_PATTERN = re.compile(r"<audio\b[^>]*>.*?</audio\s*>", re.IGNORECASE | re.DOTALL)
VIDEO_PATTERN = re.compile(r"<video\b[^>]*>.*?</video\s*>", re.IGNORECASE | re.DOTALL)
OBJECT_PATTERN = re.compile(
    r"<object\b[^>]*>.*?</object\s*>|<embed\b[^>]*>(?:.*?</embed\s*>)?",
    re.IGNORECASE | re.DOTALL,
)
SOURCE_ATTR_PATTERN = re.compile(r"\b(?:src|data)\s*=\s*[\"']?([^\"'\s>]+)", re.IGNORECASE)

ELEMENT_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("audio", AUDIO_PATTERN),
    ("video", VIDEO_PATTERN),
    ("object", OBJECT_PATTERN),
]

MANIFEST_LOCATION = "Media manifest"
ARCHIVE_LOCATION = "Archive entries"


def _element_reference(markup: str) -> str:
    match = SOURCE_ATTR_PATTERN.search(markup)
    if match:
        return match.group(1)
    return markup if len(markup) <= 80 else markup[:77] + "..."


def scan_text(text: str | None) -> list[MediaReference]:
    """Find every media reference in a piece of HTML.

    Args:
        text: Template, styling or field content.

    Returns:
        References in kind order: images, sound macros, audio, video, objects.
    """
    if not text:
        return []

    found = [MediaReference(type="image", reference=m.group(1)) for m in IMAGE_PATTERN.finditer(text)]
    found.extend(
        MediaReference(type="sound", reference=m.group(1).strip()) for m in SOUND_PATTERN.finditer(text)
    )
    for media_type, pattern in ELEMENT_PATTERNS:
        found.extend(
            MediaReference(type=media_type, reference=_element_reference(m.group(0)))
            for m in pattern.finditer(text)
        )
    return found


def scan_deck(note_types: NoteTypes, notes: Iterable[Note]) -> list[MediaLocation]:
    """Scan templates, styling and note fields for media.

    Args:
        note_types: Decoded note types with their templates and CSS.
        notes: Notes whose field values are scanned.

    Returns:
        One location per template side, stylesheet or field that holds media.
    """
    locations: list[MediaLocation] = []

    def record(location: str, text: str | None) -> None:
        references = scan_text(text)
        if references:
            locations.append(MediaLocation(location=location, media=references))

    for model in note_types.models.values():
        prefix = f'Note type "{model.name}"'
        for template in model.templates:
            record(f'{prefix} › template "{template.name}" › front', template.front)
            record(f'{prefix} › template "{template.name}" › back', template.back)
        record(f"{prefix} › styling", model.css)

    for note in notes:
        model = note_types.get(note.model_id)
        field_names = model.fields if model else []
        for index, value in enumerate(note.fields):
            name = field_names[index] if index < len(field_names) else f"Field {index + 1}"
            record(f'Note {note.id} › field "{name}"', value)

    return locations


def parse_manifest(content: bytes | None) -> dict[str, Any] | None:
    """Decode the ``media`` manifest.

    Legacy packages store a JSON object mapping archive entry names to
    filenames; newer ones store a compressed protobuf. Anything that is not
    JSON is treated as declaring no media.

    Returns:
        The decoded mapping, or None when the manifest is absent or unreadable.
    """
    if content is None:
        return None

    try:
        text = content.decode("utf-8-sig").strip()
    except UnicodeDecodeError:
        logger.warning("media_manifest_binary", size=len(content))
        return None

    if not text.startswith(("{", "[")):
        logger.warning("media_manifest_not_json", size=len(content))
        return None

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("media_manifest_unparseable", error=str(e))
        return None

    if isinstance(decoded, list):
        return {str(i): value for i, value in enumerate(decoded)}
    return decoded


def manifest_names(manifest: dict[str, Any] | None) -> set[str]:
    """All entry names and filenames the manifest mentions."""
    if not manifest:
        return set()
    names = set(manifest)
    names.update(str(value) for value in manifest.values() if isinstance(value, str | int))
    return names


def enforce_archive_policy(
    manifest: dict[str, Any] | None,
    candidate_files: list[str],
    sample_size: int = 3,
) -> list[str]:
    """Reject archives that ship or declare media files.

    Args:
        manifest: Decoded manifest, None when absent or unreadable.
        candidate_files: Non-system archive entries.
        sample_size: Number of file names quoted in the error message.

    Returns:
        Candidate files the manifest does not reference (tolerated leftovers).

    Raises:
        MediaNotSupportedError: If a candidate is referenced or the manifest is non-empty.
    """
    referenced_names = manifest_names(manifest)
    referenced = [name for name in candidate_files if name in referenced_names]

    if referenced:
        sample = referenced[:sample_size]
        suffix = "..." if len(referenced) > sample_size else ""
        raise MediaNotSupportedError(
            f"Deck contains {len(referenced)} referenced media file(s): {', '.join(sample)}{suffix}",
            locations=[
                MediaLocation(
                    location=ARCHIVE_LOCATION,
                    media=[MediaReference(type="file", reference=name) for name in referenced],
                )
            ],
            context={"count": len(referenced), "sample": sample},
        )

    if manifest:
        raise MediaNotSupportedError(
            f"Deck references {len(manifest)} media file(s) in its manifest",
            locations=[
                MediaLocation(
                    location=MANIFEST_LOCATION,
                    media=[
                        MediaReference(type="file", reference=str(value))
                        for value in manifest.values()
                    ],
                )
            ],
            context={"count": len(manifest)},
        )

    return [name for name in candidate_files if name not in referenced_names]


def enforce_content_policy(note_types: NoteTypes, notes: list[Note]) -> None:
    """Reject decks whose templates, styling or fields reference media.

    Raises:
        MediaNotSupportedError: With every location that holds a reference.
    """
    locations = scan_deck(note_types, notes)
    if not locations:
        return

    total = sum(len(location.media) for location in locations)
    logger.info("media_references_found", locations=len(locations), references=total)
    raise MediaNotSupportedError(
        f"Deck content references media {total} time(s) in {len(locations)} place(s)",
        locations=locations,
        context={"count": total},
    )
