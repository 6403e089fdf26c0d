"""Pytest configuration and fixtures."""

import json
import sqlite3
import zipfile
from collections.abc import Callable
from io import BytesIO
from typing import Any

import pytest

from packages.common.config import Settings

BASIC_MODEL_ID = 1234567891
CLOZE_MODEL_ID = 1234567892
PYTHON_DECK_ID = 1234567890

LEGACY_SCHEMA = """
-- Collection metadata
CREATE TABLE col (
    id INTEGER PRIMARY KEY,
    crt INTEGER NOT NULL,
    mod INTEGER NOT NULL,
    scm INTEGER NOT NULL,
    ver INTEGER NOT NULL,
    dty INTEGER NOT NULL,
    usn INTEGER NOT NULL,
    ls INTEGER NOT NULL,
    conf TEXT NOT NULL,
    models TEXT NOT NULL,
    decks TEXT NOT NULL,
    dconf TEXT NOT NULL,
    tags TEXT NOT NULL
);

-- Notes
CREATE TABLE notes (
    id INTEGER PRIMARY KEY,
    guid TEXT NOT NULL,
    mid INTEGER NOT NULL,
    mod INTEGER NOT NULL,
    usn INTEGER NOT NULL,
    tags TEXT NOT NULL,
    flds TEXT NOT NULL,
    sfld INTEGER NOT NULL,
    csum INTEGER NOT NULL,
    flags INTEGER NOT NULL,
    data TEXT NOT NULL
);

-- Cards
CREATE TABLE cards (
    id INTEGER PRIMARY KEY,
    nid INTEGER NOT NULL,
    did INTEGER NOT NULL,
    ord INTEGER NOT NULL,
    mod INTEGER NOT NULL,
    usn INTEGER NOT NULL,
    type INTEGER NOT NULL,
    queue INTEGER NOT NULL,
    due INTEGER NOT NULL,
    ivl INTEGER NOT NULL,
    factor INTEGER NOT NULL,
    reps INTEGER NOT NULL,
    lapses INTEGER NOT NULL,
    left INTEGER NOT NULL,
    odue INTEGER NOT NULL,
    odid INTEGER NOT NULL,
    flags INTEGER NOT NULL,
    data TEXT NOT NULL
);

-- Review log
CREATE TABLE revlog (
    id INTEGER PRIMARY KEY,
    cid INTEGER NOT NULL,
    usn INTEGER NOT NULL,
    ease INTEGER NOT NULL,
    ivl INTEGER NOT NULL,
    lastIvl INTEGER NOT NULL,
    factor INTEGER NOT NULL,
    time INTEGER NOT NULL,
    type INTEGER NOT NULL
);
"""

SAMPLE_DECKS: dict[str, Any] = {
    "1": {
        "id": 1,
        "name": "Default",
        "mod": 1700000000,
        "usn": -1,
        "collapsed": False,
        "desc": "",
        "dyn": 0,
        "conf": 1,
    },
    str(PYTHON_DECK_ID): {
        "id": PYTHON_DECK_ID,
        "name": "Programming::Python",
        "mod": 1700000000,
        "usn": -1,
        "collapsed": False,
        "desc": "Core Python data structures",
        "dyn": 0,
        "conf": 2,
    },
}

SAMPLE_MODELS: dict[str, Any] = {
    str(BASIC_MODEL_ID): {
        "id": BASIC_MODEL_ID,
        "name": "Basic",
        "type": 0,
        "mod": 1700000000,
        "sortf": 0,
        "did": 1,
        "tmpls": [
            {
                "name": "Card 1",
                "ord": 0,
                "qfmt": "{{Front}}",
                "afmt": "{{FrontSide}}<hr id=answer>{{Back}}",
                "did": None,
                "bqfmt": "",
                "bafmt": "",
            }
        ],
        "flds": [
            {"name": "Front", "ord": 0, "sticky": False, "rtl": False, "font": "Arial", "size": 20},
            {"name": "Back", "ord": 1, "sticky": False, "rtl": False, "font": "Arial", "size": 20},
        ],
        "css": ".card { font-family: arial; }",
        "req": [[0, "all", [0]]],
    },
    str(CLOZE_MODEL_ID): {
        "id": CLOZE_MODEL_ID,
        "name": "Cloze",
        "type": 1,
        "mod": 1700000000,
        "tmpls": [
            {
                "name": "Cloze",
                "ord": 0,
                "qfmt": "{{cloze:Text}}",
                "afmt": "{{cloze:Text}}<br>{{Extra}}",
            }
        ],
        "flds": [{"name": "Text", "ord": 0}, {"name": "Extra", "ord": 1}],
        "css": "",
    },
}

# (id, guid, mid, mod, usn, tags, flds, sfld, csum, flags, data)
SAMPLE_NOTES: list[tuple[Any, ...]] = [
    (
        1000000001,
        "abc123",
        BASIC_MODEL_ID,
        1700000000,
        -1,
        " python  programming ",
        "What is a <b>list</b> in Python?\x1fAn ordered, mutable collection of items.",
        "What is a list in Python?",
        0,
        0,
        "",
    ),
    (
        1000000002,
        "def456",
        BASIC_MODEL_ID,
        1700000000,
        -1,
        "python python",
        "What is a <code>dict</code>?\x1fA key-value mapping data structure.",
        "What is a dict?",
        0,
        0,
        "",
    ),
    (
        1000000003,
        "ghi789",
        CLOZE_MODEL_ID,
        1700000000,
        -1,
        "",
        "{{c1::Lambda::starts with L}} functions are anonymous.\x1fThey use the lambda keyword.",
        "Lambda functions are anonymous.",
        0,
        0,
        "",
    ),
]

# (id, nid, did, ord, mod, usn, type, queue, due, ivl, factor, reps, lapses, left, odue, odid, flags, data)
SAMPLE_CARDS: list[tuple[Any, ...]] = [
    (2000000001, 1000000001, PYTHON_DECK_ID, 0, 1700000000, -1, 2, 2, 100, 21, 2500, 10, 2, 0, 0, 0, 0, ""),
    (2000000002, 1000000002, PYTHON_DECK_ID, 0, 1700000000, -1, 2, -2, 50, 14, 2300, 5, 1, 0, 0, 0, 0, ""),
    (2000000003, 1000000003, 1, 0, 1700000000, -1, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, ""),
    # Orphan: its note does not exist
    (2000000004, 1000000099, 1, 0, 1700000000, -1, 0, 7, 0, 0, 0, 0, 0, 0, 0, 0, 0, ""),
]


def build_collection(
    *,
    decks: Any = SAMPLE_DECKS,
    models: Any = SAMPLE_MODELS,
    notes: list[tuple[Any, ...]] | None = None,
    cards: list[tuple[Any, ...]] | None = None,
    sql: str = "",
) -> bytes:
    """Create an Anki collection with the legacy schema and return its bytes.

    ``sql`` runs after the inserts, for cell values parameter binding cannot
    produce (invalid UTF-8 text, for example).
    """
    conn = sqlite3.connect(":memory:")
    conn.executescript(LEGACY_SCHEMA)

    decks_blob = decks if isinstance(decks, str) else json.dumps(decks)
    models_blob = models if isinstance(models, str) else json.dumps(models)
    conn.execute(
        """
        INSERT INTO col (id, crt, mod, scm, ver, dty, usn, ls, conf, models, decks, dconf, tags)
        VALUES (1, 1700000000, 1700000000, 1700000000, 11, 0, -1, 0, '{}', ?, ?, '{}', '{}')
        """,
        (models_blob, decks_blob),
    )
    conn.executemany(
        "INSERT INTO notes VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        SAMPLE_NOTES if notes is None else notes,
    )
    conn.executemany(
        "INSERT INTO cards VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        SAMPLE_CARDS if cards is None else cards,
    )
    if sql:
        conn.executescript(sql)
    conn.commit()
    data = conn.serialize()
    conn.close()
    return data


def build_database(script: str) -> bytes:
    """Create an arbitrary SQLite database from a script and return its bytes."""
    conn = sqlite3.connect(":memory:")
    conn.executescript(script)
    conn.commit()
    data = conn.serialize()
    conn.close()
    return data


def build_apkg(entries: dict[str, bytes | str | None]) -> bytes:
    """Create a ZIP archive; a name ending in ``/`` becomes a directory entry."""
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            if name.endswith("/"):
                archive.writestr(zipfile.ZipInfo(name), b"")
            else:
                archive.writestr(name, content or b"")
    return buffer.getvalue()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def collection_bytes() -> bytes:
    """Sample collection database."""
    return build_collection()


@pytest.fixture
def make_collection() -> Callable[..., bytes]:
    """Factory for collection databases with custom content."""
    return build_collection


@pytest.fixture
def make_database() -> Callable[[str], bytes]:
    """Factory for arbitrary SQLite databases."""
    return build_database


@pytest.fixture
def make_apkg() -> Callable[[dict[str, bytes | str | None]], bytes]:
    """Factory for package archives."""
    return build_apkg


@pytest.fixture
def sample_apkg(collection_bytes: bytes) -> bytes:
    """Text-only package around the sample collection."""
    return build_apkg({"collection.anki2": collection_bytes, "media": "{}"})
