"""Atlas metadata persistence: inline, sqlite key-value table, or PNG text chunk.

All methods share one shape on the wire::

    {"frames": [key1, x1, y1, key2, x2, y2, ...], "xdim": int, "ydim": int}

encoded as compact JSON.  Methods (``method`` option):

    raw / None        metadata is handed back to the caller; ``source`` may
                      carry a previously returned payload (dict or JSON str)
    database_file     ``source`` = path or (path, table); opened and closed
                      around every operation
    database_handle   ``source`` = sqlite3.Connection or (conn, table); left open
    image_metadata    JSON stored in a tEXt chunk of the atlas PNG itself;
                      ``source`` = None (atlas file), a path, or
                      {"path": ..., "keyword": ...}

Reads are validating: anything that does not decode to well-formed metadata
whose stored ``xdim``/``ydim`` strictly exceed the requested frame size is a
cache miss (``None``), never an error.  Callers rebuild on a miss.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping

from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from mask_atlas.utils import fs
from mask_atlas.utils.validators import AtlasMetadataV1

logger = logging.getLogger(__name__)

METHODS = ("raw", "database_file", "database_handle", "image_metadata")

DEFAULT_TABLE = "mask_atlas_data"

DEFAULT_KEYWORD = "MaskAtlasData"

# Metadata as handled by sheets
AtlasMetadata = AtlasMetadataV1

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def encode_metadata(metadata: AtlasMetadataV1) -> str:
    return json.dumps(metadata.to_payload(), separators=(",", ":"))


def decode_metadata(value: Any) -> AtlasMetadataV1 | None:
    """Structurally validate a stored value; ``None`` if unusable."""
    if value is None:
        return None
    if isinstance(value, AtlasMetadataV1):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            logger.warning("Discarding undecodable mask metadata: %s", e)
            return None
    if not isinstance(value, Mapping):
        logger.warning("Discarding mask metadata of type %s", type(value).__name__)
        return None

    try:
        return AtlasMetadataV1.model_validate(dict(value))
    except ValidationError as e:
        logger.warning("Discarding malformed mask metadata: %s", e.errors()[0]["msg"])
        return None


def check_dim(frame_dim: int, stored_dim: int) -> bool:
    """Stored atlas dimension leaves room for a frame (and its border)."""
    return frame_dim > 0 and stored_dim > 0 and stored_dim > frame_dim


def _table_name(name: str | None) -> str:
    name = name or DEFAULT_TABLE
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


def _png_keyword(keyword: str | None) -> str:
    keyword = keyword or DEFAULT_KEYWORD
    try:
        encoded = keyword.encode("latin-1")
    except UnicodeEncodeError as e:
        raise ValueError(f"PNG text keyword must be latin-1: {keyword!r}") from e
    if not 1 <= len(encoded) <= 79:
        raise ValueError(f"PNG text keyword must be 1-79 bytes, got {len(encoded)}")
    return keyword


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class PersistenceAdapter:
    """Reads and writes atlas metadata through one persistence method.

    Parameters
    ----------
    method : str | None
        One of :data:`METHODS`; ``None`` means ``"raw"``.
    source : Any
        Method-specific source (see module docstring).
    image_path : str | Path | None
        Resolved atlas image path; default target of ``image_metadata``.
    """

    def __init__(self, method: str | None = None, source: Any = None, image_path: str | Path | None = None) -> None:
        method = method or "raw"
        if method not in METHODS:
            raise ValueError(f"Unknown persistence method {method!r}; expected one of {METHODS}")
        self.method = method
        self.source = source
        self.image_path = Path(image_path) if image_path is not None else None

    # -- public API ----------------------------------------------------------

    def read(self, filename: str, frame_w: int, frame_h: int) -> AtlasMetadata | None:
        """Load metadata stored for ``filename`` if it is usable for this frame size.

        Never mutates the store.
        """
        metadata = decode_metadata(self._fetch(filename))
        if metadata is None:
            return None

        if not (check_dim(frame_w, metadata.xdim) and check_dim(frame_h, metadata.ydim)):
            logger.info(
                "Stored atlas %dx%d cannot hold %dx%d frames; treating %s as stale",
                metadata.xdim, metadata.ydim, frame_w, frame_h, filename,
            )
            return None
        return metadata

    def write(self, metadata: AtlasMetadataV1 | Mapping[str, Any], filename: str) -> Any:
        """Persist ``metadata`` under ``filename``.

        Returns
        -------
        Any
            Confirmation: the JSON payload (raw), the database source, or the
            image path (image_metadata).
        """
        if not isinstance(metadata, AtlasMetadataV1):
            metadata = AtlasMetadataV1(**metadata)
        encoded = encode_metadata(metadata)

        if self.method == "raw":
            return encoded
        if self.method in ("database_file", "database_handle"):
            db_path = self._database_path()
            if db_path is not None:
                fs.ensure_dir(db_path.parent)
            with self._database() as (conn, table):
                conn.execute(f'CREATE TABLE IF NOT EXISTS "{table}" (m_KEY TEXT UNIQUE, m_DATA TEXT)')
                conn.execute(
                    f'INSERT OR REPLACE INTO "{table}" (m_KEY, m_DATA) VALUES (?, ?)',
                    (filename, encoded),
                )
                conn.commit()
            logger.debug("Stored metadata for %s in table %s", filename, table)
            return self.source

        path, keyword = self._image_target()
        chunks = fs.read_png_text(path)
        chunks[keyword] = encoded
        with Image.open(path) as im:
            image = im.copy()
        fs.atomic_save_image(image, path, text_chunks=chunks)
        logger.debug("Embedded metadata for %s in %s", filename, path)
        return path

    # -- per-method reads ----------------------------------------------------

    def _fetch(self, filename: str) -> Any:
        if self.method == "raw":
            return self.source
        if self.method in ("database_file", "database_handle"):
            return self._fetch_database(filename)
        return self._fetch_image()

    def _fetch_database(self, filename: str) -> str | None:
        path = self._database_path()
        if path is not None and not path.is_file():
            # connecting would create an empty database file
            return None
        try:
            with self._database() as (conn, table):
                exists = conn.execute(
                    "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
                ).fetchone()
                if exists is None:
                    logger.debug("Metadata table %s does not exist yet", table)
                    return None
                row = conn.execute(
                    f'SELECT m_DATA FROM "{table}" WHERE m_KEY = ?', (filename,)
                ).fetchone()
        except sqlite3.DatabaseError as e:
            logger.warning("Could not read mask metadata database: %s", e)
            return None
        return row[0] if row else None

    def _fetch_image(self) -> str | None:
        path, keyword = self._image_target()
        if not path.is_file():
            return None
        try:
            return fs.read_png_text(path).get(keyword)
        except (OSError, UnidentifiedImageError) as e:
            logger.warning("Could not read metadata chunk from %s: %s", path, e)
            return None

    # -- sources -------------------------------------------------------------

    def _database_path(self) -> Path | None:
        """Database file of a database_file source, else None."""
        if self.method != "database_file":
            return None
        path = self.source[0] if isinstance(self.source, (tuple, list)) else self.source
        return Path(path) if isinstance(path, (str, Path)) else None

    @contextmanager
    def _database(self) -> Iterator[tuple[sqlite3.Connection, str]]:
        source, table = self.source, None
        if isinstance(source, (tuple, list)):
            source, table = source[0], (source[1] if len(source) > 1 else None)
        table = _table_name(table)

        if self.method == "database_file":
            if not isinstance(source, (str, Path)):
                raise ValueError("database_file needs a database path as source")
            conn = sqlite3.connect(str(source))
            try:
                yield conn, table
            finally:
                conn.close()
        else:
            if not isinstance(source, sqlite3.Connection):
                raise ValueError("database_handle needs an open sqlite3.Connection as source")
            yield source, table

    def _image_target(self) -> tuple[Path, str]:
        source, keyword = self.source, None
        if isinstance(source, Mapping):
            source, keyword = source.get("path"), source.get("keyword")
        path = Path(source) if source is not None else self.image_path
        if path is None:
            raise ValueError("image_metadata needs the atlas image path")
        return path, _png_keyword(keyword)

