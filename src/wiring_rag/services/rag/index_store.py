from __future__ import annotations

from array import array
from contextlib import closing
from datetime import datetime, timezone
import logging
import os
from pathlib import Path
import sqlite3

import faiss
import numpy as np

from wiring_rag.errors import CorruptIndex, IndexNotFound, IndexWriteError
from wiring_rag.services.rag.types import Chunk, IndexEntry
from wiring_rag.services.rag.vector_index import IndexParams, VectorIndex

logger = logging.getLogger(__name__)

FORMAT_VERSION = "w1"
REQUIRED_META_KEYS = (
    "format_version",
    "dimensions",
    "entry_count",
    "metric",
    "hnsw_m",
    "ef_construction",
    "ef_search",
)


def _encode_embedding(values: list[float]) -> bytes:
    vector = array("f", values)
    return vector.tobytes()


def _decode_embedding(blob: bytes) -> list[float]:
    vector = array("f")
    vector.frombytes(blob)
    return vector.tolist()


def _ensure_schema(connection: sqlite3.Connection) -> None:
    connection.executescript(
        """
        CREATE TABLE IF NOT EXISTS index_meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS ann_graph (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            payload BLOB NOT NULL
        );

        CREATE TABLE IF NOT EXISTS entries (
            node_id INTEGER PRIMARY KEY,
            source_path TEXT NOT NULL,
            sequence_index INTEGER NOT NULL,
            start_offset INTEGER NOT NULL,
            text TEXT NOT NULL,
            embedding BLOB NOT NULL,
            embedding_dim INTEGER NOT NULL,
            UNIQUE (source_path, sequence_index)
        );
        """
    )


def _write_store(db_path: Path, index: VectorIndex) -> None:
    params = index.params
    meta = {
        "format_version": FORMAT_VERSION,
        "dimensions": str(index.dimensions),
        "entry_count": str(len(index)),
        "metric": params.metric,
        "hnsw_m": str(params.hnsw_m),
        "ef_construction": str(params.ef_construction),
        "ef_search": str(params.ef_search),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }

    with closing(sqlite3.connect(db_path)) as connection:
        with connection:
            _ensure_schema(connection)
            connection.executemany(
                "INSERT INTO index_meta (key, value) VALUES (?, ?)",
                sorted(meta.items()),
            )
            if index.ann is not None:
                payload = faiss.serialize_index(index.ann)
                connection.execute(
                    "INSERT INTO ann_graph (id, payload) VALUES (1, ?)",
                    (sqlite3.Binary(payload.tobytes()),),
                )
            connection.executemany(
                """
                INSERT INTO entries
                    (node_id, source_path, sequence_index, start_offset, text, embedding, embedding_dim)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        node_id,
                        entry.chunk.source_path,
                        entry.chunk.sequence_index,
                        entry.chunk.start_offset,
                        entry.chunk.text,
                        sqlite3.Binary(_encode_embedding(entry.vector)),
                        len(entry.vector),
                    )
                    for node_id, entry in enumerate(index.entries)
                ],
            )


def save_index(index: VectorIndex, path: Path) -> Path:
    tmp_path = path.with_name(f"{path.name}.tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if tmp_path.exists():
            tmp_path.unlink()
        _write_store(tmp_path, index)
        os.replace(tmp_path, path)
    except (OSError, sqlite3.Error) as exc:
        raise IndexWriteError(f"Failed to save vector index to {path}: {exc}") from exc
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    logger.info("Saved vector index with %d entries to %s", len(index), path)
    return path


def _read_meta(connection: sqlite3.Connection, path: Path) -> tuple[int, int, IndexParams]:
    meta = dict(connection.execute("SELECT key, value FROM index_meta").fetchall())
    missing = [key for key in REQUIRED_META_KEYS if key not in meta]
    if missing:
        raise CorruptIndex(f"Vector index {path} is missing metadata: {', '.join(missing)}")
    if meta["format_version"] != FORMAT_VERSION:
        raise CorruptIndex(
            f"Vector index {path} has unsupported format version {meta['format_version']!r}"
        )

    try:
        dimensions = int(meta["dimensions"])
        entry_count = int(meta["entry_count"])
        params = IndexParams(
            metric=meta["metric"],
            hnsw_m=int(meta["hnsw_m"]),
            ef_construction=int(meta["ef_construction"]),
            ef_search=int(meta["ef_search"]),
        )
    except ValueError as exc:
        raise CorruptIndex(f"Vector index {path} has invalid metadata: {exc}") from exc

    if dimensions < 0 or entry_count < 0:
        raise CorruptIndex(f"Vector index {path} has negative dimensions or entry count")
    return dimensions, entry_count, params


def _read_entries(connection: sqlite3.Connection, path: Path, dimensions: int) -> list[IndexEntry]:
    rows = connection.execute(
        """
        SELECT node_id, source_path, sequence_index, start_offset, text, embedding, embedding_dim
        FROM entries
        ORDER BY node_id
        """
    ).fetchall()

    entries: list[IndexEntry] = []
    for expected_id, row in enumerate(rows):
        node_id, source_path, sequence_index, start_offset, text, embedding_blob, embedding_dim = row
        if node_id != expected_id:
            raise CorruptIndex(f"Vector index {path} has a gap in node ids at {expected_id}")
        if (
            not isinstance(source_path, str)
            or not isinstance(text, str)
            or not isinstance(sequence_index, int)
            or not isinstance(start_offset, int)
            or not isinstance(embedding_dim, int)
        ):
            raise CorruptIndex(f"Vector index {path} has a malformed entry at node {node_id}")
        if not isinstance(embedding_blob, bytes) or len(embedding_blob) % 4:
            raise CorruptIndex(f"Vector index {path} has an unreadable vector at node {node_id}")

        embedding = _decode_embedding(embedding_blob)
        if embedding_dim != dimensions or len(embedding) != dimensions:
            raise CorruptIndex(
                f"Vector index {path} declares {dimensions} dimensions but node {node_id} "
                f"has {len(embedding)}"
            )

        entries.append(
            IndexEntry(
                vector=embedding,
                chunk=Chunk(
                    source_path=source_path,
                    text=text,
                    start_offset=start_offset,
                    sequence_index=sequence_index,
                ),
            )
        )
    return entries


def _read_ann(
    connection: sqlite3.Connection,
    path: Path,
    *,
    dimensions: int,
    entry_count: int,
) -> faiss.Index | None:
    row = connection.execute("SELECT payload FROM ann_graph WHERE id = 1").fetchone()
    if entry_count == 0:
        return None
    if row is None or not isinstance(row[0], bytes):
        raise CorruptIndex(f"Vector index {path} is missing its ANN graph")

    try:
        ann = faiss.deserialize_index(np.frombuffer(row[0], dtype=np.uint8))
    except RuntimeError as exc:
        raise CorruptIndex(f"Vector index {path} has an unreadable ANN graph: {exc}") from exc

    if ann.d != dimensions or ann.ntotal != entry_count:
        raise CorruptIndex(
            f"Vector index {path} ANN graph holds {ann.ntotal} vectors of dim {ann.d}, "
            f"expected {entry_count} of dim {dimensions}"
        )
    return ann


def load_index(path: Path) -> VectorIndex:
    if not path.exists():
        raise IndexNotFound(f"Vector index not found: {path}")

    try:
        with closing(sqlite3.connect(path)) as connection:
            dimensions, entry_count, params = _read_meta(connection, path)
            entries = _read_entries(connection, path, dimensions)
            if len(entries) != entry_count:
                raise CorruptIndex(
                    f"Vector index {path} declares {entry_count} entries but holds {len(entries)}"
                )
            ann = _read_ann(connection, path, dimensions=dimensions, entry_count=entry_count)
    except sqlite3.Error as exc:
        raise CorruptIndex(f"Vector index {path} is not a readable index store: {exc}") from exc

    logger.info("Loaded vector index with %d entries from %s", entry_count, path)
    return VectorIndex(entries=entries, dimensions=dimensions, params=params, ann=ann)
