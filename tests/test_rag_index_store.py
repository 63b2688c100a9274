from pathlib import Path
import sqlite3

import pytest

from wiring_rag.errors import CorruptIndex, IndexNotFound, IndexWriteError
from wiring_rag.services.rag.chunker import chunk_documents
from wiring_rag.services.rag.index_store import load_index, save_index
from wiring_rag.services.rag.loader import load_documents
from wiring_rag.services.rag.normalizer import normalize_documents
from wiring_rag.services.rag.vector_index import IndexParams, build_index


def _build_sample_index(tmp_path: Path, embedding_client):
    source_dir = tmp_path / "documents"
    source_dir.mkdir(parents=True)
    (source_dir / "servo.txt").write_text(
        "Servo signal goes to a PWM pin. Servo power needs 5V.", encoding="utf-8"
    )
    (source_dir / "parts.csv").write_text(
        "Module,Notes\nBuzzer,tone on GP15\nPN532,NFC over I2C\n", encoding="utf-8"
    )

    documents, _ = normalize_documents(load_documents(source_dir).documents)
    chunks = chunk_documents(documents, chunk_size=40, chunk_overlap=5)
    return build_index(chunks, embedding_client, params=IndexParams(metric="l2", hnsw_m=8))


def test_index_store_roundtrip_preserves_entries_and_search(tmp_path: Path, embedding_client) -> None:
    index = _build_sample_index(tmp_path, embedding_client)
    index_path = tmp_path / "data" / "components_info.index"

    save_index(index, index_path)
    loaded = load_index(index_path)

    assert index_path.exists()
    assert not index_path.with_name("components_info.index.tmp").exists()
    assert loaded.dimensions == index.dimensions
    assert loaded.params == index.params
    assert {(entry.chunk, tuple(entry.vector)) for entry in loaded.entries} == {
        (entry.chunk, tuple(entry.vector)) for entry in index.entries
    }

    for query in ([3.0, 0.0, 0.0], [0.0, 1.0, 1.0], [0.5, 0.5, 0.5]):
        assert loaded.search(query, k=3) == index.search(query, k=3)


def test_index_store_roundtrip_for_empty_index(tmp_path: Path, embedding_client) -> None:
    index = build_index([], embedding_client)
    index_path = tmp_path / "empty.index"

    save_index(index, index_path)
    loaded = load_index(index_path)

    assert len(loaded) == 0
    assert loaded.search([1.0], k=2) == []


def test_load_index_missing_file_raises_not_found(tmp_path: Path) -> None:
    with pytest.raises(IndexNotFound):
        load_index(tmp_path / "missing.index")


def test_load_index_rejects_garbage_file(tmp_path: Path) -> None:
    index_path = tmp_path / "garbage.index"
    index_path.write_bytes(b"definitely not sqlite" * 20)

    with pytest.raises(CorruptIndex):
        load_index(index_path)


def test_load_index_rejects_dimension_mismatch(tmp_path: Path, embedding_client) -> None:
    index = _build_sample_index(tmp_path, embedding_client)
    index_path = tmp_path / "components_info.index"
    save_index(index, index_path)

    with sqlite3.connect(index_path) as connection:
        connection.execute("UPDATE index_meta SET value = '4' WHERE key = 'dimensions'")
    connection.close()

    with pytest.raises(CorruptIndex, match="declares 4 dimensions"):
        load_index(index_path)


def test_load_index_rejects_entry_count_mismatch(tmp_path: Path, embedding_client) -> None:
    index = _build_sample_index(tmp_path, embedding_client)
    index_path = tmp_path / "components_info.index"
    save_index(index, index_path)

    with sqlite3.connect(index_path) as connection:
        connection.execute("UPDATE index_meta SET value = '999' WHERE key = 'entry_count'")
    connection.close()

    with pytest.raises(CorruptIndex, match="declares 999 entries"):
        load_index(index_path)


def test_load_index_rejects_malformed_entry_row(tmp_path: Path, embedding_client) -> None:
    index = _build_sample_index(tmp_path, embedding_client)
    index_path = tmp_path / "components_info.index"
    save_index(index, index_path)

    with sqlite3.connect(index_path) as connection:
        connection.execute("UPDATE entries SET text = X'00ff' WHERE node_id = 0")
    connection.close()

    with pytest.raises(CorruptIndex, match="malformed entry at node 0"):
        load_index(index_path)


def test_save_index_failure_leaves_no_partial_file(
    tmp_path: Path,
    embedding_client,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    index = _build_sample_index(tmp_path, embedding_client)
    index_path = tmp_path / "components_info.index"

    def failing_replace(src: object, dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr("wiring_rag.services.rag.index_store.os.replace", failing_replace)

    with pytest.raises(IndexWriteError, match="disk full"):
        save_index(index, index_path)

    assert not index_path.exists()
    assert not index_path.with_name("components_info.index.tmp").exists()


def test_save_index_replaces_existing_file(tmp_path: Path, embedding_client) -> None:
    index = _build_sample_index(tmp_path, embedding_client)
    index_path = tmp_path / "components_info.index"

    save_index(index, index_path)
    save_index(index, index_path)

    assert len(load_index(index_path)) == len(index)
