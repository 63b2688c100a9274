from __future__ import annotations

from dataclasses import dataclass
import logging

import faiss
import numpy as np

from wiring_rag.errors import EmbeddingFailed
from wiring_rag.services.rag.embedding_client import EmbeddingClient
from wiring_rag.services.rag.types import Chunk, IndexEntry, SearchHit

logger = logging.getLogger(__name__)

SUPPORTED_METRICS = ("l2", "cosine")


@dataclass(frozen=True)
class IndexParams:
    metric: str = "cosine"
    hnsw_m: int = 16
    ef_construction: int = 200
    ef_search: int = 64

    def __post_init__(self) -> None:
        if self.metric not in SUPPORTED_METRICS:
            raise ValueError(f"metric must be one of {SUPPORTED_METRICS}, got {self.metric!r}")
        if self.hnsw_m < 2:
            raise ValueError("hnsw_m must be >= 2")
        if self.ef_construction < 1 or self.ef_search < 1:
            raise ValueError("ef_construction and ef_search must be >= 1")


def _as_matrix(vectors: list[list[float]], dimensions: int) -> np.ndarray:
    if not vectors:
        return np.zeros((0, dimensions), dtype=np.float32)
    return np.asarray(vectors, dtype=np.float32).reshape(len(vectors), dimensions)


def _unit_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    return np.divide(matrix, norms, out=np.zeros_like(matrix), where=norms > 0)


class VectorIndex:
    """Immutable HNSW index over chunk embeddings.

    ``ann`` is only passed when restoring a persisted graph; otherwise the graph is
    built from the entries. Node ids are positions in ``entries``.
    """

    def __init__(
        self,
        *,
        entries: list[IndexEntry],
        dimensions: int,
        params: IndexParams,
        ann: faiss.Index | None = None,
    ) -> None:
        if entries and dimensions <= 0:
            raise ValueError("dimensions must be > 0 for a non-empty index")
        for entry in entries:
            if len(entry.vector) != dimensions:
                raise ValueError(
                    f"vector for {entry.chunk.source_path}#{entry.chunk.sequence_index} has "
                    f"{len(entry.vector)} dimensions, expected {dimensions}"
                )

        self._entries = tuple(entries)
        self._dimensions = dimensions
        self._params = params
        self._vectors = self._prepare(_as_matrix([entry.vector for entry in entries], dimensions))
        self._ann = ann if ann is not None else self._build_ann()

    @property
    def entries(self) -> tuple[IndexEntry, ...]:
        return self._entries

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def params(self) -> IndexParams:
        return self._params

    @property
    def ann(self) -> faiss.Index | None:
        return self._ann

    def __len__(self) -> int:
        return len(self._entries)

    def _prepare(self, matrix: np.ndarray) -> np.ndarray:
        if self._params.metric == "cosine":
            return _unit_rows(matrix)
        return np.ascontiguousarray(matrix)

    def _build_ann(self) -> faiss.Index | None:
        if not self._entries:
            return None
        ann = faiss.IndexHNSWFlat(self._dimensions, self._params.hnsw_m)
        ann.hnsw.efConstruction = self._params.ef_construction
        ann.add(self._vectors)
        return ann

    def _candidates(self, query: np.ndarray, k: int) -> list[int]:
        total = len(self._entries)
        # over-fetch so equal distances at the k-th place can be ordered deterministically
        wanted = min(total, max(k * 4, k + 16))
        if wanted >= total or self._ann is None:
            return list(range(total))

        search_params = faiss.SearchParametersHNSW()
        search_params.efSearch = max(self._params.ef_search, wanted)
        _, ids = self._ann.search(query, wanted, params=search_params)
        return [int(node_id) for node_id in ids[0] if node_id >= 0]

    def _distances(self, query: np.ndarray, node_ids: list[int]) -> np.ndarray:
        candidates = self._vectors[node_ids]
        if self._params.metric == "cosine":
            return np.maximum(0.0, 1.0 - candidates @ query[0])
        deltas = candidates - query[0]
        return np.einsum("ij,ij->i", deltas, deltas)

    def search(self, query_vector: list[float], k: int) -> list[SearchHit]:
        if k < 1:
            raise ValueError("k must be >= 1")
        if not self._entries:
            return []

        query = np.asarray(query_vector, dtype=np.float32).reshape(1, -1)
        if query.shape[1] != self._dimensions:
            raise ValueError(
                f"query vector has {query.shape[1]} dimensions, index expects {self._dimensions}"
            )
        query = self._prepare(query)

        node_ids = self._candidates(query, k)
        distances = self._distances(query, node_ids)
        ranked = sorted(
            zip(node_ids, distances.tolist()),
            key=lambda pair: (
                pair[1],
                self._entries[pair[0]].chunk.sequence_index,
                self._entries[pair[0]].chunk.source_path,
            ),
        )
        return [
            SearchHit(chunk=self._entries[node_id].chunk, distance=float(distance))
            for node_id, distance in ranked[:k]
        ]


def _unique_chunks(chunks: list[Chunk]) -> list[Chunk]:
    unique: dict[tuple[str, int], Chunk] = {}
    for chunk in chunks:
        unique[chunk.key] = chunk
    return list(unique.values())


def build_index(
    chunks: list[Chunk],
    embedding_client: EmbeddingClient,
    *,
    params: IndexParams | None = None,
) -> VectorIndex:
    resolved_params = params or IndexParams()
    unique = _unique_chunks(chunks)
    if len(unique) != len(chunks):
        logger.info("Replaced %d duplicate chunks before indexing", len(chunks) - len(unique))

    if not unique:
        return VectorIndex(entries=[], dimensions=0, params=resolved_params)

    vectors = embedding_client.embed_texts([chunk.text for chunk in unique])
    if len(vectors) != len(unique):
        raise EmbeddingFailed(
            f"embedding provider returned {len(vectors)} vectors for {len(unique)} chunks"
        )

    dimensions = len(vectors[0])
    if dimensions <= 0 or any(len(vector) != dimensions for vector in vectors):
        raise EmbeddingFailed("embedding provider returned vectors of inconsistent dimensionality")

    matrix = _as_matrix(vectors, dimensions)
    entries = [
        IndexEntry(vector=row.tolist(), chunk=chunk) for chunk, row in zip(unique, matrix)
    ]
    logger.info("Built HNSW index with %d entries (dim=%d)", len(entries), dimensions)
    return VectorIndex(entries=entries, dimensions=dimensions, params=resolved_params)
