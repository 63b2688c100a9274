from __future__ import annotations

from typing import Protocol

import httpx

from wiring_rag.errors import EmbeddingFailed


class EmbeddingClient(Protocol):
    def embed_texts(self, texts: list[str]) -> list[list[float]]: ...


def embed_query(client: EmbeddingClient, text: str) -> list[float]:
    vectors = client.embed_texts([text])
    if len(vectors) != 1:
        raise EmbeddingFailed(f"Invalid query embedding: expected 1 vector, got {len(vectors)}")
    return vectors[0]


class OpenAIEmbeddingClient:
    """Client for any OpenAI-compatible ``/embeddings`` endpoint.

    Texts are sent in batches of ``batch_size``; the returned vectors keep the
    order of the input texts.
    """

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        api_key: str = "",
        timeout_seconds: float = 30.0,
        batch_size: int = 512,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._batch_size = batch_size

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        vectors: list[list[float]] = []
        for offset in range(0, len(texts), self._batch_size):
            vectors.extend(self._embed_batch(texts[offset : offset + self._batch_size]))
        return vectors

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"Authorization": f"Bearer {self._api_key}"}

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        try:
            response = httpx.post(
                f"{self._base_url}/embeddings",
                json={"model": self._model, "input": texts},
                headers=self._headers(),
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise EmbeddingFailed(f"embeddings request failed: {exc}") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise EmbeddingFailed("Invalid embeddings payload: missing data")

        indexed: list[tuple[int, list[float]]] = []
        for position, item in enumerate(data):
            embedding = item.get("embedding") if isinstance(item, dict) else None
            if not isinstance(embedding, list) or not embedding:
                raise EmbeddingFailed("Invalid embeddings payload: missing embedding vector")
            index = item.get("index", position)
            if not isinstance(index, int) or isinstance(index, bool):
                raise EmbeddingFailed("Invalid embeddings payload: bad index")
            indexed.append((index, [float(value) for value in embedding]))

        if len(indexed) != len(texts):
            raise EmbeddingFailed(
                f"Invalid embeddings payload: expected {len(texts)} vectors, got {len(indexed)}"
            )

        indexed.sort(key=lambda pair: pair[0])
        if [index for index, _ in indexed] != list(range(len(texts))):
            raise EmbeddingFailed("Invalid embeddings payload: bad index")
        return [vector for _, vector in indexed]
