from __future__ import annotations

from wiring_rag.config import Settings
from wiring_rag.llm import LLMClient, OpenAIChatClient
from wiring_rag.services.rag.embedder import HashEmbeddingClient
from wiring_rag.services.rag.embedding_client import EmbeddingClient, OpenAIEmbeddingClient
from wiring_rag.services.rag.vector_index import IndexParams

EMBED_PROVIDERS = ("openai", "hash")


def get_embedding_client(settings: Settings) -> EmbeddingClient:
    if settings.rag_embed_provider == "hash":
        return HashEmbeddingClient(dimensions=settings.rag_hash_embedding_dim)
    if settings.rag_embed_provider == "openai":
        return OpenAIEmbeddingClient(
            base_url=settings.openai_base_url,
            model=settings.openai_embed_model,
            api_key=settings.openai_api_key,
            timeout_seconds=settings.openai_timeout_seconds,
            batch_size=settings.rag_embed_batch_size,
        )
    raise ValueError(
        f"RAG_EMBED_PROVIDER must be one of {EMBED_PROVIDERS}, got {settings.rag_embed_provider!r}"
    )


def get_llm_client(settings: Settings) -> LLMClient:
    return OpenAIChatClient(
        base_url=settings.openai_base_url,
        default_model=settings.openai_chat_model,
        fallback_model=settings.openai_chat_fallback_model,
        api_key=settings.openai_api_key,
        timeout_seconds=settings.openai_timeout_seconds,
    )


def get_index_params(settings: Settings) -> IndexParams:
    return IndexParams(
        metric=settings.rag_index_metric,
        hnsw_m=settings.rag_hnsw_m,
        ef_construction=settings.rag_hnsw_ef_construction,
        ef_search=settings.rag_hnsw_ef_search,
    )
