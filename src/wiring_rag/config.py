from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _to_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: str | None, *, default: int, minimum: int) -> int:
    if value is None:
        return default
    parsed = int(value)
    return max(minimum, parsed)


def _to_optional_int(value: str | None, *, minimum: int) -> int | None:
    if value is None or not value.strip():
        return None
    return max(minimum, int(value))


def _to_float(value: str | None, *, default: float, minimum: float) -> float:
    if value is None:
        return default
    return max(minimum, float(value))


@dataclass(frozen=True)
class Settings:
    rag_source_dir: str
    rag_index_path: str
    rag_chunk_size: int
    rag_chunk_overlap: int
    rag_boundary_window: int | None
    rag_top_k: int
    rag_temperature: float
    rag_prompt_template: str
    rag_use_memory: bool
    rag_index_metric: str
    rag_hnsw_m: int
    rag_hnsw_ef_construction: int
    rag_hnsw_ef_search: int
    rag_embed_provider: str
    rag_embed_batch_size: int
    rag_hash_embedding_dim: int
    openai_base_url: str
    openai_api_key: str
    openai_embed_model: str
    openai_chat_model: str
    openai_chat_fallback_model: str
    openai_timeout_seconds: float


@lru_cache
def get_settings() -> Settings:
    return Settings(
        rag_source_dir=os.getenv("RAG_SOURCE_DIR", "documents"),
        rag_index_path=os.getenv("RAG_INDEX_PATH", "data/components_info.index"),
        rag_chunk_size=_to_int(os.getenv("RAG_CHUNK_SIZE"), default=1000, minimum=1),
        rag_chunk_overlap=_to_int(os.getenv("RAG_CHUNK_OVERLAP"), default=100, minimum=0),
        rag_boundary_window=_to_optional_int(os.getenv("RAG_BOUNDARY_WINDOW"), minimum=0),
        rag_top_k=_to_int(os.getenv("RAG_TOP_K"), default=4, minimum=1),
        rag_temperature=_to_float(os.getenv("RAG_TEMPERATURE"), default=0.05, minimum=0.0),
        rag_prompt_template=os.getenv("RAG_PROMPT_TEMPLATE", "qa"),
        rag_use_memory=_to_bool(os.getenv("RAG_USE_MEMORY"), default=False),
        rag_index_metric=os.getenv("RAG_INDEX_METRIC", "cosine"),
        rag_hnsw_m=_to_int(os.getenv("RAG_HNSW_M"), default=16, minimum=2),
        rag_hnsw_ef_construction=_to_int(
            os.getenv("RAG_HNSW_EF_CONSTRUCTION"), default=200, minimum=1
        ),
        rag_hnsw_ef_search=_to_int(os.getenv("RAG_HNSW_EF_SEARCH"), default=64, minimum=1),
        rag_embed_provider=os.getenv("RAG_EMBED_PROVIDER", "openai").strip().lower(),
        rag_embed_batch_size=_to_int(os.getenv("RAG_EMBED_BATCH_SIZE"), default=512, minimum=1),
        rag_hash_embedding_dim=_to_int(os.getenv("RAG_HASH_EMBEDDING_DIM"), default=32, minimum=8),
        openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_embed_model=os.getenv("OPENAI_EMBED_MODEL", "text-embedding-ada-002"),
        openai_chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-3.5-turbo"),
        openai_chat_fallback_model=os.getenv("OPENAI_CHAT_FALLBACK_MODEL", ""),
        openai_timeout_seconds=float(os.getenv("OPENAI_TIMEOUT_SECONDS", "30")),
    )


class PipelineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=100, ge=0)
    boundary_window: int | None = Field(default=None, ge=0)
    top_k: int = Field(default=4, ge=1, le=20)
    temperature: float = Field(default=0.05, ge=0.0, le=2.0)
    prompt_template: str = Field(default="qa", min_length=1)
    use_memory: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> PipelineConfig:
        values: dict[str, Any] = {
            "chunk_size": settings.rag_chunk_size,
            "chunk_overlap": settings.rag_chunk_overlap,
            "boundary_window": settings.rag_boundary_window,
            "top_k": settings.rag_top_k,
            "temperature": settings.rag_temperature,
            "prompt_template": settings.rag_prompt_template,
            "use_memory": settings.rag_use_memory,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)
