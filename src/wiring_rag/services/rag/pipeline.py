from __future__ import annotations

import logging
from pathlib import Path

from wiring_rag.config import PipelineConfig
from wiring_rag.errors import IndexWriteError
from wiring_rag.llm import LLMClient
from wiring_rag.services.rag.chain import ChainResult, RetrievalChain
from wiring_rag.services.rag.chunker import chunk_documents, validate_chunk_config
from wiring_rag.services.rag.embedding_client import EmbeddingClient
from wiring_rag.services.rag.index_store import load_index, save_index
from wiring_rag.services.rag.loader import load_documents
from wiring_rag.services.rag.memory import ConversationMemory
from wiring_rag.services.rag.normalizer import normalize_documents
from wiring_rag.services.rag.types import ConversationTurn, IngestionSummary
from wiring_rag.services.rag.vector_index import IndexParams, VectorIndex, build_index

logger = logging.getLogger(__name__)


def wiring_question(microcontroller: str, module: str) -> str:
    return f"Tell me how to wire {microcontroller.strip()} to {module.strip()}"


def open_or_build_index(
    *,
    source_dir: Path,
    index_path: Path,
    config: PipelineConfig,
    embedding_client: EmbeddingClient,
    index_params: IndexParams | None = None,
    force_rebuild: bool = False,
) -> tuple[VectorIndex, IngestionSummary]:
    """Load the persisted index, or ingest the corpus and build one.

    An existing index is never re-embedded unless ``force_rebuild`` is set, and a
    corrupt one is reported instead of being rebuilt.
    """
    if index_path.exists() and not force_rebuild:
        index = load_index(index_path)
        return index, IngestionSummary(
            document_count=len({entry.chunk.source_path for entry in index.entries}),
            chunk_count=len(index),
            index_path=str(index_path),
            loaded_existing=True,
            persisted=True,
        )

    validate_chunk_config(chunk_size=config.chunk_size, chunk_overlap=config.chunk_overlap)

    loaded = load_documents(source_dir)
    documents, skipped = normalize_documents(loaded.documents)
    chunks = chunk_documents(
        documents,
        chunk_size=config.chunk_size,
        chunk_overlap=config.chunk_overlap,
        boundary_window=config.boundary_window,
    )
    if not chunks:
        logger.warning("No chunks produced from %s; building an empty index", source_dir)

    index = build_index(chunks, embedding_client, params=index_params)

    save_error: str | None = None
    try:
        save_index(index, index_path)
    except IndexWriteError as exc:
        logger.error("%s; continuing with the in-memory index", exc)
        save_error = str(exc)

    return index, IngestionSummary(
        document_count=len(documents),
        chunk_count=len(index),
        index_path=str(index_path),
        loaded_existing=False,
        persisted=save_error is None,
        skipped_count=len(skipped),
        source_errors=list(loaded.errors),
        save_error=save_error,
    )


class WiringAssistant:
    """Answers wiring questions against a built or loaded index.

    When ``config.use_memory`` is set (or a memory is passed in), each answered
    turn is appended to the memory and fed back as history on the next question.
    """

    def __init__(
        self,
        *,
        index: VectorIndex,
        embedding_client: EmbeddingClient,
        llm_client: LLMClient,
        config: PipelineConfig,
        memory: ConversationMemory | None = None,
    ) -> None:
        self._chain = RetrievalChain(
            index=index,
            embedding_client=embedding_client,
            llm_client=llm_client,
            top_k=config.top_k,
            temperature=config.temperature,
            prompt_template=config.prompt_template,
        )
        if memory is None and config.use_memory:
            memory = ConversationMemory()
        self._memory = memory

    @property
    def memory(self) -> ConversationMemory | None:
        return self._memory

    def ask_with_sources(self, question: str) -> ChainResult:
        history = self._memory.render() if self._memory is not None else None
        result = self._chain.run(question, history)
        if self._memory is not None:
            self._memory.append(ConversationTurn(question=question, answer=result.answer))
        return result

    def ask(self, question: str) -> str:
        return self.ask_with_sources(question).answer

    def predict(self, microcontroller: str, module: str) -> str:
        return self.ask(wiring_question(microcontroller, module))
