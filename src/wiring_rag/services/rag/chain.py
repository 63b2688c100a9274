from __future__ import annotations

from dataclasses import dataclass

from wiring_rag.llm import LLMClient
from wiring_rag.services.rag.embedding_client import EmbeddingClient, embed_query
from wiring_rag.services.rag.types import SearchHit
from wiring_rag.services.rag.vector_index import VectorIndex

NO_CONTEXT_MARKER = "No relevant context found in local retrieval index."

PROMPT_TEMPLATES = {
    "qa": (
        "Use the following pieces of context to answer the question at the end. "
        "If you don't know the answer, just say that you don't know, "
        "don't try to make up an answer.\n"
        "\n"
        "Chat history:\n"
        "{history}\n"
        "\n"
        "Context:\n"
        "{context}\n"
        "\n"
        "Question: {question}\n"
        "Helpful Answer:"
    ),
    "conversational": (
        "Use the following pieces of context to answer the question at the end. "
        "If you don't know the answer, just say that you don't know, "
        "don't try to make up an answer.\n"
        "----------------\n"
        "CHAT HISTORY: {history}\n"
        "----------------\n"
        "CONTEXT:\n"
        "{context}\n"
        "----------------\n"
        "QUESTION: {question}\n"
        "----------------\n"
        "Helpful Answer:"
    ),
}


def resolve_template(name_or_template: str) -> str:
    """Return a named template, or the argument itself if it is a template string."""
    template = PROMPT_TEMPLATES.get(name_or_template, name_or_template)
    for placeholder in ("{question}", "{context}"):
        if placeholder not in template:
            raise ValueError(
                f"prompt template must be one of {sorted(PROMPT_TEMPLATES)} "
                f"or contain {placeholder}"
            )
    try:
        template.format(question="", context="", history="")
    except (KeyError, IndexError, ValueError) as exc:
        raise ValueError(f"prompt template has unsupported placeholders: {exc}") from exc
    return template


def build_prompt(
    template: str,
    *,
    question: str,
    contexts: list[str],
    history: str | None = None,
) -> str:
    context = "\n\n".join(contexts) if contexts else NO_CONTEXT_MARKER
    return template.format(question=question, context=context, history=history or "")


@dataclass(frozen=True)
class ChainResult:
    answer: str
    hits: list[SearchHit]
    model: str


class RetrievalChain:
    def __init__(
        self,
        *,
        index: VectorIndex,
        embedding_client: EmbeddingClient,
        llm_client: LLMClient,
        top_k: int = 4,
        temperature: float = 0.05,
        prompt_template: str = "qa",
    ) -> None:
        if top_k < 1:
            raise ValueError("top_k must be >= 1")
        self._index = index
        self._embedding_client = embedding_client
        self._llm_client = llm_client
        self._top_k = top_k
        self._temperature = temperature
        self._template = resolve_template(prompt_template)

    def retrieve(self, question: str) -> list[SearchHit]:
        if not self._index.entries:
            return []
        query_vector = embed_query(self._embedding_client, question)
        return self._index.search(query_vector, self._top_k)

    def run(self, question: str, history: str | None = None) -> ChainResult:
        if not question.strip():
            raise ValueError("question must not be empty")

        hits = self.retrieve(question)
        prompt = build_prompt(
            self._template,
            question=question,
            contexts=[hit.chunk.text for hit in hits],
            history=history,
        )
        result = self._llm_client.generate(prompt=prompt, temperature=self._temperature)
        return ChainResult(answer=result.answer, hits=hits, model=result.model)

    def answer(self, question: str, history: str | None = None) -> str:
        return self.run(question, history).answer
