import pytest

from wiring_rag.errors import GenerationFailed
from wiring_rag.llm import ChatResult
from wiring_rag.services.rag.chain import (
    NO_CONTEXT_MARKER,
    RetrievalChain,
    build_prompt,
    resolve_template,
)
from wiring_rag.services.rag.chunker import chunk_document
from wiring_rag.services.rag.memory import ConversationMemory
from wiring_rag.services.rag.types import ConversationTurn, NormalizedDocument
from wiring_rag.services.rag.vector_index import build_index


class FailingLLMClient:
    def generate(self, *, prompt: str, temperature: float) -> ChatResult:
        raise GenerationFailed("simulated quota failure")


def test_chain_prompt_contains_exactly_the_retrieved_chunks(embedding_client, llm_client) -> None:
    chunks = chunk_document(
        NormalizedDocument(source_path="a.txt", text="ABCDEFGHIJ"),
        chunk_size=4,
        chunk_overlap=1,
    )
    index = build_index(chunks, embedding_client)
    chain = RetrievalChain(
        index=index,
        embedding_client=embedding_client,
        llm_client=llm_client,
        top_k=4,
        temperature=0.05,
    )

    answer = chain.answer("What is in a.txt?")

    assert answer == "mocked answer"
    assert len(llm_client.calls) == 1
    prompt, temperature = llm_client.calls[0]
    assert temperature == 0.05
    assert "What is in a.txt?" in prompt
    context = prompt.split("Context:\n", 1)[1].split("\n\nQuestion:", 1)[0]
    assert sorted(context.split("\n\n")) == sorted(["ABCD", "DEFG", "GHIJ", "J"])
    assert NO_CONTEXT_MARKER not in prompt


def test_chain_orders_context_by_search_result(embedding_client, llm_client) -> None:
    servo = NormalizedDocument("servo.txt", "servo servo pwm")
    buzzer = NormalizedDocument("buzzer.txt", "buzzer tone")
    chunks = chunk_document(servo, chunk_size=100, chunk_overlap=0) + chunk_document(
        buzzer, chunk_size=100, chunk_overlap=0
    )
    chain = RetrievalChain(
        index=build_index(chunks, embedding_client),
        embedding_client=embedding_client,
        llm_client=llm_client,
        top_k=1,
    )

    result = chain.run("How do I drive a buzzer tone?")

    assert result.model == "fake-model"
    assert [hit.chunk.source_path for hit in result.hits] == ["buzzer.txt"]
    prompt, _ = llm_client.calls[0]
    assert "buzzer tone" in prompt
    assert "servo servo pwm" not in prompt


def test_chain_with_empty_index_still_generates(embedding_client, llm_client) -> None:
    chain = RetrievalChain(
        index=build_index([], embedding_client),
        embedding_client=embedding_client,
        llm_client=llm_client,
    )

    answer = chain.answer("Anything about servos?")

    assert answer == "mocked answer"
    prompt, _ = llm_client.calls[0]
    assert NO_CONTEXT_MARKER in prompt


def test_chain_propagates_generation_failure(embedding_client) -> None:
    chain = RetrievalChain(
        index=build_index([], embedding_client),
        embedding_client=embedding_client,
        llm_client=FailingLLMClient(),
    )

    with pytest.raises(GenerationFailed, match="simulated quota failure"):
        chain.answer("hello")


def test_chain_rejects_blank_question(embedding_client, llm_client) -> None:
    chain = RetrievalChain(
        index=build_index([], embedding_client),
        embedding_client=embedding_client,
        llm_client=llm_client,
    )

    with pytest.raises(ValueError, match="question must not be empty"):
        chain.answer("   ")
    assert llm_client.calls == []


def test_build_prompt_injects_history_into_conversational_template() -> None:
    prompt = build_prompt(
        resolve_template("conversational"),
        question="What else can I connect?",
        contexts=["Buzzer: GP15"],
        history="Human: wire a buzzer\nAI: use GP15",
    )

    assert "CHAT HISTORY: Human: wire a buzzer\nAI: use GP15" in prompt
    assert "CONTEXT:\nBuzzer: GP15" in prompt
    assert "QUESTION: What else can I connect?" in prompt


def test_resolve_template_accepts_custom_and_rejects_incomplete() -> None:
    custom = "Q={question}\nC={context}"

    assert resolve_template(custom) == custom
    with pytest.raises(ValueError):
        resolve_template("only {question}")
    with pytest.raises(ValueError):
        resolve_template("{question} {context} {unknown}")


def test_memory_renders_turns_in_order() -> None:
    memory = ConversationMemory()

    assert memory.render() == ""

    memory.append(ConversationTurn(question="How to wire a servo?", answer="Signal to GP15."))
    memory.append(ConversationTurn(question="And power?", answer="Use VBUS."))

    assert len(memory) == 2
    assert memory.render() == (
        "Human: How to wire a servo?\nAI: Signal to GP15.\nHuman: And power?\nAI: Use VBUS."
    )
