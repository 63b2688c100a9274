from collections.abc import Iterator

import pytest

from wiring_rag.config import get_settings
from wiring_rag.llm import ChatResult


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class KeywordEmbeddingClient:
    """Counts wiring keywords so related chunks land close to each other."""

    KEYWORDS = (("servo", "pwm"), ("buzzer", "tone"), ("nfc", "pn532"))

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors: list[list[float]] = []
        for text in texts:
            normalized = text.lower()
            vectors.append(
                [
                    float(sum(normalized.count(word) for word in group)) + 0.01
                    for group in self.KEYWORDS
                ]
            )
        return vectors

    @property
    def embedded_text_count(self) -> int:
        return sum(len(batch) for batch in self.calls)


class RecordingLLMClient:
    def __init__(self, answer: str = "mocked answer") -> None:
        self.answer = answer
        self.calls: list[tuple[str, float]] = []

    def generate(self, *, prompt: str, temperature: float) -> ChatResult:
        self.calls.append((prompt, temperature))
        return ChatResult(answer=self.answer, model="fake-model", used_fallback=False)


@pytest.fixture
def embedding_client() -> KeywordEmbeddingClient:
    return KeywordEmbeddingClient()


@pytest.fixture
def llm_client() -> RecordingLLMClient:
    return RecordingLLMClient()
