from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

from wiring_rag.errors import GenerationFailed


@dataclass(frozen=True)
class ChatResult:
    answer: str
    model: str
    used_fallback: bool


class LLMClient(Protocol):
    def generate(self, *, prompt: str, temperature: float) -> ChatResult: ...


class OpenAIChatClient:
    def __init__(
        self,
        *,
        base_url: str,
        default_model: str,
        fallback_model: str = "",
        api_key: str = "",
        timeout_seconds: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._fallback_model = fallback_model
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds

    def generate(self, *, prompt: str, temperature: float) -> ChatResult:
        candidates = self._model_candidates()
        for model, used_fallback in candidates:
            try:
                content = self._chat_completion(model=model, prompt=prompt, temperature=temperature)
            except (httpx.HTTPError, ValueError) as exc:
                if (model, used_fallback) == candidates[-1]:
                    raise GenerationFailed(f"chat completion with {model} failed: {exc}") from exc
                continue

            return ChatResult(answer=content, model=model, used_fallback=used_fallback)

        raise GenerationFailed("No model candidates configured")

    def _model_candidates(self) -> list[tuple[str, bool]]:
        candidates: list[tuple[str, bool]] = [(self._default_model, False)]
        if self._fallback_model and self._fallback_model != self._default_model:
            candidates.append((self._fallback_model, True))
        return candidates

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"Authorization": f"Bearer {self._api_key}"}

    def _chat_completion(self, *, model: str, prompt: str, temperature: float) -> str:
        response = httpx.post(
            f"{self._base_url}/chat/completions",
            json={
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": temperature,
            },
            headers=self._headers(),
            timeout=self._timeout_seconds,
        )
        response.raise_for_status()

        payload = response.json()
        choices = payload.get("choices") if isinstance(payload, dict) else None
        if not isinstance(choices, list) or not choices:
            raise ValueError("Invalid chat completion payload: missing choices")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ValueError("Invalid chat completion payload: missing assistant content")

        return content
