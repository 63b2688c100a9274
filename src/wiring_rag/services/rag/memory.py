from __future__ import annotations

from wiring_rag.services.rag.types import ConversationTurn


class ConversationMemory:
    """Append-only record of the question/answer turns of one session."""

    def __init__(self) -> None:
        self._turns: list[ConversationTurn] = []

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)

    def render(self) -> str:
        lines: list[str] = []
        for turn in self._turns:
            lines.append(f"Human: {turn.question}")
            lines.append(f"AI: {turn.answer}")
        return "\n".join(lines)
