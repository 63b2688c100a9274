from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ScalarContent:
    text: str


@dataclass(frozen=True)
class RowsContent:
    rows: tuple[str, ...]


RawContent = ScalarContent | RowsContent


@dataclass(frozen=True)
class RawDocument:
    source_path: str
    content: RawContent


@dataclass(frozen=True)
class NormalizedDocument:
    source_path: str
    text: str


@dataclass(frozen=True)
class Chunk:
    source_path: str
    text: str
    start_offset: int
    sequence_index: int

    @property
    def key(self) -> tuple[str, int]:
        return (self.source_path, self.sequence_index)


@dataclass(frozen=True)
class IndexEntry:
    vector: list[float]
    chunk: Chunk


@dataclass(frozen=True)
class SearchHit:
    chunk: Chunk
    distance: float


@dataclass(frozen=True)
class SourceFileError:
    source_path: str
    message: str


@dataclass(frozen=True)
class NormalizationSkipped:
    source_path: str
    reason: str


@dataclass(frozen=True)
class LoadResult:
    documents: list[RawDocument]
    errors: list[SourceFileError] = field(default_factory=list)


@dataclass(frozen=True)
class ConversationTurn:
    question: str
    answer: str


@dataclass(frozen=True)
class IngestionSummary:
    document_count: int
    chunk_count: int
    index_path: str
    loaded_existing: bool
    persisted: bool
    skipped_count: int = 0
    source_errors: list[SourceFileError] = field(default_factory=list)
    save_error: str | None = None
