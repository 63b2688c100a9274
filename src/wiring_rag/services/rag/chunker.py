from __future__ import annotations

from wiring_rag.errors import InvalidChunkConfig
from wiring_rag.services.rag.types import Chunk, NormalizedDocument

SEPARATORS = ("\n\n", "\n", " ")


def validate_chunk_config(*, chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size <= 0:
        raise InvalidChunkConfig(f"chunk_size must be > 0, got {chunk_size}")
    if chunk_overlap < 0:
        raise InvalidChunkConfig(f"chunk_overlap must be >= 0, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise InvalidChunkConfig(
            f"chunk_overlap must be smaller than chunk_size "
            f"(chunk_size={chunk_size}, chunk_overlap={chunk_overlap})"
        )


def _find_break(text: str, *, start: int, end: int, chunk_overlap: int, window: int) -> int | None:
    # cut must keep more than chunk_overlap chars so the next start moves forward
    lower = max(start + chunk_overlap + 1, end - window)
    for separator in SEPARATORS:
        position = text.rfind(separator, lower, end)
        if position == -1:
            continue
        cut = position + len(separator)
        if start + chunk_overlap < cut <= end:
            return cut
    return None


def _split_spans(
    text: str,
    *,
    chunk_size: int,
    chunk_overlap: int,
    window: int,
) -> list[tuple[int, int]]:
    spans: list[tuple[int, int]] = []
    stride = chunk_size - chunk_overlap
    cursor = 0
    text_length = len(text)

    while cursor < text_length:
        end = cursor + chunk_size
        if end < text_length and window > 0:
            cut = _find_break(
                text, start=cursor, end=end, chunk_overlap=chunk_overlap, window=window
            )
            if cut is not None and cut < end:
                spans.append((cursor, cut))
                cursor = cut - chunk_overlap
                continue

        spans.append((cursor, min(end, text_length)))
        cursor += stride

    return spans


def chunk_document(
    document: NormalizedDocument,
    *,
    chunk_size: int,
    chunk_overlap: int,
    boundary_window: int | None = None,
) -> list[Chunk]:
    validate_chunk_config(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    window = chunk_size // 4 if boundary_window is None else max(0, boundary_window)

    chunks: list[Chunk] = []
    for start, end in _split_spans(
        document.text,
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        window=window,
    ):
        segment = document.text[start:end]
        if not segment.strip():
            continue
        chunks.append(
            Chunk(
                source_path=document.source_path,
                text=segment,
                start_offset=start,
                sequence_index=len(chunks),
            )
        )

    return chunks


def chunk_documents(
    documents: list[NormalizedDocument],
    *,
    chunk_size: int,
    chunk_overlap: int,
    boundary_window: int | None = None,
) -> list[Chunk]:
    validate_chunk_config(chunk_size=chunk_size, chunk_overlap=chunk_overlap)

    chunks: list[Chunk] = []
    for document in documents:
        chunks.extend(
            chunk_document(
                document,
                chunk_size=chunk_size,
                chunk_overlap=chunk_overlap,
                boundary_window=boundary_window,
            )
        )
    return chunks
