from __future__ import annotations

import logging

from wiring_rag.services.rag.types import (
    NormalizationSkipped,
    NormalizedDocument,
    RawDocument,
    RowsContent,
    ScalarContent,
)

logger = logging.getLogger(__name__)


def normalize_document(document: RawDocument) -> NormalizedDocument | None:
    content = document.content
    if isinstance(content, ScalarContent):
        return NormalizedDocument(source_path=document.source_path, text=content.text)
    if isinstance(content, RowsContent):
        return NormalizedDocument(source_path=document.source_path, text="\n".join(content.rows))
    return None


def normalize_documents(
    documents: list[RawDocument],
) -> tuple[list[NormalizedDocument], list[NormalizationSkipped]]:
    normalized: list[NormalizedDocument] = []
    skipped: list[NormalizationSkipped] = []

    for document in documents:
        result = normalize_document(document)
        if result is None:
            reason = f"unsupported content type {type(document.content).__name__}"
            logger.warning("Skipping %s: %s", document.source_path, reason)
            skipped.append(NormalizationSkipped(source_path=document.source_path, reason=reason))
            continue
        normalized.append(result)

    return normalized, skipped
