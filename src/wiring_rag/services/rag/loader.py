from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Callable

from wiring_rag.errors import SourceUnavailable
from wiring_rag.services.rag.types import (
    LoadResult,
    RawContent,
    RawDocument,
    RowsContent,
    ScalarContent,
    SourceFileError,
)

logger = logging.getLogger(__name__)

ROW_FIELD_SEPARATOR = "; "


def _read_text(path: Path) -> RawContent:
    return ScalarContent(path.read_text(encoding="utf-8-sig"))


def _render_row(row: dict[str | None, object]) -> str:
    fields: list[str] = []
    for column, value in row.items():
        # DictReader files surplus cells under a None key
        if column is None:
            continue
        fields.append(f"{column.strip()}: {'' if value is None else str(value).strip()}")
    return ROW_FIELD_SEPARATOR.join(fields)


def _read_csv(path: Path) -> RawContent:
    with path.open(encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        rows = tuple(_render_row(row) for row in reader)
    return RowsContent(rows)


READERS: dict[str, Callable[[Path], RawContent]] = {
    ".txt": _read_text,
    ".csv": _read_csv,
}


def load_documents(
    source_dir: Path,
    readers: dict[str, Callable[[Path], RawContent]] | None = None,
) -> LoadResult:
    if not source_dir.exists():
        raise SourceUnavailable(f"Source directory not found: {source_dir}")
    if not source_dir.is_dir():
        raise SourceUnavailable(f"Source path is not a directory: {source_dir}")

    selected = readers or READERS
    try:
        files = sorted(
            (
                path
                for path in source_dir.rglob("*")
                if path.is_file() and path.suffix.lower() in selected
            ),
            key=lambda path: path.relative_to(source_dir).as_posix(),
        )
    except OSError as exc:
        raise SourceUnavailable(f"Source directory is not readable: {source_dir}: {exc}") from exc

    documents: list[RawDocument] = []
    errors: list[SourceFileError] = []
    for path in files:
        relative_path = path.relative_to(source_dir).as_posix()
        reader = selected[path.suffix.lower()]
        try:
            content = reader(path)
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            logger.warning("Failed to read %s: %s", relative_path, exc)
            errors.append(SourceFileError(source_path=relative_path, message=str(exc)))
            continue

        documents.append(RawDocument(source_path=relative_path, content=content))

    logger.info(
        "Loaded %d documents from %s (%d failed)", len(documents), source_dir, len(errors)
    )
    return LoadResult(documents=documents, errors=errors)
