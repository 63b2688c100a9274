from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from dotenv import load_dotenv

from wiring_rag.clients import get_embedding_client, get_index_params
from wiring_rag.config import PipelineConfig, get_settings
from wiring_rag.services.rag.pipeline import open_or_build_index


def _build_parser() -> argparse.ArgumentParser:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="wiring-rag-ingest",
        description="Ingest the components corpus and persist the vector index",
    )
    parser.add_argument(
        "--source-dir",
        default=settings.rag_source_dir,
        help="Corpus directory containing .txt/.csv documents",
    )
    parser.add_argument(
        "--index-path",
        default=settings.rag_index_path,
        help="Path of the persisted vector index file",
    )
    parser.add_argument("--chunk-size", type=int, default=None, help="Chunk size in characters")
    parser.add_argument(
        "--chunk-overlap", type=int, default=None, help="Chunk overlap in characters"
    )
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Re-embed the corpus and atomically replace an existing index",
    )
    parser.add_argument(
        "--payload-json",
        default=None,
        help="Optional JSON object with pipeline overrides (chunk_size/chunk_overlap/boundary_window)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _resolve_payload(payload_json_raw: str | None) -> dict[str, object]:
    if payload_json_raw is None:
        return {}
    parsed = json.loads(payload_json_raw)
    if not isinstance(parsed, dict):
        raise ValueError("payload_json must be a JSON object")
    return parsed


def main() -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = get_settings()

    try:
        overrides = _resolve_payload(args.payload_json)
        if args.chunk_size is not None:
            overrides["chunk_size"] = args.chunk_size
        if args.chunk_overlap is not None:
            overrides["chunk_overlap"] = args.chunk_overlap
        config = PipelineConfig.from_settings(settings, **overrides)
        _, summary = open_or_build_index(
            source_dir=Path(args.source_dir),
            index_path=Path(args.index_path),
            config=config,
            embedding_client=get_embedding_client(settings),
            index_params=get_index_params(settings),
            force_rebuild=args.rebuild,
        )
    except Exception as exc:
        print(f"[wiring-rag-ingest] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc

    for error in summary.source_errors:
        print(
            f"[wiring-rag-ingest] skipped unreadable file {error.source_path}: {error.message}",
            file=sys.stderr,
            flush=True,
        )

    print(
        "[wiring-rag-ingest] completed "
        f"loaded_existing={summary.loaded_existing} "
        f"documents={summary.document_count} "
        f"chunks={summary.chunk_count} "
        f"skipped={summary.skipped_count + len(summary.source_errors)} "
        f"index_path={summary.index_path}",
        flush=True,
    )

    if summary.save_error is not None:
        print(f"[wiring-rag-ingest] index was not saved: {summary.save_error}", file=sys.stderr, flush=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
