from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

from dotenv import load_dotenv

from wiring_rag.clients import get_embedding_client, get_index_params, get_llm_client
from wiring_rag.config import PipelineConfig, Settings, get_settings
from wiring_rag.services.rag.chain import ChainResult
from wiring_rag.services.rag.pipeline import WiringAssistant, open_or_build_index, wiring_question


def create_assistant(
    settings: Settings | None = None,
    *,
    config: PipelineConfig | None = None,
) -> WiringAssistant:
    settings = settings or get_settings()
    config = config or PipelineConfig.from_settings(settings)
    embedding_client = get_embedding_client(settings)

    index, _ = open_or_build_index(
        source_dir=Path(settings.rag_source_dir),
        index_path=Path(settings.rag_index_path),
        config=config,
        embedding_client=embedding_client,
        index_params=get_index_params(settings),
    )
    return WiringAssistant(
        index=index,
        embedding_client=embedding_client,
        llm_client=get_llm_client(settings),
        config=config,
    )


def predict(microcontroller: str, module: str) -> str:
    """Answer how to wire ``microcontroller`` to ``module`` using the configured index."""
    return create_assistant().predict(microcontroller, module)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wiring-rag-ask",
        description="Ask how to wire a microcontroller to an embedded module",
    )
    parser.add_argument("--question", default=None, help="Free-form question")
    parser.add_argument("--microcontroller", default=None, help="e.g. 'Raspberry Pi Pico'")
    parser.add_argument("--module", default=None, help="e.g. 'Servo Motor'")
    parser.add_argument(
        "--show-sources",
        action="store_true",
        help="Print the retrieved chunks after the answer",
    )
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Keep asking follow-up questions with conversation memory",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _print_result(result: ChainResult, *, show_sources: bool) -> None:
    print(result.answer, flush=True)
    if not show_sources:
        return
    print(f"[model] {result.model}", flush=True)
    for hit in result.hits:
        print(
            f"[source] {hit.chunk.source_path}#{hit.chunk.sequence_index} "
            f"distance={hit.distance:.6f}",
            flush=True,
        )


def _first_question(args: argparse.Namespace, parser: argparse.ArgumentParser) -> str | None:
    if args.question:
        return args.question
    if args.microcontroller and args.module:
        return wiring_question(args.microcontroller, args.module)
    if args.microcontroller or args.module:
        parser.error("--microcontroller and --module must be given together")
    if not args.interactive:
        parser.error("provide --question, --microcontroller/--module, or --interactive")
    return None


def main() -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    question = _first_question(args, parser)
    settings = get_settings()

    try:
        config = PipelineConfig.from_settings(settings, use_memory=args.interactive or None)
        assistant = create_assistant(settings, config=config)
        if question is not None:
            _print_result(assistant.ask_with_sources(question), show_sources=args.show_sources)

        while args.interactive:
            try:
                follow_up = input("> ").strip()
            except EOFError:
                break
            if follow_up.lower() in {"", "exit", "quit"}:
                break
            _print_result(assistant.ask_with_sources(follow_up), show_sources=args.show_sources)
    except Exception as exc:
        print(f"[wiring-rag-ask] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
