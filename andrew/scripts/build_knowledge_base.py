"""
Andrew - Knowledge Base Build Script
=====================================
CLI entry point that orchestrates:
    1. Load settings (fail-fast on a broken ``.env``).
    2. Read raw documents with ``KnowledgeBaseBuilder``.
    3. Write the ``{systemPrompt, knowledgeBase}`` document.
    4. Dry-run the retrieval engine over the result (relation inference
       included) and print a structured summary.

Flags:
    --source              Folder with ``.txt`` / ``.md`` documents.
    --output              Target JSON file.
    --system-prompt-file  Text file holding the system prompt.  Without
                          it the prompt of the existing output file is
                          kept, if there is one.

Usage:
    python -m andrew.scripts.build_knowledge_base
    python -m andrew.scripts.build_knowledge_base --source docs/ --output kb.json
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

from pydantic import ValidationError


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="build_knowledge_base", description="Andrew — Build the knowledge-base document from raw files.")
    parser.add_argument("--source", type=Path, default=None, help="Source folder (default: settings.DATA_RAW_DIR).")
    parser.add_argument("--output", type=Path, default=None, help="Output JSON file (default: settings.KNOWLEDGE_BASE_PATH).")
    parser.add_argument("--system-prompt-file", type=Path, default=None, help="Text file with the system prompt.")
    return parser.parse_args()


def _resolve_system_prompt(prompt_file: Path | None, output: Path) -> str:
    if prompt_file is not None:
        return prompt_file.read_text(encoding="utf-8").strip()
    if output.exists():
        try:
            payload = json.loads(output.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return ""
        if isinstance(payload, dict) and isinstance(payload.get("systemPrompt"), str):
            return payload["systemPrompt"]
    return ""


def main() -> None:
    args = _parse_args()
    t_start = time.perf_counter()

    try:
        from andrew.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)

    from andrew.src.core.ingestor import KnowledgeBaseBuilder
    from andrew.src.core.retrieval import RetrievalEngine
    from andrew.src.utils.logger import get_logger

    logger = get_logger(__name__)

    source = args.source or settings.DATA_RAW_DIR
    output = args.output or settings.KNOWLEDGE_BASE_PATH
    system_prompt = _resolve_system_prompt(args.system_prompt_file, output)
    if not system_prompt:
        logger.warning("No system prompt supplied — writing an empty one.")

    _print_header(source, output, settings.CHUNK_SIZE, settings.CHUNK_OVERLAP)

    builder = KnowledgeBaseBuilder(source_dir=source)
    chunks = builder.build()
    if not chunks:
        logger.error("Nothing to write: no chunks were built from %s.", source)
        sys.exit(1)

    try:
        builder.write(output, system_prompt, chunks)
    except ValidationError as exc:
        logger.error("Knowledge base failed validation, nothing written:\n%s", exc)
        sys.exit(1)

    # Dry run: relation inference over the fresh corpus
    t_engine = time.perf_counter()
    engine = RetrievalEngine()
    engine.initialize(chunks, system_prompt)
    engine_ms = (time.perf_counter() - t_engine) * 1000
    linked = sum(1 for chunk_id in engine.get_chunk_ids() if engine.get_chunk(chunk_id).related_ids)  # type: ignore[union-attr]

    _print_footer(len(chunks), linked, engine_ms, time.perf_counter() - t_start)


def _print_header(source: Path, output: Path, chunk_size: int, overlap: int) -> None:
    print()
    print("=" * 60)
    print("  ANDREW — Knowledge Base Build")
    print("=" * 60)
    print(f"  Source dir   : {source}")
    print(f"  Output file  : {output}")
    print(f"  Chunk size   : {chunk_size} chars (overlap {overlap})")
    print("=" * 60)
    print()


def _print_footer(total_chunks: int, linked: int, engine_ms: float, elapsed: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Chunks written        : {total_chunks}")
    print(f"  Chunks with relations : {linked}")
    print(f"  Engine dry run        : {engine_ms:>8.1f}ms")
    print(f"  Total elapsed         : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


if __name__ == "__main__":
    main()
