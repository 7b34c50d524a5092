"""
verify_retrieval.py — Retrieval Inspection

Loads the bundled knowledge base, runs one query through the retrieval
engine and prints the ranked chunks with their scores, followed by the
exact context block the chat pipeline would inject.

Run:  python verify_retrieval.py "How do I calculate my follow-back ratio?"
"""

import argparse
import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))

from dotenv import load_dotenv
load_dotenv(_PROJECT_ROOT / ".env")

from andrew.src.core.retrieval import RetrievalEngine
from andrew.src.core.similarity import find_relevant_texts
from andrew.src.database.knowledge_store import KnowledgeBaseStore


def main():
    parser = argparse.ArgumentParser(description="Inspect retrieval results for a query.")
    parser.add_argument("query", nargs="?", default="How do I create multiple Instagram accounts?")
    parser.add_argument("--history", default="", help="Conversation history folded into the query.")
    parser.add_argument("--max-chunks", type=int, default=3)
    args = parser.parse_args()

    # -- Init --
    config = KnowledgeBaseStore().load()
    engine = RetrievalEngine()
    engine.initialize(config.knowledge_base, config.system_prompt)
    print(f"Corpus: {len(engine.get_chunk_ids())} chunks.\n")

    # -- Query --
    print(f"Query: {args.query}")
    print("=" * 60)
    results = engine.retrieve(args.query, args.history, args.max_chunks)
    for i, result in enumerate(results, 1):
        kind = "primary" if result.is_primary else "related"
        print(f"\n--- Result {i} ({kind}) ---")
        print(f"  Id:       {result.chunk.id}")
        print(f"  Title:    {result.chunk.title}")
        print(f"  Score:    {result.score:.4f}")
        print(f"  Related:  {', '.join(result.chunk.related_ids) or '-'}")

    # -- Signature-only baseline --
    print("\n" + "=" * 60)
    print("SIGNATURE-ONLY BASELINE (no keyword boost, no expansion):")
    chunk_ids = engine.get_chunk_ids()
    chunks = [engine.get_chunk(chunk_id) for chunk_id in chunk_ids]
    titles = [chunk.title for chunk in chunks]
    for title in find_relevant_texts(args.query, titles, [chunk.signature for chunk in chunks], top_k=args.max_chunks):
        print(f"  → {title}")

    # -- Context block --
    print("\n" + "=" * 60)
    print("CONTEXT BLOCK:\n")
    print(RetrievalEngine.format_context(results))


if __name__ == "__main__":
    main()
