"""
Andrew - KnowledgeBaseBuilder
==============================
Offline authoring helper that turns a folder of raw ``.txt`` / ``.md``
documents into a knowledge-base document the retrieval engine can load.

Pipeline per file: read → clean → paragraph chunking → ``KnowledgeChunk``.

- **Ids** are ``{file-stem-slug}-{index}`` so they stay stable while the
  document keeps its name and structure.  Ids that still collide (``faq.md``
  next to ``faq.txt``) get a ``-2``, ``-3``, ... suffix.
- **Titles** come from the first line of the chunk when it looks like a
  heading (``# ...`` or a short line), otherwise from the file stem.
- **Curated keywords** are seeded with the top extracted keywords; an
  author is expected to refine them by hand.
- **Relations** are left empty: the retrieval engine infers them.

Not used on the request path.

Usage:
    from andrew.src.core.ingestor import KnowledgeBaseBuilder
    builder = KnowledgeBaseBuilder(source_dir)
    chunks = builder.build()
    builder.write(output_path, system_prompt, chunks)
"""

from __future__ import annotations

import json
import time
from pathlib import Path

from andrew.config.settings import settings
from andrew.src.core.features import extract_keywords
from andrew.src.core.models import KnowledgeBaseConfig, KnowledgeChunk
from andrew.src.utils.logger import get_logger
from andrew.src.utils.text_utils import chunk_text, clean_text, slugify

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = {".txt", ".md"}
_SEED_KEYWORDS = 5
_MAX_HEADING_LENGTH = 80


class KnowledgeBaseBuilder:
    """
    Build ``KnowledgeChunk``s from the documents in *source_dir*.

    Parameters
    ----------
    source_dir
        Folder scanned (non-recursively).  Defaults to ``settings.DATA_RAW_DIR``.
    chunk_size / chunk_overlap
        Override ``settings.CHUNK_SIZE`` / ``settings.CHUNK_OVERLAP``.
    """

    def __init__(self, source_dir: Path | None = None, chunk_size: int | None = None, chunk_overlap: int | None = None) -> None:
        self._source_dir = Path(source_dir or settings.DATA_RAW_DIR)
        self._chunk_size = chunk_size or settings.CHUNK_SIZE
        self._chunk_overlap = settings.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINTS
    # ══════════════════════════════════════════════════════════════════

    def build(self) -> list[KnowledgeChunk]:
        """Return the chunks of every supported file, files in name order."""
        t_start = time.perf_counter()
        if not self._source_dir.exists():
            logger.warning("[INGEST] Source directory does not exist: %s", self._source_dir)
            return []

        files = sorted(f for f in self._source_dir.iterdir() if f.is_file() and f.suffix.lower() in _SUPPORTED_EXTENSIONS)
        if not files:
            logger.warning("[INGEST] No supported files found in %s", self._source_dir)
            return []

        logger.info("[INGEST] Building knowledge base from %d file(s) in %s", len(files), self._source_dir)
        chunks: list[KnowledgeChunk] = []
        for filepath in files:
            file_chunks = self.build_file(filepath)
            logger.info("[INGEST] '%s' → %d chunk(s).", filepath.name, len(file_chunks))
            chunks.extend(file_chunks)

        chunks = self._unique_ids(chunks)
        logger.info("[INGEST] %d chunk(s) built in %.1fms.", len(chunks), (time.perf_counter() - t_start) * 1000)
        return chunks


    def build_file(self, filepath: Path) -> list[KnowledgeChunk]:
        text = clean_text(self._read_file(filepath))
        if not text:
            return []

        stem_slug = slugify(filepath.stem) or "document"
        fallback_title = filepath.stem.replace("_", " ").replace("-", " ").strip().title()

        chunks: list[KnowledgeChunk] = []
        for idx, piece in enumerate(chunk_text(text, self._chunk_size, self._chunk_overlap)):
            title, body = self._split_title(piece, fallback_title)
            if not body.strip():
                continue
            chunks.append(KnowledgeChunk(id=f"{stem_slug}-{idx}", title=title, content=body, keywords=extract_keywords(f"{title}\n\n{body}", limit=_SEED_KEYWORDS)))
        return chunks


    @staticmethod
    def write(output_path: Path, system_prompt: str, chunks: list[KnowledgeChunk]) -> KnowledgeBaseConfig:
        """Validate and serialise a knowledge-base document to *output_path*."""
        config = KnowledgeBaseConfig(system_prompt=system_prompt, knowledge_base=chunks)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        payload = config.model_dump(by_alias=True)
        output_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        logger.info("[INGEST] Wrote %d chunk(s) to %s", len(chunks), output_path)
        return config

    # ══════════════════════════════════════════════════════════════════
    #  HELPERS
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _unique_ids(chunks: list[KnowledgeChunk]) -> list[KnowledgeChunk]:
        """Suffix ids that collide (same file stem, or stems that slugify alike) with ``-2``, ``-3``, ..."""
        used: set[str] = set()
        unique: list[KnowledgeChunk] = []
        for chunk in chunks:
            chunk_id = chunk.id
            counter = 2
            while chunk_id in used:
                chunk_id = f"{chunk.id}-{counter}"
                counter += 1
            if chunk_id != chunk.id:
                logger.warning("[INGEST] Chunk id '%s' already taken, using '%s'.", chunk.id, chunk_id)
                chunk = chunk.model_copy(update={"id": chunk_id})
            used.add(chunk_id)
            unique.append(chunk)
        return unique


    @staticmethod
    def _read_file(filepath: Path) -> str:
        try:
            return filepath.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return filepath.read_text(encoding="latin-1")


    @staticmethod
    def _split_title(piece: str, fallback_title: str) -> tuple[str, str]:
        """Use a leading heading line as the title; otherwise keep the whole piece as body."""
        first_line, _, rest = piece.partition("\n")
        candidate = first_line.lstrip("#").strip()
        is_heading = first_line.startswith("#") or (len(first_line) <= _MAX_HEADING_LENGTH and bool(rest.strip()) and not first_line.rstrip().endswith((".", ":", "?", "!")))
        if candidate and is_heading:
            return candidate, rest.strip()
        return fallback_title, piece.strip()
