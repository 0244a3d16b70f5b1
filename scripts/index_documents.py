"""
Index plain-text documents into a bot's vector collection.

Text extraction (PDF, DOCX, ...) happens upstream; this script only reads
.txt and .md files, chunks them and stores their embeddings.

Usage:
  python scripts/index_documents.py --bot campus --input_dir docs --config config/engine.yaml
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from botengine.config import EngineSettings, configure_logging
from botengine.factory import build_embedder, build_vector_store
from botengine.ingestion import DocumentIndexer, knowledge_stats

logger = logging.getLogger("index_documents")

SUFFIXES = {".txt", ".md"}


def main() -> None:
    parser = argparse.ArgumentParser(description="Index text documents for one bot.")
    parser.add_argument("--bot", required=True, help="Bot id that owns the documents.")
    parser.add_argument("--input_dir", required=True, help="Directory with .txt/.md files.")
    parser.add_argument("--config", default=None, help="Path to a JSON/YAML config file.")
    args = parser.parse_args()

    settings = EngineSettings.from_file(args.config)
    configure_logging(settings.log_level)
    indexer = DocumentIndexer(build_embedder(settings), build_vector_store(settings))

    files = sorted(p for p in Path(args.input_dir).rglob("*") if p.suffix.lower() in SUFFIXES)
    if not files:
        logger.warning("No documents found in %s", args.input_dir)
        return

    for path in files:
        text = path.read_text(encoding="utf-8")
        stats = indexer.index_document(args.bot, text, title=path.stem, source=path.name, document_id=path.stem)
        logger.info("%s: %d chunks, %d chars", path.name, stats.total_chunks, stats.total_characters)

    logger.info("Collection stats for %s: %s", args.bot, knowledge_stats(indexer.store, args.bot))


if __name__ == "__main__":
    main()
