"""Document ingestion: **segment -> chunk -> embed -> store**.

1. **Segment** (segmenter.py / StructuralSegmenter) -- splits raw text into
   paragraph segments and detects headers with their level.

2. **Chunk** (chunker.py / BoundaryAwareChunker) -- packs segments into
   size-bounded chunks that never split a header, seeding each chunk with
   the tail of the previous one.  chunk_analyzer.py derives chunk type,
   page range and content flags.

3. **Embed and store** (ingestion_service.py / IngestionService) -- runs
   the rate-limited embedding pipeline and writes one index per document.
"""

from src.services.ingestion.chunker import BoundaryAwareChunker, chunk_text
from src.services.ingestion.ingestion_service import (
    IngestionService,
    build_index_name,
    sanitize_document_id,
)
from src.services.ingestion.segmenter import StructuralSegmenter, classify_header

__all__ = [
    "BoundaryAwareChunker",
    "IngestionService",
    "StructuralSegmenter",
    "build_index_name",
    "chunk_text",
    "classify_header",
    "sanitize_document_id",
]
